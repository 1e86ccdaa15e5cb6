import sys

from covpipe.main import main

sys.exit(main())
