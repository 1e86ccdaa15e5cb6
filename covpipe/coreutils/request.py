import re
import time
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
from urllib3.util.retry import Retry
import requests
from requests.adapters import HTTPAdapter
from typing import Iterable, Optional
import logging

from covpipe import __version__

logger = logging.getLogger(__name__)

USER_AGENT = f"covpipe/{__version__}"

DEFAULT_RETRY_STRATEGY = Retry(
    total=5,  # Total number of retries
    backoff_factor=2,  # The backoff factor (2 seconds, then 4, 8...)
    status_forcelist=[429, 500, 502, 503, 504],  # HTTP status codes to retry on
    allowed_methods=["HEAD", "GET"],
)

# Uploads are never replayed by the pipeline; the CI system re-runs the job instead
NO_RETRY_STRATEGY = Retry(total=0, raise_on_status=False)

SECRET_QUERY_KEYS = ("token", "access_token", "repo_token")

# key=value pairs in free text such as exception messages
_SECRET_PARAM_RE = re.compile(
    r"(?<![A-Za-z0-9_])((?:access_|repo_)?token=)[^&\s'\"]+"
)


def new_session(
    retry_strategy: Optional[Retry] = None, accept: str = "application/json"
) -> requests.Session:
    """Create a new requests session with retry strategy"""
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry_strategy or DEFAULT_RETRY_STRATEGY)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    # Set default headers
    session.headers.update({"User-Agent": USER_AGENT, "Accept": accept})

    return session


def redact_url(url: str, secret_keys: Iterable[str] = SECRET_QUERY_KEYS) -> str:
    """Return ``url`` with secret query parameter values replaced by ``***``."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    secret_keys = set(secret_keys)
    query = [
        (key, "***" if key in secret_keys and value else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))


def redact_text(text: str) -> str:
    """Mask every ``token=``, ``access_token=`` and ``repo_token=`` value in ``text``.

    Connection errors quote only the path and query of the failing request,
    so secrets are matched wherever they appear rather than by whole URL.
    """
    return _SECRET_PARAM_RE.sub(r"\1***", text)


def download_file(
    session: requests.Session,
    url: str,
    destination,
    timeout: int = 120,
    chunk_size: int = 1024 * 1024,
    on_chunk=None,
) -> int:
    """Stream ``url`` into ``destination`` and return the number of bytes written.

    Args:
        session: HTTP session to use
        url: URL to fetch
        destination: Path of the file to write
        timeout: Request timeout in seconds
        chunk_size: Size of streamed chunks
        on_chunk: Optional callback receiving every chunk (e.g. a hash update)

    Raises:
        requests.RequestException: On HTTP or connection errors
    """
    start = time.time()
    written = 0

    with session.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        with open(destination, "wb") as f:
            for chunk in response.iter_content(chunk_size=chunk_size):
                if not chunk:
                    continue
                f.write(chunk)
                if on_chunk is not None:
                    on_chunk(chunk)
                written += len(chunk)

    logger.info(
        f"Fetched {written} bytes from {redact_url(url)}: {time.time() - start:.2f} seconds"
    )
    return written
