"""
covpipe - CI coverage reporting pipeline

Acquires cargo-tarpaulin, runs the test suite under coverage, regenerates a
Cobertura report and uploads it to Codecov. Steps run strictly in order and
the first failure ends the run.
"""

__version__ = "1.0.0"
