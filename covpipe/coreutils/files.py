import hashlib
from pathlib import Path


def sha256_file(path: Path) -> str:
    """Compute SHA-256 for ``path`` using chunked reads."""
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        while True:
            chunk = handle.read(1024 * 1024)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()
