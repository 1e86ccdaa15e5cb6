from dotenv import load_dotenv
import os

load_dotenv()  # take environment variables from .env


def env_flag(key: str, default: bool = False, environ=None) -> bool:
    """Read a boolean flag such as ``1``/``true``/``yes`` from the environment."""
    source = os.environ if environ is None else environ
    value = source.get(key)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")
