import platform
from typing import Optional

from covpipe.errors import AcquisitionError

# (system, machine) -> Rust target triple of the published release binaries
SUPPORTED_TARGETS = {
    ("linux", "x86_64"): "x86_64-unknown-linux-gnu",
    ("linux", "aarch64"): "aarch64-unknown-linux-gnu",
    ("darwin", "x86_64"): "x86_64-apple-darwin",
    ("darwin", "arm64"): "aarch64-apple-darwin",
}

MACHINE_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
}


def resolve_target(system: Optional[str] = None, machine: Optional[str] = None) -> str:
    """Map the running (or given) platform to a release target triple.

    Raises:
        AcquisitionError: If no release binary exists for the platform
    """
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    machine = MACHINE_ALIASES.get(machine, machine)
    if system == "darwin" and machine == "aarch64":
        machine = "arm64"

    target = SUPPORTED_TARGETS.get((system, machine))
    if target is None:
        raise AcquisitionError(f"Unsupported platform: {system}/{machine}")
    return target
