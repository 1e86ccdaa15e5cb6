"""
Acquisition Layer - Tool Resolution

Turns the pinned tool release into a local executable handle.
- Verifies downloads against a pinned SHA-256
- Never executes anything it fetched during acquisition
"""

from .installer import ToolHandle, ToolInstaller

__all__ = ["ToolHandle", "ToolInstaller"]
