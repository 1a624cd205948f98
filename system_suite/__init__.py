"""
Terminal toolkit for system status readings and guarded maintenance actions on macOS and Linux.
"""

__all__ = ["actions", "cli", "config", "formatting", "logsink", "runner", "sampling"]
__version__ = "1.0.0"
