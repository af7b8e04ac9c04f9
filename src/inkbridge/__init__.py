"""
InkBridge - chat platform bridge for an opencode agent

Routes conversations from Telegram and Microsoft Teams to backend agent
sessions and streams the answers back.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("inkbridge")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "__version__",
]
