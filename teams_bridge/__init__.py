"""Teams Bridge - relay Microsoft Teams activities to a conversational agent."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("teams-bridge")
except PackageNotFoundError:
    __version__ = "0.1.0"

__logo__ = "🟦"
__brand__ = "teams-bridge"
