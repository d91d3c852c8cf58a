"""vaal-chatbot: Twitch chat bridge for collection, stats and Vaal Orb lookups."""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("vaal-chatbot")
except PackageNotFoundError:
    __version__ = "0.0.0"
