"""Serial-to-WebSocket bridge for the smart ELCB controller."""

from .version import __version__

__all__ = ["__version__"]
