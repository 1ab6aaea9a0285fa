"""SpireStats - local run history tracker and card/relic statistics."""

from spirestats.version import __version__

__all__ = ["__version__"]
