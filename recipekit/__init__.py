"""Building blocks for discovering a host, selecting and running installation recipes and tracking their status."""

__version__ = "0.1.0"