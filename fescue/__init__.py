"""fescue - normalize search results from torznab, newznab and Gazelle indexers."""

from .__version__ import __version__

__all__ = ["__version__"]
