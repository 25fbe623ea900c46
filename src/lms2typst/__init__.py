"""Clean LMS activity HTML and typeset it with Typst."""

from .version import __version__

__all__ = ["__version__"]
