"""vidshelf: download remote videos into a local, searchable library."""

__all__ = ["__version__"]
__version__ = "0.1.0"
