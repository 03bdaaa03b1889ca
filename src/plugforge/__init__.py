"""plugforge - compile agent configurations into loadable plugins."""

__version__ = "0.1.0"
