"""Indonesian geographic reference-data importer."""

__version__ = "0.1.0"
