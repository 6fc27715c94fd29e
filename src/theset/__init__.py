"""TheSet - concerts, setlists and song voting."""

__version__ = "0.1.0"
