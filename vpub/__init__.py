"""Core of a small message board: models, SQLite storage, validation, markup and Atom feeds."""

__version__ = "0.1.0"