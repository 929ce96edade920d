"""Car rental backend: fleet inventory, availability search and reservations."""

__version__ = "1.0.0"
