"""Health-checked, proximity-ranked directory of WAX API nodes."""

__version__ = "1.0.2"
