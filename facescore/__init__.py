"""Face attractiveness scoring and population-ranking service."""

__version__ = "0.1.0"
