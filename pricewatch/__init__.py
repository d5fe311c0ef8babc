"""PriceWatch — price extraction and monitoring engine."""

__version__ = "0.1.0"
