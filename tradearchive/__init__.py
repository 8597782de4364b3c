"""Historical trading-record archive built from day-paginated exchange reports."""

__version__ = "0.1.0"
