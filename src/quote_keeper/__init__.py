"""quote-keeper: poll stock quotes on an interval and serve the latest N."""

__version__ = "0.1.0"
