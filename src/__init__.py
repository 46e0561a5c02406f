"""NLQuery - natural-language query interpretation for project and proposal data."""

__version__ = "0.1.0"
