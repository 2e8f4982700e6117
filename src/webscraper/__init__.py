"""Single-URL content extraction service with robots.txt compliance and daily quotas."""

__version__ = "0.1.0"
