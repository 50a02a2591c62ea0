"""Server-side broker for Power BI embed tokens."""

__version__ = "1.0.0"
