"""Client-side data synchronization core for the portfolio dashboard."""

__version__ = "0.1.0"
