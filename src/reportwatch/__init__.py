"""reportwatch: classify chat messages, persist reports, raise threshold alerts."""

__version__ = "0.1.0"
