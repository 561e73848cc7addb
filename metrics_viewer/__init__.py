"""Poll, parse, filter and aggregate OpenMetrics text exposition metrics."""

__version__ = "0.1.0"
