"""KPI, transaction and activity analytics dashboard backend."""

__version__ = "0.1.0"
