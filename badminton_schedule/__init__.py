"""Badminton training schedule aggregator."""

__version__ = "0.1.0"
