"""Data-access layer and HTTP API for users and stock dispositions."""

__version__ = "0.1.0"
