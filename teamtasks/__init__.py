"""Team Tasks: daily task materialization and assignment service."""

__version__ = "1.0.0"
