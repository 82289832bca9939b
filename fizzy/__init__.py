"""Command-line client for the Fizzy project-management API."""

__version__ = "0.1.0"
