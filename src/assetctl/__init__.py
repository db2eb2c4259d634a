"""Command-line front end for the asset-management service."""

__version__ = "0.1.0"
