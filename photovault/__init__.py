"""Keeps a catalog of albums and images in step with on-disk photo vaults."""

__version__ = "0.3.0"
