"""Backup backend adapter for Tardigrade (Storj) object storage."""

__version__ = "0.1.0"
