"""
Repository-layer exceptions.
"""

from __future__ import annotations


class RepositoryError(Exception):
    """Base exception for index repository failures."""


class ShipmentNotFoundError(RepositoryError):
    """Raised when a referenced shipment does not exist."""


class UnsupportedDialectError(RepositoryError):
    """Raised when a conditional insert is requested on an unsupported backend."""
