"""Errors raised by document store backends.

Backends translate their client library's failures into these so the
repositories and the coordination engine never see vendor exceptions.
"""


class StoreError(Exception):
    """Base class for document store failures."""


class DocumentNotFound(StoreError):
    """A write or read targeted a document that does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Document not found: {path}")
        self.path = path


class PermissionDenied(StoreError):
    """Security rules rejected the operation."""


class StoreUnavailable(StoreError):
    """The store could not be reached."""


class TransactionAborted(StoreError):
    """A transaction kept conflicting and ran out of attempts."""
