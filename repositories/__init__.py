"""Repositories over the document store."""

from .request_repository import (
    RequestRepository,
    messages_collection,
    newest_first,
    request_path,
)
from .user_repository import (
    UserRepository,
    default_profile,
    donation_path,
    donations_collection,
    user_path,
)

__all__ = [
    "RequestRepository",
    "UserRepository",
    "request_path",
    "messages_collection",
    "newest_first",
    "user_path",
    "donation_path",
    "donations_collection",
    "default_profile",
]
