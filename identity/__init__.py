"""Identity boundary and the signed-in user's profile session."""

from .base import AuthenticationFailed, AuthUser, IdentityProvider, StaticIdentityProvider
from .firebase_identity import FirebaseTokenIdentity
from .session import ProfileService, ProfileSession, VERIFICATION_FILTERS

__all__ = [
    "AuthUser",
    "AuthenticationFailed",
    "IdentityProvider",
    "StaticIdentityProvider",
    "FirebaseTokenIdentity",
    "ProfileSession",
    "ProfileService",
    "VERIFICATION_FILTERS",
]
