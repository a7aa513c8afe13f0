"""Firebase Authentication identity provider.

Verifies ID tokens minted by the Firebase client SDK with firebase-admin.
"""

import logging
from typing import Optional

from firebase_admin import auth
from firebase_admin import exceptions as firebase_exceptions

from config import settings
from store.firestore_store import initialize_firebase_app

from .base import AuthenticationFailed, AuthUser, IdentityProvider


logger = logging.getLogger(__name__)


class FirebaseTokenIdentity(IdentityProvider):
    """Identity established by a verified Firebase ID token."""

    def __init__(self, app=None, check_revoked: bool = False):
        """Initialize the provider.

        Args:
            app: firebase_admin App (defaults to the app built from settings)
            check_revoked: Also reject tokens of revoked sessions
        """
        super().__init__()
        self._app = app
        self.check_revoked = check_revoked
        self._user: Optional[AuthUser] = None

    @property
    def name(self) -> str:
        return "firebase"

    @property
    def app(self):
        if self._app is None:
            self._app = initialize_firebase_app(
                settings.firebase_credentials_path, settings.firebase_project_id
            )
        return self._app

    def current_user(self) -> Optional[AuthUser]:
        return self._user

    def sign_in_with_token(self, id_token: str) -> AuthUser:
        """Verify an ID token and make its identity current.

        Raises:
            AuthenticationFailed: token malformed, expired, revoked or not verifiable
        """
        try:
            decoded = auth.verify_id_token(id_token, app=self.app, check_revoked=self.check_revoked)
        except (ValueError, firebase_exceptions.FirebaseError) as e:
            logger.warning("ID token rejected: %s", e)
            raise AuthenticationFailed(str(e)) from e

        email = decoded.get("email")
        self._user = AuthUser(
            uid=decoded["uid"],
            email=email,
            display_name=decoded.get("name") or (email.split("@")[0] if email else None),
            phone_number=decoded.get("phone_number"),
        )
        logger.info("Signed in %s via Firebase token", self._user.uid)
        self._emit(self._user)
        return self._user

    def sign_out(self) -> None:
        self._user = None
        self._emit(None)
