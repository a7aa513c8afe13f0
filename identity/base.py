"""Identity Provider boundary.

The core only needs a stable user id, an email and a way to follow sign-in
and sign-out. Passwords, sessions and token formats belong to the provider.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from store import Subscription


logger = logging.getLogger(__name__)

AuthListener = Callable[[Optional["AuthUser"]], None]


class AuthenticationFailed(Exception):
    """The identity provider rejected the credential."""


class AuthUser(BaseModel):
    """A signed-in identity."""
    uid: str = Field(..., description="Stable user id, also the profile document id")
    email: Optional[str] = None
    display_name: Optional[str] = None
    phone_number: Optional[str] = None


class IdentityProvider(ABC):
    """Source of the current identity and of sign-in/sign-out events."""

    def __init__(self):
        self._listeners: List[AuthListener] = []
        self._lock = threading.Lock()

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def current_user(self) -> Optional[AuthUser]:
        """The signed-in identity, or None."""
        pass

    @abstractmethod
    def sign_out(self) -> None:
        pass

    def on_auth_state_changed(self, callback: AuthListener) -> Subscription:
        """Follow sign-in/sign-out. Fires immediately with the current identity."""
        with self._lock:
            self._listeners.append(callback)
        callback(self.current_user())

        def cancel():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return Subscription(cancel)

    def _emit(self, user: Optional[AuthUser]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(user)
            except Exception:
                logger.exception("Auth state listener failed")


class StaticIdentityProvider(IdentityProvider):
    """Provider whose identity is set directly. Used by the CLI and tests."""

    def __init__(self, user: Optional[AuthUser] = None):
        super().__init__()
        self._user = user

    @property
    def name(self) -> str:
        return "static"

    def current_user(self) -> Optional[AuthUser]:
        return self._user

    def sign_in(self, user: AuthUser) -> None:
        self._user = user
        logger.info("Signed in %s", user.uid)
        self._emit(user)

    def sign_out(self) -> None:
        self._user = None
        self._emit(None)
