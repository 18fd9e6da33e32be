"""Bearer-token verification delegated to an identity provider."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions

from .config import AuthConfig, StorageConfig
from .errors import AuthenticationFailed
from .firebase import get_firebase_app

logger = logging.getLogger(__name__)


@dataclass
class UserIdentity:
    """A verified user."""
    uid: str
    email: Optional[str] = None
    name: Optional[str] = None


class IdentityProvider(ABC):
    """Turns a bearer token into a verified identity."""

    @abstractmethod
    def verify(self, token: str) -> UserIdentity:
        """Return the identity behind ``token`` or raise AuthenticationFailed."""


class StaticTokenIdentityProvider(IdentityProvider):
    """Maps fixed tokens to user ids; meant for local development."""

    def __init__(self, tokens: dict[str, str]):
        self.tokens = dict(tokens)

    def verify(self, token: str) -> UserIdentity:
        uid = self.tokens.get(token)
        if uid is None:
            raise AuthenticationFailed("Invalid token")
        return UserIdentity(uid=uid)


class FirebaseIdentityProvider(IdentityProvider):
    """Verifies Firebase ID tokens."""

    def __init__(self, app=None):
        self.app = app

    def verify(self, token: str) -> UserIdentity:
        try:
            decoded = firebase_auth.verify_id_token(token, app=self.app)
        except (ValueError, firebase_exceptions.FirebaseError) as e:
            logger.warning(f"Token verification failed: {e}")
            raise AuthenticationFailed("Invalid token") from e

        return UserIdentity(
            uid=decoded["uid"],
            email=decoded.get("email"),
            name=decoded.get("name"),
        )


def create_identity_provider(config: AuthConfig, storage: StorageConfig) -> IdentityProvider:
    """Build the identity provider selected by ``config.provider``."""
    if config.provider == "static":
        if not config.static_tokens:
            logger.warning("Static identity provider has no tokens configured; all requests will be rejected")
        return StaticTokenIdentityProvider(config.static_tokens)
    if config.provider == "firebase":
        return FirebaseIdentityProvider(get_firebase_app(storage.firebase_project, storage.firebase_credentials))
    raise ValueError(f"Unknown identity provider: {config.provider!r}")
