"""Credential providers for coordinator requests."""
import os
import re
import logging
from typing import Dict, Optional, Protocol, runtime_checkable

from deckshot.core.config import settings
from deckshot.services.error_handling import CredentialUnavailable

logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialProvider(Protocol):
    """Anything able to produce bearer headers for the coordinator."""

    async def get_auth_headers(self) -> Dict[str, str]:
        ...


def bearer_headers(token: Optional[str]) -> Dict[str, str]:
    """Build the Authorization header, rejecting empty tokens."""
    if not token or not token.strip():
        raise CredentialUnavailable("Failed to obtain authentication token")
    return {"Authorization": f"Bearer {token.strip()}"}


async def get_session_token(provider: CredentialProvider) -> str:
    """Return the raw token behind a provider's Authorization header."""
    headers = await provider.get_auth_headers()
    authorization = headers.get("Authorization", "")
    token = re.sub(r"^bearer\s+", "", authorization, flags=re.IGNORECASE).strip()
    if not token:
        raise CredentialUnavailable("Authentication token missing from headers")
    return token


class StaticTokenProvider:
    """Provider for a token obtained out of band."""

    def __init__(self, token: Optional[str]):
        self._token = token

    async def get_auth_headers(self) -> Dict[str, str]:
        return bearer_headers(self._token)


class EnvTokenProvider:
    """Provider that reads the token from an environment variable on each call."""

    def __init__(self, variable: Optional[str] = None):
        self.variable = variable or settings.AUTH_TOKEN_ENV

    async def get_auth_headers(self) -> Dict[str, str]:
        token = os.getenv(self.variable)
        if token is None:
            logger.error(f"Environment variable {self.variable} is not set")
            raise CredentialUnavailable("You must be signed in to upload captures")
        return bearer_headers(token)
