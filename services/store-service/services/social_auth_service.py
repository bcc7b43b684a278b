"""Identity verification for Google and Facebook sign-in."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from errors import SocialAuthError, SocialLoginNotConfiguredError
from monitoring import auth_failures_counter

logger = logging.getLogger(__name__)

GOOGLE = "google"
FACEBOOK = "facebook"
PROVIDERS = (GOOGLE, FACEBOOK)


@dataclass
class SocialIdentity:
    """A provider account whose token has been verified."""
    provider: str
    subject: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None


class GoogleVerifier:
    """Checks Google ID tokens against Google's signing keys."""

    provider = GOOGLE

    def __init__(self, client_id: Optional[str]):
        self.client_id = client_id
        self._request = google_requests.Request()

    def _claims(self, token: str) -> Dict[str, Any]:
        return id_token.verify_oauth2_token(token, self._request, self.client_id)

    async def verify(self, token: str) -> SocialIdentity:
        # Without an audience any Google-issued token would be accepted
        if not self.client_id:
            raise SocialLoginNotConfiguredError(self.provider)

        try:
            # Certificate fetch is blocking
            claims = await asyncio.to_thread(self._claims, token)
        except (ValueError, GoogleAuthError) as e:
            auth_failures_counter.add(1, {"reason": "invalid_google_token"})
            logger.warning("Google token rejected", extra={"error": str(e)})
            raise SocialAuthError(self.provider)

        return SocialIdentity(
            provider=self.provider,
            subject=claims["sub"],
            email=claims.get("email") if claims.get("email_verified", True) else None,
            name=claims.get("name"),
            picture=claims.get("picture")
        )


class FacebookVerifier:
    """Resolves a Facebook access token through the Graph API."""

    provider = FACEBOOK

    def __init__(self, http_client: httpx.AsyncClient, graph_url: str):
        """
        Initialize Facebook verifier.

        Args:
            http_client: Shared async HTTP client
            graph_url: Graph API ``/me`` endpoint
        """
        self.http_client = http_client
        self.graph_url = graph_url

    async def verify(self, token: str) -> SocialIdentity:
        try:
            response = await self.http_client.get(
                self.graph_url,
                params={"access_token": token, "fields": "id,name,email,picture"}
            )
            if response.status_code != 200:
                auth_failures_counter.add(1, {"reason": "invalid_facebook_token"})
                logger.warning("Facebook token rejected", extra={"status_code": response.status_code})
                raise SocialAuthError(self.provider)

            data = response.json()
            subject = str(data["id"])
        except (httpx.HTTPError, ValueError, KeyError) as e:
            auth_failures_counter.add(1, {"reason": "facebook_unavailable"})
            logger.error("Failed to verify Facebook token", extra={"error": str(e)})
            raise SocialAuthError(self.provider)

        picture = (data.get("picture") or {}).get("data") or {}
        return SocialIdentity(
            provider=self.provider,
            subject=subject,
            email=data.get("email"),
            name=data.get("name"),
            picture=picture.get("url")
        )


class SocialAuthService:
    """Dispatches tokens to the verifier for their provider."""

    def __init__(self, google: GoogleVerifier, facebook: FacebookVerifier):
        self.verifiers = {GOOGLE: google, FACEBOOK: facebook}

    async def verify(self, provider: str, token: str) -> SocialIdentity:
        """
        Verify a provider token.

        Raises:
            SocialAuthError: If the provider rejects the token
            SocialLoginNotConfiguredError: If the provider has no credentials
        """
        return await self.verifiers[provider].verify(token)
