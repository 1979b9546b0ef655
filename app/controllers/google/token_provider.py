import base64
import json
import logging
from urllib.parse import urlencode

from pydantic import ValidationError

from app.controllers.google.client import GoogleAPIClient, GoogleResponse
from app.controllers.google.models import (
    AccessTokenResult,
    AuthorizationGrant,
    IdentityClaims,
    TokenExchangeResult,
)
from app.exceptions import ConfigError, UpstreamAPIError, UpstreamAuthError
from settings.settings import OAuthClientSettings

GMAIL_SCOPES = [
    "openid",
    "email",
    "profile",
    "https://www.googleapis.com/auth/gmail.readonly",
]

_CLIENT_CONFIGURATION_ERRORS = frozenset({"invalid_client", "unauthorized_client"})


class TokenProvider:
    """Exchanges authorization codes and refresh tokens at Google's token endpoint."""

    def __init__(self, google_client: GoogleAPIClient, credentials: OAuthClientSettings) -> None:
        self._logger = logging.getLogger(__name__)
        self._google_client = google_client
        self._credentials = credentials

    def authorization_url(self, state: str, login_hint: str | None = None) -> str:
        """Build the consent-screen URL that sends the user back to the configured redirect URI."""
        self._ensure_configured()
        params = {
            "client_id": self._credentials.client_id,
            "redirect_uri": self._credentials.redirect_uri,
            "response_type": "code",
            "scope": " ".join(GMAIL_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        }
        if login_hint:
            params["login_hint"] = login_hint
        return f"{self._google_client.AUTHORIZATION_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> AuthorizationGrant:
        """
        Perform the authorization-code grant.

        Raises:
            ConfigError: Client credentials are missing or rejected by Google.
            UpstreamAuthError: The code was rejected (expired, reused or redirect URI mismatch).
            UpstreamAPIError: Google failed transiently. The code is sent once, since a retry after a lost response
                would be rejected as reused.
        """
        self._ensure_configured()
        response = await self._google_client.request(
            "POST",
            self._google_client.TOKEN_URL,
            data={
                "code": code,
                "client_id": str(self._credentials.client_id),
                "client_secret": str(self._credentials.client_secret),
                "redirect_uri": str(self._credentials.redirect_uri),
                "grant_type": "authorization_code",
            },
            retry=False,
        )
        if not response.ok:
            self._raise_token_error(response, "Authorization code exchange rejected")

        try:
            result = TokenExchangeResult.model_validate(response.body)
        except ValidationError as e:
            raise UpstreamAPIError("Unexpected token exchange response", upstream_status=response.status) from e

        return AuthorizationGrant(
            access_token=result.access_token,
            refresh_token=result.refresh_token or None,
            identity=self.decode_identity(result.id_token),
        )

    async def refresh_access_token(self, refresh_token: str) -> str:
        """
        Exchange a stored refresh token for a short-lived access token.

        Raises:
            ConfigError: Client credentials are missing or rejected by Google.
            UpstreamAuthError: The refresh token was revoked or is otherwise invalid.
        """
        self._ensure_configured()
        if not refresh_token:
            raise UpstreamAuthError("No refresh token stored for account")

        response = await self._google_client.request(
            "POST",
            self._google_client.TOKEN_URL,
            data={
                "refresh_token": refresh_token,
                "client_id": str(self._credentials.client_id),
                "client_secret": str(self._credentials.client_secret),
                "grant_type": "refresh_token",
            },
        )
        if not response.ok:
            self._raise_token_error(response, "Refresh token rejected")

        try:
            return AccessTokenResult.model_validate(response.body).access_token
        except ValidationError as e:
            raise UpstreamAPIError("Unexpected token refresh response", upstream_status=response.status) from e

    @staticmethod
    def decode_identity(id_token: str | None) -> IdentityClaims:
        """
        Read the identity claims from an ID token.

        The token comes straight from Google's token endpoint over TLS, so the signature is not checked here.
        """
        if not id_token:
            raise UpstreamAPIError("Token response did not include an ID token")

        segments = id_token.split(".")
        if len(segments) != 3:
            raise UpstreamAPIError("Malformed ID token")

        payload = segments[1]
        try:
            claims = json.loads(base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)))
            return IdentityClaims.model_validate(claims)
        except (ValueError, ValidationError) as e:
            raise UpstreamAPIError("ID token does not carry an email claim") from e

    def _ensure_configured(self) -> None:
        if not self._credentials.is_configured:
            raise ConfigError("Google OAuth client id, secret and redirect URI must be configured")

    def _raise_token_error(self, response: GoogleResponse, message: str) -> None:
        error_code = response.error_code
        description = response.body.get("error_description") or response.text[:200]
        self._logger.warning(f"{message}; status: {response.status}, error: {error_code}, description: {description}")

        if error_code in _CLIENT_CONFIGURATION_ERRORS:
            raise ConfigError(f"Google rejected the OAuth client credentials: {error_code}")
        if response.status in (400, 401, 403):
            raise UpstreamAuthError(f"{message}: {error_code or response.status}")
        raise UpstreamAPIError(f"{message}: {error_code or response.status}", upstream_status=response.status)
