"""
Authorization controller for the mailbox OAuth flow: code exchange, account upsert and watch registration.
"""

import logging
from enum import Enum
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse
from uuid import UUID

from app.controllers.google.token_provider import TokenProvider
from app.controllers.google.watch_registrar import WatchRegistrar
from app.exceptions import (
    BaseError,
    ConfigError,
    InvalidStateError,
    UpstreamAPIError,
    UpstreamAuthError,
)
from app.models.account import Account
from app.repos.account import AccountRepo
from app.repos.owner import OwnerRepo
from app.utils.oauth_state import OAuthStateSigner
from app.utils.token_cipher import TokenCipher
from settings.settings import RedirectSettings

logger = logging.getLogger(__name__)


class AuthorizationFailure(Enum):
    """Coarse reason codes shown to the user on the error page."""

    ACCESS_DENIED = "access_denied"
    MISSING_CODE = "missing_code"
    INVALID_OWNER = "invalid_manager_id"
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    MISSING_REFRESH_TOKEN = "missing_refresh_token"
    WATCH_FAILED = "watch_failed"
    CONFIGURATION = "configuration_error"
    INTERNAL = "internal_error"


class AuthorizationError(BaseError):
    def __init__(self, message: str, reason: AuthorizationFailure, cause: BaseError | None = None) -> None:
        if cause is not None:
            super().__init__(message, cause.error_type, cause.status_code, reason=reason.value)
        else:
            super().__init__(message, reason=reason.value)
        self.reason = reason


class AuthorizationController:
    """Controller for the Gmail mailbox authorization flow."""

    def __init__(
        self,
        owner_repo: OwnerRepo,
        account_repo: AccountRepo,
        token_provider: TokenProvider,
        watch_registrar: WatchRegistrar,
        token_cipher: TokenCipher,
        state_signer: OAuthStateSigner,
        redirects: RedirectSettings,
    ) -> None:
        self._owner_repo = owner_repo
        self._account_repo = account_repo
        self._token_provider = token_provider
        self._watch_registrar = watch_registrar
        self._token_cipher = token_cipher
        self._state_signer = state_signer
        self._redirects = redirects

    async def build_authorization_url(self, owner_id: str, login_hint: str | None = None) -> str:
        """
        Return the Google consent URL for adding a mailbox on behalf of an owner.

        Raises:
            InvalidStateError: ``owner_id`` is not a UUID or names no known owner.
        """
        try:
            owner_uuid = UUID(owner_id)
        except ValueError as e:
            raise InvalidStateError(f"Invalid owner id: {owner_id!r}") from e

        owner = await self._owner_repo.get_by_uuid(owner_uuid)
        if owner is None:
            raise InvalidStateError(f"Owner {owner_uuid} not found")
        return self._token_provider.authorization_url(self._state_signer.sign(owner.uuid), login_hint=login_hint)

    async def complete_authorization(self, code: str | None, state: str | None, error: str | None = None) -> Account:
        """
        Exchange the authorization code, store the mailbox and register its watch.

        The account row is committed before the watch is registered, so a failed watch still leaves the new
        refresh token stored.

        Raises:
            AuthorizationError: With the reason code to show on the error page.
        """
        if error:
            raise AuthorizationError(
                f"Google returned an authorization error: {error}", AuthorizationFailure.ACCESS_DENIED
            )
        if not code:
            raise AuthorizationError("Missing authorization code", AuthorizationFailure.MISSING_CODE)

        try:
            owner_uuid = self._state_signer.verify(state)
        except InvalidStateError as e:
            raise AuthorizationError(e.message, AuthorizationFailure.INVALID_OWNER, e) from e
        owner = await self._owner_repo.get_by_uuid(owner_uuid)
        if owner is None:
            raise AuthorizationError(f"Unknown owner {owner_uuid}", AuthorizationFailure.INVALID_OWNER)

        try:
            grant = await self._token_provider.exchange_code(code)
        except ConfigError as e:
            raise AuthorizationError(e.message, AuthorizationFailure.CONFIGURATION, e) from e
        except (UpstreamAuthError, UpstreamAPIError) as e:
            raise AuthorizationError(e.message, AuthorizationFailure.TOKEN_EXCHANGE_FAILED, e) from e

        email = grant.identity.email
        existing = await self._account_repo.get_by_email(email)
        refresh_token = grant.refresh_token
        if refresh_token:
            encrypted_token = self._token_cipher.encrypt(refresh_token)
        elif existing is not None and existing.refresh_token:
            # Google only returns a refresh token on first consent unless the consent prompt is forced
            logger.warning(f"No refresh token issued for {email}; keeping the stored one")
            encrypted_token = existing.refresh_token
        else:
            raise AuthorizationError(
                f"Google did not issue a refresh token for {email}", AuthorizationFailure.MISSING_REFRESH_TOKEN
            )

        account = await self._account_repo.upsert_authorized(
            owner_id=owner.id, email=email, name=grant.identity.name or email, refresh_token=encrypted_token
        )
        await self._account_repo.commit()
        logger.info(f"Mailbox {email} authorized for owner {owner.uuid}; account: {account.uuid}")

        try:
            watch = await self._watch_registrar.register_watch(email, grant.access_token)
        except ConfigError as e:
            raise AuthorizationError(e.message, AuthorizationFailure.CONFIGURATION, e) from e
        except UpstreamAPIError as e:
            logger.error(f"Watch registration failed for {email}; account stored without a baseline; {e}")
            raise AuthorizationError(e.message, AuthorizationFailure.WATCH_FAILED, e) from e

        # A re-consenting mailbox keeps its cursor so history since the last sync is still relayed
        await self._account_repo.raise_cursor(
            account.id, watch.history_id, watch_expires_at=watch.expiration, only_if_unset=True
        )
        await self._account_repo.commit()
        return await self._account_repo.refresh(account)

    def success_redirect_url(self) -> str:
        return self._redirects.success_url

    def error_redirect_url(self, reason: AuthorizationFailure) -> str:
        """Return the configured error URL with the reason code appended to its query string."""
        parsed = urlparse(self._redirects.error_url)
        query = dict(parse_qsl(parsed.query))
        query["code"] = reason.value
        return urlunparse(parsed._replace(query=urlencode(query)))
