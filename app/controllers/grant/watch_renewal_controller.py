"""
Periodic re-registration of Gmail watches, which expire after seven days.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from app.controllers.google.token_provider import TokenProvider
from app.controllers.google.watch_registrar import WatchRegistrar
from app.exceptions import UpstreamAPIError, UpstreamAuthError
from app.models import Account
from app.repos.account import AccountRepo
from app.utils.token_cipher import TokenCipher


@dataclass
class RenewalSummary:
    renewed: list[str] = field(default_factory=list)
    reauthorization_required: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class WatchRenewalController:
    def __init__(
        self,
        account_repo: AccountRepo,
        token_provider: TokenProvider,
        watch_registrar: WatchRegistrar,
        token_cipher: TokenCipher,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._account_repo = account_repo
        self._token_provider = token_provider
        self._watch_registrar = watch_registrar
        self._token_cipher = token_cipher

    async def renew_expiring(self, within: timedelta, now: datetime | None = None) -> RenewalSummary:
        """
        Re-register the watch of every active account whose watch is missing or expires within ``within``.

        The returned history id only becomes the cursor of an account that has none; an existing cursor keeps
        pointing at history that notifications have not synced yet.
        """
        now = now or datetime.now(timezone.utc)
        summary = RenewalSummary()
        accounts = (await self._account_repo.get_watch_renewal_candidates(now + within)).all()
        self._logger.info(f"Renewing watches for {len(accounts)} accounts expiring before {now + within}")

        for account in accounts:
            await self._renew(account, summary)
        return summary

    async def _renew(self, account: Account, summary: RenewalSummary) -> None:
        refresh_token = self._token_cipher.decrypt(account.refresh_token) if account.refresh_token else ""
        try:
            access_token = await self._token_provider.refresh_access_token(refresh_token)
            watch = await self._watch_registrar.register_watch(account.email, access_token)
        except UpstreamAuthError as e:
            await self._account_repo.mark_reauthorization_required(account)
            await self._account_repo.commit()
            self._logger.error(f"Refresh token for {account.email} rejected during watch renewal; {e}")
            summary.reauthorization_required.append(account.email)
            return
        except UpstreamAPIError as e:
            self._logger.error(f"Watch renewal for {account.email} failed; {e}", extra=e.extra)
            summary.failed.append(account.email)
            return

        raised = await self._account_repo.raise_cursor(
            account.id, watch.history_id, watch_expires_at=watch.expiration, only_if_unset=True
        )
        await self._account_repo.commit()
        self._logger.info(
            f"Watch renewed for {account.email} until {watch.expiration}; "
            f"cursor {'set to ' + str(watch.history_id) if raised else 'unchanged'}"
        )
        summary.renewed.append(account.email)
