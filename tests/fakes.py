"""In-memory stand-ins for the repositories and Google/relay collaborators used by the controllers."""

import base64
import json
from datetime import datetime
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse
from uuid import UUID, uuid4

from app.controllers.google.client import GoogleAPIClient, GoogleResponse
from app.controllers.google.models import (
    AuthorizationGrant,
    IdentityClaims,
    NormalizedMessage,
    SyncResult,
    WatchResult,
)
from app.exceptions import ConfigError, DeliveryError
from app.models import Account, AccountStatus, AutomationMode, Owner, RelayLog

ACCOUNT_COLUMNS = (
    "id",
    "uuid",
    "owner_id",
    "name",
    "email",
    "status",
    "automation_mode",
    "refresh_token",
    "sync_cursor",
    "watch_expires_at",
    "reauthorization_required",
)


class FakeResult(list):  # type: ignore[type-arg]
    """Mimics the ``ScalarResult`` returned by the repositories."""

    def all(self) -> list[Any]:
        return list(self)


class FakeAccountRepo:
    """
    Keeps account rows as plain dicts and hands out a fresh ``Account`` per read, like separate sessions would.

    ``advance_cursor`` has the same compare-and-swap semantics as the SQL implementation.
    """

    def __init__(self) -> None:
        self.rows: dict[int, dict[str, Any]] = {}
        self.commits = 0
        self.cursor_writes: list[tuple[int, int | None, int]] = []

    def add(self, **values: Any) -> Account:
        row: dict[str, Any] = {
            "id": len(self.rows) + 1,
            "uuid": uuid4(),
            "owner_id": 1,
            "name": None,
            "email": "creator@example.com",
            "status": AccountStatus.active,
            "automation_mode": AutomationMode.assistant,
            "refresh_token": None,
            "sync_cursor": None,
            "watch_expires_at": None,
            "reauthorization_required": False,
        }
        row.update(values)
        self.rows[row["id"]] = row
        return self._materialize(row)

    def row(self, email: str) -> dict[str, Any]:
        return next(row for row in self.rows.values() if row["email"] == email)

    @staticmethod
    def _materialize(row: dict[str, Any]) -> Account:
        return Account(**{column: row[column] for column in ACCOUNT_COLUMNS})

    async def get(self, id: int) -> Account | None:
        row = self.rows.get(id)
        return self._materialize(row) if row else None

    async def get_by_uuid(self, uuid: UUID) -> Account | None:
        return next((self._materialize(row) for row in self.rows.values() if row["uuid"] == uuid), None)

    async def get_by_email(self, email: str) -> Account | None:
        email = email.lower()
        return next((self._materialize(row) for row in self.rows.values() if row["email"] == email), None)

    async def get_all(self) -> FakeResult:
        return FakeResult(self._materialize(row) for row in sorted(self.rows.values(), key=lambda r: r["email"]))

    async def get_watch_renewal_candidates(self, expiring_before: datetime) -> FakeResult:
        return FakeResult(
            self._materialize(row)
            for row in self.rows.values()
            if row["status"] == AccountStatus.active
            and (row["watch_expires_at"] is None or row["watch_expires_at"] < expiring_before)
        )

    async def upsert_authorized(self, owner_id: int, email: str, name: str | None, refresh_token: str) -> Account:
        email = email.lower()
        existing = next((row for row in self.rows.values() if row["email"] == email), None)
        if existing is None:
            return self.add(owner_id=owner_id, email=email, name=name, refresh_token=refresh_token)

        existing.update(refresh_token=refresh_token, status=AccountStatus.active, reauthorization_required=False)
        return self._materialize(existing)

    async def advance_cursor(self, account_id: int, expected: int | None, new: int) -> bool:
        if expected is not None and new <= expected:
            return False
        row = self.rows[account_id]
        if row["status"] != AccountStatus.active or row["sync_cursor"] != expected:
            return False
        row["sync_cursor"] = new
        self.cursor_writes.append((account_id, expected, new))
        return True

    async def raise_cursor(
        self, account_id: int, new: int, watch_expires_at: datetime | None = None, only_if_unset: bool = False
    ) -> bool:
        row = self.rows[account_id]
        if watch_expires_at is not None:
            row["watch_expires_at"] = watch_expires_at
        if row["sync_cursor"] is not None and (only_if_unset or row["sync_cursor"] >= new):
            return False
        row["sync_cursor"] = new
        return True

    async def mark_reauthorization_required(self, account: Account) -> Account:
        self.rows[account.id].update(status=AccountStatus.inactive, reauthorization_required=True)
        account.status = AccountStatus.inactive
        account.reauthorization_required = True
        return account

    async def refresh(self, account: Account) -> Account:
        row = self.rows[account.id]
        for column in ACCOUNT_COLUMNS:
            setattr(account, column, row[column])
        return account

    async def commit(self) -> None:
        self.commits += 1


class FakeOwnerRepo:
    def __init__(self) -> None:
        self.owners: dict[UUID, Owner] = {}

    def add(self, email: str = "manager@example.com") -> Owner:
        owner = Owner(id=len(self.owners) + 1, uuid=uuid4(), name="Manager", email=email)
        self.owners[owner.uuid] = owner
        return owner

    async def get_by_uuid(self, uuid: UUID) -> Owner | None:
        return self.owners.get(uuid)


class FakeRelayLogRepo:
    def __init__(self) -> None:
        self.logs: list[RelayLog] = []

    async def persist(self, relay_log: RelayLog) -> RelayLog:
        self.logs.append(relay_log)
        return relay_log


class ScriptedGoogleClient(GoogleAPIClient):
    """
    Answers ``request`` from scripted responses keyed by method and URL path.

    A script entry is either a ``GoogleResponse`` (served once, in order) or a callable taking the request
    params and returning one.
    """

    def __init__(self) -> None:
        super().__init__(timeout=1, max_retries=1, retry_base_delay=0)
        self.scripts: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[dict[str, Any]] = []

    def script(self, method: str, path: str, *responses: Any) -> None:
        self.scripts.setdefault((method, path), []).extend(responses)

    async def request(
        self,
        method: str,
        url: str,
        access_token: str | None = None,
        params: dict[str, Any] | None = None,
        data: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        retry: bool = True,
    ) -> GoogleResponse:
        path = urlparse(url).path
        self.calls.append(
            {
                "method": method,
                "path": path,
                "access_token": access_token,
                "params": params,
                "data": data,
                "json": json_body,
                "retry": retry,
            }
        )
        queue = self.scripts.get((method, path))
        if not queue:
            raise AssertionError(f"Unscripted Google call: {method} {path}")

        entry = queue[0] if callable(queue[0]) else queue.pop(0)
        return entry(params or {}) if callable(entry) else entry

    def calls_to(self, method: str, path: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["method"] == method and call["path"] == path]


class FakeTokenProvider:
    def __init__(self, access_token: str = "access-token") -> None:
        self.access_token = access_token
        self.refresh_error: Exception | None = None
        self.exchange_error: Exception | None = None
        self.grant = AuthorizationGrant(
            access_token=access_token,
            refresh_token="refresh-token",
            identity=IdentityClaims(email="creator@example.com", name="Creator"),
        )
        self.refreshed: list[str] = []
        self.exchanged: list[str] = []

    def authorization_url(self, state: str, login_hint: str | None = None) -> str:
        return f"https://accounts.google.com/o/oauth2/v2/auth?state={state}"

    async def exchange_code(self, code: str) -> AuthorizationGrant:
        self.exchanged.append(code)
        if self.exchange_error:
            raise self.exchange_error
        return self.grant

    async def refresh_access_token(self, refresh_token: str) -> str:
        self.refreshed.append(refresh_token)
        if self.refresh_error:
            raise self.refresh_error
        return self.access_token


class FakeWatchRegistrar:
    def __init__(self, history_id: int = 100, expiration: datetime | None = None) -> None:
        self.history_id = history_id
        self.expiration = expiration
        self.error: Exception | None = None
        self.registered: list[str] = []

    async def register_watch(self, mailbox: str, access_token: str) -> WatchResult:
        self.registered.append(mailbox)
        if self.error:
            raise self.error
        return WatchResult(history_id=self.history_id, expiration=self.expiration)


class FakeHistorySynchronizer:
    """
    Serves history from a per-mailbox list of ``(history_id, message)`` entries.

    ``before_return`` lets a test hold a fetch open, e.g. to make two handlers read the same cursor.
    """

    def __init__(self) -> None:
        self.history: dict[str, list[tuple[int, NormalizedMessage]]] = {}
        self.latest: dict[str, int] = {}
        self.error: Exception | None = None
        self.fetches: list[tuple[str, int]] = []
        self.before_return: Callable[[], Awaitable[None]] | None = None

    def add_message(self, mailbox: str, history_id: int, message: NormalizedMessage) -> None:
        self.history.setdefault(mailbox, []).append((history_id, message))
        self.latest[mailbox] = max(self.latest.get(mailbox, 0), history_id)

    async def fetch_since(self, mailbox: str, access_token: str, cursor: int) -> SyncResult:
        self.fetches.append((mailbox, cursor))
        if self.error:
            raise self.error
        messages = [message for history_id, message in self.history.get(mailbox, []) if history_id > cursor]
        new_cursor = max(self.latest.get(mailbox, cursor), cursor)
        if self.before_return is not None:
            await self.before_return()
        return SyncResult(start_cursor=cursor, new_cursor=new_cursor, messages=messages)


class FakeRelay:
    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.error: DeliveryError | None = None
        self.deliveries: list[dict[str, Any]] = []
        self.deferred: list[dict[str, Any]] = []

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigError("N8N_WEBHOOK_URL is not configured")

    async def deliver(
        self, account: Account, messages: list[NormalizedMessage], start_cursor: int | None, end_cursor: int
    ) -> None:
        self.deliveries.append(
            {"email": account.email, "messages": messages, "start_cursor": start_cursor, "end_cursor": end_cursor}
        )
        if self.error:
            raise self.error

    async def record_deferred(
        self,
        account: Account,
        messages: list[NormalizedMessage],
        start_cursor: int | None,
        end_cursor: int,
        reason: str,
    ) -> None:
        self.deferred.append({"email": account.email, "message_ids": [m.id for m in messages], "reason": reason})


def b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode().rstrip("=")


def push_body(payload: dict[str, Any], message_id: str = "pubsub-1") -> bytes:
    data = base64.b64encode(json.dumps(payload).encode()).decode()
    envelope = {"message": {"data": data, "messageId": message_id}, "subscription": "projects/p/subscriptions/s"}
    return json.dumps(envelope).encode()


def id_token(claims: dict[str, Any]) -> str:
    header = b64url(json.dumps({"alg": "RS256"}))
    return f"{header}.{b64url(json.dumps(claims))}.signature"
