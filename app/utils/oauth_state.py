import hashlib
import hmac
import time
from uuid import UUID

from app.exceptions import InvalidStateError

_SENTINEL_STATES = frozenset({"", "anonymous", "null", "undefined"})


class OAuthStateSigner:
    """
    Builds and checks the ``state`` parameter carried through the Google consent screen.

    With a secret configured the state is ``<owner_uuid>:<issued_at>:<signature>`` and both the HMAC-SHA256
    signature and the age are verified. Without a secret the state is taken as the raw owner UUID.
    """

    def __init__(self, secret: str | None, max_age: int = 3600) -> None:
        self._secret = secret.encode() if secret else None
        self._max_age = max_age

    @property
    def is_signing(self) -> bool:
        return self._secret is not None

    def sign(self, owner_uuid: UUID, issued_at: int | None = None) -> str:
        if self._secret is None:
            return str(owner_uuid)

        issued_at = int(time.time()) if issued_at is None else issued_at
        payload = f"{owner_uuid}:{issued_at}"
        return f"{payload}:{self._signature(payload)}"

    def verify(self, state: str | None, now: int | None = None) -> UUID:
        """Return the owner UUID carried by the state, raising InvalidStateError otherwise."""
        if state is None or state.strip().lower() in _SENTINEL_STATES:
            raise InvalidStateError("Missing owner reference in state parameter")

        if self._secret is None:
            return self._parse_uuid(state)

        parts = state.rsplit(":", 2)
        if len(parts) != 3:
            raise InvalidStateError("Invalid state format")
        owner, issued_at, signature = parts

        if not hmac.compare_digest(self._signature(f"{owner}:{issued_at}"), signature):
            raise InvalidStateError("Invalid state signature")

        try:
            issued = int(issued_at)
        except ValueError as e:
            raise InvalidStateError("Invalid state timestamp") from e

        now = int(time.time()) if now is None else now
        if now - issued > self._max_age:
            raise InvalidStateError("State parameter has expired")

        return self._parse_uuid(owner)

    def _signature(self, payload: str) -> str:
        assert self._secret is not None
        return hmac.new(self._secret, payload.encode(), hashlib.sha256).hexdigest()

    @staticmethod
    def _parse_uuid(value: str) -> UUID:
        try:
            return UUID(value)
        except ValueError as e:
            raise InvalidStateError("State does not reference an owner") from e
