"""Proof-of-ownership challenges for binding push endpoints to identities."""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

from inproto.core.errors import AuthError
from inproto.core.settings import settings
from inproto.services.identity import open_signed

logger = logging.getLogger(__name__)

CHALLENGE_TOKEN_BYTES = 16


@dataclass(frozen=True)
class ChallengeEntry:
    """Outstanding challenge owned by a single public key."""

    pubkey: str
    issued_at: float
    expires_at: float


@dataclass(frozen=True)
class IssuedChallenge:
    """Challenge material handed back to the client."""

    token: str
    issued_at_ms: int


class ChallengeStore:
    """Process-wide map of outstanding challenge tokens.

    The store starts empty and lives only as long as the process; losing it on
    restart simply forces clients to request a new challenge. All access goes
    through an internal lock.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ChallengeEntry] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def put(self, token: str, entry: ChallengeEntry) -> None:
        with self._lock:
            self._entries[token] = entry

    def get(self, token: str) -> ChallengeEntry | None:
        with self._lock:
            return self._entries.get(token)

    def pop_if(self, token: str, predicate: Callable[[ChallengeEntry], bool]) -> bool:
        """Remove ``token`` only if its entry satisfies ``predicate``."""
        with self._lock:
            entry = self._entries.get(token)
            if entry is None or not predicate(entry):
                return False
            del self._entries[token]
            return True

    def prune(self, now: float) -> int:
        """Drop every entry whose expiry has passed and return how many were removed."""
        with self._lock:
            expired = [token for token, entry in self._entries.items() if entry.expires_at <= now]
            for token in expired:
                del self._entries[token]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class ChallengeAuthority:
    """Issues, verifies and single-use consumes challenge tokens."""

    def __init__(
        self,
        store: ChallengeStore,
        *,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._ttl = float(settings.challenge_ttl_seconds if ttl_seconds is None else ttl_seconds)
        self._clock = clock

    @property
    def store(self) -> ChallengeStore:
        return self._store

    def issue_challenge(self, pubkey: str) -> IssuedChallenge:
        """Record a fresh random token for ``pubkey`` and return it."""
        now = self._clock()
        self._store.prune(now)
        token = secrets.token_hex(CHALLENGE_TOKEN_BYTES)
        self._store.put(
            token,
            ChallengeEntry(pubkey=pubkey, issued_at=now, expires_at=now + self._ttl),
        )
        return IssuedChallenge(token=token, issued_at_ms=int(now * 1000))

    def consume_challenge(self, pubkey: str, token: str) -> bool:
        """Consume ``token`` if it is outstanding, owned by ``pubkey`` and unexpired.

        Failures leave the store untouched and do not say why they failed.
        """
        now = self._clock()
        self._store.prune(now)
        return self._store.pop_if(
            token,
            lambda entry: entry.pubkey == pubkey and now < entry.expires_at,
        )

    def verify_proof(self, pubkey: str, signed_blob: str, token: str) -> bool:
        """Return True if ``signed_blob`` is ``pubkey``'s signature over ``timestamp ∥ token``."""
        if not token:
            return False
        opened = open_signed(signed_blob)
        if opened is None:
            return False
        if opened.pubkey != pubkey:
            return False
        return opened.message.endswith(token)

    def authenticate(self, pubkey: str, signed_blob: str, token: str) -> None:
        """Check a complete proof of ownership and consume its challenge.

        The signature is checked before the token is consumed, so a request
        with a bad signature leaves the challenge available to its owner.

        Raises:
            AuthError: If the signature is invalid or the challenge cannot be consumed.
        """
        if not self.verify_proof(pubkey, signed_blob, token):
            logger.info("Rejected challenge proof with invalid signature")
            raise AuthError("invalid signature")
        if not self.consume_challenge(pubkey, token):
            logger.info("Rejected unknown, expired or foreign challenge")
            raise AuthError("invalid challenge")


_AUTHORITY: ChallengeAuthority | None = None
_AUTHORITY_LOCK = Lock()


def get_challenge_authority() -> ChallengeAuthority:
    """Return the process-wide challenge authority, creating it on first use."""
    global _AUTHORITY
    with _AUTHORITY_LOCK:
        if _AUTHORITY is None:
            _AUTHORITY = ChallengeAuthority(ChallengeStore())
        return _AUTHORITY
