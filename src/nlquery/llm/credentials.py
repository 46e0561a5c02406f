"""
Credential Pool

Two independent API credentials (primary and backup) with their own
rate-limit lease expiry. Selection prefers the primary, falls back to the
backup while the primary is blocked, and when both are blocked picks the
one that unblocks sooner.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

PRIMARY = "primary"
BACKUP = "backup"


@dataclass
class CredentialState:
    """Rate-limit state of one credential."""

    name: str
    rate_limited_until: float = 0.0
    in_use: bool = False


@dataclass
class Credential:
    """An API client together with its rate-limit state."""

    state: CredentialState
    client: Any

    @property
    def name(self) -> str:
        return self.state.name


class CredentialPool:
    """
    Owns the credential states for one long-lived client instance.

    Races between concurrent attempts are last-writer-wins on the expiry
    timestamps; a stale read costs at most one extra retry.
    """

    def __init__(
        self,
        primary_client: Any,
        backup_client: Any | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the pool.

        Args:
            primary_client: Client for the primary credential
            backup_client: Client for the backup credential, if configured
            clock: Monotonic time source in seconds
        """
        self._clock = clock
        self.primary = Credential(CredentialState(PRIMARY), primary_client)
        self.backup = (
            Credential(CredentialState(BACKUP), backup_client) if backup_client is not None else None
        )

    @property
    def credentials(self) -> tuple[Credential, ...]:
        if self.backup is None:
            return (self.primary,)
        return (self.primary, self.backup)

    @property
    def has_backup(self) -> bool:
        return self.backup is not None

    def is_available(self, credential: Credential) -> bool:
        """Whether the credential's rate-limit block has expired."""
        return self._clock() >= credential.state.rate_limited_until

    def remaining_block(self, credential: Credential) -> float:
        """Seconds until the credential unblocks, 0 when available."""
        return max(0.0, credential.state.rate_limited_until - self._clock())

    def other(self, credential: Credential) -> Credential | None:
        """The other credential of the pair, if configured."""
        if credential is self.primary:
            return self.backup
        return self.primary

    def select(self) -> Credential:
        """
        Pick the credential for the next request.

        Returns:
            Primary unless blocked; backup if primary blocked and backup
            free; otherwise whichever block expires sooner
        """
        if self.is_available(self.primary) or self.backup is None:
            chosen = self.primary
        elif self.is_available(self.backup):
            chosen = self.backup
        elif self.backup.state.rate_limited_until < self.primary.state.rate_limited_until:
            chosen = self.backup
        else:
            chosen = self.primary

        for credential in self.credentials:
            credential.state.in_use = credential is chosen
        return chosen

    def mark_rate_limited(self, credential: Credential, seconds: float) -> None:
        """Block a credential for the given number of seconds."""
        credential.state.rate_limited_until = self._clock() + seconds
        logger.warning(f"Credential '{credential.name}' rate limited for {seconds:.1f}s")

    def shortest_block(self) -> float:
        """Smallest remaining block among blocked credentials, 0 if any is free."""
        blocks = [self.remaining_block(c) for c in self.credentials]
        return min(blocks) if blocks else 0.0

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Current state of every credential, for logging and diagnostics."""
        return {
            c.name: {
                "available": self.is_available(c),
                "remaining_block": round(self.remaining_block(c), 2),
                "in_use": c.state.in_use,
            }
            for c in self.credentials
        }
