"""Effect dispatcher for the ownership state machine.

Runs the effects requested by transition() one at a time in a single
asyncio task per session. A claim change that opens a new session
cancels the in-flight task; any result that still arrives for an older
session is dropped. At most one discovery and one verification request
are outstanding per verifier.
"""

import asyncio
import logging
from typing import Optional, Sequence

from app.core.config import REQUIRED_OWNERSHIP_SCHEMAS
from app.registry.exceptions import RegistryError

from .attestation import AttestationClient
from .machine import (
    ClaimChanged,
    Discover,
    DiscoveryCompleted,
    Effect,
    EffectFailed,
    Event,
    Idle,
    RetryRequested,
    SubmitVerification,
    TransferEvidenceProvided,
    VerificationCompleted,
    VerificationState,
    transition,
    verdict_of,
)
from .models import VerificationVerdict
from .resolver import OwnershipResolver

log = logging.getLogger(__name__)


def describe_failure(exc: BaseException) -> str:
    """Readable message for an exception raised while performing an effect."""
    if isinstance(exc, RegistryError):
        return exc.message
    return f"Unexpected error during ownership verification: {exc or type(exc).__name__}"


class OwnershipVerifier:
    """One ownership verification session per (identity, wallet) pair.

    Usage:
        verifier = OwnershipVerifier(RpcOwnershipResolver(), AttestationClient())
        await verifier.update_claim(did, wallet)
        if verifier.state.status == VerificationStatus.READY_FOR_TRANSFER:
            await verifier.provide_transfer_evidence(tx_hash)
        verdict = verifier.verdict
    """

    def __init__(
        self,
        resolver: OwnershipResolver,
        attestation: AttestationClient,
        required_schemas: Sequence[str] = REQUIRED_OWNERSHIP_SCHEMAS,
    ):
        self._resolver = resolver
        self._attestation = attestation
        self._required_schemas = tuple(required_schemas)
        self._state: VerificationState = Idle()
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> VerificationState:
        return self._state

    @property
    def verdict(self) -> Optional[VerificationVerdict]:
        return verdict_of(self._state)

    async def update_claim(
        self,
        identity: Optional[str],
        wallet: Optional[str],
        already_verified: bool = False,
    ) -> VerificationState:
        """New identity/wallet pair; supersedes any session in flight."""
        return await self._dispatch(ClaimChanged(identity, wallet, already_verified))

    async def provide_transfer_evidence(self, tx_hash: str) -> VerificationState:
        return await self._dispatch(TransferEvidenceProvided(tx_hash))

    async def retry(self) -> VerificationState:
        """Manual retry from failed; re-enters checking via the direct path."""
        return await self._dispatch(RetryRequested())

    async def close(self) -> None:
        self._cancel_inflight()

    def _cancel_inflight(self) -> None:
        if self._task is not None and not self._task.done():
            log.info(f"superseding in-flight ownership session={self._state.session}")
            self._task.cancel()
        self._task = None

    async def _dispatch(self, event: Event) -> VerificationState:
        previous = self._state
        self._state, effect = transition(previous, event)
        if self._state is previous:
            log.debug(f"event {type(event).__name__} ignored in state={previous.status.value}")
            return self._state

        if self._state.session != previous.session:
            self._cancel_inflight()
        log.info(
            f"ownership {previous.status.value} -> {self._state.status.value}",
            extra={"session": self._state.session},
        )
        if effect is None:
            return self._state

        task = asyncio.create_task(self._run_effects(effect))
        self._task = task
        # Returns normally when the task is cancelled by a newer claim
        await asyncio.wait({task})
        return self._state

    async def _perform(self, effect: Effect) -> Event:
        if isinstance(effect, Discover):
            controller = await self._resolver.resolve_controller(effect.claim.identity)
            return DiscoveryCompleted(effect.session, controller)
        if isinstance(effect, SubmitVerification):
            response = await self._attestation.verify(effect.claim, self._required_schemas)
            return VerificationCompleted(effect.session, response)
        raise TypeError(f"Unknown effect: {effect!r}")

    async def _run_effects(self, effect: Optional[Effect]) -> None:
        while effect is not None:
            session = effect.session
            try:
                event = await self._perform(effect)
            except Exception as e:
                log.warning(f"ownership effect {type(effect).__name__} failed: {e}")
                event = EffectFailed(session, describe_failure(e))

            if session != self._state.session:
                log.info(f"dropping stale {type(event).__name__} for session={session}")
                return

            previous = self._state
            self._state, effect = transition(previous, event)
            log.info(
                f"ownership {previous.status.value} -> {self._state.status.value}",
                extra={"session": session},
            )
