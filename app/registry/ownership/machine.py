"""Ownership verification state machine.

    idle -> discovering -> ready-for-transfer -> checking -> verified
                      \\-> checking ----------------------\\-> failed
                      \\-> failed -> checking (manual retry, direct path)

The machine is a pure function over immutable states:
transition(state, event) -> (next_state, effect). Effects are requests
for I/O that the dispatcher in verifier.py performs and feeds back as
events. Every state carries a session number; a claim change starts a
new session and any event stamped with an older session is dropped.
"""

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import ClassVar, Dict, Optional, Tuple, Union

from app.core.config import SUPPORTED_OWNERSHIP_NAMESPACES
from app.registry.exceptions import DiscoveryError
from app.registry.identity import (
    extract_did_method,
    get_namespace_from_did_pkh,
    is_evm_address,
    normalize_did_pkh,
)

from .models import OwnershipClaim, VerificationResponse, VerificationVerdict
from .transfer import TransferInstructions, get_transfer_instructions

_TX_HASH_RE = re.compile(r"0x[0-9a-fA-F]{64}")

UNSUPPORTED_NAMESPACE = (
    "The DID uses the {namespace} namespace, which is not yet supported "
    "for direct ownership verification."
)
INVALID_TX_HASH = "Invalid transaction hash. Expected 0x followed by 64 hex characters."
DIRECT_FAILURE = "Verification failed. Your wallet must be the contract owner/admin."
TRANSFER_FAILURE = "Transfer verification failed. Please check the transaction hash and try again."

METHOD_TRANSFER = "onchain transfer"
METHOD_OWNERSHIP = "contract ownership"


class VerificationStatus(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    READY_FOR_TRANSFER = "ready-for-transfer"
    CHECKING = "checking"
    VERIFIED = "verified"
    FAILED = "failed"


# Claim changes reset from any state and are not listed here
ALLOWED_TRANSITIONS: Dict[VerificationStatus, frozenset[VerificationStatus]] = {
    VerificationStatus.IDLE: frozenset({VerificationStatus.DISCOVERING}),
    VerificationStatus.DISCOVERING: frozenset({
        VerificationStatus.READY_FOR_TRANSFER,
        VerificationStatus.CHECKING,
        VerificationStatus.FAILED,
    }),
    VerificationStatus.READY_FOR_TRANSFER: frozenset({VerificationStatus.CHECKING}),
    VerificationStatus.CHECKING: frozenset({VerificationStatus.VERIFIED, VerificationStatus.FAILED}),
    VerificationStatus.VERIFIED: frozenset(),
    VerificationStatus.FAILED: frozenset({VerificationStatus.CHECKING}),
}


def can_transition(source: VerificationStatus, target: VerificationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(source, frozenset())


# =============================================================================
# States
# =============================================================================

@dataclass(frozen=True)
class Idle:
    status: ClassVar[VerificationStatus] = VerificationStatus.IDLE
    session: int = 0
    notice: Optional[str] = None
    claim: Optional[OwnershipClaim] = None


@dataclass(frozen=True)
class Discovering:
    status: ClassVar[VerificationStatus] = VerificationStatus.DISCOVERING
    session: int
    claim: OwnershipClaim


@dataclass(frozen=True)
class ReadyForTransfer:
    status: ClassVar[VerificationStatus] = VerificationStatus.READY_FOR_TRANSFER
    session: int
    claim: OwnershipClaim
    instructions: Optional[TransferInstructions] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class Checking:
    status: ClassVar[VerificationStatus] = VerificationStatus.CHECKING
    session: int
    claim: OwnershipClaim
    via_transfer: bool = False


@dataclass(frozen=True)
class Verified:
    status: ClassVar[VerificationStatus] = VerificationStatus.VERIFIED
    session: int
    claim: OwnershipClaim
    method: Optional[str] = None


@dataclass(frozen=True)
class Failed:
    status: ClassVar[VerificationStatus] = VerificationStatus.FAILED
    session: int
    claim: OwnershipClaim
    error: str = DIRECT_FAILURE


VerificationState = Union[Idle, Discovering, ReadyForTransfer, Checking, Verified, Failed]


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class ClaimChanged:
    identity: Optional[str]
    wallet: Optional[str]
    already_verified: bool = False


@dataclass(frozen=True)
class DiscoveryCompleted:
    session: int
    controller: Optional[str]


@dataclass(frozen=True)
class TransferEvidenceProvided:
    tx_hash: str


@dataclass(frozen=True)
class VerificationCompleted:
    session: int
    response: VerificationResponse


@dataclass(frozen=True)
class RetryRequested:
    pass


@dataclass(frozen=True)
class EffectFailed:
    session: int
    message: str


Event = Union[
    ClaimChanged,
    DiscoveryCompleted,
    TransferEvidenceProvided,
    VerificationCompleted,
    RetryRequested,
    EffectFailed,
]


# =============================================================================
# Effects
# =============================================================================

@dataclass(frozen=True)
class Discover:
    session: int
    claim: OwnershipClaim


@dataclass(frozen=True)
class SubmitVerification:
    session: int
    claim: OwnershipClaim
    via_transfer: bool = False


Effect = Union[Discover, SubmitVerification]

Transition = Tuple[VerificationState, Optional[Effect]]


# =============================================================================
# Transition function
# =============================================================================

def _claim_matches(state: VerificationState, identity: str, wallet: str) -> bool:
    claim = state.claim
    return claim is not None and claim.identity == identity and claim.connected_wallet == wallet


def _unsupported_notice(identity: str) -> Optional[str]:
    namespace = get_namespace_from_did_pkh(identity)
    if namespace is None:
        method = extract_did_method(identity)
        if method is None:
            return None
        namespace = f"did:{method.lower()}"
    if namespace in SUPPORTED_OWNERSHIP_NAMESPACES:
        return None
    return UNSUPPORTED_NAMESPACE.format(namespace=namespace)


def _on_claim_changed(state: VerificationState, event: ClaimChanged) -> Transition:
    raw_identity = (event.identity or "").strip()
    wallet = (event.wallet or "").strip().lower()
    session = state.session + 1

    if not raw_identity or not wallet:
        return Idle(session), None

    identity = normalize_did_pkh(raw_identity) or raw_identity
    if _claim_matches(state, identity, wallet):
        if isinstance(state, Verified) or not event.already_verified:
            return state, None

    claim = OwnershipClaim(identity=identity, connected_wallet=wallet)
    if event.already_verified:
        return Verified(session, claim), None

    notice = _unsupported_notice(raw_identity)
    if notice is not None:
        return Idle(session, notice=notice), None
    if normalize_did_pkh(raw_identity) is None or not is_evm_address(wallet):
        return Idle(session), None

    return Discovering(session, claim), Discover(session, claim)


def _on_discovery(state: Discovering, event: DiscoveryCompleted) -> Transition:
    claim = state.claim
    if event.controller is None:
        return Failed(state.session, claim, DiscoveryError.no_accessor().message), None

    claim = claim.with_controller(event.controller)
    if claim.claimed_controller == claim.connected_wallet:
        return Checking(state.session, claim), SubmitVerification(state.session, claim)

    instructions = get_transfer_instructions(claim.identity, claim.connected_wallet, claim.claimed_controller)
    return ReadyForTransfer(state.session, claim, instructions), None


def _on_transfer_evidence(state: ReadyForTransfer, event: TransferEvidenceProvided) -> Transition:
    tx_hash = (event.tx_hash or "").strip()
    if not _TX_HASH_RE.fullmatch(tx_hash):
        return replace(state, error=INVALID_TX_HASH), None
    claim = state.claim.with_evidence(tx_hash.lower())
    return (
        Checking(state.session, claim, via_transfer=True),
        SubmitVerification(state.session, claim, via_transfer=True),
    )


def _on_verification(state: Checking, event: VerificationCompleted) -> Transition:
    response = event.response
    if response.is_ready:
        if state.via_transfer:
            method = METHOD_TRANSFER
        else:
            method = response.verification_method or METHOD_OWNERSHIP
        return Verified(state.session, state.claim, method), None

    fallback = TRANSFER_FAILURE if state.via_transfer else DIRECT_FAILURE
    return Failed(state.session, state.claim, response.error or fallback), None


def _on_retry(state: Failed) -> Transition:
    claim = state.claim.with_evidence(None)
    return Checking(state.session, claim), SubmitVerification(state.session, claim)


def transition(state: VerificationState, event: Event) -> Transition:
    """Apply one event. Stale or out-of-place events leave the state unchanged."""
    if isinstance(event, ClaimChanged):
        return _on_claim_changed(state, event)

    session = getattr(event, "session", state.session)
    if session != state.session:
        return state, None

    if isinstance(event, DiscoveryCompleted) and isinstance(state, Discovering):
        result = _on_discovery(state, event)
    elif isinstance(event, TransferEvidenceProvided) and isinstance(state, ReadyForTransfer):
        result = _on_transfer_evidence(state, event)
    elif isinstance(event, VerificationCompleted) and isinstance(state, Checking):
        result = _on_verification(state, event)
    elif isinstance(event, RetryRequested) and isinstance(state, Failed):
        result = _on_retry(state)
    elif isinstance(event, EffectFailed) and isinstance(state, (Discovering, Checking)):
        result = Failed(state.session, state.claim, event.message), None
    else:
        return state, None

    target = result[0]
    if target.status != state.status and not can_transition(state.status, target.status):
        return state, None
    return result


def verdict_of(state: VerificationState) -> Optional[VerificationVerdict]:
    """Terminal verdict, or None while the session is still open."""
    if isinstance(state, Verified):
        return VerificationVerdict(verified=True, method=state.method)
    if isinstance(state, Failed):
        return VerificationVerdict(verified=False, error=state.error)
    return None
