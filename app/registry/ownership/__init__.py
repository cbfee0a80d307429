"""Ownership verification: controller discovery, transfer proofs and the verdict flow."""

from .attestation import AttestationClient
from .machine import (
    ALLOWED_TRANSITIONS,
    Checking,
    ClaimChanged,
    Discover,
    Discovering,
    DiscoveryCompleted,
    EffectFailed,
    Failed,
    Idle,
    ReadyForTransfer,
    RetryRequested,
    SubmitVerification,
    TransferEvidenceProvided,
    VerificationCompleted,
    VerificationState,
    VerificationStatus,
    Verified,
    can_transition,
    transition,
    verdict_of,
)
from .models import OwnershipClaim, VerificationResponse, VerificationVerdict
from .resolver import OwnershipResolver, RpcOwnershipResolver, get_rpc_url
from .transfer import (
    CHAIN_CONFIGS,
    ProofPurpose,
    TransferInstructions,
    calculate_transfer_amount,
    format_transfer_amount,
    get_transfer_instructions,
)
from .verifier import OwnershipVerifier

__all__ = [
    "AttestationClient",
    "ALLOWED_TRANSITIONS",
    "Checking",
    "ClaimChanged",
    "Discover",
    "Discovering",
    "DiscoveryCompleted",
    "EffectFailed",
    "Failed",
    "Idle",
    "ReadyForTransfer",
    "RetryRequested",
    "SubmitVerification",
    "TransferEvidenceProvided",
    "VerificationCompleted",
    "VerificationState",
    "VerificationStatus",
    "Verified",
    "can_transition",
    "transition",
    "verdict_of",
    "OwnershipClaim",
    "VerificationResponse",
    "VerificationVerdict",
    "OwnershipResolver",
    "RpcOwnershipResolver",
    "get_rpc_url",
    "CHAIN_CONFIGS",
    "ProofPurpose",
    "TransferInstructions",
    "calculate_transfer_amount",
    "format_transfer_amount",
    "get_transfer_instructions",
    "OwnershipVerifier",
]
