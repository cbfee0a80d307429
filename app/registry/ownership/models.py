"""Data exchanged with the ownership collaborators."""

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True)
class OwnershipClaim:
    """A wallet's claim to control an identity's resource.

    Lives for one verification attempt. Wallet addresses are stored
    lowercase.
    """
    identity: str
    connected_wallet: str
    claimed_controller: Optional[str] = None
    transfer_evidence: Optional[str] = None

    def with_controller(self, controller: str) -> "OwnershipClaim":
        return replace(self, claimed_controller=controller.lower())

    def with_evidence(self, tx_hash: Optional[str]) -> "OwnershipClaim":
        return replace(self, transfer_evidence=tx_hash)


class VerificationResponse(BaseModel):
    """Body returned by the verification and attestation service."""
    model_config = ConfigDict(extra="allow")

    ok: bool = False
    status: Optional[str] = None
    error: Optional[str] = None
    debug: Optional[Dict[str, Any]] = None

    @property
    def is_ready(self) -> bool:
        return self.ok and self.status == "ready"

    @property
    def verification_method(self) -> Optional[str]:
        if not self.debug:
            return None
        method = self.debug.get("verificationMethod")
        return method if isinstance(method, str) and method else None


@dataclass(frozen=True)
class VerificationVerdict:
    """Final answer of an ownership verification session."""
    verified: bool
    method: Optional[str] = None
    error: Optional[str] = None
