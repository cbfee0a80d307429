"""
Registry Verifier API models.
Request/response bodies for the HTTP surface and the error code registry.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Error Models
# =============================================================================

class ErrorDetail(BaseModel):
    """Structured error returned by every failing endpoint."""
    code: str
    message: str
    recoverable: bool


class ErrorCode:
    """Error code registry."""
    # Identity layer
    IDENTITY_INVALID = "IDENTITY_INVALID"

    # Integrity layer
    DATA_URL_FETCH_FAILED = "DATA_URL_FETCH_FAILED"
    DATA_URL_CONTENT_INVALID = "DATA_URL_CONTENT_INVALID"
    CANONICALIZATION_FAILED = "CANONICALIZATION_FAILED"
    HASH_MISMATCH = "HASH_MISMATCH"
    HASH_ALGORITHM_UNSUPPORTED = "HASH_ALGORITHM_UNSUPPORTED"

    # Ownership layer
    DISCOVERY_FAILED = "DISCOVERY_FAILED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"

    # Transport
    NETWORK_ERROR = "NETWORK_ERROR"

    # Service
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Recoverability mapping: recoverable errors may succeed when retried unchanged
ERROR_RECOVERABILITY: Dict[str, bool] = {
    ErrorCode.IDENTITY_INVALID: False,
    ErrorCode.DATA_URL_FETCH_FAILED: True,    # Recoverable
    ErrorCode.DATA_URL_CONTENT_INVALID: False,
    ErrorCode.CANONICALIZATION_FAILED: False,
    ErrorCode.HASH_MISMATCH: False,
    ErrorCode.HASH_ALGORITHM_UNSUPPORTED: False,
    ErrorCode.DISCOVERY_FAILED: False,
    ErrorCode.VERIFICATION_FAILED: False,
    ErrorCode.NETWORK_ERROR: True,            # Recoverable
    ErrorCode.INTERNAL_ERROR: True,
}


# =============================================================================
# Identity
# =============================================================================

class NormalizeRequest(BaseModel):
    """Request body for /identity/normalize"""
    value: str


class NormalizeResponse(BaseModel):
    kind: Optional[str] = None           # "did" or "caip10"
    normalized: Optional[str] = None     # None when the input is malformed
    method: Optional[str] = None
    error: Optional[str] = None


# =============================================================================
# Metadata / hashing
# =============================================================================

class RegistrationContextModel(BaseModel):
    chain_id: int
    registry_address: str
    agent_id: Optional[int] = None


class BuildMetadataRequest(BaseModel):
    """Request body for /metadata/build.

    `data` accepts any of the supported input shapes (flattened fields,
    legacy nested `metadata`, `extra` overrides).
    """
    data: Dict[str, Any]
    registration: Optional[RegistrationContextModel] = None
    algorithm: int = 0


class BuildMetadataResponse(BaseModel):
    metadata: Dict[str, Any]
    hash: str
    canonical: str
    algorithm: int
    errors: List[str] = Field(default_factory=list)


class CanonicalizeRequest(BaseModel):
    """Request body for /metadata/canonicalize"""
    document: Any
    algorithm: int = 0


class CanonicalizeResponse(BaseModel):
    hash: str
    canonical: str
    algorithm: int


class DataUrlVerifyRequest(BaseModel):
    """Request body for /data-url/verify"""
    url: str
    expected_hash: str
    algorithm: int = 0


class DataUrlVerifyResponse(BaseModel):
    ok: bool
    computed_hash: str
    jcs_json: str


# =============================================================================
# Ownership
# =============================================================================

class DiscoverRequest(BaseModel):
    """Request body for /ownership/discover"""
    did: str


class DiscoverResponse(BaseModel):
    controller: str
    chain_id: int
    contract_address: str


class OwnershipVerifyRequest(BaseModel):
    """Request body for /ownership/verify"""
    did: str
    wallet: str
    tx_hash: Optional[str] = None


class TransferInstructionsModel(BaseModel):
    chain_id: int
    amount_wei: str
    formatted: str
    symbol: str
    recipient: str
    sender: str


class OwnershipVerifyResponse(BaseModel):
    verified: bool
    status: str
    method: Optional[str] = None
    error: Optional[str] = None
    notice: Optional[str] = None
    controller: Optional[str] = None
    transfer: Optional[TransferInstructionsModel] = None
