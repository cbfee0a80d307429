"""
Registry Verifier exceptions.

Malformed identifiers are never raised: normalizers return None/False.
Everything below carries an ErrorCode so the HTTP layer can map it to
an ErrorDetail.
"""

from app.registry.api_models import ErrorCode


class RegistryError(Exception):
    """Base exception carrying an error code and a user-facing message."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class IntegrityError(RegistryError):
    """dataUrl fetch, canonicalization or hash-comparison failure.

    Messages are stable so callers can map them to user text:
    - HTTP <code>
    - Invalid content-type: <ct>
    - Response too large (> N bytes)
    - No response body
    """

    def __init__(self, message: str, code: str = ErrorCode.DATA_URL_FETCH_FAILED):
        super().__init__(code, message)

    @classmethod
    def http_status(cls, status_code: int) -> "IntegrityError":
        return cls(f"HTTP {status_code}")

    @classmethod
    def invalid_content_type(cls, content_type: str) -> "IntegrityError":
        return cls(
            f"Invalid content-type: {content_type}",
            code=ErrorCode.DATA_URL_CONTENT_INVALID,
        )

    @classmethod
    def too_large(cls, max_bytes: int) -> "IntegrityError":
        return cls(
            f"Response too large (> {max_bytes} bytes)",
            code=ErrorCode.DATA_URL_CONTENT_INVALID,
        )

    @classmethod
    def no_body(cls) -> "IntegrityError":
        return cls("No response body", code=ErrorCode.DATA_URL_CONTENT_INVALID)

    @classmethod
    def timeout(cls, timeout_ms: int, url: str) -> "IntegrityError":
        return cls(f"Timeout after {timeout_ms}ms fetching {url}")

    @classmethod
    def invalid_json(cls, reason: str) -> "IntegrityError":
        return cls(
            f"Invalid JSON document: {reason}",
            code=ErrorCode.DATA_URL_CONTENT_INVALID,
        )

    @classmethod
    def unsupported_algorithm(cls, algorithm: int) -> "IntegrityError":
        return cls(
            f"Unsupported hash algorithm: {algorithm}",
            code=ErrorCode.HASH_ALGORITHM_UNSUPPORTED,
        )

    @classmethod
    def mismatch(cls, expected: str, computed: str) -> "IntegrityError":
        return cls(
            f"Hash mismatch: expected {expected}, computed {computed}",
            code=ErrorCode.HASH_MISMATCH,
        )


class CanonicalizationError(IntegrityError):
    """Value cannot be represented in canonical JSON (NaN, Infinity, non-JSON type)."""

    def __init__(self, message: str):
        super().__init__(message, code=ErrorCode.CANONICALIZATION_FAILED)


class DiscoveryError(RegistryError):
    """No standard ownership accessor found for a resource."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.DISCOVERY_FAILED, message)

    @classmethod
    def no_accessor(cls) -> "DiscoveryError":
        return cls(
            "Could not discover controlling wallet. Contract may not have standard "
            "ownership functions (owner, admin, getOwner, or EIP-1967 proxy)."
        )

    @classmethod
    def unsupported_identity(cls, did: str) -> "DiscoveryError":
        return cls(f"Invalid did:pkh format or non-EVM namespace: {did}")


class VerificationError(RegistryError):
    """Verification service rejected the ownership claim."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.VERIFICATION_FAILED, message)


class NetworkError(RegistryError):
    """Transient transport failure; eligible for one retry at the submission layer."""

    def __init__(self, message: str = "Network request failed"):
        super().__init__(ErrorCode.NETWORK_ERROR, message)
