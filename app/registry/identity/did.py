"""DID parsing and normalization.

All functions are total: malformed input returns None/False and never
raises. Normalized DIDs are what gets stored on-chain and hashed, so
normalization must be idempotent.
"""

import re
from typing import Optional

from app.registry.canonical.hashing import keccak256_hex

from .caip import Caip10Account, normalize_caip10, parse_caip10

DID_WEB_PREFIX = "did:web:"
DID_PKH_PREFIX = "did:pkh:"

_DID_RE = re.compile(r"did:([a-z0-9]+):(.+)", re.IGNORECASE | re.ASCII)
_DID_METHOD_RE = re.compile(r"did:([a-z0-9]+):", re.IGNORECASE | re.ASCII)


def normalize_did_web(value: str) -> Optional[str]:
    """Trim, strip an existing did:web: prefix, lowercase, re-prefix.

    `did:web:Example.COM` and `Example.COM` both give `did:web:example.com`.
    """
    if not isinstance(value, str):
        return None
    s = value.strip()
    if s.startswith(DID_WEB_PREFIX):
        s = s[len(DID_WEB_PREFIX):]
    return DID_WEB_PREFIX + s.lower()


def is_valid_did(value: str) -> bool:
    return isinstance(value, str) and _DID_RE.fullmatch(value) is not None


def extract_did_method(value: str) -> Optional[str]:
    """Method name from the `did:<method>:` prefix; the identifier may be empty."""
    if not isinstance(value, str):
        return None
    match = _DID_METHOD_RE.match(value)
    return match.group(1) if match else None


def extract_did_identifier(value: str) -> Optional[str]:
    if not isinstance(value, str):
        return None
    match = _DID_RE.fullmatch(value)
    return match.group(2) if match else None


def normalize_domain(domain: str) -> Optional[str]:
    """Lowercase and drop a single trailing dot (DNS root)."""
    if not isinstance(domain, str):
        return None
    s = domain.lower()
    return s[:-1] if s.endswith(".") else s


# =============================================================================
# did:pkh
# =============================================================================

def _pkh_suffix(value: str) -> Optional[str]:
    if not isinstance(value, str):
        return None
    s = value.strip()
    if s[:len(DID_PKH_PREFIX)].lower() != DID_PKH_PREFIX:
        return None
    return s[len(DID_PKH_PREFIX):]


def normalize_did_pkh(value: str) -> Optional[str]:
    """`did:pkh:<caip10>` with the account id normalized (EVM lowercase)."""
    suffix = _pkh_suffix(value)
    if suffix is None:
        return None
    result = normalize_caip10(suffix)
    return DID_PKH_PREFIX + result.normalized if result.valid else None


def parse_did_pkh(value: str) -> Optional[Caip10Account]:
    suffix = _pkh_suffix(value)
    return parse_caip10(suffix) if suffix is not None else None


def get_namespace_from_did_pkh(value: str) -> Optional[str]:
    """Namespace segment of a did:pkh, even for namespaces we cannot validate."""
    suffix = _pkh_suffix(value)
    if not suffix:
        return None
    namespace = suffix.split(":", 1)[0]
    return namespace or None


def is_evm_did_pkh(value: str) -> bool:
    account = parse_did_pkh(value)
    return account is not None and account.namespace == "eip155"


def get_chain_id_from_did_pkh(value: str) -> Optional[int]:
    account = parse_did_pkh(value)
    if account is None or account.namespace != "eip155":
        return None
    return int(account.reference)


def get_address_from_did_pkh(value: str) -> Optional[str]:
    """Lowercase EVM address of an eip155 did:pkh."""
    if not is_evm_did_pkh(value):
        return None
    return parse_did_pkh(value).address.lower()


def build_pkh_did(chain_id: int, address: str) -> str:
    return f"{DID_PKH_PREFIX}eip155:{chain_id}:{address.lower()}"


# =============================================================================
# Generic
# =============================================================================

def normalize_did(value: str) -> Optional[str]:
    """Normalize any DID: web and pkh get method-specific rules, others are trimmed."""
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not is_valid_did(s):
        return None
    method = extract_did_method(s).lower()
    if method == "web":
        return normalize_did_web("did:web:" + extract_did_identifier(s))
    if method == "pkh":
        return normalize_did_pkh(s)
    return s


def compute_did_hash(did: str) -> str:
    """keccak256 of the lowercased, trimmed DID (0x hex)."""
    return keccak256_hex(did.lower().strip())
