"""CAIP-10 account and CAIP-2 chain identifiers.

CAIP-10: <namespace>:<reference>:<address>
CAIP-2:  <namespace>:<reference>

Parsing and normalization never raise. Malformed input yields None (or a
Caip10Result with valid=False and an error string for display).

Normalized forms:
- eip155: numeric chain id, lowercase 0x + 40 hex address
- solana: lowercase cluster reference, base58 address unchanged
- sui:    lowercase network reference, 0x + 64 hex (left-padded) address
"""

import re
from dataclasses import dataclass
from typing import NamedTuple, Optional

import base58
from eth_hash.auto import keccak

_CAIP10_RE = re.compile(r"([a-z0-9]+):([^:\s]+):([^:\s]+)")
_CAIP2_RE = re.compile(r"([-a-z0-9]{3,8}):([-_a-zA-Z0-9]{1,32})")
_NUMERIC_RE = re.compile(r"[0-9]+")
_EVM_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")
_BASE58_RE = re.compile(r"[1-9A-HJ-NP-Za-km-z]+")
_HEX_RE = re.compile(r"[0-9a-f]+")

SOLANA_REFERENCES = ("mainnet", "devnet", "testnet")
SUI_REFERENCES = ("mainnet", "testnet", "devnet")
SUPPORTED_NAMESPACES = ("eip155", "solana", "sui")

INVALID_FORMAT = "Invalid CAIP-10 format. Expected: namespace:reference:address"


@dataclass(frozen=True)
class Caip10Account:
    namespace: str
    reference: str
    address: str

    def __str__(self) -> str:
        return f"{self.namespace}:{self.reference}:{self.address}"


@dataclass(frozen=True)
class Caip2ChainId:
    namespace: str
    reference: str

    def __str__(self) -> str:
        return f"{self.namespace}:{self.reference}"


@dataclass(frozen=True)
class Caip10Result:
    """Normalization outcome; `parsed` holds the input parts as given."""
    valid: bool
    normalized: Optional[str] = None
    parsed: Optional[Caip10Account] = None
    error: Optional[str] = None


class AddressValidation(NamedTuple):
    normalized: Optional[str]
    error: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.normalized is not None


# =============================================================================
# Namespace validators
# =============================================================================

def to_checksum_address(address: str) -> Optional[str]:
    """EIP-55 mixed-case form of an EVM address, or None if malformed."""
    if not isinstance(address, str) or not _EVM_ADDRESS_RE.fullmatch(address):
        return None
    hex_addr = address[2:].lower()
    digest = keccak(hex_addr.encode("ascii")).hex()
    return "0x" + "".join(
        c.upper() if int(digest[i], 16) >= 8 else c
        for i, c in enumerate(hex_addr)
    )


def is_evm_address(address: str) -> bool:
    """True for 0x + 40 hex; mixed-case input must carry a valid checksum."""
    if not isinstance(address, str) or not _EVM_ADDRESS_RE.fullmatch(address):
        return False
    body = address[2:]
    if body == body.lower() or body == body.upper():
        return True
    return to_checksum_address(address) == address


def validate_evm(reference: str, address: str) -> AddressValidation:
    if not _NUMERIC_RE.fullmatch(reference):
        return AddressValidation(None, "Chain reference must be a valid numeric chainId")
    if not address.startswith("0x"):
        return AddressValidation(None, "EVM address must start with 0x")
    if len(address) != 42:
        return AddressValidation(None, "EVM address must be 20 bytes (0x + 40 hex characters)")
    if not _EVM_ADDRESS_RE.fullmatch(address):
        return AddressValidation(None, "EVM address must contain only hexadecimal characters")
    if not is_evm_address(address):
        return AddressValidation(None, "Invalid EVM address checksum")
    return AddressValidation(address.lower())


def validate_solana(reference: str, address: str) -> AddressValidation:
    if reference.lower() not in SOLANA_REFERENCES:
        return AddressValidation(
            None, f"Solana reference must be one of: {', '.join(SOLANA_REFERENCES)}"
        )
    if not _BASE58_RE.fullmatch(address):
        return AddressValidation(None, "Solana address must be base58-encoded (no 0, O, I, or l)")
    try:
        decoded = base58.b58decode(address)
    except ValueError:
        return AddressValidation(None, "Invalid base58 encoding")
    if len(decoded) != 32:
        return AddressValidation(None, "Solana address must decode to 32 bytes")
    return AddressValidation(address)


def validate_sui(reference: str, address: str) -> AddressValidation:
    if reference.lower() not in SUI_REFERENCES:
        return AddressValidation(
            None, f"Sui reference must be one of: {', '.join(SUI_REFERENCES)}"
        )
    if not address.startswith("0x"):
        return AddressValidation(None, "Sui address must start with 0x")
    hex_part = address[2:].lower()
    if not _HEX_RE.fullmatch(hex_part):
        return AddressValidation(None, "Sui address must contain only hexadecimal characters")
    if len(hex_part) > 64:
        return AddressValidation(None, "Sui address exceeds 32 bytes (64 hex characters)")
    return AddressValidation("0x" + hex_part.rjust(64, "0"))


_VALIDATORS = {
    "eip155": validate_evm,
    "solana": validate_solana,
    "sui": validate_sui,
}


# =============================================================================
# CAIP-10
# =============================================================================

def _split_caip10(value: str) -> Optional[Caip10Account]:
    if not isinstance(value, str):
        return None
    match = _CAIP10_RE.fullmatch(value.strip())
    if not match:
        return None
    return Caip10Account(*match.groups())


def parse_caip10(value: str) -> Optional[Caip10Account]:
    """Parse a CAIP-10 account id.

    Rejects anything but exactly three colon-separated segments, and, for
    the namespaces we know, references and addresses of the wrong shape.
    Parts are returned as given (see normalize_caip10 for canonical form).
    """
    account = _split_caip10(value)
    if account is None:
        return None
    validator = _VALIDATORS.get(account.namespace)
    if validator is not None and not validator(account.reference, account.address).valid:
        return None
    return account


def normalize_caip10(value: str) -> Caip10Result:
    account = _split_caip10(value)
    if account is None:
        return Caip10Result(valid=False, error=INVALID_FORMAT)

    validator = _VALIDATORS.get(account.namespace)
    if validator is None:
        return Caip10Result(
            valid=False,
            parsed=account,
            error=(
                f"Unsupported namespace: {account.namespace}. "
                f"Supported: {', '.join(SUPPORTED_NAMESPACES)}"
            ),
        )

    check = validator(account.reference, account.address)
    if not check.valid:
        return Caip10Result(valid=False, parsed=account, error=check.error)

    reference = account.reference if account.namespace == "eip155" else account.reference.lower()
    return Caip10Result(
        valid=True,
        normalized=f"{account.namespace}:{reference}:{check.normalized}",
        parsed=account,
    )


def build_caip10(namespace: str, reference, address: str) -> Optional[str]:
    """Build a normalized CAIP-10 string; None if any part is invalid."""
    if not isinstance(namespace, str) or not isinstance(address, str):
        return None
    return normalize_caip10(f"{namespace}:{reference}:{address}").normalized


# =============================================================================
# CAIP-2
# =============================================================================

def parse_caip2(value: str) -> Optional[Caip2ChainId]:
    if not isinstance(value, str):
        return None
    match = _CAIP2_RE.fullmatch(value.strip())
    if not match:
        return None
    namespace, reference = match.groups()
    if namespace == "eip155" and not _NUMERIC_RE.fullmatch(reference):
        return None
    return Caip2ChainId(namespace, reference)


def build_caip2(namespace: str, reference) -> Optional[str]:
    if not isinstance(namespace, str):
        return None
    chain = parse_caip2(f"{namespace}:{reference}")
    return str(chain) if chain else None
