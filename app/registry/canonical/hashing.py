"""Content hashing over canonical JSON.

The on-chain dataHashAlgorithm selector picks the digest:
0 = keccak256 (default for every mint/update), 1 = sha256 (reserved).
Digests are always rendered as 0x-prefixed lowercase hex.
"""

import hashlib
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Union

from eth_hash.auto import keccak

from app.core.config import HASH_ALGORITHM_KECCAK256, HASH_ALGORITHM_SHA256
from app.registry.exceptions import IntegrityError

from .jcs import canonicalize


class HashAlgorithm(IntEnum):
    KECCAK256 = HASH_ALGORITHM_KECCAK256
    SHA256 = HASH_ALGORITHM_SHA256


@dataclass(frozen=True)
class CanonicalHash:
    """Hash bound to the canonical string and algorithm it was computed from."""
    hash: str
    canonical: str
    algorithm: int = HashAlgorithm.KECCAK256


def _to_bytes(data: Union[bytes, str]) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


def keccak256_hex(data: Union[bytes, str]) -> str:
    return "0x" + keccak(_to_bytes(data)).hex()


def sha256_hex(data: Union[bytes, str]) -> str:
    return "0x" + hashlib.sha256(_to_bytes(data)).hexdigest()


def compute_hash(canonical: str, algorithm: int = HashAlgorithm.KECCAK256) -> str:
    """Digest the UTF-8 bytes of a canonical string.

    Raises:
        IntegrityError: If the algorithm selector is unknown.
    """
    if algorithm == HashAlgorithm.KECCAK256:
        return keccak256_hex(canonical)
    if algorithm == HashAlgorithm.SHA256:
        return sha256_hex(canonical)
    raise IntegrityError.unsupported_algorithm(algorithm)


def hash_document(document: Any, algorithm: int = HashAlgorithm.KECCAK256) -> CanonicalHash:
    """Canonicalize a JSON value and hash it."""
    canonical = canonicalize(document)
    return CanonicalHash(
        hash=compute_hash(canonical, algorithm),
        canonical=canonical,
        algorithm=int(algorithm),
    )


def hashes_equal(a: str, b: str) -> bool:
    """Case-insensitive digest comparison (on-chain values may be checksummed hex)."""
    return a.strip().lower() == b.strip().lower()
