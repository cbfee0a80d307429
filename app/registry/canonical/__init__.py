"""Canonical JSON, content hashing and dataUrl verification."""

from .jcs import canonicalize
from .hashing import (
    CanonicalHash,
    HashAlgorithm,
    compute_hash,
    hash_document,
    hashes_equal,
    keccak256_hex,
    sha256_hex,
)
from .fetch import (
    DataUrlVerification,
    compute_data_hash_from_data_url,
    fetch_data_url_json,
    verify_data_url_hash,
)

__all__ = [
    "canonicalize",
    "CanonicalHash",
    "HashAlgorithm",
    "compute_hash",
    "hash_document",
    "hashes_equal",
    "keccak256_hex",
    "sha256_hex",
    "DataUrlVerification",
    "compute_data_hash_from_data_url",
    "fetch_data_url_json",
    "verify_data_url_hash",
]
