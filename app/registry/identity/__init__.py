"""Identity normalization: DIDs, CAIP-10 accounts and CAIP-2 chains.

Every function here is total. Malformed input is a validation outcome
(None/False), never an exception.
"""

from .caip import (
    Caip10Account,
    Caip10Result,
    Caip2ChainId,
    build_caip10,
    build_caip2,
    is_evm_address,
    normalize_caip10,
    parse_caip10,
    parse_caip2,
    to_checksum_address,
)
from .did import (
    build_pkh_did,
    compute_did_hash,
    extract_did_identifier,
    extract_did_method,
    get_address_from_did_pkh,
    get_chain_id_from_did_pkh,
    get_namespace_from_did_pkh,
    is_evm_did_pkh,
    is_valid_did,
    normalize_did,
    normalize_did_pkh,
    normalize_did_web,
    normalize_domain,
    parse_did_pkh,
)

__all__ = [
    "Caip10Account",
    "Caip10Result",
    "Caip2ChainId",
    "build_caip10",
    "build_caip2",
    "is_evm_address",
    "normalize_caip10",
    "parse_caip10",
    "parse_caip2",
    "to_checksum_address",
    "build_pkh_did",
    "compute_did_hash",
    "extract_did_identifier",
    "extract_did_method",
    "get_address_from_did_pkh",
    "get_chain_id_from_did_pkh",
    "get_namespace_from_did_pkh",
    "is_evm_did_pkh",
    "is_valid_did",
    "normalize_did",
    "normalize_did_pkh",
    "normalize_did_web",
    "normalize_domain",
    "parse_did_pkh",
]
