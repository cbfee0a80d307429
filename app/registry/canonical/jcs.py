"""JSON canonicalization for content hashing.

Produces the RFC 8785 (JCS) form the on-chain dataHash commits to: object
keys sorted by UTF-16 code unit, no whitespace, arrays in original order,
non-ASCII emitted raw and numbers formatted as ECMAScript does.

Integers outside the exactly representable double range (|n| > 2^53 - 1)
are rejected rather than rounded, as are NaN, Infinity and strings holding
lone surrogates (in values or keys).
"""

import logging
from typing import Any

import rfc8785

from app.registry.exceptions import CanonicalizationError

log = logging.getLogger(__name__)


def canonicalize(value: Any) -> str:
    """Serialize a JSON-compatible value to its canonical string.

    Raises:
        CanonicalizationError: For out-of-range numbers, non-string keys,
            non-UTF-8 strings or values with no JSON representation.
    """
    try:
        return rfc8785.dumps(value).decode("utf-8")
    except rfc8785.IntegerDomainError as e:
        raise CanonicalizationError(f"Integer out of range: {e}")
    except rfc8785.FloatDomainError as e:
        raise CanonicalizationError(f"Non-finite number not allowed: {e}")
    except (rfc8785.CanonicalizationError, UnicodeEncodeError) as e:
        log.debug(f"canonicalization failed: {e}")
        raise CanonicalizationError(f"Value is not canonicalizable: {e}")
