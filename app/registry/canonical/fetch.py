"""Bounded dataUrl fetch and hash verification.

The metadata document behind a dataUrl is fetched with:
- an overall deadline (default 15000 ms), covering connect and body stream
- a streamed byte cap (default 2,000,000), checked chunk by chunk
- a content-type gate: the header must contain application/json

then decoded, parsed, canonicalized and hashed.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from app.core.config import (
    DATA_URL_FETCH_TIMEOUT_MS,
    DATA_URL_MAX_BYTES,
    DATA_URL_MAX_REDIRECTS,
)
from app.registry.exceptions import IntegrityError

from .hashing import CanonicalHash, HashAlgorithm, hash_document, hashes_equal

log = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class DataUrlVerification:
    """Outcome of comparing a dataUrl document against an expected hash."""
    ok: bool
    computed_hash: str
    jcs_json: str


async def _stream_body(client: httpx.AsyncClient, url: str, max_bytes: int) -> bytes:
    async with client.stream("GET", url, headers={"Accept": JSON_CONTENT_TYPE}) as response:
        if not response.is_success:
            raise IntegrityError.http_status(response.status_code)

        content_type = response.headers.get("content-type", "")
        if JSON_CONTENT_TYPE not in content_type.lower():
            raise IntegrityError.invalid_content_type(content_type)

        received = 0
        chunks = []
        async for chunk in response.aiter_bytes():
            received += len(chunk)
            if received > max_bytes:
                log.warning(f"dataUrl body exceeded {max_bytes} bytes, aborting: {url}")
                raise IntegrityError.too_large(max_bytes)
            chunks.append(chunk)

    if received == 0:
        raise IntegrityError.no_body()
    return b"".join(chunks)


async def _fetch_bytes(
    url: str,
    max_bytes: int,
    timeout_s: float,
    client: Optional[httpx.AsyncClient],
) -> bytes:
    if client is not None:
        return await _stream_body(client, url, max_bytes)
    async with httpx.AsyncClient(
        timeout=timeout_s,
        max_redirects=DATA_URL_MAX_REDIRECTS,
        follow_redirects=True,
    ) as own_client:
        return await _stream_body(own_client, url, max_bytes)


def _reject_constant(token: str) -> Any:
    raise ValueError(f"{token} is not valid JSON")


async def fetch_data_url_json(
    url: str,
    *,
    timeout_ms: int = DATA_URL_FETCH_TIMEOUT_MS,
    max_bytes: int = DATA_URL_MAX_BYTES,
    client: Optional[httpx.AsyncClient] = None,
) -> Any:
    """Fetch and parse the JSON document behind a dataUrl.

    Args:
        url: The dataUrl to dereference.
        timeout_ms: Deadline for the whole fetch, body included.
        max_bytes: Abort once more than this many body bytes arrive.
        client: Optional pre-configured client (tests, connection reuse).

    Returns:
        The parsed JSON value.

    Raises:
        IntegrityError: HTTP error status, wrong content-type, oversized or
            empty body, timeout, transport failure, or invalid UTF-8/JSON.
    """
    timeout_s = timeout_ms / 1000
    try:
        body = await asyncio.wait_for(
            _fetch_bytes(url, max_bytes, timeout_s, client), timeout=timeout_s
        )
    except IntegrityError:
        raise
    except (asyncio.TimeoutError, httpx.TimeoutException):
        raise IntegrityError.timeout(timeout_ms, url)
    except httpx.TooManyRedirects:
        raise IntegrityError(f"Exceeded {DATA_URL_MAX_REDIRECTS} redirects fetching {url}")
    except httpx.RequestError as e:
        raise IntegrityError(f"Request failed: {e}")

    try:
        # utf-8-sig drops a leading BOM the way browser TextDecoder does
        text = body.decode("utf-8-sig")
        return json.loads(text, parse_constant=_reject_constant)
    except (UnicodeDecodeError, ValueError) as e:
        raise IntegrityError.invalid_json(str(e))


async def compute_data_hash_from_data_url(
    url: str,
    algorithm: int = HashAlgorithm.KECCAK256,
    *,
    timeout_ms: int = DATA_URL_FETCH_TIMEOUT_MS,
    max_bytes: int = DATA_URL_MAX_BYTES,
    client: Optional[httpx.AsyncClient] = None,
) -> CanonicalHash:
    """Fetch a dataUrl document and return its canonical form and hash."""
    document = await fetch_data_url_json(
        url, timeout_ms=timeout_ms, max_bytes=max_bytes, client=client
    )
    result = hash_document(document, algorithm)
    log.debug(f"dataUrl hashed url={url} alg={int(algorithm)} hash={result.hash}")
    return result


async def verify_data_url_hash(
    url: str,
    expected_hash: str,
    algorithm: int = HashAlgorithm.KECCAK256,
    *,
    timeout_ms: int = DATA_URL_FETCH_TIMEOUT_MS,
    max_bytes: int = DATA_URL_MAX_BYTES,
    client: Optional[httpx.AsyncClient] = None,
) -> DataUrlVerification:
    """Compare the dataUrl document's hash against an expected (on-chain) value.

    A mismatch is returned as ok=False, never raised and never treated as a
    pass. Fetch failures propagate as IntegrityError.
    """
    result = await compute_data_hash_from_data_url(
        url, algorithm, timeout_ms=timeout_ms, max_bytes=max_bytes, client=client
    )
    ok = hashes_equal(result.hash, expected_hash)
    if not ok:
        log.warning(
            f"dataUrl hash mismatch url={url} expected={expected_hash} computed={result.hash}"
        )
    return DataUrlVerification(ok=ok, computed_hash=result.hash, jcs_json=result.canonical)
