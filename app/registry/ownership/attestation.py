"""Verification and attestation service client.

The service checks the claim (direct controller match or transfer proof)
and, on success, issues the required attestations. Request body:

    {"did": ..., "connectedAddress": ..., "requiredSchemas": [...], "txHash": ...}

Responses are read as {ok, status, error?, debug?} whatever the HTTP
status; the service reports rejections in the body.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

import httpx
from pydantic import ValidationError

from app.core.config import ATTESTATION_SERVICE_URL, ATTESTATION_TIMEOUT_SECONDS, REQUIRED_OWNERSHIP_SCHEMAS
from app.registry.exceptions import NetworkError, VerificationError

from .models import OwnershipClaim, VerificationResponse

log = logging.getLogger(__name__)


class AttestationClient:
    """Async client for the verify-and-attest endpoint."""

    def __init__(
        self,
        url: str = ATTESTATION_SERVICE_URL,
        timeout: float = ATTESTATION_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize client.

        Args:
            url: Full URL of the verify-and-attest endpoint
            timeout: Request timeout in seconds
            client: Shared AsyncClient; a short-lived one is created per call if None
        """
        self._url = url
        self._timeout = timeout
        self._client = client

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    async def verify(
        self,
        claim: OwnershipClaim,
        required_schemas: Sequence[str] = REQUIRED_OWNERSHIP_SCHEMAS,
    ) -> VerificationResponse:
        """Submit an ownership claim.

        Raises:
            NetworkError: Transport failure or timeout.
            VerificationError: The service answered with an unreadable body.
        """
        body = {
            "did": claim.identity,
            "connectedAddress": claim.connected_wallet,
            "requiredSchemas": list(required_schemas),
        }
        if claim.transfer_evidence:
            body["txHash"] = claim.transfer_evidence

        log.info(
            f"verify-and-attest did={claim.identity} wallet={claim.connected_wallet} "
            f"transfer={bool(claim.transfer_evidence)}"
        )
        try:
            async with self._session() as client:
                response = await client.post(self._url, json=body)
        except httpx.TimeoutException:
            log.error(f"verify-and-attest timeout after {self._timeout}s")
            raise NetworkError(f"Verification service timeout after {self._timeout}s")
        except httpx.RequestError as e:
            log.error(f"verify-and-attest request failed: {e}")
            raise NetworkError(f"Verification service unreachable: {e}")

        try:
            data = response.json()
        except ValueError:
            if not response.is_success:
                return VerificationResponse(ok=False, error=f"HTTP {response.status_code}")
            raise VerificationError("Verification service returned a non-JSON response")

        if not isinstance(data, dict):
            raise VerificationError("Verification service returned an unexpected response")
        try:
            result = VerificationResponse.model_validate(data)
        except ValidationError as e:
            raise VerificationError(f"Verification service response invalid: {e.error_count()} errors")

        if not result.is_ready:
            log.warning(
                f"verify-and-attest rejected did={claim.identity} "
                f"status={result.status} http={response.status_code} error={result.error}"
            )
        return result
