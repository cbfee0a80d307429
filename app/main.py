import logging
import os
import time

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.logging_config import configure_logging
from app.registry.api_models import (
    ERROR_RECOVERABILITY,
    BuildMetadataRequest,
    BuildMetadataResponse,
    CanonicalizeRequest,
    CanonicalizeResponse,
    DataUrlVerifyRequest,
    DataUrlVerifyResponse,
    DiscoverRequest,
    DiscoverResponse,
    ErrorDetail,
    NormalizeRequest,
    NormalizeResponse,
    OwnershipVerifyRequest,
    OwnershipVerifyResponse,
    TransferInstructionsModel,
)
from app.registry.canonical import hash_document, verify_data_url_hash
from app.registry.exceptions import (
    DiscoveryError,
    IntegrityError,
    NetworkError,
    RegistryError,
    VerificationError,
)
from app.registry.identity import (
    extract_did_method,
    get_chain_id_from_did_pkh,
    get_address_from_did_pkh,
    normalize_caip10,
    normalize_did,
)
from app.registry.metadata import (
    RegistrationContext,
    build_offchain_metadata,
    validate_offchain_metadata,
)
from app.registry.ownership import (
    AttestationClient,
    Idle,
    OwnershipResolver,
    OwnershipVerifier,
    ReadyForTransfer,
    RpcOwnershipResolver,
)

configure_logging()
log = logging.getLogger("registry")

app = FastAPI(title="Registry Verifier", version="0.1.0")


def get_resolver() -> OwnershipResolver:
    return RpcOwnershipResolver()


def get_attestation_client() -> AttestationClient:
    return AttestationClient()


def _error_status(exc: RegistryError) -> int:
    if isinstance(exc, IntegrityError):
        return 422
    if isinstance(exc, DiscoveryError):
        return 404
    if isinstance(exc, VerificationError):
        return 422
    if isinstance(exc, NetworkError):
        return 502
    return 500


@app.exception_handler(RegistryError)
async def registry_error_handler(request: Request, exc: RegistryError):
    status = _error_status(exc)
    log.warning(f"{request.url.path} failed code={exc.code} status={status}: {exc.message}")
    detail = ErrorDetail(
        code=exc.code,
        message=exc.message,
        recoverable=ERROR_RECOVERABILITY.get(exc.code, False),
    )
    return JSONResponse(status_code=status, content=detail.model_dump())


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.middleware("http")
async def req_log(request: Request, call_next):
    start = time.time()
    route = request.url.path
    remote = request.client.host if request.client else "-"
    resp = await call_next(request)
    duration_ms = int((time.time() - start) * 1000)
    log.info(f"request_complete status={resp.status_code} duration_ms={duration_ms}",
             extra={"request_id": "-", "route": route, "remote_addr": remote})
    return resp


@app.get("/version")
def version():
    # GIT_SHA is injected at deploy time
    return {"git_sha": os.getenv("GIT_SHA", "unknown")}


@app.get("/admin")
def admin():
    """Return all configurable items for operator visibility.

    Gated by ADMIN_ENDPOINT_ENABLED (default: True for dev, False for prod).
    """
    from app.core.config import (
        ADMIN_ENDPOINT_ENABLED,
        APP_BASE_URL,
        ATTESTATION_SERVICE_URL,
        ATTESTATION_TIMEOUT_SECONDS,
        DATA_URL_FETCH_TIMEOUT_MS,
        DATA_URL_MAX_BYTES,
        DATA_URL_MAX_REDIRECTS,
        DEFAULT_HASH_ALGORITHM,
        HOSTED_METADATA_DOMAINS,
        REGISTRY_CHAIN_ID,
        REGISTRY_CONTRACT_ADDRESS,
        REQUIRED_OWNERSHIP_SCHEMAS,
        RPC_BACKOFF_SECONDS,
        RPC_MAX_ATTEMPTS,
        RPC_TIMEOUT_SECONDS,
        RPC_URL_OVERRIDES,
        SUBMIT_RETRY_DELAY_SECONDS,
        SUPPORTED_OWNERSHIP_NAMESPACES,
    )

    if not ADMIN_ENDPOINT_ENABLED:
        return JSONResponse(
            status_code=404,
            content={"detail": "Admin endpoint disabled"}
        )

    return {
        "normative": {
            "default_hash_algorithm": DEFAULT_HASH_ALGORITHM,
            "required_ownership_schemas": list(REQUIRED_OWNERSHIP_SCHEMAS),
            "supported_ownership_namespaces": sorted(SUPPORTED_OWNERSHIP_NAMESPACES),
        },
        "configurable": {
            "data_url_fetch_timeout_ms": DATA_URL_FETCH_TIMEOUT_MS,
            "data_url_max_bytes": DATA_URL_MAX_BYTES,
            "data_url_max_redirects": DATA_URL_MAX_REDIRECTS,
        },
        "policy": {
            "submit_retry_delay_seconds": SUBMIT_RETRY_DELAY_SECONDS,
            "rpc_max_attempts": RPC_MAX_ATTEMPTS,
            "rpc_backoff_seconds": RPC_BACKOFF_SECONDS,
            "rpc_timeout_seconds": RPC_TIMEOUT_SECONDS,
            "attestation_timeout_seconds": ATTESTATION_TIMEOUT_SECONDS,
        },
        "features": {
            "admin_endpoint_enabled": ADMIN_ENDPOINT_ENABLED,
        },
        "registry": {
            "chain_id": REGISTRY_CHAIN_ID,
            "contract_address": REGISTRY_CONTRACT_ADDRESS,
            "app_base_url": APP_BASE_URL,
            "hosted_metadata_domains": list(HOSTED_METADATA_DOMAINS),
        },
        "services": {
            "attestation_url": ATTESTATION_SERVICE_URL,
            "rpc_url_overrides": {str(k): v for k, v in RPC_URL_OVERRIDES.items()},
        },
        "environment": {
            "log_level": logging.getLogger().getEffectiveLevel(),
            "log_level_name": logging.getLevelName(logging.getLogger().getEffectiveLevel()),
        },
    }


class LogLevelRequest(BaseModel):
    level: str


@app.post("/admin/log-level")
def set_log_level(req: LogLevelRequest):
    """Change log level at runtime (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Gated by ADMIN_ENDPOINT_ENABLED.
    """
    from app.core.config import ADMIN_ENDPOINT_ENABLED

    if not ADMIN_ENDPOINT_ENABLED:
        return JSONResponse(
            status_code=404,
            content={"detail": "Admin endpoint disabled"}
        )

    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level_upper = req.level.upper()

    if level_upper not in valid_levels:
        return JSONResponse(
            status_code=400,
            content={"detail": f"Invalid log level. Must be one of: {valid_levels}"}
        )

    logging.getLogger().setLevel(getattr(logging, level_upper))
    logging.getLogger("registry").setLevel(getattr(logging, level_upper))

    log.info(f"Log level changed to {level_upper}")

    return {
        "success": True,
        "log_level": level_upper,
        "message": f"Log level set to {level_upper}"
    }


# =============================================================================
# Identity
# =============================================================================

@app.post("/identity/normalize")
def identity_normalize(req: NormalizeRequest) -> NormalizeResponse:
    """Normalize a DID or a CAIP-10 account id. Malformed input yields normalized=None."""
    value = req.value.strip()
    if value.lower().startswith("did:"):
        normalized = normalize_did(value)
        method = extract_did_method(normalized) if normalized else None
        return NormalizeResponse(
            kind="did",
            normalized=normalized,
            method=method.lower() if method else None,
            error=None if normalized else "Invalid DID",
        )

    result = normalize_caip10(value)
    return NormalizeResponse(
        kind="caip10",
        normalized=result.normalized,
        method=result.parsed.namespace if result.parsed else None,
        error=result.error,
    )


# =============================================================================
# Metadata and hashing
# =============================================================================

@app.post("/metadata/build")
def metadata_build(req: BuildMetadataRequest) -> BuildMetadataResponse:
    """Build, hash and schema-check the off-chain metadata document."""
    if req.registration is not None:
        registration = RegistrationContext(
            chain_id=req.registration.chain_id,
            registry_address=req.registration.registry_address,
            agent_id=req.registration.agent_id,
        )
    else:
        registration = RegistrationContext.from_config()

    document = build_offchain_metadata(req.data, registration=registration)
    hashed = hash_document(document, req.algorithm)
    errors = validate_offchain_metadata(document)
    return BuildMetadataResponse(
        metadata=document,
        hash=hashed.hash,
        canonical=hashed.canonical,
        algorithm=hashed.algorithm,
        errors=errors,
    )


@app.post("/metadata/canonicalize")
def metadata_canonicalize(req: CanonicalizeRequest) -> CanonicalizeResponse:
    hashed = hash_document(req.document, req.algorithm)
    return CanonicalizeResponse(hash=hashed.hash, canonical=hashed.canonical, algorithm=hashed.algorithm)


@app.post("/data-url/verify")
async def data_url_verify(req: DataUrlVerifyRequest) -> DataUrlVerifyResponse:
    """Fetch the dataUrl document and compare its hash with the expected value.

    A mismatch is a 200 with ok=false; fetch failures are 422.
    """
    result = await verify_data_url_hash(req.url, req.expected_hash, req.algorithm)
    return DataUrlVerifyResponse(
        ok=result.ok,
        computed_hash=result.computed_hash,
        jcs_json=result.jcs_json,
    )


# =============================================================================
# Ownership
# =============================================================================

@app.post("/ownership/discover")
async def ownership_discover(
    req: DiscoverRequest,
    resolver: OwnershipResolver = Depends(get_resolver),
) -> DiscoverResponse:
    did = normalize_did(req.did)
    chain_id = get_chain_id_from_did_pkh(did) if did else None
    if chain_id is None:
        raise DiscoveryError.unsupported_identity(req.did)

    controller = await resolver.resolve_controller(did)
    if controller is None:
        raise DiscoveryError.no_accessor()
    return DiscoverResponse(
        controller=controller.lower(),
        chain_id=chain_id,
        contract_address=get_address_from_did_pkh(did),
    )


@app.post("/ownership/verify")
async def ownership_verify(
    req: OwnershipVerifyRequest,
    resolver: OwnershipResolver = Depends(get_resolver),
    attestation: AttestationClient = Depends(get_attestation_client),
) -> OwnershipVerifyResponse:
    """Run one ownership verification session to its verdict.

    A controller mismatch stops at ready-for-transfer unless tx_hash is
    supplied, in which case the transfer proof is submitted right away.
    """
    verifier = OwnershipVerifier(resolver, attestation)
    state = await verifier.update_claim(req.did, req.wallet)
    if isinstance(state, ReadyForTransfer) and req.tx_hash:
        state = await verifier.provide_transfer_evidence(req.tx_hash)

    verdict = verifier.verdict
    transfer = None
    error = verdict.error if verdict else None
    if isinstance(state, ReadyForTransfer):
        error = state.error
        if state.instructions is not None:
            i = state.instructions
            transfer = TransferInstructionsModel(
                chain_id=i.chain_id,
                amount_wei=str(i.amount_wei),
                formatted=i.formatted,
                symbol=i.symbol,
                recipient=i.recipient,
                sender=i.sender,
            )

    claim = state.claim
    log.info(
        f"ownership verify status={state.status.value} verified={bool(verdict and verdict.verified)}",
        extra={"did": req.did, "session": state.session},
    )
    return OwnershipVerifyResponse(
        verified=bool(verdict and verdict.verified),
        status=state.status.value,
        method=verdict.method if verdict else None,
        error=error,
        notice=state.notice if isinstance(state, Idle) else None,
        controller=claim.claimed_controller if claim else None,
        transfer=transfer,
    )
