"""Tests for the ownership verification dispatcher.

Coverage target: app/registry/ownership/verifier.py
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.registry.exceptions import NetworkError, VerificationError
from app.registry.ownership import (
    Failed,
    Idle,
    OwnershipVerifier,
    ReadyForTransfer,
    VerificationResponse,
    VerificationStatus,
    Verified,
)
from app.registry.ownership.machine import METHOD_OWNERSHIP, METHOD_TRANSFER
from app.registry.ownership.verifier import describe_failure

from conftest import CONTRACT, OTHER_CONTROLLER, SECOND_CONTRACT, TX_HASH, WALLET, pkh

READY = VerificationResponse(ok=True, status="ready", debug={"verificationMethod": "owner()"})


def make_verifier(controller=WALLET, response=READY):
    resolver = MagicMock()
    resolver.resolve_controller = AsyncMock(return_value=controller)
    attestation = MagicMock()
    attestation.verify = AsyncMock(return_value=response)
    return OwnershipVerifier(resolver, attestation), resolver, attestation


# =============================================================================
# Direct path
# =============================================================================


class TestDirectVerification:
    """Connected wallet is the controller."""

    @pytest.mark.asyncio
    async def test_verified(self):
        verifier, resolver, attestation = make_verifier()

        state = await verifier.update_claim(pkh(CONTRACT), WALLET)

        assert isinstance(state, Verified)
        assert state.method == "owner()"
        assert verifier.verdict.verified is True
        resolver.resolve_controller.assert_awaited_once_with(pkh(CONTRACT.lower()))
        claim, schemas = attestation.verify.await_args.args
        assert claim.claimed_controller == WALLET.lower()
        assert claim.transfer_evidence is None
        assert schemas == ("oma3.ownership.v1",)

    @pytest.mark.asyncio
    async def test_default_method(self):
        verifier, _, _ = make_verifier(response=VerificationResponse(ok=True, status="ready"))
        state = await verifier.update_claim(pkh(CONTRACT), WALLET)
        assert state.method == METHOD_OWNERSHIP

    @pytest.mark.asyncio
    async def test_service_rejection(self):
        verifier, _, _ = make_verifier(response=VerificationResponse(ok=False, error="Not authorized"))
        state = await verifier.update_claim(pkh(CONTRACT), WALLET)
        assert isinstance(state, Failed)
        assert verifier.verdict.error == "Not authorized"

    @pytest.mark.asyncio
    async def test_same_claim_not_reverified(self):
        verifier, resolver, attestation = make_verifier()
        first = await verifier.update_claim(pkh(CONTRACT), WALLET)
        second = await verifier.update_claim(pkh(CONTRACT), WALLET.lower())
        assert second is first
        assert resolver.resolve_controller.await_count == 1
        assert attestation.verify.await_count == 1


# =============================================================================
# Transfer path
# =============================================================================


class TestTransferVerification:
    """Controller differs from the connected wallet."""

    @pytest.mark.asyncio
    async def test_ready_then_verified(self):
        verifier, _, attestation = make_verifier(controller=OTHER_CONTROLLER)

        state = await verifier.update_claim(pkh(CONTRACT), WALLET)
        assert isinstance(state, ReadyForTransfer)
        assert state.instructions.sender == OTHER_CONTROLLER.lower()
        attestation.verify.assert_not_awaited()
        assert verifier.verdict is None

        state = await verifier.provide_transfer_evidence(TX_HASH)
        assert isinstance(state, Verified)
        assert state.method == METHOD_TRANSFER
        claim = attestation.verify.await_args.args[0]
        assert claim.transfer_evidence == TX_HASH

    @pytest.mark.asyncio
    async def test_invalid_hash_stays_ready(self):
        verifier, _, attestation = make_verifier(controller=OTHER_CONTROLLER)
        await verifier.update_claim(pkh(CONTRACT), WALLET)

        state = await verifier.provide_transfer_evidence("0x123")

        assert isinstance(state, ReadyForTransfer)
        assert state.error is not None
        attestation.verify.assert_not_awaited()


# =============================================================================
# Failures and retry
# =============================================================================


class TestFailures:
    """Collaborator exceptions become Failed, with manual retry."""

    @pytest.mark.asyncio
    async def test_discovery_error_then_retry(self):
        verifier, resolver, attestation = make_verifier()
        resolver.resolve_controller.side_effect = NetworkError("RPC unreachable")

        state = await verifier.update_claim(pkh(CONTRACT), WALLET)
        assert isinstance(state, Failed)
        assert state.error == "RPC unreachable"

        state = await verifier.retry()
        assert isinstance(state, Verified)
        assert attestation.verify.await_count == 1

    @pytest.mark.asyncio
    async def test_no_controller(self):
        verifier, _, _ = make_verifier(controller=None)
        state = await verifier.update_claim(pkh(CONTRACT), WALLET)
        assert isinstance(state, Failed)
        assert state.error.startswith("Could not discover controlling wallet")

    @pytest.mark.asyncio
    async def test_unexpected_exception(self):
        verifier, _, attestation = make_verifier()
        attestation.verify.side_effect = RuntimeError("boom")
        state = await verifier.update_claim(pkh(CONTRACT), WALLET)
        assert state.error == "Unexpected error during ownership verification: boom"

    @pytest.mark.asyncio
    async def test_retry_ignored_when_not_failed(self):
        verifier, _, attestation = make_verifier()
        verified = await verifier.update_claim(pkh(CONTRACT), WALLET)
        assert await verifier.retry() is verified
        assert attestation.verify.await_count == 1

    def test_describe_failure(self):
        assert describe_failure(VerificationError("bad body")) == "bad body"
        assert describe_failure(ValueError("x")).endswith(": x")


# =============================================================================
# Sessions
# =============================================================================


class TestSessions:
    """Claim changes supersede in-flight work."""

    @pytest.mark.asyncio
    async def test_unsupported_identity_notice(self):
        verifier, resolver, _ = make_verifier()
        state = await verifier.update_claim("did:web:example.com", WALLET)
        assert isinstance(state, Idle)
        assert "did:web" in state.notice
        resolver.resolve_controller.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_already_verified_skips_io(self):
        verifier, resolver, attestation = make_verifier()
        state = await verifier.update_claim(pkh(CONTRACT), WALLET, already_verified=True)
        assert state.status == VerificationStatus.VERIFIED
        resolver.resolve_controller.assert_not_awaited()
        attestation.verify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_new_claim_supersedes_inflight_discovery(self):
        gate = asyncio.Event()
        first_identity = pkh(CONTRACT.lower())

        async def resolve(identity):
            if identity == first_identity:
                await gate.wait()
                return OTHER_CONTROLLER
            return WALLET

        verifier, resolver, attestation = make_verifier()
        resolver.resolve_controller.side_effect = resolve

        first = asyncio.create_task(verifier.update_claim(pkh(CONTRACT), WALLET))
        while resolver.resolve_controller.await_count == 0:
            await asyncio.sleep(0)
        assert verifier.state.status == VerificationStatus.DISCOVERING

        state = await verifier.update_claim(pkh(SECOND_CONTRACT), WALLET)
        gate.set()
        await first

        assert isinstance(state, Verified)
        assert state.claim.identity == pkh(SECOND_CONTRACT.lower())
        assert verifier.state is state
        assert attestation.verify.await_count == 1

    @pytest.mark.asyncio
    async def test_close_cancels_inflight(self):
        gate = asyncio.Event()

        async def resolve(identity):
            await gate.wait()
            return WALLET

        verifier, resolver, attestation = make_verifier()
        resolver.resolve_controller.side_effect = resolve

        pending = asyncio.create_task(verifier.update_claim(pkh(CONTRACT), WALLET))
        while resolver.resolve_controller.await_count == 0:
            await asyncio.sleep(0)

        await verifier.close()
        await pending

        assert verifier.state.status == VerificationStatus.DISCOVERING
        attestation.verify.assert_not_awaited()
