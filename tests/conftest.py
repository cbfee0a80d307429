"""Shared fixtures for registry verifier tests."""

import json
import os

# Keep test runs from writing a debug log file into the working tree
os.environ.setdefault("REGISTRY_LOG_FILE", "")

import httpx
import pytest

# EIP-55 reference vectors (valid checksums)
CONTRACT = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
WALLET = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
OTHER_CONTROLLER = "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB"
SECOND_CONTRACT = "0xD1220A0cf47c7B9Be7A2E6BA89F429762e7b9aDb"

OMA_TESTNET = 66238
TX_HASH = "0x" + "ab" * 32


def pkh(address: str, chain_id: int = OMA_TESTNET) -> str:
    return f"did:pkh:eip155:{chain_id}:{address}"


def json_response(payload, status_code: int = 200, content_type: str = "application/json") -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={"content-type": content_type},
        content=json.dumps(payload).encode("utf-8"),
    )


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by `handler(request)`."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def contract_did() -> str:
    return pkh(CONTRACT)


@pytest.fixture
def wallet() -> str:
    return WALLET
