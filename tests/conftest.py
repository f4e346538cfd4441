"""Shared fixtures for tests."""

import uuid
from typing import Any, Optional

import pytest

from voltage_nwc.client import VoltageClient, VoltageConfig
from voltage_nwc.models.schemas import PaymentRecord

PAYMENT_ID = "00000000-0000-4000-8000-000000000001"


def _payment_json(
    status: str = "receiving",
    payment_request: Optional[str] = None,
    direction: str = "receive",
    **data: Any,
) -> dict:
    """A payment record as the Voltage API returns it."""
    return {
        "id": PAYMENT_ID,
        "wallet_id": "w1",
        "organization_id": "org1",
        "environment_id": "env1",
        "direction": direction,
        "status": status,
        "currency": "btc",
        "type": "bolt11",
        "data": {"amount_msats": 10000, "payment_request": payment_request, **data},
        "error": "no route" if status == "failed" else None,
        "created_at": "2025-01-01T00:00:00Z",
        "updated_at": "2025-01-01T00:00:05Z",
    }


@pytest.fixture
def payment_json():
    return _payment_json


@pytest.fixture
def fixed_payment_id(monkeypatch) -> str:
    """Make every new payment id equal PAYMENT_ID."""
    monkeypatch.setattr("voltage_nwc.client.uuid4", lambda: uuid.UUID(PAYMENT_ID))
    return PAYMENT_ID


@pytest.fixture
def voltage_config() -> VoltageConfig:
    return VoltageConfig(
        api_key="test-api-key",
        organization_id="org1",
        environment_id="env1",
        wallet_id="w1",
        max_retries=3,
        retry_delay=0,
    )


@pytest.fixture
async def voltage_client(voltage_config):
    async with VoltageClient(voltage_config) as client:
        yield client


@pytest.fixture
def make_record():
    def _make(status: str = "receiving", payment_request: Optional[str] = None, **kwargs):
        return PaymentRecord.model_validate(_payment_json(status, payment_request, **kwargs))

    return _make
