"""Pydantic models for Voltage payment records and NWC messages."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class PaymentStatus(str, Enum):
    SENDING = "sending"
    RECEIVING = "receiving"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentStatus.COMPLETED, PaymentStatus.FAILED)


class PaymentDirection(str, Enum):
    SEND = "send"
    RECEIVE = "receive"


class PaymentData(BaseModel):
    """The ``data`` block of a payment record."""

    amount_msats: Optional[int] = Field(default=None, ge=0)
    max_fee_msats: Optional[int] = Field(default=None, ge=0)
    payment_request: Optional[str] = None
    memo: Optional[str] = None
    # Reported by some backends once a payment settles
    preimage: Optional[str] = None
    fees_msats: Optional[int] = Field(default=None, ge=0)
    payment_hash: Optional[str] = None

    model_config = {"extra": "allow"}


class PaymentRecord(BaseModel):
    """One payment as returned by the Voltage API."""

    id: str
    status: PaymentStatus
    direction: Optional[PaymentDirection] = None
    wallet_id: Optional[str] = None
    organization_id: Optional[str] = None
    environment_id: Optional[str] = None
    currency: str = "btc"
    type: Optional[str] = None
    payment_kind: Optional[str] = None
    data: PaymentData = Field(default_factory=PaymentData)
    error: Optional[str] = None
    bip21_uri: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"extra": "allow"}

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def payment_request(self) -> Optional[str]:
        return self.data.payment_request or None


# ------------------------------------------------------------------
# Wallet-Connect messages
# ------------------------------------------------------------------


class NWCRequest(BaseModel):
    """Decrypted content of a request event."""

    method: str
    params: Dict[str, Any] = Field(default_factory=dict)


class NWCErrorBody(BaseModel):
    code: str
    message: str


class NWCResponse(BaseModel):
    """Content of a response event. ``error`` and ``result`` are always serialized."""

    result_type: str
    error: Optional[NWCErrorBody] = None
    result: Optional[Dict[str, Any]] = None


class NWCNotification(BaseModel):
    notification_type: str
    notification: Dict[str, Any]


class PayInvoiceParams(BaseModel):
    invoice: str = Field(min_length=1)
    amount: Optional[int] = Field(default=None, ge=0)


class MakeInvoiceParams(BaseModel):
    amount: int = Field(ge=0)
    description: Optional[str] = None
    description_hash: Optional[str] = None
    expiry: Optional[int] = Field(default=None, ge=0)
