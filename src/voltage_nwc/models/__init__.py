"""Data models."""

from .schemas import (
    MakeInvoiceParams,
    NWCErrorBody,
    NWCNotification,
    NWCRequest,
    NWCResponse,
    PayInvoiceParams,
    PaymentData,
    PaymentDirection,
    PaymentRecord,
    PaymentStatus,
)

__all__ = [
    "MakeInvoiceParams",
    "NWCErrorBody",
    "NWCNotification",
    "NWCRequest",
    "NWCResponse",
    "PayInvoiceParams",
    "PaymentData",
    "PaymentDirection",
    "PaymentRecord",
    "PaymentStatus",
]
