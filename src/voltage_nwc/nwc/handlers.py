"""NWC command handlers backed by the Voltage client."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from ..client import PaymentFailedError, VoltageClient
from ..models.schemas import (
    MakeInvoiceParams,
    PayInvoiceParams,
    PaymentRecord,
    PaymentStatus,
)
from .protocol import SUPPORTED_METHODS, SUPPORTED_NOTIFICATIONS, MethodNotImplementedError

logger = structlog.get_logger(__name__)

BalanceSource = Callable[[], Awaitable[int]]
PaymentCallback = Callable[[str, PaymentRecord], None]


def _timestamp(record: PaymentRecord) -> Optional[int]:
    if record.created_at is None:
        return None
    return int(record.created_at.timestamp())


class CommandHandlers:
    """Executes the supported NWC methods."""

    def __init__(
        self,
        client: VoltageClient,
        wallet_id: str,
        *,
        pubkey: str,
        alias: str = "Voltage Pay NWC",
        color: str = "#ff9500",
        network: str = "mainnet",
        balance_source: Optional[BalanceSource] = None,
    ):
        self._client = client
        self._wallet_id = wallet_id
        self._pubkey = pubkey
        self._alias = alias
        self._color = color
        self._network = network
        self._balance_source = balance_source
        # Populated by the service when payment notifications are enabled
        self._payment_sent_fn: Optional[PaymentCallback] = None
        self._invoice_created_fn: Optional[PaymentCallback] = None

    def set_callbacks(
        self,
        *,
        payment_sent_fn: Optional[PaymentCallback] = None,
        invoice_created_fn: Optional[PaymentCallback] = None,
    ) -> None:
        self._payment_sent_fn = payment_sent_fn
        self._invoice_created_fn = invoice_created_fn

    async def call(
        self,
        method: str,
        params: Dict[str, Any],
        *,
        requester: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Dispatch *method* on behalf of *requester*.

        Raises MethodNotImplementedError for names outside SUPPORTED_METHODS.
        """
        if method == "pay_invoice":
            record = await self.pay_invoice(PayInvoiceParams.model_validate(params))
            if requester and self._payment_sent_fn is not None:
                self._payment_sent_fn(requester, record)
            return self.pay_invoice_result(record)
        if method == "make_invoice":
            invoice_params = MakeInvoiceParams.model_validate(params)
            record = await self.make_invoice(invoice_params)
            if requester and self._invoice_created_fn is not None:
                self._invoice_created_fn(requester, record)
            return self.make_invoice_result(record, invoice_params)
        if method == "get_balance":
            return await self.get_balance()
        if method == "get_info":
            return self.get_info()
        raise MethodNotImplementedError(f"Method {method} not supported")

    @property
    def supported_methods(self) -> List[str]:
        """Methods this wallet can serve; get_balance needs a balance source."""
        return [
            m
            for m in SUPPORTED_METHODS
            if m != "get_balance" or self._balance_source is not None
        ]

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def pay_invoice(self, params: PayInvoiceParams) -> PaymentRecord:
        payment = await self._client.send_payment(
            wallet_id=self._wallet_id,
            payment_request=params.invoice,
            amount_msats=params.amount or 0,
        )
        if not payment.is_terminal:
            payment = await self._client.poll_status(payment.id)
        if payment.status == PaymentStatus.FAILED:
            raise PaymentFailedError(payment)
        return payment

    @staticmethod
    def pay_invoice_result(record: PaymentRecord) -> Dict[str, Any]:
        return {
            "preimage": record.data.preimage,
            "fees_paid": record.data.fees_msats or 0,
        }

    async def make_invoice(self, params: MakeInvoiceParams) -> PaymentRecord:
        return await self._client.create_receive_request(
            amount_msats=params.amount,
            wallet_id=self._wallet_id,
            description=params.description,
        )

    @staticmethod
    def make_invoice_result(
        record: PaymentRecord, params: MakeInvoiceParams
    ) -> Dict[str, Any]:
        created_at = _timestamp(record)
        result: Dict[str, Any] = {
            "type": "incoming",
            "invoice": record.payment_request,
            "description": params.description,
            "description_hash": params.description_hash,
            "payment_hash": record.data.payment_hash or record.id,
            "amount": params.amount,
            "created_at": created_at,
            "metadata": {},
        }
        if params.expiry is not None and created_at is not None:
            result["expires_at"] = created_at + params.expiry
        return result

    async def get_balance(self) -> Dict[str, Any]:
        if self._balance_source is None:
            raise RuntimeError("get_balance is unavailable: no balance source configured")
        return {"balance": await self._balance_source()}

    def get_info(self) -> Dict[str, Any]:
        return {
            "alias": self._alias,
            "color": self._color,
            "pubkey": self._pubkey,
            "network": self._network,
            "methods": self.supported_methods,
            "notifications": list(SUPPORTED_NOTIFICATIONS),
        }
