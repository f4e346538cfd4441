"""Wallet-Connect gateway: relay requests in, encrypted responses out."""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Dict, Optional, Set

import structlog
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from ..client import PaymentFailedError, VoltageClient, VoltageError
from ..models.schemas import (
    NWCErrorBody,
    NWCNotification,
    NWCRequest,
    NWCResponse,
    PaymentRecord,
    PaymentStatus,
)
from .handlers import BalanceSource, CommandHandlers
from .protocol import (
    SUPPORTED_NOTIFICATIONS,
    CryptoEnvelope,
    MethodNotImplementedError,
    NWCErrorCode,
    NWCEventKind,
    ProtocolError,
    RelayEvent,
    RelayTransport,
    build_connection_uri,
)

logger = structlog.get_logger(__name__)


class NWCConfig(BaseSettings):
    """Configuration for the Wallet-Connect gateway."""

    relay_url: str = Field(
        default="wss://relay.getalby.com/v1", description="Relay to serve on"
    )
    secret: str = Field(description="Service secret key, hex")
    pubkey: Optional[str] = Field(
        default=None, description="Service public key; derived from secret if unset"
    )
    client_secret: Optional[str] = Field(
        default=None, description="Secret handed to the wallet client in the connection URI"
    )
    alias: str = Field(default="Voltage Pay NWC", description="get_info alias")
    color: str = Field(default="#ff9500", description="get_info color")
    network: str = Field(default="mainnet", description="get_info network")
    max_concurrent_requests: int = Field(
        default=16, ge=1, description="Requests handled at the same time"
    )
    notify_payments: bool = Field(
        default=True, description="Publish payment_sent/payment_received notifications"
    )

    model_config = {"env_prefix": "NWC_", "case_sensitive": False}


def _notification_payload(record: PaymentRecord, payment_type: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "type": payment_type,
        "invoice": record.payment_request,
        "payment_hash": record.data.payment_hash or record.id,
        "amount": record.data.amount_msats,
        "fees_paid": record.data.fees_msats or 0,
        "metadata": {},
    }
    if record.data.preimage:
        payload["preimage"] = record.data.preimage
    if record.created_at is not None:
        payload["created_at"] = int(record.created_at.timestamp())
    if record.updated_at is not None:
        payload["settled_at"] = int(record.updated_at.timestamp())
    return payload


class NWCService:
    """Serves NIP-47 requests from one relay using a Voltage wallet."""

    def __init__(
        self,
        client: VoltageClient,
        config: NWCConfig,
        relay: RelayTransport,
        envelope: CryptoEnvelope,
        *,
        wallet_id: str,
        balance_source: Optional[BalanceSource] = None,
    ):
        self.client = client
        self.config = config
        self.relay = relay
        self.envelope = envelope
        self.pubkey = config.pubkey or envelope.public_key

        self.handlers = CommandHandlers(
            client,
            wallet_id,
            pubkey=self.pubkey,
            alias=config.alias,
            color=config.color,
            network=config.network,
            balance_source=balance_source,
        )
        if config.notify_payments:
            self.handlers.set_callbacks(
                payment_sent_fn=self._on_payment_sent,
                invoice_created_fn=self._on_invoice_created,
            )

        self._semaphore = asyncio.Semaphore(config.max_concurrent_requests)
        self._tasks: Set[asyncio.Task] = set()
        self._initialized = False

    @property
    def subscription_filter(self) -> Dict[str, Any]:
        return {"kinds": [int(NWCEventKind.REQUEST)], "#p": [self.pubkey]}

    def connection_uri(self) -> Optional[str]:
        if not self.config.client_secret:
            return None
        return build_connection_uri(
            self.pubkey, self.config.relay_url, self.config.client_secret
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Connect to the relay and announce the supported methods."""
        await self.relay.connect()
        await self.publish_info_event()
        self._initialized = True
        logger.info("NWC service ready", relay=self.config.relay_url, pubkey=self.pubkey)

    async def publish_info_event(self) -> str:
        event_id = await self.relay.publish(
            kind=int(NWCEventKind.INFO),
            content=" ".join(self.handlers.supported_methods),
            tags=[["notifications", " ".join(SUPPORTED_NOTIFICATIONS)]],
        )
        logger.info("Published info event", event_id=event_id)
        return event_id

    async def run(self) -> None:
        """Serve requests until the subscription ends or the task is cancelled."""
        if not self._initialized:
            await self.init()
        try:
            async for event in self.relay.subscribe(self.subscription_filter):
                self._spawn(self.handle_event(event))
            logger.info("Relay subscription ended")
            await self.drain()
        finally:
            # Only non-empty when the loop above was cancelled or failed
            await self._cancel_pending()
            await self.relay.close()

    async def drain(self) -> None:
        """Wait for in-flight handlers, including ones they spawn."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _cancel_pending(self) -> None:
        pending = list(self._tasks)
        if not pending:
            return
        logger.info("Cancelling in-flight handlers", count=len(pending))
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def handle_event(self, event: RelayEvent) -> None:
        """Answer one request event exactly once, unless it cannot be decrypted."""
        async with self._semaphore:
            try:
                plaintext = self.envelope.decrypt(event.content, event.pubkey)
            except Exception as e:
                logger.warning(
                    "Could not decrypt request",
                    event_id=event.id,
                    sender=event.pubkey,
                    error=str(e),
                )
                return

            response = await self._dispatch(event, plaintext)
            await self._publish_response(event, response)

    @staticmethod
    def _parse_request(plaintext: str) -> NWCRequest:
        try:
            return NWCRequest.model_validate_json(plaintext)
        except ValidationError as e:
            raise ProtocolError(f"Malformed request: {e}") from e

    async def _dispatch(self, event: RelayEvent, plaintext: str) -> NWCResponse:
        try:
            request = self._parse_request(plaintext)
            logger.info("NWC request", method=request.method, event_id=event.id)
            if request.method not in self.handlers.supported_methods:
                raise MethodNotImplementedError(f"Method {request.method} not supported")
            result = await self.handlers.call(
                request.method, request.params, requester=event.pubkey
            )
            return NWCResponse(result_type=request.method, result=result)
        except ProtocolError as e:
            logger.info("Rejected NWC request", event_id=event.id, code=e.code.value, error=str(e))
            return self._error_response(e.code, str(e))
        except PaymentFailedError as e:
            logger.warning("Payment failed", event_id=event.id, error=str(e))
            return self._error_response(NWCErrorCode.PAYMENT_FAILED, str(e))
        except Exception as e:
            logger.error("Error handling request", event_id=event.id, error=str(e), exc_info=True)
            return self._error_response(NWCErrorCode.INTERNAL, str(e) or type(e).__name__)

    @staticmethod
    def _error_response(code: NWCErrorCode, message: str) -> NWCResponse:
        return NWCResponse(
            result_type="error",
            error=NWCErrorBody(code=code.value, message=message),
        )

    async def _publish_response(self, event: RelayEvent, response: NWCResponse) -> None:
        try:
            content = self.envelope.encrypt(response.model_dump_json(), event.pubkey)
            response_id = await self.relay.publish(
                kind=int(NWCEventKind.RESPONSE),
                content=content,
                tags=[["p", event.pubkey], ["e", event.id]],
            )
        except Exception as e:
            logger.error(
                "Failed to publish response", event_id=event.id, error=str(e), exc_info=True
            )
            return
        logger.info(
            "Published response",
            event_id=event.id,
            response_id=response_id,
            result_type=response.result_type,
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def send_notification(
        self, pubkey: str, notification_type: str, data: Dict[str, Any]
    ) -> str:
        body = NWCNotification(notification_type=notification_type, notification=data)
        return await self.relay.publish(
            kind=int(NWCEventKind.NOTIFICATION),
            content=self.envelope.encrypt(body.model_dump_json(), pubkey),
            tags=[["p", pubkey]],
        )

    async def _notify(self, pubkey: str, notification_type: str, record: PaymentRecord) -> None:
        payment_type = "outgoing" if notification_type == "payment_sent" else "incoming"
        payload = _notification_payload(record, payment_type)
        try:
            await self.send_notification(pubkey, notification_type, payload)
        except Exception as e:
            logger.error(
                "Failed to publish notification",
                notification_type=notification_type,
                payment_id=record.id,
                error=str(e),
            )

    def _on_payment_sent(self, pubkey: str, record: PaymentRecord) -> None:
        self._spawn(self._notify(pubkey, "payment_sent", record))

    def _on_invoice_created(self, pubkey: str, record: PaymentRecord) -> None:
        self._spawn(self._watch_incoming(pubkey, record))

    async def _watch_incoming(self, pubkey: str, record: PaymentRecord) -> None:
        try:
            settled = await self.client.poll_status(record.id)
        except VoltageError as e:
            logger.info("Stopped watching invoice", payment_id=record.id, error=str(e))
            return
        if settled.status == PaymentStatus.COMPLETED:
            await self._notify(pubkey, "payment_received", settled)
