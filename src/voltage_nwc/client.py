"""Voltage payments API client."""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union
from uuid import uuid4

import httpx
import structlog
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from .models.schemas import PaymentRecord, PaymentStatus

logger = structlog.get_logger(__name__)


class VoltageConfig(BaseSettings):
    """Configuration for the Voltage payments client."""

    base_url: str = Field(
        default="https://voltageapi.com/v1",
        description="Base URL for the Voltage API",
    )
    api_key: Optional[str] = Field(
        default=None, description="API key sent in the x-api-key header"
    )
    organization_id: str = Field(default="", description="Voltage organization id")
    environment_id: str = Field(default="", description="Voltage environment id")
    wallet_id: str = Field(default="", description="Wallet used for payments")
    timeout: int = Field(default=30, description="Request timeout in seconds")
    max_retries: int = Field(
        default=30, ge=0, description="Upper bound for every retry and poll loop"
    )
    retry_delay: float = Field(
        default=2.0, ge=0, description="Fixed delay between attempts, in seconds"
    )

    model_config = {"env_prefix": "VOLTAGE_", "case_sensitive": False}


class VoltageError(Exception):
    """Base exception for Voltage API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class VoltageHTTPError(VoltageError):
    """Non-success HTTP response."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"API request failed: {status_code} - {body}", status_code)
        self.body = body


class VoltageNotReadyError(VoltageHTTPError):
    """Resource still not fetchable after the retry bound."""


class VoltageTransportError(VoltageError):
    """Network-level failure after the retry bound."""


class VoltageTimeoutError(VoltageError):
    """A poll loop ran out of attempts."""


class PaymentFailedError(VoltageError):
    """The backend reported the payment as failed."""

    def __init__(self, record: PaymentRecord):
        super().__init__(f"Payment {record.id} failed: {record.error or 'unknown error'}")
        self.record = record


class InvalidTransitionError(VoltageError):
    """A payment left a terminal state."""


@dataclass(frozen=True)
class Accepted:
    """A creation call answered with 202 and no body."""

    payment_id: str


CreateResult = Union[PaymentRecord, Accepted]
StatusObserver = Callable[[PaymentStatus], Union[None, Awaitable[None]]]


def check_transition(
    payment_id: str,
    previous: Optional[PaymentStatus],
    current: PaymentStatus,
) -> None:
    """Raise if a payment moved out of ``completed`` or ``failed``."""
    if previous is not None and previous.is_terminal and current != previous:
        raise InvalidTransitionError(
            f"Payment {payment_id} moved from terminal state "
            f"{previous.value} to {current.value}"
        )


class VoltageClient:
    """Asynchronous client for the Voltage payments API."""

    def __init__(
        self,
        config: Optional[VoltageConfig] = None,
        *,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.config = config or VoltageConfig()
        self.max_retries = (
            self.config.max_retries if max_retries is None else max_retries
        )
        self.retry_delay = (
            self.config.retry_delay if retry_delay is None else retry_delay
        )
        self.client: Optional[httpx.AsyncClient] = None

        logger.info(
            "Voltage client initialized",
            has_api_key=bool(self.config.api_key),
            organization_id=self.config.organization_id,
            environment_id=self.config.environment_id,
            base_url=self.config.base_url,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
        )

    async def __aenter__(self):
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    async def _ensure_client(self):
        if not self.client:
            headers = {}
            if self.config.api_key:
                headers["x-api-key"] = self.config.api_key
            self.client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                timeout=self.config.timeout,
                headers=headers,
            )

    async def _wait(self) -> None:
        await asyncio.sleep(self.retry_delay)

    # ------------------------------------------------------------------
    # Core HTTP
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make an authenticated request, retrying 404s and network errors."""
        await self._ensure_client()

        attempt = 0
        while True:
            try:
                response = await self.client.request(method=method, url=path, json=json)
            except httpx.RequestError as e:
                logger.error(
                    "Request error", error=str(e), path=path, attempt=attempt
                )
                if attempt >= self.max_retries:
                    raise VoltageTransportError(f"Request failed: {e}") from e
                attempt += 1
                await self._wait()
                continue

            logger.info(
                "API request",
                method=method,
                path=path,
                status_code=response.status_code,
            )

            if response.status_code == 404:
                if attempt >= self.max_retries:
                    raise VoltageNotReadyError(404, response.text)
                attempt += 1
                logger.info(
                    "Resource not ready, retrying",
                    path=path,
                    attempt=attempt,
                    max_retries=self.max_retries,
                )
                await self._wait()
                continue

            if not response.is_success:
                logger.error(
                    "Error response",
                    path=path,
                    status_code=response.status_code,
                    reason=response.reason_phrase,
                    body=response.text,
                )
                raise VoltageHTTPError(response.status_code, response.text)

            return response

    def _payment_path(self, payment_id: Optional[str] = None) -> str:
        base = (
            f"/organizations/{self.config.organization_id}"
            f"/environments/{self.config.environment_id}/payments"
        )
        return f"{base}/{payment_id}" if payment_id else base

    @staticmethod
    def _parse_record(response: httpx.Response) -> PaymentRecord:
        try:
            return PaymentRecord.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise VoltageError(f"Malformed payment record: {e}") from e

    async def _create_payment(self, body: Dict[str, Any]) -> CreateResult:
        response = await self._request("POST", self._payment_path(), json=body)
        if response.status_code == 202:
            return Accepted(payment_id=body["id"])
        return self._parse_record(response)

    # ------------------------------------------------------------------
    # Payment operations
    # ------------------------------------------------------------------

    async def get_payment(self, payment_id: str) -> PaymentRecord:
        response = await self._request("GET", self._payment_path(payment_id))
        return self._parse_record(response)

    async def create_receive_request(
        self,
        amount_msats: int,
        wallet_id: str,
        description: Optional[str] = None,
        max_fee_msats: Optional[int] = None,
    ) -> PaymentRecord:
        """Create a bolt11 receive request and wait for its invoice text.

        A 202 answer means the invoice is generated asynchronously, so the
        record is fetched until ``data.payment_request`` shows up or
        ``max_retries`` fetches were made.
        """
        payment_id = str(uuid4())
        body: Dict[str, Any] = {
            "id": payment_id,
            "amount_msats": amount_msats,
            "currency": "btc",
            "payment_kind": "bolt11",
            "wallet_id": wallet_id,
        }
        if description is not None:
            body["description"] = description
        if max_fee_msats is not None:
            body["max_fee_msats"] = max_fee_msats

        result = await self._create_payment(body)
        if isinstance(result, PaymentRecord):
            return result

        previous: Optional[PaymentStatus] = None
        for attempt in range(1, self.max_retries + 1):
            payment = await self.get_payment(result.payment_id)
            check_transition(payment.id, previous, payment.status)
            previous = payment.status

            if payment.payment_request:
                return payment
            if payment.status == PaymentStatus.FAILED:
                raise PaymentFailedError(payment)

            logger.info(
                "Waiting for payment request",
                payment_id=payment.id,
                attempt=attempt,
                max_retries=self.max_retries,
            )
            if attempt < self.max_retries:
                await self._wait()

        raise VoltageTimeoutError(
            f"Timeout waiting for payment request of {result.payment_id}"
        )

    async def send_payment(
        self,
        wallet_id: str,
        payment_request: str,
        amount_msats: int = 0,
        max_fee_msats: Optional[int] = None,
    ) -> PaymentRecord:
        """Pay a bolt11 invoice.

        ``amount_msats`` is only sent when positive; zero means the amount is
        taken from the invoice.
        """
        payment_id = str(uuid4())
        data: Dict[str, Any] = {"payment_request": payment_request}
        if amount_msats > 0:
            data["amount_msats"] = amount_msats
        if max_fee_msats is not None:
            data["max_fee_msats"] = max_fee_msats

        result = await self._create_payment(
            {
                "id": payment_id,
                "wallet_id": wallet_id,
                "currency": "btc",
                "type": "bolt11",
                "data": data,
            }
        )
        if isinstance(result, Accepted):
            return await self.get_payment(result.payment_id)
        return result

    async def poll_status(
        self,
        payment_id: str,
        on_status_change: Optional[StatusObserver] = None,
    ) -> PaymentRecord:
        """Fetch a payment until it reaches ``completed`` or ``failed``.

        ``on_status_change`` sees the status of every fetch, repeats
        included, and is never called after this returns.
        """
        for attempt in range(1, self.max_retries + 1):
            payment = await self.get_payment(payment_id)

            if on_status_change is not None:
                outcome = on_status_change(payment.status)
                if inspect.isawaitable(outcome):
                    await outcome

            if payment.is_terminal:
                return payment

            logger.debug(
                "Payment pending",
                payment_id=payment_id,
                status=payment.status.value,
                attempt=attempt,
            )
            if attempt < self.max_retries:
                await self._wait()

        raise VoltageTimeoutError(
            f"Payment status polling timed out after {self.max_retries} attempts"
        )
