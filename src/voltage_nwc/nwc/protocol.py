"""NIP-47 constants, collaborator interfaces and connection URIs."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, AsyncIterator, Dict, List, Protocol, Tuple
from urllib.parse import parse_qs, quote, urlparse

URI_SCHEME = "nostr+walletconnect"


class NWCEventKind(IntEnum):
    INFO = 13194
    REQUEST = 23194
    RESPONSE = 23195
    NOTIFICATION = 23196


class NWCErrorCode(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    RESTRICTED = "RESTRICTED"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL = "INTERNAL"
    OTHER = "OTHER"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    NOT_FOUND = "NOT_FOUND"


SUPPORTED_METHODS: Tuple[str, ...] = (
    "pay_invoice",
    "make_invoice",
    "get_balance",
    "get_info",
)

SUPPORTED_NOTIFICATIONS: Tuple[str, ...] = (
    "payment_received",
    "payment_sent",
)


class ProtocolError(Exception):
    """A request that cannot be served as sent."""

    code = NWCErrorCode.INTERNAL


class MethodNotImplementedError(ProtocolError):
    code = NWCErrorCode.NOT_IMPLEMENTED


# ------------------------------------------------------------------
# Collaborators
# ------------------------------------------------------------------


@dataclass
class RelayEvent:
    """An inbound relay event, reduced to the fields the gateway reads."""

    id: str
    pubkey: str
    kind: int
    content: str
    tags: List[List[str]] = field(default_factory=list)
    created_at: int = 0


class RelayTransport(Protocol):
    """Publish/subscribe access to one relay.

    ``publish`` signs the event with the service key and returns its id.
    """

    async def connect(self) -> None: ...

    async def publish(
        self, kind: int, content: str, tags: List[List[str]]
    ) -> str: ...

    def subscribe(self, filters: Dict[str, Any]) -> AsyncIterator[RelayEvent]: ...

    async def close(self) -> None: ...


class CryptoEnvelope(Protocol):
    """Payload encryption between the service key and one counterparty."""

    @property
    def public_key(self) -> str: ...

    def encrypt(self, plaintext: str, counterparty_pubkey: str) -> str: ...

    def decrypt(self, ciphertext: str, counterparty_pubkey: str) -> str: ...


# ------------------------------------------------------------------
# Connection URI
# ------------------------------------------------------------------

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


@dataclass(frozen=True)
class ConnectionURI:
    pubkey: str
    relay: str
    secret: str


def build_connection_uri(pubkey: str, relay_url: str, secret: str) -> str:
    """Return ``nostr+walletconnect://<pubkey>?relay=<relay>&secret=<secret>``."""
    return f"{URI_SCHEME}://{pubkey}?relay={quote(relay_url, safe='')}&secret={secret}"


def parse_connection_uri(uri: str) -> ConnectionURI:
    parsed = urlparse(uri)
    if parsed.scheme != URI_SCHEME:
        raise ValueError(f"Not a wallet connect URI: {uri}")
    pubkey = parsed.netloc or parsed.path.lstrip("/")
    query = parse_qs(parsed.query)
    relays = query.get("relay")
    secrets = query.get("secret")
    if not pubkey or not relays or not secrets:
        raise ValueError("Connection URI needs a pubkey, a relay and a secret")
    if not _HEX_RE.match(pubkey) or not _HEX_RE.match(secrets[0]):
        raise ValueError("Connection URI pubkey and secret must be hex")
    return ConnectionURI(pubkey=pubkey, relay=relays[0], secret=secrets[0])
