"""Relay transport and NIP-04 envelope backed by electrum-aionostr."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import electrum_aionostr as aionostr
import structlog
from electrum_aionostr.key import PrivateKey

from .protocol import RelayEvent

logger = structlog.get_logger(__name__)


class Nip04Envelope:
    """Encrypts to and decrypts from counterparties with the service key."""

    def __init__(self, secret_hex: str):
        self._key = PrivateKey(raw_secret=bytes.fromhex(secret_hex))

    @property
    def public_key(self) -> str:
        return self._key.public_key.hex()

    def encrypt(self, plaintext: str, counterparty_pubkey: str) -> str:
        return self._key.encrypt_message(plaintext, counterparty_pubkey)

    def decrypt(self, ciphertext: str, counterparty_pubkey: str) -> str:
        return self._key.decrypt_message(ciphertext, counterparty_pubkey)


class AionostrRelay:
    """One-relay transport; events are signed with the service secret."""

    def __init__(self, relay_url: str, secret_hex: str):
        self.relay_url = relay_url
        self._secret = secret_hex
        self.manager: Optional[aionostr.Manager] = None

    async def connect(self) -> None:
        if self.manager is None:
            nostr_logger = logging.getLogger("voltage_nwc.aionostr")
            nostr_logger.setLevel(logging.INFO)
            self.manager = aionostr.Manager(
                relays={self.relay_url},
                private_key=self._secret,
                log=nostr_logger,
            )
        if not self.manager.connected:
            await self.manager.connect()
        if len(self.manager.relays) <= 0:
            raise ConnectionError(f"Could not connect to relay {self.relay_url}")
        logger.info("Connected to relay", relay=self.relay_url)

    async def publish(self, kind: int, content: str, tags: List[List[str]]) -> str:
        if self.manager is None:
            raise ConnectionError("Relay is not connected")
        return await aionostr._add_event(
            self.manager,
            kind=kind,
            tags=tags,
            content=content,
            private_key=self._secret,
        )

    async def subscribe(self, filters: Dict[str, Any]) -> AsyncIterator[RelayEvent]:
        if self.manager is None:
            raise ConnectionError("Relay is not connected")
        logger.info("Subscribing", relay=self.relay_url, filters=filters)
        async for event in self.manager.get_events(
            filters, single_event=False, only_stored=False
        ):
            yield RelayEvent(
                id=event.id,
                pubkey=event.pubkey,
                kind=event.kind,
                content=event.content,
                tags=[list(tag) for tag in event.tags],
                created_at=event.created_at,
            )

    async def close(self) -> None:
        if self.manager is not None:
            await self.manager.close()
            self.manager = None
