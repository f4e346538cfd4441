"""Nostr Wallet Connect gateway."""

from .handlers import CommandHandlers
from .protocol import (
    SUPPORTED_METHODS,
    SUPPORTED_NOTIFICATIONS,
    ConnectionURI,
    MethodNotImplementedError,
    NWCErrorCode,
    NWCEventKind,
    ProtocolError,
    RelayEvent,
    build_connection_uri,
    parse_connection_uri,
)
from .service import NWCConfig, NWCService

__all__ = [
    "SUPPORTED_METHODS",
    "SUPPORTED_NOTIFICATIONS",
    "CommandHandlers",
    "ConnectionURI",
    "MethodNotImplementedError",
    "NWCConfig",
    "NWCErrorCode",
    "NWCEventKind",
    "NWCService",
    "ProtocolError",
    "RelayEvent",
    "build_connection_uri",
    "parse_connection_uri",
]
