"""Nostr Wallet Connect gateway for the Voltage payments API."""

__version__ = "0.1.0"
