"""Voltage NWC server entry point."""

import asyncio
import logging
import sys
from typing import List, Optional

import structlog

from .client import VoltageClient, VoltageConfig
from .nwc.relay import AionostrRelay, Nip04Envelope
from .nwc.service import NWCConfig, NWCService

logger = structlog.get_logger(__name__)


def missing_settings(config: VoltageConfig) -> List[str]:
    """Names of the required VOLTAGE_* variables that are unset."""
    required = {
        "VOLTAGE_API_KEY": config.api_key,
        "VOLTAGE_ORGANIZATION_ID": config.organization_id,
        "VOLTAGE_ENVIRONMENT_ID": config.environment_id,
        "VOLTAGE_WALLET_ID": config.wallet_id,
    }
    return [name for name, value in required.items() if not value]


class VoltageNWCServer:
    """Wires the Voltage client, the relay and the NWC service together."""

    def __init__(
        self,
        voltage_config: Optional[VoltageConfig] = None,
        nwc_config: Optional[NWCConfig] = None,
    ):
        self.voltage_config = voltage_config or VoltageConfig()
        self.nwc_config = nwc_config or NWCConfig()

        missing = missing_settings(self.voltage_config)
        if missing:
            raise ValueError(f"Missing required settings: {', '.join(missing)}")

        self.client = VoltageClient(self.voltage_config)
        self.service = NWCService(
            self.client,
            self.nwc_config,
            AionostrRelay(self.nwc_config.relay_url, self.nwc_config.secret),
            Nip04Envelope(self.nwc_config.secret),
            wallet_id=self.voltage_config.wallet_id,
        )

    async def run(self) -> None:
        logger.info("Starting Voltage NWC server", relay=self.nwc_config.relay_url)
        uri = self.service.connection_uri()
        if uri:
            print(f"Connection string: {uri}", file=sys.stderr)
        async with self.client:
            await self.service.run()


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


async def async_main() -> None:
    logging.basicConfig(level=logging.INFO, stream=sys.stderr, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    try:
        server = VoltageNWCServer()
        await server.run()
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    except Exception as e:
        logger.error("Server error", error=str(e), exc_info=True)
        sys.exit(1)


def main() -> None:
    """Synchronous entry point for console script."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
