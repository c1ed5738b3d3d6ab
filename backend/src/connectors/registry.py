"""
Connector Registry - resolution of ERP price list sources by connector id

Sync jobs store a ``connector_id``; workers turn it into a source instance
here. Jobs without a connector id fall back to ``DEFAULT_CONNECTOR``.
"""

import logging
from typing import Dict, Optional, Type

from .ports import PriceListSourcePort

logger = logging.getLogger(__name__)

DEFAULT_CONNECTOR = "MOCK"


class ConnectorRegistry:
    """
    Registry for price list source implementations.

    Usage:
        ConnectorRegistry.register("MOCK", MockPriceListConnector)

        connector = ConnectorRegistry.get(job.connector_id)
        payload = connector.fetch_price_list(code, delta_token, config)

    Registration should happen only at startup in the main thread.
    """

    _connectors: Dict[str, Type[PriceListSourcePort]] = {}

    @classmethod
    def register(cls, connector_type: str, implementation: Type[PriceListSourcePort]) -> None:
        """
        Register a source implementation.

        Raises:
            ValueError: If connector_type is empty or implementation is not a PriceListSourcePort
            RuntimeError: If connector_type is already registered
        """
        if not connector_type or not connector_type.strip():
            raise ValueError("connector_type cannot be empty")

        if not isinstance(implementation, type) or not issubclass(implementation, PriceListSourcePort):
            raise ValueError(
                f"Implementation must inherit from PriceListSourcePort, "
                f"got {getattr(implementation, '__name__', implementation)!r}"
            )

        key = connector_type.strip().upper()
        if key in cls._connectors:
            raise RuntimeError(
                f"Connector type '{key}' is already registered. "
                f"Use unregister() first if you need to replace it."
            )

        cls._connectors[key] = implementation
        logger.debug(f"Registered price list source {key}")

    @classmethod
    def get(cls, connector_type: Optional[str] = None) -> PriceListSourcePort:
        """
        Get a new source instance; None resolves to DEFAULT_CONNECTOR.

        Raises:
            ValueError: If connector_type is not registered
        """
        key = (connector_type or DEFAULT_CONNECTOR).strip().upper()
        if key not in cls._connectors:
            available = ', '.join(cls.list_available()) or 'none'
            raise ValueError(
                f"Unknown connector type: '{key}'. "
                f"Available connectors: {available}"
            )
        return cls._connectors[key]()

    @classmethod
    def list_available(cls) -> list[str]:
        return sorted(cls._connectors.keys())

    @classmethod
    def is_registered(cls, connector_type: str) -> bool:
        return bool(connector_type) and connector_type.strip().upper() in cls._connectors

    @classmethod
    def unregister(cls, connector_type: str) -> None:
        """
        Remove a source from the registry. Primarily used by tests.

        Raises:
            ValueError: If connector_type is not registered
        """
        key = connector_type.strip().upper()
        if key not in cls._connectors:
            raise ValueError(f"Connector type '{key}' is not registered")
        del cls._connectors[key]

    @classmethod
    def clear(cls) -> None:
        """Clear all registered sources. Tests only."""
        cls._connectors.clear()


def register_default_connectors() -> None:
    """Register the built-in sources once; safe to call repeatedly."""
    from .implementations.mock_connector import MockPriceListConnector

    if not ConnectorRegistry.is_registered(DEFAULT_CONNECTOR):
        ConnectorRegistry.register(DEFAULT_CONNECTOR, MockPriceListConnector)
