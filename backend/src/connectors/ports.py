"""
PriceListSourcePort - Port interface for ERP price list sources

This module defines the abstract interface that every ERP price list source
must implement. Sync workers depend only on this Port, never on a concrete
connector, so a new ERP can be added without touching the sync engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from models.base import utcnow
from sync.schemas import ERPPriceListImport


@dataclass
class TestResult:
    """
    Result of connector connection test.

    Attributes:
        success: Whether the connection test succeeded
        error_message: Human-readable error message if success=False
        latency_ms: Time taken for the test in milliseconds
        test_timestamp: When the test was performed
    """
    success: bool
    error_message: Optional[str] = None
    latency_ms: int = 0
    test_timestamp: datetime = None

    def __post_init__(self):
        if self.test_timestamp is None:
            self.test_timestamp = utcnow()


class ConnectorError(Exception):
    """
    Base exception for connector-related errors.

    Raised by connector implementations when a fetch or test fails.
    The sync worker catches this and marks the job FAILED.
    """
    pass


class PriceListSourcePort(ABC):
    """
    Abstract interface for ERP price list sources.

    Implementations:
    - MockPriceListConnector: In-memory source for tests and development
    """

    @abstractmethod
    def fetch_price_list(
        self,
        price_list_code: str,
        delta_token: Optional[str],
        config: dict[str, Any],
    ) -> ERPPriceListImport:
        """
        Fetch a price list payload from the ERP.

        Args:
            price_list_code: Code of the list to fetch
            delta_token: Continuation token of the last completed delta, or
                None for a full export
            config: Connector configuration (host, credentials, filters)

        Returns:
            ERPPriceListImport ready for PriceListSyncService.run_sync_job

        Raises:
            ConnectorError: If the ERP cannot be reached or returns bad data
        """
        pass

    @abstractmethod
    def test_connection(self, config: dict[str, Any]) -> TestResult:
        """
        Test the ERP connection without fetching data.

        Returns:
            TestResult with success status, latency, and error details
        """
        pass

    def get_connector_type(self) -> str:
        """
        Return the connector type identifier.

        Defaults to the class name without the Connector suffix.
        """
        return self.__class__.__name__.replace("Connector", "").upper()
