"""Shared plumbing for price list sources: option checks, payload parsing, timing and logging."""

import logging
import time
from abc import ABC
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from sync.schemas import ERPPriceListImport
from .ports import PriceListSourcePort, ConnectorError, TestResult


logger = logging.getLogger(__name__)


class BaseConnector(PriceListSourcePort, ABC):
    """Subclasses implement ``fetch_price_list`` and ``test_connection``."""

    def config_choice(self, config: Dict[str, Any], key: str, choices: Sequence[str], default: str) -> str:
        """Read an enumerated option, falling back to ``default`` when absent.

        Raises:
            ConnectorError: the option is set to something outside ``choices``
        """
        value = config.get(key, default)
        if value not in choices:
            raise ConnectorError(f"{self.get_connector_type()} option {key}={value!r} not in {sorted(choices)}")
        return value

    def parse_payload(self, raw: Any) -> ERPPriceListImport:
        """Validate a raw ERP document into an import payload.

        Raises:
            ConnectorError: the document does not match the ERP payload schema
        """
        try:
            return ERPPriceListImport.model_validate(raw)
        except ValidationError as e:
            raise ConnectorError(f"Invalid price list payload: {e.error_count()} validation errors") from e

    def build_test_result(
        self,
        success: bool,
        error_message: Optional[str] = None,
        started: Optional[float] = None
    ) -> TestResult:
        # started is a time.monotonic() reading
        latency_ms = int((time.monotonic() - started) * 1000) if started is not None else 0
        extra = {"connector_type": self.get_connector_type(), "latency_ms": latency_ms}
        if success:
            logger.info("Price source reachable", extra=extra)
        else:
            logger.warning(f"Price source unreachable: {error_message}", extra=extra)
        return TestResult(success=success, error_message=error_message, latency_ms=latency_ms)

    def log_fetch_attempt(
        self,
        price_list_code: str,
        success: bool,
        item_count: int = 0,
        error: Optional[str] = None
    ) -> None:
        extra = {"connector_type": self.get_connector_type(), "price_list_code": price_list_code}
        if success:
            logger.info(f"Fetched price list {price_list_code} ({item_count} items)", extra=extra)
        else:
            logger.error(f"Fetching price list {price_list_code} failed: {error}", extra=extra)
