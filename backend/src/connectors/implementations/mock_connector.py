"""
Mock Connector - In-memory price list source for testing

Serves a price list document held in the connector config, so sync jobs can
run end to end without an ERP.
"""

import time
from typing import Any, Dict, Optional

from ..ports import ConnectorError, TestResult
from ..base_connector import BaseConnector
from sync.schemas import ERPPriceListImport

MODES = ("success", "failure", "timeout")


class MockPriceListConnector(BaseConnector):
    """
    Mock ERP price list source.

    Configuration:
        - mode: "success" | "failure" | "timeout" (default: "success")
        - simulate_delay_ms: Delay in milliseconds (default: 0)
        - error_message: Custom error message when mode="failure"
        - payload: Full ERP document ({"price_list": {...}, "items": [...]})
        - items: Items only; the header is derived from the requested code

    Usage:
        config = {"items": [{"sku": "A-1", "base_price": "10.00"}], "currency": "EUR"}
        payload = connector.fetch_price_list("STD", None, config)
    """

    def fetch_price_list(
        self,
        price_list_code: str,
        delta_token: Optional[str],
        config: Dict[str, Any],
    ) -> ERPPriceListImport:
        self._simulate(config)

        mode = self.config_choice(config, "mode", MODES, "success")
        if mode == "failure":
            error = config.get("error_message", "Mock connector simulated failure")
            self.log_fetch_attempt(price_list_code, success=False, error=error)
            raise ConnectorError(error)
        if mode == "timeout":
            self.log_fetch_attempt(price_list_code, success=False, error="Connection timeout")
            raise ConnectorError("Connection timeout")

        if "payload" in config:
            raw = config["payload"]
        else:
            raw = {
                "price_list": {
                    "code": price_list_code,
                    "name": config.get("name", price_list_code),
                    "currency": config.get("currency", "EUR"),
                    "effective_from": config.get("effective_from", "2020-01-01"),
                    "type": config.get("type"),
                },
                "items": config.get("items", []),
            }

        payload = self.parse_payload(raw)
        self.log_fetch_attempt(price_list_code, success=True, item_count=len(payload.items))
        return payload

    def test_connection(self, config: Dict[str, Any]) -> TestResult:
        started = time.monotonic()
        self._simulate(config)

        mode = self.config_choice(config, "mode", MODES, "success")
        if mode == "failure":
            return self.build_test_result(
                success=False,
                error_message=config.get("error_message", "Mock connector simulated test failure"),
                started=started,
            )
        if mode == "timeout":
            return self.build_test_result(success=False, error_message="Connection timeout", started=started)

        return self.build_test_result(success=True, started=started)

    def get_connector_type(self) -> str:
        return "MOCK"

    @staticmethod
    def _simulate(config: Dict[str, Any]) -> None:
        delay_ms = config.get("simulate_delay_ms", 0)
        if delay_ms > 0:
            time.sleep(delay_ms / 1000.0)
