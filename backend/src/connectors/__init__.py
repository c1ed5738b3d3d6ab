"""
Connectors module - ERP price list sources

Plugin architecture for pulling price lists from ERP systems through a
standard Port interface (PriceListSourcePort). Sync workers resolve the
source for a job through ConnectorRegistry.
"""

from .ports import PriceListSourcePort, TestResult, ConnectorError
from .registry import ConnectorRegistry, DEFAULT_CONNECTOR, register_default_connectors
from .base_connector import BaseConnector

__all__ = [
    "PriceListSourcePort",
    "TestResult",
    "ConnectorError",
    "ConnectorRegistry",
    "DEFAULT_CONNECTOR",
    "register_default_connectors",
    "BaseConnector",
]
