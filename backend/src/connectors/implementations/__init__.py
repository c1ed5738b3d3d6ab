"""
Connector implementations

Concrete PriceListSourcePort implementations, one per ERP integration method.
"""

from .mock_connector import MockPriceListConnector

__all__ = ["MockPriceListConnector"]
