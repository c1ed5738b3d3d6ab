"""Price list item CSV import.

Parses a CSV file with pandas, validates every row and feeds the valid rows
to the bulk upsert engine. Row-level problems are reported with their CSV
row number; they never abort the import.

CSV columns:
- sku (required)
- base_price (required)
- list_price, min_price, max_price, cost (optional decimals)
- currency, uom, external_id (optional)
- effective_from, effective_to (optional, YYYY-MM-DD)
"""

import pandas as pd
from typing import BinaryIO, Optional
from uuid import UUID
from sqlalchemy.orm import Session
from datetime import date
from decimal import Decimal, InvalidOperation
import logging

from .bulk_upsert import BulkUpsertService
from .schemas import ItemImportResult, PriceListItemUpsert
from .store import PriceListStore

logger = logging.getLogger(__name__)

OPTIONAL_DECIMALS = ("list_price", "min_price", "max_price", "cost")


class PriceListItemImportService:
    """Service for importing price list items from CSV files"""

    def __init__(self, db: Session, org_id: UUID):
        self.db = db
        self.org_id = org_id

    def parse_csv(self, file: BinaryIO) -> pd.DataFrame:
        """Parse CSV file into a DataFrame of strings.

        Raises:
            ValueError: If CSV is malformed, empty or lacks required columns
        """
        try:
            df = pd.read_csv(file, dtype=str, keep_default_na=False)
        except pd.errors.EmptyDataError:
            raise ValueError("CSV file is empty")
        except pd.errors.ParserError as e:
            raise ValueError(f"CSV parsing error: {str(e)}")

        if df.empty:
            raise ValueError("CSV file is empty")

        df.columns = [str(c).strip().lower() for c in df.columns]
        missing = {"sku", "base_price"} - set(df.columns)
        if missing:
            raise ValueError(f"CSV is missing required columns: {', '.join(sorted(missing))}")
        return df

    def parse_decimal(self, value: str, field_name: str, row_num: int) -> tuple[Optional[Decimal], str]:
        """Parse an optional decimal. Empty cells yield (None, "")."""
        if not value or not value.strip():
            return None, ""

        try:
            return Decimal(value.strip()), ""
        except InvalidOperation:
            return None, f"Row {row_num}: Invalid {field_name} value '{value}'"

    def parse_date(self, value: str, field_name: str, row_num: int) -> tuple[Optional[date], str]:
        if not value or not value.strip():
            return None, ""

        try:
            return date.fromisoformat(value.strip()), ""
        except ValueError:
            return None, f"Row {row_num}: Invalid {field_name} date format '{value}' (expected YYYY-MM-DD)"

    def validate_row(self, row: pd.Series, row_num: int) -> tuple[bool, str, Optional[PriceListItemUpsert]]:
        """Validate a single CSV row and build its upsert item.

        Returns:
            Tuple of (is_valid, error_message, item)
        """
        sku = row.get('sku', '').strip()
        if not sku:
            return False, f"Row {row_num}: Missing required field 'sku'", None

        base_price, error = self.parse_decimal(row.get('base_price', ''), 'base_price', row_num)
        if error:
            return False, error, None
        if base_price is None:
            return False, f"Row {row_num}: Missing required field 'base_price'", None

        data = {"sku": sku, "base_price": base_price}
        for field in OPTIONAL_DECIMALS:
            value, error = self.parse_decimal(row.get(field, ''), field, row_num)
            if error:
                return False, error, None
            data[field] = value

        for field in ("effective_from", "effective_to"):
            value, error = self.parse_date(row.get(field, ''), field, row_num)
            if error:
                return False, error, None
            data[field] = value

        currency = row.get('currency', '').strip().upper()
        if currency and len(currency) != 3:
            return False, f"Row {row_num}: Invalid currency code '{currency}' (must be 3 characters)", None
        data['currency'] = currency or None
        data['uom'] = row.get('uom', '').strip() or None
        data['external_id'] = row.get('external_id', '').strip() or None

        return True, "", PriceListItemUpsert(**data)

    def import_items(self, price_list_id: UUID, file: BinaryIO) -> ItemImportResult:
        """Import items into a price list from a CSV file.

        Raises:
            NotFoundError: price list does not exist in the organization
        """
        PriceListStore(self.db).get_price_list(self.org_id, price_list_id)
        result = ItemImportResult()

        try:
            df = self.parse_csv(file)
        except ValueError as e:
            result.errors.append({"row": 0, "error": str(e)})
            result.failed = 1
            return result

        # Last row wins for a SKU repeated within the file
        rows_by_sku: dict[str, int] = {}
        items_by_sku: dict[str, PriceListItemUpsert] = {}

        for idx, row in df.iterrows():
            row_num = idx + 2  # 1-based, plus header row

            is_valid, error_msg, item = self.validate_row(row, row_num)
            if not is_valid:
                result.errors.append({"row": row_num, "error": error_msg})
                result.failed += 1
                continue

            if item.sku in rows_by_sku:
                logger.warning(
                    f"Duplicate SKU '{item.sku}' at rows {rows_by_sku[item.sku]} and {row_num}. "
                    f"Row {row_num} will overwrite."
                )
            rows_by_sku[item.sku] = row_num
            items_by_sku[item.sku] = item

        upserted = BulkUpsertService(self.db).upsert(self.org_id, price_list_id, items_by_sku.values())
        result.created = upserted.created
        result.updated = upserted.updated
        for item_error in upserted.errors:
            result.errors.append({
                "row": rows_by_sku.get(item_error.sku, 0),
                "sku": item_error.sku,
                "error": item_error.error,
            })
            result.failed += 1

        logger.info(
            f"CSV import finished: {result.created} created, {result.updated} updated, {result.failed} failed",
            extra={"org_id": str(self.org_id), "price_list_id": str(price_list_id)},
        )
        return result
