import os
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from koop.logic.models import Offer, Order, ReconciliationResult

logger = logging.getLogger("OrderLoader")

# Accepted header spellings -> Order field
COLUMN_ALIASES = {
    "id": "id",
    "order_id": "id",
    "name": "name",
    "quantity": "quantity",
    "qty": "quantity",
    "value": "quantity",
    "locked": "locked",
    "quantity_adjusted_locked": "locked",
    "quantity_adjusted": "quantity_adjusted",
}

TRUE_VALUES = {"true", "yes", "y", "1", "x"}

EXPORT_EXTENSIONS = (".csv", ".xlsx")


def _to_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return False
    return str(value).strip().lower() in TRUE_VALUES


def _read_frame(file_path: str) -> pd.DataFrame:
    ext = os.path.splitext(file_path)[1].lower()
    if ext == ".csv":
        return pd.read_csv(file_path)
    if ext in (".xlsx", ".xls"):
        return pd.read_excel(file_path)
    raise ValueError(f"Unsupported order file type: {ext}")


def load_payload(file_path: str) -> Tuple[List[Order], Dict[str, Any]]:
    """
    Loads orders from a JSON payload, CSV or Excel sheet.

    JSON files may carry {"orders": [...], "offer": {...}}; the offer dict
    (possibly empty) is returned alongside so the CLI can merge flags in.
    """
    if file_path.lower().endswith(".json"):
        with open(file_path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        if isinstance(payload, list):
            return [Order.model_validate(o) for o in payload], {}
        orders = [Order.model_validate(o) for o in payload.get("orders", [])]
        return orders, payload.get("offer") or {}

    return load_orders(file_path), {}


def load_orders(file_path: str) -> List[Order]:
    df = _read_frame(file_path)
    df.columns = [str(c).strip().lower() for c in df.columns]
    df = df.rename(columns={c: COLUMN_ALIASES[c] for c in df.columns if c in COLUMN_ALIASES})

    if "quantity" not in df.columns:
        raise ValueError(f"No quantity column found in {file_path}")
    if "id" not in df.columns:
        # Row numbers become ids
        df["id"] = range(1, len(df) + 1)

    orders = []
    for row in df.to_dict(orient="records"):
        quantity = row.get("quantity")
        if quantity is None or pd.isna(quantity):
            quantity = 0.0
        record = {
            "id": row["id"].item() if hasattr(row["id"], "item") else row["id"],
            "quantity": float(quantity),
            "locked": _to_bool(row.get("locked")),
        }
        if isinstance(row.get("name"), str):
            record["name"] = row["name"]
        adjusted = row.get("quantity_adjusted")
        if adjusted is not None and not pd.isna(adjusted):
            record["quantity_adjusted"] = float(adjusted)
        orders.append(Order.model_validate(record))

    logger.info(f"Loaded {len(orders)} orders from {os.path.basename(file_path)}")
    return orders


def results_frame(result: ReconciliationResult) -> pd.DataFrame:
    rows = [
        {
            "id": o.id,
            "name": o.name,
            "quantity": o.quantity,
            "locked": o.locked,
            "quantity_adjusted": o.quantity_adjusted,
            "weight": o.weight,
            "quantity_adjusted_below_zero": o.quantity_adjusted_below_zero,
        }
        for o in result.values
    ]
    return pd.DataFrame(rows, columns=[
        "id", "name", "quantity", "locked", "quantity_adjusted", "weight", "quantity_adjusted_below_zero",
    ])


def export_results(result: ReconciliationResult, output_path: str, offer: Optional[Offer] = None):
    """Writes adjusted orders to CSV or Excel (orders sheet + summary sheet)."""
    df = results_frame(result)
    ext = os.path.splitext(output_path)[1].lower()

    if ext == ".csv":
        df.to_csv(output_path, index=False)
    elif ext == ".xlsx":
        summary = result.summary()
        if offer is not None:
            summary.update({f"offer_{k}": v for k, v in offer.model_dump(mode="json").items()})
        summary_df = pd.DataFrame(list(summary.items()), columns=["field", "value"])
        with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name="Orders", index=False)
            summary_df.to_excel(writer, sheet_name="Summary", index=False)
    else:
        raise ValueError(f"Unsupported output file type: {ext}")

    logger.info(f"Saved {len(df)} adjusted orders to {output_path}")
