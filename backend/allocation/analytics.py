"""Allocation history rollups for the transactions summary endpoint."""

from __future__ import annotations

from typing import Any

import pandas as pd

from allocation.domain import TransactionRecord


def transactions_frame(records: list[TransactionRecord]) -> pd.DataFrame:
    rows = [
        {
            "transaction_id": str(r.transaction_id),
            "allocation_type": r.plan.allocation_type,
            "business_context": r.plan.business_context.value if r.plan.business_context else "manual",
            "strategy": r.plan.strategy_used or "manual_selection",
            "status": r.status.value,
            "quantity": r.plan.quantity_allocated,
            "total_cost": r.plan.total_cost,
            "units_used": len(r.plan.lines),
            "created_at": r.created_at,
        }
        for r in records
    ]
    columns = [
        "transaction_id",
        "allocation_type",
        "business_context",
        "strategy",
        "status",
        "quantity",
        "total_cost",
        "units_used",
        "created_at",
    ]
    return pd.DataFrame(rows, columns=columns)


def _breakdown(df: pd.DataFrame, column: str) -> list[dict[str, Any]]:
    grouped = (
        df.groupby(column)
        .agg(
            transactions=("transaction_id", "count"),
            quantity=("quantity", "sum"),
            total_cost=("total_cost", "sum"),
            avg_units_used=("units_used", "mean"),
        )
        .reset_index()
        .sort_values(["transactions", column], ascending=[False, True])
    )
    return [
        {
            column: row[column],
            "transactions": int(row["transactions"]),
            "quantity": int(row["quantity"]),
            "total_cost": round(float(row["total_cost"]), 2),
            "avg_units_used": round(float(row["avg_units_used"]), 2),
        }
        for _, row in grouped.iterrows()
    ]


def summarize_allocations(records: list[TransactionRecord]) -> dict[str, Any]:
    """Totals plus breakdowns by context, strategy and allocation type."""
    df = transactions_frame(records)
    if df.empty:
        return {
            "transactions": 0,
            "allocated": 0,
            "released": 0,
            "total_quantity": 0,
            "total_cost": 0.0,
            "average_cost_per_unit": 0.0,
            "by_context": [],
            "by_strategy": [],
            "by_allocation_type": [],
        }

    total_quantity = int(df["quantity"].sum())
    total_cost = float(df["total_cost"].sum())
    return {
        "transactions": int(len(df)),
        "allocated": int((df["status"] == "allocated").sum()),
        "released": int((df["status"] == "released").sum()),
        "total_quantity": total_quantity,
        "total_cost": round(total_cost, 2),
        "average_cost_per_unit": round(total_cost / total_quantity, 4) if total_quantity else 0.0,
        "by_context": _breakdown(df, "business_context"),
        "by_strategy": _breakdown(df, "strategy"),
        "by_allocation_type": _breakdown(df, "allocation_type"),
    }
