"""
Read-side reporting over a vendor's orders.

Everything here is recomputed from the "Order" and "MenuItem" tables on each
call; nothing is cached between requests. Order rows are loaded into a pandas
DataFrame and aggregated there.
"""
import json
import logging
from datetime import datetime, timedelta, timezone

import pandas as pd

from errors import ValidationError
from models import OrderStatus, PaymentStatus, money
from sqlQueries import fetch_all, fetch_one, to_iso

logger = logging.getLogger(__name__)

PERIODS = ('today', 'week', 'month')
TOP_ITEMS_LIMIT = 5

ORDER_COLUMNS = ["ord_id", "status", "payment_status", "total_amount", "items", "created_at"]


def _utc(now=None) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def period_start(period: str, now: datetime) -> datetime:
    """
    Lower bound of a reporting window.
    Args:
        period (str): 'today' (since midnight UTC), 'week' (last 7 days) or 'month' (last calendar month span).
        now (datetime): Upper bound, timezone-aware.
    Returns:
        datetime: Start of the window.
    Raises:
        ValidationError: Unknown period.
    """
    if period == 'today':
        return _start_of_day(now)
    if period == 'week':
        return now - timedelta(days=7)
    if period == 'month':
        return (pd.Timestamp(now) - pd.DateOffset(months=1)).to_pydatetime()
    raise ValidationError("Period must be one of: " + ", ".join(PERIODS))


def load_order_frame(conn, vendor_id, since=None, until=None) -> pd.DataFrame:
    """
    Load a vendor's orders as a DataFrame with a UTC ``created_at`` column.
    Args:
        conn (sqlite3.Connection): Active database connection.
        vendor_id (int): The vendor's usr_id.
        since (datetime | None): Inclusive lower bound on created_at.
        until (datetime | None): Inclusive upper bound on created_at.
    Returns:
        pd.DataFrame: One row per order, columns ORDER_COLUMNS.
    """
    query = 'SELECT ' + ", ".join(ORDER_COLUMNS) + ' FROM "Order" WHERE vendor_id = ?'
    params = [vendor_id]
    if since is not None:
        query += ' AND created_at >= ?'
        params.append(to_iso(since))
    if until is not None:
        query += ' AND created_at <= ?'
        params.append(to_iso(until))

    rows = fetch_all(conn, query, tuple(params))
    frame = pd.DataFrame([dict(r) for r in rows], columns=ORDER_COLUMNS)
    frame["created_at"] = pd.to_datetime(frame["created_at"], utc=True, format="ISO8601")
    frame["total_amount"] = frame["total_amount"].astype(float)
    return frame


def explode_items(orders: pd.DataFrame) -> pd.DataFrame:
    """One row per frozen order line: menu_item_id, name, price, quantity."""
    records = [
        {
            "menu_item_id": line["menu_item_id"],
            "name": line["name"],
            "price": float(line["price"]),
            "quantity": int(line["quantity"]),
        }
        for raw in orders["items"]
        for line in json.loads(raw or "[]")
    ]
    return pd.DataFrame(records, columns=["menu_item_id", "name", "price", "quantity"])


def top_items(orders: pd.DataFrame, limit: int = TOP_ITEMS_LIMIT) -> list:
    """
    Best sellers by quantity within the given orders.
    Ties are broken by menu item id so the result is stable.
    """
    lines = explode_items(orders)
    if lines.empty:
        return []
    lines["revenue"] = lines["price"] * lines["quantity"]
    grouped = (
        lines.groupby("menu_item_id", as_index=False)
        .agg(name=("name", "first"), total_quantity=("quantity", "sum"), total_revenue=("revenue", "sum"))
        .sort_values(["total_quantity", "menu_item_id"], ascending=[False, True])
        .head(limit)
    )
    return [
        {
            "menu_item_id": int(row["menu_item_id"]),
            "name": row["name"],
            "total_quantity": int(row["total_quantity"]),
            "total_revenue": money(row["total_revenue"]),
        }
        for row in grouped.to_dict("records")
    ]


def _paid_total(orders: pd.DataFrame) -> float:
    paid = orders.loc[orders["payment_status"] == PaymentStatus.PAID, "total_amount"]
    return money(paid.sum()) if not paid.empty else 0


def vendor_order_stats(conn, vendor_id, period='today', now=None) -> dict:
    """
    Order statistics for one vendor over a reporting window.
    Args:
        conn (sqlite3.Connection): Active database connection.
        vendor_id (int): The vendor's usr_id.
        period (str): 'today', 'week' or 'month'.
        now (datetime | None): Window end; defaults to the current time.
    Returns:
        dict: {'stats': {...}, 'top_items': [...], 'period': period}. Revenue
            counts paid orders only; the average covers every order in the window.
    """
    period = period or 'today'
    now = _utc(now)
    orders = load_order_frame(conn, vendor_id, since=period_start(period, now), until=now)

    counts = orders["status"].value_counts()
    stats = {
        "total_orders": int(len(orders)),
        "total_revenue": _paid_total(orders),
        "average_order_value": money(orders["total_amount"].mean()) if not orders.empty else 0,
    }
    for status in OrderStatus.VALID_STATUSES:
        stats[f"{status}_orders"] = int(counts.get(status, 0))

    return {"stats": stats, "top_items": top_items(orders), "period": period}


def vendor_dashboard_stats(conn, vendor_id, now=None) -> dict:
    """
    Dashboard summary: menu size, order counts and paid revenue.

    Calendar windows are in UTC; the week starts on Sunday and the month on
    its first day. ``orders.pending`` counts every order still in flight
    (pending, confirmed or preparing).

    Args:
        conn (sqlite3.Connection): Active database connection.
        vendor_id (int): The vendor's usr_id.
        now (datetime | None): Reference time; defaults to the current time.
    Returns:
        dict: {'menu': {...}, 'orders': {...}, 'revenue': {...}}
    """
    now = _utc(now)
    start_of_day = _start_of_day(now)
    start_of_week = start_of_day - timedelta(days=(start_of_day.weekday() + 1) % 7)
    start_of_month = start_of_day.replace(day=1)

    menu = fetch_one(
        conn,
        '''
        SELECT COUNT(*) AS total, COALESCE(SUM(is_available), 0) AS active
        FROM "MenuItem" WHERE vendor_id = ?
        ''',
        (vendor_id,),
    )

    orders = load_order_frame(conn, vendor_id)
    windows = {
        "today": orders[orders["created_at"] >= start_of_day],
        "week": orders[orders["created_at"] >= start_of_week],
        "month": orders[orders["created_at"] >= start_of_month],
    }

    logger.debug("Dashboard stats for vendor %s over %d orders", vendor_id, len(orders))
    return {
        "menu": {
            "total": menu["total"],
            "active": menu["active"],
            "inactive": menu["total"] - menu["active"],
        },
        "orders": {
            "total": int(len(orders)),
            "today": int(len(windows["today"])),
            "week": int(len(windows["week"])),
            "month": int(len(windows["month"])),
            "pending": int(orders["status"].isin(OrderStatus.ACTIVE).sum()),
            "completed": int((orders["status"] == OrderStatus.COMPLETED).sum()),
        },
        "revenue": {
            "total": _paid_total(orders),
            "today": _paid_total(windows["today"]),
            "week": _paid_total(windows["week"]),
            "month": _paid_total(windows["month"]),
        },
    }
