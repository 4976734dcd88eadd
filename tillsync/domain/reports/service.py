# tillsync/domain/reports/service.py
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel

from tillsync.domain.checkout.cart import round_money
from tillsync.domain.checkout.schemas import Order


class DailySummary(BaseModel):
    day: date
    order_count: int
    sales_total: Decimal


def _local_day(timestamp: str) -> Optional[date]:
    try:
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.date()


def daily_summary(orders: Iterable[Order], day: Optional[date] = None) -> DailySummary:
    """Order count and takings for one local calendar day (today by default)."""
    day = day or date.today()
    todays = [o for o in orders if _local_day(o.date) == day]
    total = sum((o.total for o in todays), Decimal("0"))
    return DailySummary(day=day, order_count=len(todays), sales_total=round_money(total))
