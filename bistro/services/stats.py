"""
Stats Aggregator

Summary counts and revenue computed from the payment store, which is the
single source of truth for orders.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bistro.models import MenuItem, Payment, PaymentMenuItem, User
from bistro.schemas import AdminStats, CategoryStats, UserStats

logger = logging.getLogger(__name__)


class StatsAggregator:
    """Read-only aggregate queries."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _count(self, model, *criteria) -> int:
        query = select(func.count()).select_from(model)
        if criteria:
            query = query.where(*criteria)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def admin_stats(self) -> AdminStats:
        """Store-wide counts plus total revenue (0 when there are no payments)."""
        revenue_result = await self.session.execute(
            select(func.coalesce(func.sum(Payment.price), 0.0))
        )
        revenue = revenue_result.scalar() or 0.0

        return AdminStats(
            user_count=await self._count(User),
            menu_item_count=await self._count(MenuItem),
            order_count=await self._count(Payment),
            total_revenue=round(float(revenue), 2),
        )

    async def user_stats(self, email: str) -> UserStats:
        """
        Counts scoped to one identity.

        orderCount is the number of menu items the identity bought,
        paymentCount the number of its payment records, menuCount the size
        of the catalog.
        """
        items_result = await self.session.execute(
            select(func.count(PaymentMenuItem.id))
            .join(Payment, Payment.id == PaymentMenuItem.payment_id)
            .where(Payment.email == email)
        )

        return UserStats(
            order_count=items_result.scalar() or 0,
            menu_count=await self._count(MenuItem),
            payment_count=await self._count(Payment, Payment.email == email),
        )

    async def order_stats_by_category(self) -> list[CategoryStats]:
        """
        Items sold and revenue per menu category.

        Every purchased menu item id counts once, joined to the catalog for
        its category and current price. Items no longer on the menu drop out
        of the join; categories without sales are not listed.
        """
        result = await self.session.execute(
            select(
                MenuItem.category,
                func.count(PaymentMenuItem.id).label("sold"),
                func.sum(MenuItem.price).label("revenue"),
            )
            .select_from(PaymentMenuItem)
            .join(MenuItem, MenuItem.id == PaymentMenuItem.menu_item_id)
            .group_by(MenuItem.category)
            .order_by(MenuItem.category)
        )

        return [
            CategoryStats(category=row.category, count=row.sold, total=round(float(row.revenue), 2))
            for row in result.all()
        ]
