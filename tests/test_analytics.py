from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4
from unittest import IsolatedAsyncioTestCase, TestCase
from unittest.mock import AsyncMock, MagicMock

from expense_ledger.models.expense import ExpenseType
from expense_ledger.services import analytics
from expense_ledger.services.errors import ValidationError


def _rows(*rows):
    result = MagicMock()
    result.all.return_value = list(rows)
    return result


class FoldingTests(TestCase):
    def test_totals_split_by_type_and_net(self) -> None:
        totals = analytics.fold_totals(
            [(ExpenseType.EXPENSE, Decimal("30.5"), 2), ("income", Decimal("100"), 1)]
        )

        self.assertEqual(totals.expenses, Decimal("30.50"))
        self.assertEqual(totals.income, Decimal("100.00"))
        self.assertEqual(totals.net, Decimal("69.50"))
        self.assertEqual((totals.expense_count, totals.income_count), (2, 1))

    def test_no_rows_gives_zero_totals(self) -> None:
        totals = analytics.fold_totals([])

        self.assertEqual(totals.net, Decimal("0.00"))
        self.assertEqual(totals.expense_count, 0)

    def test_trends_fill_every_month(self) -> None:
        trends = analytics.build_trends(
            2024,
            [
                (Decimal("3"), ExpenseType.EXPENSE, Decimal("10")),
                (3, "income", 25),
                (12.0, ExpenseType.EXPENSE, Decimal("5.255")),
            ],
        )

        self.assertEqual(trends.year, 2024)
        self.assertEqual([m.month for m in trends.months], list(range(1, 13)))
        march = trends.months[2]
        self.assertEqual(march.label, "Mar")
        self.assertEqual(march.expenses, Decimal("10.00"))
        self.assertEqual(march.income, Decimal("25.00"))
        self.assertEqual(march.net, Decimal("15.00"))
        self.assertEqual(trends.months[11].net, Decimal("-5.26"))
        self.assertEqual(trends.months[0].expenses, Decimal("0.00"))


class AnalyticsQueryTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.session = MagicMock()
        self.session.execute = AsyncMock()
        self.user_id = uuid4()

    async def test_category_breakdown_maps_rows(self) -> None:
        category_id = uuid4()
        self.session.execute.return_value = _rows(
            (category_id, "Food", "#EF4444", Decimal("42.1"), 3)
        )

        stats = await analytics.category_breakdown(self.session, self.user_id)

        self.assertEqual(len(stats), 1)
        self.assertEqual(stats[0].category_id, category_id)
        self.assertEqual(stats[0].total_amount, Decimal("42.10"))
        self.assertEqual(stats[0].count, 3)

    async def test_inverted_window_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            await analytics.category_breakdown(
                self.session, self.user_id, start=date(2024, 2, 1), end=date(2024, 1, 1)
            )
        with self.assertRaises(ValidationError):
            await analytics.expense_stats(
                self.session, self.user_id, start=date(2024, 2, 1), end=date(2024, 1, 1)
            )

        self.session.execute.assert_not_called()

    async def test_stats_without_window_cover_year_to_date(self) -> None:
        self.session.execute.side_effect = [
            _rows((ExpenseType.EXPENSE, Decimal("50"), 4), (ExpenseType.INCOME, Decimal("80"), 1)),
            _rows((ExpenseType.EXPENSE, Decimal("20"), 1)),
            _rows(),
        ]

        stats = await analytics.expense_stats(self.session, self.user_id, today=date(2024, 5, 17))

        self.assertIsNone(stats.start)
        self.assertEqual(stats.totals.net, Decimal("30.00"))
        self.assertEqual(stats.current_month.expenses, Decimal("20.00"))
        self.assertEqual(stats.categories_from, date(2024, 1, 1))
        self.assertEqual(stats.categories_to, date(2024, 5, 17))
        self.assertEqual(stats.categories, [])
        self.assertEqual(self.session.execute.await_count, 3)

    async def test_stats_with_past_end_anchor_breakdown_to_that_year(self) -> None:
        self.session.execute.side_effect = [_rows(), _rows(), _rows()]

        stats = await analytics.expense_stats(
            self.session, self.user_id, end=date(2022, 8, 31), today=date(2024, 5, 17)
        )

        self.assertEqual(stats.categories_from, date(2022, 1, 1))
        self.assertEqual(stats.categories_to, date(2022, 8, 31))

    async def test_trends_query_result_is_folded(self) -> None:
        self.session.execute.return_value = _rows((1, ExpenseType.INCOME, Decimal("100")))

        trends = await analytics.expense_trends(self.session, self.user_id, 2023)

        self.assertEqual(trends.year, 2023)
        self.assertEqual(trends.months[0].income, Decimal("100.00"))
        self.assertEqual(len(trends.months), 12)

    async def test_trends_reject_out_of_range_year(self) -> None:
        with self.assertRaises(ValidationError):
            await analytics.expense_trends(self.session, self.user_id, 0)
