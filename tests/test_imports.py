from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID, uuid4
from unittest import IsolatedAsyncioTestCase, TestCase
from unittest.mock import AsyncMock, MagicMock, patch

from expense_ledger.models.expense import ExpenseType
from expense_ledger.schemas.imports import ColumnMapping
from expense_ledger.services import imports
from expense_ledger.services.errors import (
    CategoryCreationError,
    DuplicateCategoryError,
    ImportSubmissionError,
    NoValidRowsError,
    NotFoundError,
    UnsupportedFormatError,
    ValidationError,
)

SCENARIO_CSV = (
    b"Cost,When,Cat,Memo\n"
    b"12.50,2024-03-05,Food,Lunch\n"
    b"abc,2024-03-06,Food,bad row\n"
)


def fixed_color() -> str:
    return "#123456"


class FakeCategoryGateway:
    """In-memory category store recording every create call."""

    def __init__(self, *, failing=(), taken_elsewhere=()) -> None:
        self.calls: list[tuple[str, str, str]] = []
        self.store: dict[str, SimpleNamespace] = {}
        self.failing = {name.lower() for name in failing}
        for name in taken_elsewhere:
            self.store[name.lower()] = SimpleNamespace(id=uuid4(), name=name)

    async def create(self, name: str, *, color: str, icon: str):
        self.calls.append((name, color, icon))
        key = name.lower()
        if key in self.failing:
            raise CategoryCreationError(f"Failed to create category '{name}'")
        if key in self.store:
            raise DuplicateCategoryError("Category with this name already exists")
        category = SimpleNamespace(id=uuid4(), name=name)
        self.store[key] = category
        return category

    async def find_by_name(self, name: str):
        return self.store.get(name.strip().lower())


def _mapping(**extra) -> ColumnMapping:
    return ColumnMapping(amount="Amount", date="Date", category="Category", **extra)


def _row(amount="10", when="2024-01-02", category="Food", **extra) -> dict:
    return {"Amount": amount, "Date": when, "Category": category, **extra}


class MappingTests(TestCase):
    def test_suggests_mapping_from_hint_headers(self) -> None:
        mapping = imports.suggest_mapping(["Cost", "When", "Cat", "Memo"])

        self.assertEqual(
            mapping, {"amount": "Cost", "date": "When", "category": "Cat", "notes": "Memo"}
        )

    def test_exact_header_names_win(self) -> None:
        headers = ["Date", "Amount", "Category", "Description", "Type", "Notes"]

        mapping = imports.suggest_mapping(headers)

        self.assertEqual(
            mapping,
            {
                "date": "Date",
                "amount": "Amount",
                "category": "Category",
                "description": "Description",
                "type": "Type",
                "notes": "Notes",
            },
        )

    def test_hint_never_overrides_an_exact_header(self) -> None:
        self.assertEqual(
            imports.suggest_mapping(["Date", "Time", "Amount", "Category"]),
            {"date": "Date", "amount": "Amount", "category": "Category"},
        )

        mapping = imports.suggest_mapping(["Amount", "Unit Price", "Date", "Category", "Location"])

        self.assertEqual(mapping["amount"], "Amount")
        self.assertEqual(mapping["category"], "Category")
        self.assertEqual(mapping["date"], "Date")

    def test_exact_header_replaces_an_earlier_hint(self) -> None:
        mapping = imports.suggest_mapping(["Unit Price", "Amount", "Date", "Cat"])

        self.assertEqual(mapping["amount"], "Amount")
        self.assertEqual(mapping["category"], "Cat")

    def test_header_normalisation_ignores_case_and_punctuation(self) -> None:
        self.assertEqual(imports.normalise_header(" Transaction-Date "), "transactiondate")
        self.assertEqual(imports.suggest_mapping(["Transaction Date"]), {"date": "Transaction Date"})

    def test_missing_required_fields_are_listed(self) -> None:
        with self.assertRaisesRegex(ValidationError, "Please map all required fields: category"):
            imports.build_mapping({"amount": "Cost", "date": "When"}, ["Cost", "When"])

    def test_mapping_to_absent_column_is_rejected(self) -> None:
        with self.assertRaisesRegex(ValidationError, "not found in file: Price"):
            imports.build_mapping(
                {"amount": "Price", "date": "When", "category": "Cat"}, ["Cost", "When", "Cat"]
            )

    def test_unknown_field_is_rejected(self) -> None:
        with self.assertRaisesRegex(ValidationError, "Unknown import field"):
            imports.build_mapping(
                {"amount": "Cost", "date": "When", "category": "Cat", "tags": "Cat"},
                ["Cost", "When", "Cat"],
            )

    def test_blank_optional_fields_become_none(self) -> None:
        mapping = imports.build_mapping(
            {"amount": "Cost", "date": "When", "category": "Cat", "notes": " "},
            ["Cost", "When", "Cat"],
        )

        self.assertIsNone(mapping.notes)
        self.assertEqual(mapping.category, "Cat")


class CellConversionTests(TestCase):
    def test_excel_serial_dates(self) -> None:
        self.assertEqual(imports.excel_serial_to_iso_date(25569), "1970-01-01")
        self.assertEqual(imports.excel_serial_to_iso_date(45356), "2024-03-05")
        self.assertEqual(imports.excel_serial_to_iso_date(45356.75), "2024-03-05")

    def test_normalise_date(self) -> None:
        cases = [
            ("2024-03-05", date(2024, 3, 5)),
            ("March 5, 2024", date(2024, 3, 5)),
            (datetime(2024, 3, 5, 14, 30), date(2024, 3, 5)),
            (date(2024, 3, 5), date(2024, 3, 5)),
            (45356, date(2024, 3, 5)),
            ("not a date", None),
            ("14:30", None),
            ("12.50", None),
            ("1", None),
            ("March 2024", None),
            ("05/03/2024", date(2024, 5, 3)),
            ("", None),
            (None, None),
            (float("nan"), None),
        ]
        for value, expected in cases:
            with self.subTest(value=value):
                self.assertEqual(imports.normalise_date(value), expected)

    def test_parse_amount(self) -> None:
        cases = [
            ("12.50", Decimal("12.50")),
            ("-12.50", Decimal("12.50")),
            ("(1,234.50)", Decimal("1234.50")),
            ("$1,000", Decimal("1000.00")),
            ("12,50", Decimal("12.50")),
            ("(12,50)", Decimal("12.50")),
            ("1,250", Decimal("1250.00")),
            (7, Decimal("7.00")),
            (3.14159, Decimal("3.14")),
            ("abc", None),
            ("0", None),
            ("", None),
            (True, None),
            (float("inf"), None),
        ]
        for value, expected in cases:
            with self.subTest(value=value):
                self.assertEqual(imports.parse_amount(value), expected)


class ConvertRowsTests(TestCase):
    def setUp(self) -> None:
        self.user_id = uuid4()
        self.food_id = uuid4()

    def test_rejections_carry_row_numbers_and_reasons(self) -> None:
        rows = [
            _row(),
            _row(amount="abc"),
            _row(amount="1000000"),
            _row(when="someday"),
            _row(category=""),
            _row(category="Travel"),
            _row(Description="x" * 101),
        ]

        commands, rejections = imports.convert_rows(
            rows,
            _mapping(description="Description"),
            {"food": self.food_id},
            user_id=self.user_id,
        )

        self.assertEqual(len(commands), 1)
        self.assertEqual(
            [(r.row_number, r.reason) for r in rejections],
            [
                (2, "invalid amount"),
                (3, "amount too large"),
                (4, "invalid date"),
                (5, "missing category"),
                (6, "unknown category 'Travel'"),
                (7, "invalid description"),
            ],
        )

    def test_type_column_marks_income(self) -> None:
        rows = [_row(Kind="Income"), _row(Kind="refund"), _row(Kind="")]

        commands, _ = imports.convert_rows(
            rows, _mapping(type="Kind"), {"food": self.food_id}, user_id=self.user_id
        )

        self.assertEqual(
            [c.type for c in commands],
            [ExpenseType.INCOME, ExpenseType.EXPENSE, ExpenseType.EXPENSE],
        )
        self.assertTrue(all(c.source == "import" for c in commands))


class ReconciliationTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.user_id = uuid4()

    async def test_case_variants_create_one_category(self) -> None:
        spellings = ["snacks", " Snacks", "SNACKS ", "sNaCkS"]
        rows = [_row(category=spellings[i % len(spellings)]) for i in range(50)]
        gateway = FakeCategoryGateway()

        reconciliation = await imports.reconcile_rows(
            rows, _mapping(), {}, gateway, user_id=self.user_id, color_factory=fixed_color, icon="📝"
        )

        self.assertEqual(gateway.calls, [("snacks", "#123456", "📝")])
        self.assertEqual(len(reconciliation.commands), 50)
        self.assertEqual(len({c.category_id for c in reconciliation.commands}), 1)
        self.assertEqual(reconciliation.created_categories, ["snacks"])

    async def test_known_categories_match_without_creating(self) -> None:
        food_id = uuid4()
        gateway = FakeCategoryGateway()

        reconciliation = await imports.reconcile_rows(
            [_row(category="FOOD"), _row(category="food")],
            _mapping(),
            {"Food": food_id},
            gateway,
            user_id=self.user_id,
            color_factory=fixed_color,
        )

        self.assertEqual(gateway.calls, [])
        self.assertEqual([c.category_id for c in reconciliation.commands], [food_id, food_id])

    async def test_blank_category_is_never_created(self) -> None:
        gateway = FakeCategoryGateway()

        reconciliation = await imports.reconcile_rows(
            [_row(category="  "), _row(category="")],
            _mapping(),
            {},
            gateway,
            user_id=self.user_id,
            color_factory=fixed_color,
        )

        self.assertEqual(gateway.calls, [])
        self.assertEqual(reconciliation.commands, [])
        self.assertEqual({r.reason for r in reconciliation.rejections}, {"missing category"})

    async def test_duplicate_during_creation_is_resolved_from_store(self) -> None:
        gateway = FakeCategoryGateway(taken_elsewhere=["Food"])
        existing_id = gateway.store["food"].id

        reconciliation = await imports.reconcile_rows(
            [_row(category="Food")],
            _mapping(),
            {},
            gateway,
            user_id=self.user_id,
            color_factory=fixed_color,
        )

        self.assertEqual(len(gateway.calls), 1)
        self.assertEqual(reconciliation.commands[0].category_id, existing_id)
        self.assertEqual(reconciliation.created_categories, [])

    async def test_failed_creation_drops_only_its_rows(self) -> None:
        gateway = FakeCategoryGateway(failing=["Broken"])

        reconciliation = await imports.reconcile_rows(
            [_row(category="Broken"), _row(category="Fine"), _row(category="broken")],
            _mapping(),
            {},
            gateway,
            user_id=self.user_id,
            color_factory=fixed_color,
        )

        self.assertEqual(len(reconciliation.commands), 1)
        self.assertEqual(reconciliation.created_categories, ["Fine"])
        self.assertEqual(
            [r.reason for r in reconciliation.rejections],
            ["unknown category 'Broken'", "unknown category 'broken'"],
        )


class ImportFlowTests(IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.user_id = uuid4()
        self.gateway = FakeCategoryGateway()
        self.submit = AsyncMock(side_effect=lambda commands: list(commands))

    async def _process(self, flow: imports.ImportFlow):
        return await flow.process(
            user_id=self.user_id,
            known_categories={},
            gateway=self.gateway,
            submit=self.submit,
            color_factory=fixed_color,
        )

    async def test_auto_mapped_file_imports_valid_rows(self) -> None:
        flow = imports.ImportFlow()
        flow.upload("expenses.csv", SCENARIO_CSV)
        self.assertEqual(flow.stage, imports.ImportStage.MAPPING)

        mapping = flow.choose_mapping()
        result = await self._process(flow)

        self.assertEqual(mapping.notes, "Memo")
        self.assertEqual(flow.stage, imports.ImportStage.DONE)
        self.assertEqual([call[0] for call in self.gateway.calls], ["Food"])

        self.submit.assert_awaited_once()
        (batch,) = self.submit.await_args.args
        self.assertEqual(len(batch), 1)
        command = batch[0]
        self.assertEqual(command.amount, Decimal("12.50"))
        self.assertEqual(command.occurred_on, date(2024, 3, 5))
        self.assertEqual(command.notes, "Lunch")
        self.assertEqual(command.type, ExpenseType.EXPENSE)
        self.assertEqual(command.category_id, self.gateway.store["food"].id)

        self.assertEqual(result.total_rows, 2)
        self.assertEqual(result.accepted, 1)
        self.assertEqual(result.rejected, 1)
        self.assertEqual(result.inserted, 1)
        self.assertEqual(result.created_categories, ["Food"])
        self.assertEqual(result.rejections[0].row_number, 2)

    async def test_no_valid_rows_returns_to_mapping(self) -> None:
        flow = imports.ImportFlow()
        flow.upload("expenses.csv", b"Cost,When,Cat\nabc,2024-03-06,Food\n")
        flow.choose_mapping()

        with self.assertRaises(NoValidRowsError):
            await self._process(flow)

        self.assertEqual(flow.stage, imports.ImportStage.MAPPING)
        self.submit.assert_not_called()

    async def test_submission_failure_returns_to_mapping(self) -> None:
        self.submit.side_effect = ImportSubmissionError("Failed to save imported expenses")
        flow = imports.ImportFlow()
        flow.upload("expenses.csv", SCENARIO_CSV)
        flow.choose_mapping()

        with self.assertRaises(ImportSubmissionError):
            await self._process(flow)

        self.assertEqual(flow.stage, imports.ImportStage.MAPPING)
        self.assertIsNone(flow.result)

    async def test_other_domain_errors_on_submit_are_wrapped(self) -> None:
        self.submit.side_effect = NotFoundError("Category not found")
        flow = imports.ImportFlow()
        flow.upload("expenses.csv", SCENARIO_CSV)
        flow.choose_mapping()

        with self.assertRaises(ImportSubmissionError):
            await self._process(flow)
        self.assertEqual(flow.stage, imports.ImportStage.MAPPING)

    def test_unsupported_file_stays_in_upload(self) -> None:
        flow = imports.ImportFlow()

        with self.assertRaises(UnsupportedFormatError):
            flow.upload("expenses.pdf", b"%PDF-1.4")

        self.assertEqual(flow.stage, imports.ImportStage.UPLOAD)
        self.assertIsNone(flow.parsed)

    def test_mapping_before_upload_is_refused(self) -> None:
        flow = imports.ImportFlow()

        with self.assertRaises(RuntimeError):
            flow.choose_mapping({"amount": "Cost", "date": "When", "category": "Cat"})

    async def test_flow_without_a_file_raises_runtime_error(self) -> None:
        flow = imports.ImportFlow()
        flow.stage = imports.ImportStage.MAPPING

        with self.assertRaisesRegex(RuntimeError, "no uploaded file"):
            flow.choose_mapping({"amount": "Cost", "date": "When", "category": "Cat"})

        flow.mapping = _mapping()
        with self.assertRaisesRegex(RuntimeError, "no uploaded file"):
            await flow.process(
                user_id=uuid4(),
                known_categories={},
                gateway=FakeCategoryGateway(),
                submit=AsyncMock(),
            )
        self.assertEqual(flow.stage, imports.ImportStage.MAPPING)

    def test_invalid_mapping_keeps_mapping_stage(self) -> None:
        flow = imports.ImportFlow()
        flow.upload("expenses.csv", SCENARIO_CSV)

        with self.assertRaises(ValidationError):
            flow.choose_mapping({"amount": "Cost"})
        self.assertEqual(flow.stage, imports.ImportStage.MAPPING)


class PreviewAndRunTests(IsolatedAsyncioTestCase):
    def test_preview_reports_headers_and_sample_rows(self) -> None:
        preview = imports.preview_import("expenses.csv", SCENARIO_CSV, preview_rows=1)

        self.assertEqual(preview.headers, ["Cost", "When", "Cat", "Memo"])
        self.assertEqual(preview.row_count, 2)
        self.assertEqual(preview.preview, [{"Cost": "12.50", "When": "2024-03-05", "Cat": "Food", "Memo": "Lunch"}])
        self.assertEqual(preview.suggested_mapping["date"], "When")

    async def test_run_import_uses_existing_categories_and_bulk_insert(self) -> None:
        user_id = uuid4()
        food = SimpleNamespace(id=uuid4(), name="Food")
        session = MagicMock()

        with patch(
            "expense_ledger.services.imports.list_categories", new_callable=AsyncMock
        ) as list_mock, patch(
            "expense_ledger.services.imports.bulk_create_expenses", new_callable=AsyncMock
        ) as bulk_mock, patch(
            "expense_ledger.services.imports.create_category", new_callable=AsyncMock
        ) as create_mock:
            list_mock.return_value = [food]
            bulk_mock.side_effect = lambda _session, _user, commands: list(commands)

            result = await imports.run_import(
                session,
                user_id,
                "expenses.csv",
                SCENARIO_CSV,
                {"amount": "Cost", "date": "When", "category": "Cat", "description": "Memo"},
            )

        list_mock.assert_awaited_once_with(session, user_id)
        create_mock.assert_not_called()
        bulk_mock.assert_awaited_once()
        (batch,) = bulk_mock.await_args.args[2:]
        self.assertEqual(batch[0].category_id, food.id)
        self.assertEqual(batch[0].description, "Lunch")
        self.assertEqual(batch[0].user_id, user_id)
        self.assertEqual(result.inserted, 1)
        self.assertEqual(result.rejected, 1)
        self.assertIsInstance(batch[0].category_id, UUID)
