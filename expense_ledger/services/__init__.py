from .analytics import category_breakdown, expense_stats, expense_trends
from .categories import (
    create_category,
    delete_category,
    ensure_default_categories,
    find_category_by_name,
    get_category_for_user,
    list_categories,
    update_category,
)
from .debts import (
    apply_repayment,
    create_debt,
    delete_debt,
    get_debt_for_user,
    list_debts,
    summarise_debts,
    update_debt,
)
from .expenses import (
    bulk_create_expenses,
    create_expense,
    delete_expense,
    get_expense_for_user,
    list_expenses,
    update_expense,
)
from .imports import preview_import, run_import

__all__ = [
    "category_breakdown",
    "expense_stats",
    "expense_trends",
    "create_category",
    "delete_category",
    "ensure_default_categories",
    "find_category_by_name",
    "get_category_for_user",
    "list_categories",
    "update_category",
    "create_debt",
    "list_debts",
    "get_debt_for_user",
    "update_debt",
    "delete_debt",
    "apply_repayment",
    "summarise_debts",
    "create_expense",
    "bulk_create_expenses",
    "get_expense_for_user",
    "update_expense",
    "delete_expense",
    "list_expenses",
    "preview_import",
    "run_import",
]
