from .category import CategoryCreateRequest, CategoryRead
from .debt import (
    DebtCreate,
    DebtCreateRequest,
    DebtRead,
    DebtRepaymentRead,
    DebtSummary,
    DebtUpdate,
    RepaymentRequest,
)
from .expense import (
    ExpenseBulkCreateRequest,
    ExpenseBulkResult,
    ExpenseCreate,
    ExpenseCreateRequest,
    ExpenseRead,
)
from .imports import ColumnMapping, ImportPreview, ImportResult, RowRejection

__all__ = [
    "CategoryCreateRequest",
    "CategoryRead",
    "DebtCreate",
    "DebtCreateRequest",
    "DebtRead",
    "DebtRepaymentRead",
    "DebtSummary",
    "DebtUpdate",
    "RepaymentRequest",
    "ExpenseBulkCreateRequest",
    "ExpenseBulkResult",
    "ExpenseCreate",
    "ExpenseCreateRequest",
    "ExpenseRead",
    "ColumnMapping",
    "ImportPreview",
    "ImportResult",
    "RowRejection",
]
