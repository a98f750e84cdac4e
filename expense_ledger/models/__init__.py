from .base import Base
from .category import Category
from .debt import Debt, DebtRepayment, DebtStatus, DebtType, RepaymentKind
from .expense import Expense, ExpenseType
from .user import User

__all__ = [
    "Base",
    "Category",
    "Debt",
    "DebtRepayment",
    "DebtStatus",
    "DebtType",
    "RepaymentKind",
    "Expense",
    "ExpenseType",
    "User",
]
