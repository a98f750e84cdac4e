"""Domain error types shared by the services and translated by the routers."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for callers that only distinguish bad input.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Record is missing or belongs to another user.

    The two cases share one type so other users' ids are never revealed.
    """


class ConflictError(DomainError):
    """The request clashes with the current state of a record.

    Raised for lost compare-and-set races (retry the whole operation) and for
    deletes blocked by dependent rows.
    """


class DuplicateCategoryError(ConflictError):
    """A category with the same name (ignoring case) already exists."""


class CategoryCreationError(DomainError):
    """A category could not be persisted for a reason other than a duplicate name."""


class ProtectedCategoryError(DomainError):
    """Built-in default categories cannot be edited or deleted."""


class ImportFailure(DomainError):
    """Base class for failures of the spreadsheet import flow."""


class UnsupportedFormatError(ImportFailure):
    """Uploaded file is not a .csv, .xlsx or .xls file."""


class ParseError(ImportFailure):
    """Uploaded file could not be decoded into rows."""


class EmptyFileError(ImportFailure):
    """Uploaded file parsed but holds no data rows."""


class NoValidRowsError(ImportFailure):
    """Every mapped row was rejected during reconciliation."""


class ImportSubmissionError(ImportFailure):
    """The final bulk insert failed; nothing was committed."""


def debt_not_found() -> str:
    return "Debt record not found"


def category_not_found() -> str:
    return "Category not found"


def expense_not_found() -> str:
    return "Expense not found"


def missing_mapping_fields(fields: list[str]) -> str:
    """Return message listing required import fields without a source column."""
    return f"Please map all required fields: {', '.join(fields)}"
