from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models.debt import Debt, DebtRepayment, DebtStatus, DebtType, RepaymentKind
from ..schemas.debt import DebtCreate, DebtSummary, DebtUpdate, RepaymentRequest
from .errors import ConflictError, NotFoundError, ValidationError, debt_not_found

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
_ZERO = Decimal("0.00")


def _to_money(value: Decimal | int | float | str, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def derive_status(principal: Decimal, current_amount: Decimal) -> DebtStatus:
    """Status implied by the outstanding balance."""
    if current_amount == 0:
        return DebtStatus.PAID
    if current_amount == principal:
        return DebtStatus.PENDING
    return DebtStatus.PARTIALLY_PAID


def settle(principal: Decimal, current_amount: Decimal, amount: Decimal) -> tuple[Decimal, DebtStatus]:
    """Validate a repayment and return the new balance and status.

    Raises ValidationError for non-positive amounts and for amounts larger
    than the remaining balance; overpayments are never clamped.
    """
    amount = _to_money(amount, "Payment amount")
    if amount <= 0:
        raise ValidationError("Please provide a valid payment amount")
    if amount > current_amount:
        raise ValidationError("Payment amount exceeds remaining balance")
    remaining = (current_amount - amount).quantize(_CENT)
    return remaining, derive_status(principal, remaining)


def _coerce_debt_type(value: DebtType | str) -> DebtType:
    if isinstance(value, DebtType):
        return value
    try:
        return DebtType(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError("Type must be either 'borrowed' or 'lent'") from exc


def _clean_person_name(value: Optional[str]) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError("Person name is required")
    return name


def _with_history():
    return selectinload(Debt.history)


async def create_debt(session: AsyncSession, payload: DebtCreate) -> Debt:
    """Record a new debt with its full principal outstanding."""
    person_name = _clean_person_name(payload.person_name)
    debt_type = _coerce_debt_type(payload.type)
    principal = _to_money(payload.principal, "Amount")
    if principal <= 0:
        raise ValidationError("Amount must be greater than 0")

    debt = Debt(
        person_name=person_name,
        type=debt_type,
        principal=principal,
        current_amount=principal,
        status=DebtStatus.PENDING,
        date=payload.date,
        due_date=payload.due_date,
        notes=payload.notes.strip() if payload.notes else None,
        user_id=payload.user_id,
    )
    session.add(debt)
    await session.commit()
    return await get_debt_for_user(session, payload.user_id, debt.id)


async def list_debts(
    session: AsyncSession,
    user_id: UUID,
    *,
    debt_type: Optional[DebtType] = None,
    status: Optional[DebtStatus] = None,
) -> Sequence[Debt]:
    stmt = (
        select(Debt)
        .options(_with_history())
        .where(Debt.user_id == user_id)
        .order_by(Debt.date.desc(), Debt.created_at.desc())
    )
    if debt_type:
        stmt = stmt.where(Debt.type == debt_type)
    if status:
        stmt = stmt.where(Debt.status == status)
    result = await session.execute(stmt)
    return result.scalars().unique().all()


async def get_debt_for_user(session: AsyncSession, user_id: UUID, debt_id: UUID) -> Debt:
    """Load a debt owned by ``user_id``.

    Missing records and records owned by someone else raise the same
    NotFoundError.
    """
    result = await session.execute(
        select(Debt)
        .options(_with_history())
        .where(Debt.id == debt_id, Debt.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    debt = result.scalars().first()
    if debt is None:
        raise NotFoundError(debt_not_found())
    return debt


async def update_debt(
    session: AsyncSession, user_id: UUID, debt_id: UUID, payload: DebtUpdate
) -> Debt:
    debt = await get_debt_for_user(session, user_id, debt_id)

    fields = payload.model_fields_set
    if not fields:
        return debt

    if "person_name" in fields:
        debt.person_name = _clean_person_name(payload.person_name)
    if "date" in fields:
        if payload.date is None:
            raise ValidationError("Date is required")
        debt.date = payload.date
    if "due_date" in fields:
        debt.due_date = payload.due_date
    if "notes" in fields:
        debt.notes = payload.notes.strip() if payload.notes else None

    await session.commit()
    return await get_debt_for_user(session, user_id, debt_id)


async def delete_debt(session: AsyncSession, user_id: UUID, debt_id: UUID) -> None:
    debt = await get_debt_for_user(session, user_id, debt_id)
    await session.delete(debt)
    await session.commit()


async def apply_repayment(
    session: AsyncSession,
    user_id: UUID,
    debt_id: UUID,
    payload: RepaymentRequest,
) -> Debt:
    """Reduce a debt's balance and append the payment to its history.

    The balance update is a compare-and-set on the observed ``current_amount``
    and shares one commit with the history insert. Losing a race against a
    concurrent repayment raises ConflictError; the caller retries from a fresh
    load.
    """
    debt = await get_debt_for_user(session, user_id, debt_id)
    observed = debt.current_amount
    remaining, status = settle(debt.principal, observed, payload.amount)
    amount = (observed - remaining).quantize(_CENT)

    result = await session.execute(
        update(Debt)
        .where(
            Debt.id == debt_id,
            Debt.user_id == user_id,
            Debt.current_amount == observed,
        )
        .values(current_amount=remaining, status=status)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await session.rollback()
        logger.warning("Repayment on debt %s lost a concurrent update", debt_id)
        raise ConflictError("Debt was modified concurrently; please retry")

    session.add(
        DebtRepayment(
            debt_id=debt_id,
            amount=amount,
            paid_on=payload.date or date.today(),
            kind=RepaymentKind.PAYMENT,
            note=payload.note.strip() if payload.note else None,
        )
    )
    await session.commit()
    return await get_debt_for_user(session, user_id, debt_id)


def summarise_debts(debts: Iterable[Debt]) -> DebtSummary:
    """Outstanding payable/receivable totals and active counts."""
    summary = DebtSummary(total_payable=_ZERO, total_receivable=_ZERO)
    for debt in debts:
        active = debt.status != DebtStatus.PAID
        if debt.type == DebtType.BORROWED:
            summary.total_payable += debt.current_amount
            summary.active_borrowed += int(active)
        else:
            summary.total_receivable += debt.current_amount
            summary.active_lent += int(active)
    return summary
