from datetime import date
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from ..models.expense import ExpenseType
from ..schemas.analytics import ExpenseStats, ExpenseTrends
from ..schemas.expense import (
    ExpenseBulkCreateRequest,
    ExpenseBulkResult,
    ExpenseCreate,
    ExpenseCreateRequest,
    ExpenseRead,
    ExpenseUpdate,
)
from ..services import (
    bulk_create_expenses,
    create_expense,
    delete_expense,
    expense_stats,
    expense_trends,
    get_expense_for_user,
    list_expenses,
    update_expense,
)
from ..services.errors import ImportSubmissionError, NotFoundError, ValidationError
from .dependencies import CurrentUser, SessionDep

router = APIRouter()


@router.post("", response_model=ExpenseRead, status_code=status.HTTP_201_CREATED)
async def create_expense_endpoint(
    payload: ExpenseCreateRequest,
    session: SessionDep,
    current_user: CurrentUser,
) -> ExpenseRead:
    try:
        expense = await create_expense(
            session, ExpenseCreate(user_id=current_user.id, **payload.model_dump())
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ExpenseRead.model_validate(expense)


@router.post("/bulk", response_model=ExpenseBulkResult, status_code=status.HTTP_201_CREATED)
async def bulk_create_expenses_endpoint(
    payload: ExpenseBulkCreateRequest,
    session: SessionDep,
    current_user: CurrentUser,
) -> ExpenseBulkResult:
    commands = [
        ExpenseCreate(user_id=current_user.id, **item.model_dump()) for item in payload.expenses
    ]
    try:
        expenses = await bulk_create_expenses(session, current_user.id, commands)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ImportSubmissionError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return ExpenseBulkResult(
        inserted_count=len(expenses),
        items=[ExpenseRead.model_validate(e) for e in expenses],
    )


@router.get("", response_model=list[ExpenseRead])
async def list_expenses_endpoint(
    session: SessionDep,
    current_user: CurrentUser,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    expense_type: Optional[ExpenseType] = Query(default=None, alias="type"),
    category_id: Optional[UUID] = Query(default=None),
    occurred_after: Optional[date] = Query(default=None),
    occurred_before: Optional[date] = Query(default=None),
) -> list[ExpenseRead]:
    expenses = await list_expenses(
        session,
        current_user.id,
        limit=limit,
        offset=offset,
        expense_type=expense_type,
        category_id=category_id,
        occurred_after=occurred_after,
        occurred_before=occurred_before,
    )
    return [ExpenseRead.model_validate(e) for e in expenses]


@router.get("/stats", response_model=ExpenseStats)
async def expense_stats_endpoint(
    session: SessionDep,
    current_user: CurrentUser,
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
) -> ExpenseStats:
    try:
        return await expense_stats(session, current_user.id, start=start, end=end)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/trends", response_model=ExpenseTrends)
async def expense_trends_endpoint(
    session: SessionDep,
    current_user: CurrentUser,
    year: Optional[int] = Query(default=None, ge=1, le=9999),
) -> ExpenseTrends:
    return await expense_trends(session, current_user.id, year or date.today().year)


@router.get("/{expense_id}", response_model=ExpenseRead)
async def get_expense_endpoint(
    expense_id: UUID, session: SessionDep, current_user: CurrentUser
) -> ExpenseRead:
    try:
        expense = await get_expense_for_user(session, current_user.id, expense_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ExpenseRead.model_validate(expense)


@router.patch("/{expense_id}", response_model=ExpenseRead)
async def update_expense_endpoint(
    expense_id: UUID,
    payload: ExpenseUpdate,
    session: SessionDep,
    current_user: CurrentUser,
) -> ExpenseRead:
    try:
        expense = await update_expense(session, current_user.id, expense_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ExpenseRead.model_validate(expense)


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense_endpoint(
    expense_id: UUID, session: SessionDep, current_user: CurrentUser
) -> None:
    try:
        await delete_expense(session, current_user.id, expense_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
