import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from ..config import get_settings
from ..models.debt import DebtStatus, DebtType
from ..schemas.debt import DebtCreate, DebtCreateRequest, DebtRead, DebtSummary, DebtUpdate, RepaymentRequest
from ..services import (
    apply_repayment,
    create_debt,
    delete_debt,
    get_debt_for_user,
    list_debts,
    summarise_debts,
    update_debt,
)
from ..services.errors import ConflictError, NotFoundError, ValidationError
from .dependencies import CurrentUser, SessionDep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=DebtRead, status_code=status.HTTP_201_CREATED)
async def create_debt_endpoint(
    payload: DebtCreateRequest,
    session: SessionDep,
    current_user: CurrentUser,
) -> DebtRead:
    debt_payload = DebtCreate(user_id=current_user.id, **payload.model_dump())
    try:
        debt = await create_debt(session, debt_payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return DebtRead.model_validate(debt)


@router.get("", response_model=list[DebtRead])
async def list_debts_endpoint(
    session: SessionDep,
    current_user: CurrentUser,
    debt_type: Optional[DebtType] = Query(default=None, alias="type"),
    debt_status: Optional[DebtStatus] = Query(default=None, alias="status"),
) -> list[DebtRead]:
    debts = await list_debts(session, current_user.id, debt_type=debt_type, status=debt_status)
    return [DebtRead.model_validate(d) for d in debts]


@router.get("/summary", response_model=DebtSummary)
async def debt_summary_endpoint(session: SessionDep, current_user: CurrentUser) -> DebtSummary:
    debts = await list_debts(session, current_user.id)
    return summarise_debts(debts)


@router.get("/{debt_id}", response_model=DebtRead)
async def get_debt_endpoint(
    debt_id: UUID, session: SessionDep, current_user: CurrentUser
) -> DebtRead:
    try:
        debt = await get_debt_for_user(session, current_user.id, debt_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return DebtRead.model_validate(debt)


@router.patch("/{debt_id}", response_model=DebtRead)
async def update_debt_endpoint(
    debt_id: UUID,
    payload: DebtUpdate,
    session: SessionDep,
    current_user: CurrentUser,
) -> DebtRead:
    try:
        debt = await update_debt(session, current_user.id, debt_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return DebtRead.model_validate(debt)


@router.delete("/{debt_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_debt_endpoint(
    debt_id: UUID, session: SessionDep, current_user: CurrentUser
) -> None:
    try:
        await delete_debt(session, current_user.id, debt_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/{debt_id}/repay", response_model=DebtRead)
async def repay_debt_endpoint(
    debt_id: UUID,
    payload: RepaymentRequest,
    session: SessionDep,
    current_user: CurrentUser,
) -> DebtRead:
    attempts = get_settings().repayment_conflict_retries
    attempt = 1
    while True:
        try:
            debt = await apply_repayment(session, current_user.id, debt_id, payload)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except ConflictError as exc:
            if attempt >= attempts:
                raise HTTPException(status_code=409, detail=str(exc)) from exc
            attempt += 1
            logger.info("Retrying repayment on debt %s (attempt %d of %d)", debt_id, attempt, attempts)
            continue
        return DebtRead.model_validate(debt)
