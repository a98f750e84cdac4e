from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from ..schemas.category import CategoryCreateRequest, CategoryRead, CategoryStat, CategoryUpdate
from ..services import (
    category_breakdown,
    create_category,
    delete_category,
    ensure_default_categories,
    get_category_for_user,
    list_categories,
    update_category,
)
from ..services.errors import ConflictError, NotFoundError, ProtectedCategoryError, ValidationError
from .dependencies import CurrentUser, SessionDep

router = APIRouter()


@router.get("", response_model=list[CategoryRead])
async def list_categories_endpoint(
    session: SessionDep, current_user: CurrentUser
) -> list[CategoryRead]:
    categories = await list_categories(session, current_user.id)
    return [CategoryRead.model_validate(c) for c in categories]


@router.post("", response_model=CategoryRead, status_code=status.HTTP_201_CREATED)
async def create_category_endpoint(
    payload: CategoryCreateRequest,
    session: SessionDep,
    current_user: CurrentUser,
) -> CategoryRead:
    try:
        category = await create_category(
            session, current_user.id, payload.name, color=payload.color, icon=payload.icon
        )
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CategoryRead.model_validate(category)


@router.post("/defaults", response_model=list[CategoryRead])
async def add_default_categories_endpoint(
    session: SessionDep, current_user: CurrentUser
) -> list[CategoryRead]:
    """Create the built-in categories the user is missing; returns only the new ones."""
    try:
        created = await ensure_default_categories(session, current_user.id)
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return [CategoryRead.model_validate(c) for c in created]


@router.get("/stats", response_model=list[CategoryStat])
async def category_stats_endpoint(
    session: SessionDep,
    current_user: CurrentUser,
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
) -> list[CategoryStat]:
    try:
        return await category_breakdown(session, current_user.id, start=start, end=end)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/{category_id}", response_model=CategoryRead)
async def get_category_endpoint(
    category_id: UUID, session: SessionDep, current_user: CurrentUser
) -> CategoryRead:
    try:
        category = await get_category_for_user(session, current_user.id, category_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return CategoryRead.model_validate(category)


@router.patch("/{category_id}", response_model=CategoryRead)
async def update_category_endpoint(
    category_id: UUID,
    payload: CategoryUpdate,
    session: SessionDep,
    current_user: CurrentUser,
) -> CategoryRead:
    try:
        category = await update_category(session, current_user.id, category_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ProtectedCategoryError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CategoryRead.model_validate(category)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category_endpoint(
    category_id: UUID, session: SessionDep, current_user: CurrentUser
) -> None:
    try:
        await delete_category(session, current_user.id, category_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ProtectedCategoryError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
