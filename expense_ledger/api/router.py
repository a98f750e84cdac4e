from fastapi import APIRouter

from . import categories, debts, expenses, imports

api_router = APIRouter()
api_router.include_router(categories.router, prefix="/categories", tags=["categories"])
api_router.include_router(expenses.router, prefix="/expenses", tags=["expenses"])
api_router.include_router(debts.router, prefix="/debts", tags=["debts"])
api_router.include_router(imports.router, prefix="/imports", tags=["imports"])
