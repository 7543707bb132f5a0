from fastapi import APIRouter
from backend.app.api.v1 import users, children, expenses, budgets, analytics, dashboard, requests

api_router = APIRouter()
api_router.include_router(users.router, prefix="/auth", tags=["auth"])
api_router.include_router(children.router, prefix="/children", tags=["children"])
api_router.include_router(expenses.router, prefix="/expenses", tags=["expenses"])
api_router.include_router(budgets.router, prefix="/budgets", tags=["budgets"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
api_router.include_router(requests.router, prefix="/requests", tags=["requests"])
