"""V1 API router aggregation."""

from fastapi import APIRouter

from customsdesk.api.v1.agreements import router as agreements_router
from customsdesk.api.v1.auth import router as auth_router
from customsdesk.api.v1.companies import router as companies_router
from customsdesk.api.v1.setup import router as setup_router
from customsdesk.api.v1.subscriptions import quota_router
from customsdesk.api.v1.subscriptions import router as subscriptions_router
from customsdesk.api.v1.system import router as system_router
from customsdesk.api.v1.transactions import router as transactions_router
from customsdesk.api.v1.users import router as users_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(setup_router)
v1_router.include_router(auth_router)
v1_router.include_router(companies_router)
v1_router.include_router(users_router)
v1_router.include_router(subscriptions_router)
v1_router.include_router(quota_router)
v1_router.include_router(agreements_router)
v1_router.include_router(transactions_router)
v1_router.include_router(system_router)
