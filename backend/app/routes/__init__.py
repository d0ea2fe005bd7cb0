from fastapi import APIRouter
from app.routes import bank_import, pending_subscriptions, settings, subscriptions

api_router = APIRouter()

api_router.include_router(bank_import.router, prefix="/bank-import", tags=["bank-import"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(pending_subscriptions.router, prefix="/pending-subscriptions", tags=["pending-subscriptions"])
api_router.include_router(settings.router, prefix="/settings", tags=["settings"])
