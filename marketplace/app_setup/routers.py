"""
Registre central des routers (payments, tax, health).
"""
from fastapi import FastAPI

from marketplace.payments import views as payments_views
from marketplace.tax import views as tax_views
from marketplace.health.router import router as health_router


def register_routers(app: FastAPI) -> None:
    app.include_router(payments_views.router)
    app.include_router(tax_views.router)
    # Health & monitoring
    app.include_router(health_router)
