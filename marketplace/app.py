# module marketplace.app
import logging

from fastapi import FastAPI

from marketplace.app_setup.lifespan import lifespan
from marketplace.app_setup.middlewares import register_basic_middlewares, register_security_middleware
from marketplace.app_setup.exceptions import register_exception_handlers
from marketplace.app_setup.routers import register_routers


def create_app() -> FastAPI:
    """
    Construit l'app FastAPI avec le lifespan et enregistre:
      - middlewares de base et en-têtes de sécurité
      - gestionnaires d'exceptions du pipeline checkout
      - routers (payments, tax, health)
    """
    app = FastAPI(title="Marketplace checkout backend", lifespan=lifespan)
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    logging.getLogger(__name__).debug("app created routes=%s", len(app.routes))
    return app


app = create_app()
