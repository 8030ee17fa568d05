"""
Gestionnaires d'exceptions.
- CheckoutError (et sous-classes): code HTTP porté par l'exception, body {"detail": message}.
- Les HTTPException FastAPI gardent leur rendu JSON standard.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from marketplace.payments.errors import CheckoutError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        if exc.status_code >= 500:
            logger.error("%s %s failed status=%s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
