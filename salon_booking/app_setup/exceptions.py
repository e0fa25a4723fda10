"""
Gestionnaires d'exceptions utilisés par la factory.
- HTTPException: JSON {"detail": ...} standard
- CheckoutError: JSON {"detail", "code", "step", "retryable", ...} avec le statut propre à l'erreur
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from salon_booking.checkout.errors import CheckoutError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def json_http_errors(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(CheckoutError)
    async def checkout_errors(request: Request, exc: CheckoutError):
        logger.info("checkout.error path=%s code=%s step=%s", request.url.path, exc.code, exc.step)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())
