"""
Gestionnaires d'exceptions enregistrés par la factory.
- CheckoutError: JSON {message, kind[, payload]} avec le code associé à la famille d'erreur.
- HTTPException: 401/403 sur page HTML (hors /api) -> redirection /auth; sinon JSON {detail}.
- RequestValidationError: 422 {detail} sans renvoyer la valeur reçue (NaN/Infinity non sérialisables).
"""
import logging
import urllib.parse

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.status import HTTP_303_SEE_OTHER

from farmvet.checkout.errors import CheckoutError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        logger.info("checkout error path=%s kind=%s message=%s", request.url.path, exc.kind.value, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        detail = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=422, content={"detail": detail})

    @app.exception_handler(HTTPException)
    async def html_redirect_on_auth_errors(request: Request, exc: HTTPException):
        if exc.status_code in (401, 403):
            accept = (request.headers.get("accept") or "").lower()
            is_api = request.url.path.startswith("/api/")
            if "text/html" in accept and not is_api:
                detail = str(getattr(exc, "detail", "")) or (
                    "Veuillez vous connecter" if exc.status_code == 401 else "Accès interdit"
                )
                msg = urllib.parse.quote_plus(detail)
                return RedirectResponse(url=f"/auth?error={msg}", status_code=HTTP_303_SEE_OTHER)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
