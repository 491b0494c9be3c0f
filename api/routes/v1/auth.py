"""
api/routes/v1/auth.py -- Identity-provider authorize callback.

Routes:
  POST /api/v1/auth/authorize  -- email/password -> identity projection

Security:
  Rate-limited per client IP (AUTHORIZE_RATE_LIMIT, default 10/minute). The
      limit string is read from settings on each request; @limiter.limit sits
      under @router.post so the router registers the limited function.
  Enumeration safety: unknown email, credential-less identity and wrong
      password all return the same 401 body. The resolver never reveals the
      reason on this path.
  A store outage returns 503 store_unavailable, so operators and clients can
      tell it apart from a wrong password.
  Cache-Control: no-store on every response from this route.

The handler is a plain def, not async def: FastAPI runs it in the worker
thread pool, keeping bcrypt's CPU time off the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import AuthorizeRequest, AuthorizeResponse, ErrorDetail, ErrorResponse
from auth.errors import InvalidCredentials, StoreUnavailable
from auth.resolver import AuthorizationResolver
from core.config import get_settings

router = APIRouter()


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/authorize", response_model=AuthorizeResponse)
@limiter.limit(lambda: get_settings().authorize_rate_limit)
def authorize(request: Request, body: AuthorizeRequest) -> JSONResponse:
    """Authenticate an email/password pair for the identity provider.

    Returns the identity projection {id, email, name, image, role} on success.
    """
    resolver: AuthorizationResolver = request.app.state.resolver
    try:
        projection = resolver.authenticate(body.email, body.password)
    except InvalidCredentials:
        return _error(401, "invalid_credentials", "Invalid email or password.")
    except StoreUnavailable:
        return _error(503, "store_unavailable", "Authentication is temporarily unavailable.")

    resp = JSONResponse(status_code=200, content=AuthorizeResponse.from_projection(projection).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp
