from __future__ import annotations

import re
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


_CURRENCY_CODE = re.compile(r"^[A-Za-z]{3}$")


@dataclass
class BillingRequestContext:
    correlation_id: str
    tenant_id: str | None = None
    functional_currency: str | None = None
    user_id: str | None = None


def _currency_hint(request: Request) -> str | None:
    raw = (request.headers.get("x-functional-currency") or "").strip()
    if not _CURRENCY_CODE.match(raw):
        return None
    return raw.upper()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attaches the tenant and currency hints of a request to ``request.state.context``."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        request.state.context = BillingRequestContext(
            correlation_id=getattr(request.state, "correlation_id", None) or "",
            tenant_id=(request.headers.get("x-tenant-id") or "").strip() or None,
            functional_currency=_currency_hint(request),
        )
        response = await call_next(request)
        if request.state.context.correlation_id:
            response.headers["x-request-id"] = request.state.context.correlation_id
        return response
