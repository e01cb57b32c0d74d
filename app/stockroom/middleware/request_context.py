from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.stockroom.core.context import build_request_context
from app.stockroom.core.security import actor_from_authorization


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        claims = actor_from_authorization(request.headers.get("Authorization"))
        request.state.actor_id = claims.sub if claims else None

        request.state.context = build_request_context(
            actor_id=request.state.actor_id,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("User-Agent"),
            trace_id=getattr(request.state, "trace_id", ""),
        )

        return await call_next(request)
