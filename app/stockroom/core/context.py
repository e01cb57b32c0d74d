from dataclasses import dataclass

from fastapi import Request


@dataclass(frozen=True)
class RequestContext:
    actor_id: str | None
    ip_address: str | None
    user_agent: str | None
    trace_id: str


def build_request_context(
    *,
    actor_id: str | None,
    ip_address: str | None,
    user_agent: str | None,
    trace_id: str,
) -> RequestContext:
    return RequestContext(
        actor_id=actor_id,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:255] or None,
        trace_id=trace_id,
    )


def get_request_context(request: Request) -> RequestContext:
    context = getattr(request.state, "context", None)
    if isinstance(context, RequestContext):
        return context
    return build_request_context(
        actor_id=getattr(request.state, "actor_id", None),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
        trace_id=getattr(request.state, "trace_id", ""),
    )
