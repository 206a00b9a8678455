from typing import Any, cast

from fastapi import HTTPException, Request, status

from marquee_recommendation.context import DiscoveryContext


def _get_state_attr(request: Request, name: str, error_detail: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_detail,
        )
    return value


def get_ctx(request: Request) -> DiscoveryContext:
    return cast(
        DiscoveryContext,
        _get_state_attr(request, "ctx", "Discovery context not initialized"),
    )
