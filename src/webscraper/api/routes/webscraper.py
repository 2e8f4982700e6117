"""HTTP routes for the webscraper tool.

Routes:
    POST   /webscraper/extract   — scrape one URL for the current owner
    GET    /webscraper/usage     — current daily usage, without consuming quota

Owners are guests (identified by a ``guest_id`` cookie, minted on first
use) unless an upstream auth layer has set ``request.state.user_id``.  A
plan-specific daily budget may be set upstream as
``request.state.webscraper_limit``.
Typed scrape errors are mapped to HTTP statuses here; the service itself
knows nothing about HTTP.

Response envelopes::

    {"success": true,  "data": {"result": {...}, "usage": {...}}}
    {"success": false, "error": {"type": "quota_exceeded", "message": "...", "details": {...}}}
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from webscraper.api.dependencies import Owner, get_owner, get_webscraper_service, set_guest_cookie
from webscraper.api.limiter import limiter, scrape_rate_limit
from webscraper.core.exceptions import QuotaExceededError, WebscraperError
from webscraper.scraper.schemas import ScrapeInput
from webscraper.scraper.service import WebscraperService

router = APIRouter()

#: HTTP status per error code.
ERROR_STATUS: dict[str, int] = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "feature_disabled": status.HTTP_403_FORBIDDEN,
    "quota_exceeded": status.HTTP_403_FORBIDDEN,
    "robots_txt_blocked": status.HTTP_403_FORBIDDEN,
    "fetch_error": status.HTTP_502_BAD_GATEWAY,
    "parse_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_response(
    error_type: str,
    message: str,
    *,
    status_code: int,
    details: Any = None,
) -> JSONResponse:
    """Build the ``{"success": false, ...}`` error envelope."""
    error: dict[str, Any] = {"type": error_type, "message": message}
    if details is not None:
        error["details"] = details
    return JSONResponse({"success": False, "error": error}, status_code=status_code)


def _error_for(exc: WebscraperError) -> JSONResponse:
    details = None
    if isinstance(exc, QuotaExceededError):
        details = exc.usage.model_dump(mode="json", by_alias=True)
    return error_response(
        exc.code,
        exc.message,
        status_code=ERROR_STATUS.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        details=details,
    )


@router.post("/extract")
@limiter.limit(scrape_rate_limit)
async def extract(
    request: Request,
    payload: ScrapeInput,
    service: Annotated[WebscraperService, Depends(get_webscraper_service)],
    owner: Annotated[Owner, Depends(get_owner)],
) -> JSONResponse:
    """Scrape ``payload.url`` on behalf of the current owner.

    Args:
        request: The incoming HTTP request (used by the rate limiter).
        payload: Validated :class:`~webscraper.scraper.schemas.ScrapeInput`.
        service: Injected scrape service.
        owner: Resolved quota owner.

    Returns:
        Success envelope with the result and usage, or an error envelope.
    """
    try:
        scraped = await service.scrape(
            payload, owner.owner_type, owner.owner_id, limit=owner.limit
        )
    except WebscraperError as exc:
        response = _error_for(exc)
    else:
        response = JSONResponse(
            {"success": True, "data": scraped.model_dump(mode="json", by_alias=True)},
            status_code=status.HTTP_200_OK,
        )

    set_guest_cookie(response, owner, secure=request.url.scheme == "https")
    return response


@router.get("/usage")
async def usage(
    request: Request,
    service: Annotated[WebscraperService, Depends(get_webscraper_service)],
    owner: Annotated[Owner, Depends(get_owner)],
) -> JSONResponse:
    """Return the current owner's usage for today."""
    current = await service.get_usage(owner.owner_type, owner.owner_id, limit=owner.limit)
    response = JSONResponse(
        {"success": True, "data": current.model_dump(mode="json", by_alias=True)},
        status_code=status.HTTP_200_OK,
    )
    set_guest_cookie(response, owner, secure=request.url.scheme == "https")
    return response
