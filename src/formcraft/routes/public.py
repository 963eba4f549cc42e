from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from formcraft.routes.common import read_json_object

router = APIRouter()


@router.get("/api/public/forms/{slug}", tags=["public"])
async def public_form(slug: str, request: Request) -> JSONResponse:
    service = request.app.state.submission_service
    return JSONResponse(service.public_view(slug))


@router.post("/api/public/forms/{slug}/submit", tags=["public"])
async def public_submit(slug: str, request: Request) -> JSONResponse:
    service = request.app.state.submission_service
    payload = await read_json_object(request)
    outcome = await service.submit(
        slug,
        payload,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return JSONResponse(outcome.to_dict(), status_code=201 if outcome.accepted else 400)
