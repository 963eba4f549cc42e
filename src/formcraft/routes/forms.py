from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from formcraft.routes.common import current_owner, read_json_object

router = APIRouter()


@router.get("/api/forms", tags=["api/forms"])
async def api_list_forms(request: Request) -> JSONResponse:
    service = request.app.state.form_service
    forms = service.list_forms(current_owner(request))
    return JSONResponse([form.to_dict() for form in forms])


@router.post("/api/forms", tags=["api/forms"])
async def api_create_form(request: Request) -> JSONResponse:
    service = request.app.state.form_service
    owner_id = current_owner(request)
    payload = await read_json_object(request)
    form = service.create_form(owner_id, payload)
    return JSONResponse(form.to_dict(), status_code=201)


@router.get("/api/forms/{form_id}", tags=["api/forms"])
async def api_get_form(form_id: str, request: Request) -> JSONResponse:
    service = request.app.state.form_service
    form = service.get_form(current_owner(request), form_id)
    return JSONResponse(form.to_dict())


@router.put("/api/forms/{form_id}", tags=["api/forms"])
async def api_update_form(form_id: str, request: Request) -> JSONResponse:
    service = request.app.state.form_service
    owner_id = current_owner(request)
    payload = await read_json_object(request)
    form = service.update_form(owner_id, form_id, payload)
    return JSONResponse(form.to_dict())


@router.post("/api/forms/{form_id}/publish", tags=["api/forms"])
async def api_publish_form(form_id: str, request: Request) -> JSONResponse:
    service = request.app.state.form_service
    form = service.set_published(current_owner(request), form_id, True)
    return JSONResponse(form.to_dict())


@router.post("/api/forms/{form_id}/unpublish", tags=["api/forms"])
async def api_unpublish_form(form_id: str, request: Request) -> JSONResponse:
    service = request.app.state.form_service
    form = service.set_published(current_owner(request), form_id, False)
    return JSONResponse(form.to_dict())


@router.delete("/api/forms/{form_id}", tags=["api/forms"])
async def api_delete_form(form_id: str, request: Request) -> Response:
    service = request.app.state.form_service
    service.delete_form(current_owner(request), form_id)
    return Response(status_code=204)


@router.get("/api/forms/{form_id}/analytics", tags=["api/forms"])
async def api_form_analytics(form_id: str, request: Request, limit: int | None = None) -> JSONResponse:
    service = request.app.state.form_service
    report = service.analytics_report(current_owner(request), form_id, limit)
    return JSONResponse(report)


@router.get("/api/forms/{form_id}/submissions", tags=["api/forms"])
async def api_list_submissions(form_id: str, request: Request, limit: int | None = None) -> JSONResponse:
    service = request.app.state.form_service
    items = service.list_submissions(current_owner(request), form_id, limit)
    return JSONResponse(items)
