import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.requests import Request

from app.core.context import RequestContext, get_request_context
from app.services.errors import FieldError, MethodNotSupportedError, ProcedureError, ProcedureValidationError
from app.services.procedures import campaigns, influencers, users
from app.services.procedures.registry import Procedure, ProcedureKind, lookup_procedure, merge_routers

router = APIRouter()
logger = logging.getLogger(__name__)

PROCEDURES: dict[str, Procedure] = merge_routers(campaigns.router, influencers.router, users.router)


@router.get("/{path}")
async def call_query(
    path: str,
    input_json: str | None = Query(default=None, alias="input"),
    ctx: RequestContext = Depends(get_request_context),
) -> JSONResponse:
    try:
        raw = _decode_json(input_json, source="input")
    except ProcedureValidationError as exc:
        return _error_response(path, exc)
    return await _dispatch(path, "query", ctx, raw)


@router.post("/{path}")
async def call_mutation(
    path: str,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
) -> JSONResponse:
    try:
        body = await request.body()
        raw = _decode_json(body.decode("utf-8") if body else None, source="body")
    except UnicodeDecodeError:
        return _error_response(path, ProcedureValidationError([FieldError(field="body", message="body must be UTF-8 JSON")]))
    except ProcedureValidationError as exc:
        return _error_response(path, exc)
    return await _dispatch(path, "mutation", ctx, raw)


async def _dispatch(path: str, kind: ProcedureKind, ctx: RequestContext, raw: Any) -> JSONResponse:
    try:
        procedure = lookup_procedure(PROCEDURES, path)
        if procedure.kind != kind:
            raise MethodNotSupportedError(
                f'Unsupported {"GET" if kind == "query" else "POST"} request to {procedure.kind} procedure "{path}"'
            )
        result = await procedure.handler(ctx, raw)
    except ProcedureError as exc:
        return _error_response(path, exc)
    return JSONResponse(content={"result": {"data": to_wire(result)}})


def to_wire(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [to_wire(item) for item in value]
    return value


def _decode_json(raw: str | None, *, source: str) -> Any:
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProcedureValidationError([FieldError(field=source, message=f"malformed JSON: {exc.msg}")]) from exc


def _error_response(path: str, exc: ProcedureError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("procedure failed path=%s code=%s message=%s", path, exc.code, exc.message)
    else:
        logger.info("procedure rejected path=%s code=%s message=%s", path, exc.code, exc.message)
    fields = [error.as_dict() for error in exc.errors] if isinstance(exc, ProcedureValidationError) else []
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "path": path,
                "fields": fields,
            }
        },
    )
