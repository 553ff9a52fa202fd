import json
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from starlette.requests import Request

from app.schemas.users import EmailCheckOut, is_valid_email
from app.services.errors import ProcedureError
from app.services.procedures.users import check_email_availability
from app.services.repository import get_repository

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=EmailCheckOut)
async def check_email(request: Request, repository=Depends(get_repository)):
    try:
        payload = json.loads(await request.body() or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request body"})

    if not isinstance(payload, dict):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid email format"})

    email = payload.get("email")
    if not email:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Email is required"})
    if not isinstance(email, str) or not is_valid_email(email.strip()):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid email format"})

    try:
        result = await check_email_availability(repository, email.strip())
    except ProcedureError as exc:
        logger.error("email check failed: %s", exc.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )
    return result
