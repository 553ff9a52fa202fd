import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Header
from starlette.requests import Request

from app.core.auth import Principal
from app.core.config import Settings, get_settings
from app.core.security import resolve_principal
from app.services.errors import UnauthorizedError
from app.services.repository import get_repository

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RequestContext:
    """Per-request view handed to every procedure.

    The repository is the process-wide handle; only the principal differs between
    requests.
    """

    principal: Principal | None
    repository: Any

    @property
    def user_id(self) -> str | None:
        return self.principal.user_id if self.principal is not None else None

    def require_principal(self) -> Principal:
        if self.principal is None:
            raise UnauthorizedError("Unauthorized - No user found")
        return self.principal


async def get_request_context(
    request: Request,
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> RequestContext:
    try:
        principal = await resolve_principal(
            settings=settings,
            authorization=authorization,
            cookies=request.cookies,
        )
    except Exception:  # identity failures never fail the request
        logger.exception("identity resolution failed; continuing anonymously")
        principal = None
    return RequestContext(principal=principal, repository=repository)
