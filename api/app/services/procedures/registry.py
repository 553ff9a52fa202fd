from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from app.services.errors import ConflictError, DatabaseError, ProcedureNotFoundError
from app.services.repository import RepositoryConflictError, RepositoryError

if TYPE_CHECKING:
    from app.core.context import RequestContext

logger = logging.getLogger(__name__)

ProcedureKind = Literal["query", "mutation"]
Handler = Callable[["RequestContext", Any], Awaitable[Any]]


@dataclass(slots=True, frozen=True)
class Procedure:
    path: str
    kind: ProcedureKind
    handler: Handler


class ProcedureRouter:
    """Collects the procedures of one resource under ``<namespace>.<action>``."""

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace
        self.procedures: dict[str, Procedure] = {}

    def query(self, action: str) -> Callable[[Handler], Handler]:
        return self._register(action, "query")

    def mutation(self, action: str) -> Callable[[Handler], Handler]:
        return self._register(action, "mutation")

    def _register(self, action: str, kind: ProcedureKind) -> Callable[[Handler], Handler]:
        path = f"{self.namespace}.{action}"

        def decorator(handler: Handler) -> Handler:
            if path in self.procedures:
                raise ValueError(f"procedure already registered: {path}")
            self.procedures[path] = Procedure(path=path, kind=kind, handler=handler)
            return handler

        return decorator


def merge_routers(*routers: ProcedureRouter) -> dict[str, Procedure]:
    merged: dict[str, Procedure] = {}
    for router in routers:
        for path, procedure in router.procedures.items():
            if path in merged:
                raise ValueError(f"procedure already registered: {path}")
            merged[path] = procedure
    return merged


def lookup_procedure(procedures: dict[str, Procedure], path: str) -> Procedure:
    procedure = procedures.get(path)
    if procedure is None:
        raise ProcedureNotFoundError(f'No "{path}" procedure found')
    return procedure


@asynccontextmanager
async def translate_store_errors(*, conflict_message: str | None = None) -> AsyncIterator[None]:
    """Re-raise repository failures as procedure errors.

    Unique-constraint violations become ``ConflictError`` when the caller names a
    conflict message; everything else is wrapped in ``DatabaseError`` with the
    original message kept.
    """
    try:
        yield
    except RepositoryConflictError as exc:
        if conflict_message is not None:
            raise ConflictError(conflict_message) from exc
        logger.error("store conflict: %s", exc)
        raise DatabaseError(str(exc)) from exc
    except RepositoryError as exc:
        logger.error("store failure: %s", exc)
        raise DatabaseError(str(exc)) from exc
