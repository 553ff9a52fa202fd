from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class Principal:
    user_id: str
    email: str | None = None
    role: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def parse_bearer_header(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None
