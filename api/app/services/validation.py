"""Input validation shared by every procedure.

Each procedure declares a pydantic model for its payload; ``parse_input`` unwraps
the optional ``{"input": ...}`` envelope, validates, and turns pydantic failures
into a :class:`ProcedureValidationError` listing every offending field.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from app.schemas.influencers import ENGAGEMENT_RATE_QUANTUM
from app.services.errors import FieldError, ProcedureValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

_VALUE_ERROR_PREFIXES = ("Value error, ", "Assertion failed, ")


def unwrap_envelope(raw: Any) -> Any:
    if raw is None:
        return {}
    if isinstance(raw, dict) and "input" in raw:
        inner = raw["input"]
        return {} if inner is None else inner
    return raw


def parse_input(model: type[ModelT], raw: Any) -> ModelT:
    payload = unwrap_envelope(raw)
    if not isinstance(payload, dict):
        raise ProcedureValidationError([FieldError(field="input", message="input must be an object")])
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ProcedureValidationError(field_errors_from(exc)) from exc


def field_errors_from(exc: ValidationError) -> list[FieldError]:
    errors: list[FieldError] = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "input"
        if error.get("type") == "missing":
            message = f"{field} is required"
        else:
            message = str(error.get("msg", "invalid value"))
            for prefix in _VALUE_ERROR_PREFIXES:
                if message.startswith(prefix):
                    message = message[len(prefix) :]
                    break
        errors.append(FieldError(field=field, message=message))
    return errors


def quantize_engagement_rate(value: float | int | str | Decimal) -> Decimal:
    """Fix an engagement rate to two decimals, rounding half up.

    Floats go through ``repr`` so ``37.455`` rounds as written (37.46) instead of
    as its binary approximation.
    """
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(ENGAGEMENT_RATE_QUANTUM, rounding=ROUND_HALF_UP)
