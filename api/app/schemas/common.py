from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Row ids and counters are int4 columns.
INT4_MAX = 2_147_483_647

RowId = Annotated[int, Field(strict=True, ge=1, le=INT4_MAX)]


class CamelModel(BaseModel):
    """Wire models use camelCase keys; Python code uses snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def strip_text(value: object) -> object:
    if isinstance(value, str):
        return value.strip()
    return value


class IdInput(CamelModel):
    id: RowId
