from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from collab_store.errors import StoreError


OpData = dict[str, Any]


class OpHeader(BaseModel):
    """The part of an op payload the store reads; everything else is opaque."""

    model_config = ConfigDict(extra="allow", strict=True)

    v: int = Field(ge=0)


@dataclass(frozen=True)
class OpWriteResult:
    op: OpData
    created: bool


def op_version(op_data: Mapping[str, Any]) -> int:
    if not isinstance(op_data, Mapping):
        raise StoreError(f"op payload must be a mapping, got {type(op_data).__name__}")
    try:
        return OpHeader.model_validate(dict(op_data)).v
    except ValidationError as e:
        raise StoreError(f"malformed op payload: {e.errors()[0]['msg']}") from e
