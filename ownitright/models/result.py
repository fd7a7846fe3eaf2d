"""Typed operation results returned across view boundaries."""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict

from ownitright.utils.errors import OwnItRightError


class OperationResult(BaseModel):
    """Outcome of a mutation: data on success, the typed error otherwise."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    ok: bool
    data: Any = None
    error: Optional[OwnItRightError] = None

    @classmethod
    def success(cls, data: Any = None) -> "OperationResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: OwnItRightError) -> "OperationResult":
        return cls(ok=False, error=error)

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None
