"""Shared schema base classes."""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_json(self) -> dict[str, Any]:
        """JSON-safe dict with wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)


class ActionResult(BaseModel):
    """Response body for POST actions."""
    success: bool = True
    message: str
