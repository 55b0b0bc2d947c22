"""Response envelopes shared by every endpoint."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for API payloads: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    """Uniform success body: {success: true, data?, message?}."""

    success: bool = True
    data: T | None = None
    message: str | None = None


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Uniform error body: {success: false, message, errors?}."""

    success: bool = False
    message: str = Field(..., description="Client-safe error message")
    errors: list[FieldError] | None = None
