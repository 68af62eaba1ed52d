"""Shared Pydantic schemas for theorem-shop."""

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API bodies: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "theorem-shop"


class ErrorResponse(CamelModel):
    error: str
    code: str
    retry_after_seconds: Optional[int] = None
