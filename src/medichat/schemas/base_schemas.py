# src/medichat/schemas/base_schemas.py
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime
from uuid import UUID


class BaseSchema(BaseModel):
    """Base schema with common configuration"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=True,
    )


class CamelInputSchema(BaseSchema):
    """Input accepting both camelCase (web client, model output) and snake_case keys"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class TimestampMixin(BaseSchema):
    created_at: Optional[datetime] = None


class IDMixin(BaseSchema):
    id: UUID


class OkResponse(BaseSchema):
    ok: bool = True
