"""
Base Schema Classes for Pydantic Models

This module provides base classes that handle common patterns like UUID serialization,
ensuring consistency across all response schemas.

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.

The invoicing screens read camelCase keys (professionalCharges, gst.cgstAmount, ...),
so invoice schemas use CamelSchema / CamelResponseSchema, which accept both
snake_case and camelCase on input and emit camelCase.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Features:
    - Automatically handles UUID → string serialization in JSON
    - Enables from_attributes for ORM compatibility
    - Consistent datetime serialization
    """
    model_config = ConfigDict(
        from_attributes=True,
        # Serialize UUIDs as strings in JSON output
        json_encoders={
            UUID: str,
            datetime: lambda v: v.isoformat() if v else None,
        },
        # Allow population by field name or alias
        populate_by_name=True,
    )


class CamelSchema(BaseModel):
    """
    Base class for create/input schemas, accepting snake_case or camelCase keys.

    These schemas accept string UUIDs from frontend and convert to UUID objects.
    No from_attributes needed since these don't read from ORM.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
        alias_generator=to_camel,
        populate_by_name=True,
    )


class CamelResponseSchema(BaseResponseSchema):
    """Response schema serialized with camelCase keys."""
    model_config = ConfigDict(
        from_attributes=True,
        json_encoders={
            UUID: str,
            datetime: lambda v: v.isoformat() if v else None,
        },
        populate_by_name=True,
        alias_generator=to_camel,
    )
