"""
Base schemas and mixins for all models.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class FrozenSchema(BaseModel):
    """Immutable record passed between pipeline stages."""
    model_config = ConfigDict(
        from_attributes=True,
        frozen=True
    )


class CamelSchema(BaseSchema):
    """
    Schema accepting camelCase or snake_case keys.

    Caller-facing option bags arrive from JSON clients in camelCase;
    internal code uses field names.
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True,
        alias_generator=to_camel,
        populate_by_name=True
    )
