"""
Base schemas for all models.
"""

from pydantic import BaseModel, ConfigDict


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
    """
    Base for run configuration values.

    Configs are built once per request and passed into the classifiers;
    freezing them keeps a run from mutating its own inputs.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
    )
