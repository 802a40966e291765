"""
Base schemas with standardized configuration for records and API payloads.
"""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Strict base for request and response bodies: forbid extras, validate assignments."""

    model_config = ConfigDict(
        extra="forbid",
        validate_default=True,
        validate_assignment=True,
    )


class RecordModel(BaseModel):
    """
    Typed record returned by the service layer.

    Built from ORM rows with from_attributes, so only declared fields cross
    the store boundary; unknown keys in dict input are rejected.
    """

    model_config = ConfigDict(extra="forbid", from_attributes=True, frozen=True)
