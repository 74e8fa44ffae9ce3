"""Base model for all data models in the billing reconciliation engine.

This module provides a base Pydantic model with common configuration
and helper methods for serialization/deserialization.
"""

from pydantic import BaseModel, ConfigDict


class BaseDataModel(BaseModel):
    """Base class for all data models.

    Provides common configuration for:
    - Validation with type checking
    - Serialization to/from dictionaries
    - Arbitrary types support for dates, datetimes, decimals

    Example:
        >>> class Customer(BaseDataModel):
        ...     name: str
        >>> Customer(name="Acme").model_dump()
        {'name': 'Acme'}
    """

    model_config = ConfigDict(
        # Allow arbitrary types like Decimal, date, datetime
        arbitrary_types_allowed=True,
        # Validate on assignment to catch errors early
        validate_assignment=True,
        strict=False,
        extra="forbid",
        frozen=False,
    )


class FrozenDataModel(BaseDataModel):
    """Immutable variant for derived read models and durable records."""

    model_config = ConfigDict(frozen=True)
