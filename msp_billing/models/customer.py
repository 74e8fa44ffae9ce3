"""Customer data models.

A CustomerProfile is what the Customer Directory resolves a local customer
to: its display name, its link into the external accounting system (if any)
and its hourly rate (if any).
"""

from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from msp_billing.models.base import FrozenDataModel


class CustomerProfile(FrozenDataModel):
    """Billing-relevant view of a customer.

    Attributes:
        customer_id: Local customer identifier
        display_name: Name shown to operators and used for ordering
        external_link: Contact id in the accounting system, if linked
        hourly_rate: Hourly rate, or None when no rate is configured

    Example:
        >>> profile = CustomerProfile(
        ...     customer_id="c-1",
        ...     display_name="Acme",
        ...     external_link="4711",
        ...     hourly_rate=Decimal("95.00"),
        ... )
        >>> profile.is_linked
        True
    """

    customer_id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    external_link: Optional[str] = Field(None)
    hourly_rate: Optional[Decimal] = Field(None)

    @field_validator("hourly_rate")
    @classmethod
    def validate_rate_positive(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        """A configured rate must be positive."""
        if v is not None and v <= 0:
            raise ValueError(f"hourly_rate must be positive, got {v}")
        return v

    @field_validator("external_link")
    @classmethod
    def blank_link_is_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty or whitespace-only link as not linked."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def is_linked(self) -> bool:
        return self.external_link is not None


class AccountingContact(FrozenDataModel):
    """A contact of the accounting system that a customer can be linked to.

    Attributes:
        contact_id: Id to pass to link-customer
        name: Company name, or the person's full name
        customer_number: Customer number in the accounting system
        category: Contact category name (e.g. "Kunde")
        email: Contact email, if known
    """

    contact_id: str = Field(..., min_length=1)
    name: str = ""
    customer_number: Optional[str] = None
    category: Optional[str] = None
    email: Optional[str] = None
