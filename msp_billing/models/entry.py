"""Time entry data model.

This module defines the TimeEntry model which represents one recorded span
of billable work as held by the Entry Store.
"""

import datetime as dt
from typing import Optional

from pydantic import Field, model_validator

from msp_billing.models.base import FrozenDataModel


class TimeEntry(FrozenDataModel):
    """Represents a single time entry.

    Attributes:
        id: Entry identifier
        customer_id: Customer the work is billed to
        duration_seconds: Duration of the work in seconds
        occurred_at: When the work started
        description: Optional free-text description
        ticket_number: Optional linked ticket number
        ticket_title: Optional linked ticket title
        project_name: Optional project the entry was booked on
        billed: Whether the entry has been billed
        export_record_id: Export record covering the entry, set once billed

    Example:
        >>> entry = TimeEntry(
        ...     id="e-1",
        ...     customer_id="c-1",
        ...     duration_seconds=3600,
        ...     occurred_at=dt.datetime(2024, 10, 1, 9, 0),
        ... )
        >>> entry.billed
        False
    """

    id: str = Field(..., min_length=1, description="Entry identifier")
    customer_id: str = Field(..., min_length=1, description="Customer reference")
    duration_seconds: int = Field(..., ge=0, description="Duration in seconds")
    occurred_at: dt.datetime = Field(..., description="Start of the work")
    description: Optional[str] = Field(None, description="Work description")
    ticket_number: Optional[str] = Field(None, description="Linked ticket number")
    ticket_title: Optional[str] = Field(None, description="Linked ticket title")
    project_name: Optional[str] = Field(None, description="Linked project name")
    billed: bool = Field(False, description="Whether the entry is billed")
    export_record_id: Optional[str] = Field(
        None, description="Export record that billed this entry"
    )

    @model_validator(mode="after")
    def validate_billed_reference(self) -> "TimeEntry":
        """Ensure billed and export_record_id agree.

        Raises:
            ValueError: If one is set without the other
        """
        if self.billed != (self.export_record_id is not None):
            raise ValueError(
                "billed must be True exactly when export_record_id is set "
                f"(billed={self.billed}, export_record_id={self.export_record_id!r})"
            )
        return self
