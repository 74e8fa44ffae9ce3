"""Customer Directory backed by the customers table.

Resolves a local customer to its accounting-system link and hourly rate.
A configured default rate applies to customers without their own rate.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from msp_billing.db.engine import session_scope, translate_db_errors
from msp_billing.db.tables import CustomerRow, new_id
from msp_billing.errors import CustomerNotFound
from msp_billing.models.customer import CustomerProfile

logger = logging.getLogger(__name__)


class CustomerDirectory:
    """Customer lookups and link/rate maintenance.

    Attributes:
        session_factory: SQLAlchemy session factory
        default_hourly_rate: Rate for customers without their own (optional)
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        default_hourly_rate: Optional[Decimal] = None,
    ):
        self.session_factory = session_factory
        self.default_hourly_rate = default_hourly_rate

    def _to_profile(self, row: CustomerRow) -> CustomerProfile:
        rate = row.hourly_rate if row.hourly_rate is not None else self.default_hourly_rate
        return CustomerProfile(
            customer_id=row.id,
            display_name=row.name,
            external_link=row.external_id,
            hourly_rate=rate,
        )

    def resolve(self, customer_id: str) -> CustomerProfile:
        """Resolve a customer to its link and rate.

        Raises:
            CustomerNotFound: If the customer does not exist
        """
        with translate_db_errors("resolve customer"):
            with session_scope(self.session_factory) as session:
                row = session.get(CustomerRow, customer_id)
                if row is None:
                    raise CustomerNotFound(f"Customer not found: {customer_id}")
                return self._to_profile(row)

    def resolve_many(self, customer_ids: Iterable[str]) -> Dict[str, CustomerProfile]:
        """Resolve several customers in one query. Unknown ids are omitted."""
        ids = list(set(customer_ids))
        if not ids:
            return {}
        with translate_db_errors("resolve customers"):
            with session_scope(self.session_factory) as session:
                rows = session.scalars(
                    select(CustomerRow).where(CustomerRow.id.in_(ids))
                ).all()
                return {row.id: self._to_profile(row) for row in rows}

    def list_customers(self) -> List[CustomerProfile]:
        """All customers, ordered by name."""
        with translate_db_errors("list customers"):
            with session_scope(self.session_factory) as session:
                rows = session.scalars(
                    select(CustomerRow).order_by(CustomerRow.name, CustomerRow.id)
                ).all()
                return [self._to_profile(row) for row in rows]

    def add_customer(
        self,
        name: str,
        hourly_rate: Optional[Decimal] = None,
        external_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> CustomerProfile:
        """Create a customer."""
        customer_id = customer_id or new_id()
        with translate_db_errors("add customer"):
            with session_scope(self.session_factory) as session:
                row = CustomerRow(
                    id=customer_id,
                    name=name,
                    hourly_rate=hourly_rate,
                    external_id=external_id,
                )
                session.add(row)
                session.flush()
                return self._to_profile(row)

    def link_customer(self, customer_id: str, external_id: Optional[str]) -> CustomerProfile:
        """Link a customer to an accounting-system contact (None unlinks).

        Raises:
            CustomerNotFound: If the customer does not exist
        """
        with translate_db_errors("link customer"):
            with session_scope(self.session_factory) as session:
                row = session.get(CustomerRow, customer_id)
                if row is None:
                    raise CustomerNotFound(f"Customer not found: {customer_id}")
                row.external_id = external_id
                session.flush()
                profile = self._to_profile(row)

        logger.info(f"Customer {customer_id} linked to accounting contact {external_id}")
        return profile

    def set_hourly_rate(
        self, customer_id: str, hourly_rate: Optional[Decimal]
    ) -> CustomerProfile:
        """Set or remove (None) a customer's own hourly rate.

        Raises:
            CustomerNotFound: If the customer does not exist
            ValueError: If the rate is not positive
        """
        if hourly_rate is not None and hourly_rate <= 0:
            raise ValueError(f"hourly_rate must be positive, got {hourly_rate}")
        with translate_db_errors("set hourly rate"):
            with session_scope(self.session_factory) as session:
                row = session.get(CustomerRow, customer_id)
                if row is None:
                    raise CustomerNotFound(f"Customer not found: {customer_id}")
                row.hourly_rate = hourly_rate
                session.flush()
                return self._to_profile(row)
