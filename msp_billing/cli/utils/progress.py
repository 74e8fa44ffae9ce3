"""Progress display for batch billing commands."""

from typing import Optional, Sequence

import click


def _current_customer(customer_id: Optional[str]) -> Optional[str]:
    return customer_id


def customer_progress(customer_ids: Sequence[str], label: str = "Billing customers"):
    """Click progress bar iterating over customer ids.

    The id being processed is shown next to the bar.

    Example:
        with customer_progress(targets, "Creating invoices") as customers:
            for customer_id in customers:
                ...
    """
    return click.progressbar(
        customer_ids,
        label=label,
        show_pos=True,
        item_show_func=_current_customer,
    )
