"""
HTTP client for the external accounting system (sevDesk REST API).

The engine treats the accounting system as an opaque service: it submits an
invoice and gets back an identifier, or a failure. Invoice creation is a
single request so the accounting system never holds a half-written invoice,
and it is never retried automatically. Status reads are idempotent and go
through the RetryHandler.
"""

import datetime as dt
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Union

import requests

from msp_billing.errors import ExternalServiceError
from msp_billing.models.billing import LineItem
from msp_billing.models.customer import AccountingContact
from msp_billing.models.export import CreatedInvoice, ExportStatus
from msp_billing.services.error_classifier import ErrorClassifier
from msp_billing.services.retry_handler import (
    CircuitBreakerError,
    RetryExhaustedException,
    RetryHandler,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://my.sevdesk.de/api/v1"

# sevDesk unity id for hours
UNITY_HOURS = 9

INVOICE_STATUS_DRAFT = 100
INVOICE_STATUS_OPEN = 200

# Invoice status codes (50 = deactivated is left unmapped)
STATUS_CODES: Dict[int, ExportStatus] = {
    100: ExportStatus.DRAFT,
    200: ExportStatus.SENT,
    750: ExportStatus.SENT,  # partially paid
    1000: ExportStatus.PAID,
}


class AccountingSystem(Protocol):
    """What the coordinator needs from an accounting system."""

    def create_invoice(
        self,
        customer_external_id: str,
        line_items: Sequence[LineItem],
        period_start: dt.date,
        period_end: dt.date,
    ) -> CreatedInvoice:
        ...

    def get_invoice_status(self, invoice_id: str) -> Optional[ExportStatus]:
        ...

    def list_contacts(self) -> List[AccountingContact]:
        ...

    def test_connection(self) -> str:
        ...


def format_period_label(period_start: dt.date, period_end: dt.date) -> str:
    """Period as shown on the invoice, e.g. '01.10.2024 - 31.10.2024'."""
    return f"{period_start.strftime('%d.%m.%Y')} - {period_end.strftime('%d.%m.%Y')}"


def map_invoice_status(code: Any) -> Optional[ExportStatus]:
    """Map an accounting-system status code to ExportStatus.

    Returns:
        The mapped status, or None for unknown or unparseable codes
    """
    try:
        return STATUS_CODES.get(int(code))
    except (TypeError, ValueError):
        return None


def _contact_id(external_id: str) -> Union[int, str]:
    return int(external_id) if external_id.isdigit() else external_id


def _first_object(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    # Single-object endpoints answer with either a dict or a one-element list
    if not isinstance(payload, dict):
        return None
    objects = payload.get("objects")
    if isinstance(objects, list):
        return objects[0] if objects else None
    return objects


class SevdeskClient:
    """
    sevDesk API client with error classification and retried reads.

    Features:
    - Token authentication on a shared requests.Session
    - Invoice header and positions submitted in one request
    - Per-request timeout (the cancellation point of invoice creation)
    - Failures wrapped as ExternalServiceError with retry/outcome verdicts

    Example:
        >>> client = SevdeskClient(api_token="secret")
        >>> created = client.create_invoice("4711", items, start, end)
        >>> created.invoice_number
        'RE-1001'
    """

    def __init__(
        self,
        api_token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        tax_rate: Decimal = Decimal("19.0"),
        payment_terms_days: int = 14,
        create_as_final: bool = False,
        currency: str = "EUR",
        retry_handler: Optional[RetryHandler] = None,
        session: Optional[requests.Session] = None,
        today: Callable[[], dt.date] = dt.date.today,
    ):
        """
        Initialize the client.

        Args:
            api_token: sevDesk API token
            api_url: Base URL of the API
            timeout: Per-request timeout in seconds
            tax_rate: Tax percentage passed through on every invoice
            payment_terms_days: Days until payment is due
            create_as_final: Open the invoice instead of creating a draft
            currency: Invoice currency
            retry_handler: Retry handler for idempotent reads
            session: requests session (a new one if omitted)
            today: Returns the invoice date
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.tax_rate = tax_rate
        self.payment_terms_days = payment_terms_days
        self.create_as_final = create_as_final
        self.currency = currency
        self.retry_handler = retry_handler or RetryHandler()
        self.classifier = ErrorClassifier()
        self.today = today

        self._session = session or requests.Session()
        self._session.headers.update(
            {"Authorization": api_token, "Content-Type": "application/json"}
        )

    @classmethod
    def from_config(cls, config) -> "SevdeskClient":
        """
        Build a client from BillingSystemConfig.

        Raises:
            ValueError: If no API token is configured
        """
        if not config.accounting_configured:
            raise ValueError("ACCOUNTING_API_TOKEN is not configured")
        return cls(
            api_token=config.accounting_api_token,
            api_url=config.accounting_api_url,
            timeout=config.accounting_timeout,
            tax_rate=config.tax_rate,
            payment_terms_days=config.payment_terms_days,
            create_as_final=config.create_as_final,
            currency=config.currency,
            retry_handler=RetryHandler(
                max_retries=config.max_retries, base_delay=config.retry_delay
            ),
        )

    def _request(
        self, method: str, endpoint: str, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        url = f"{self.api_url}{endpoint}"
        logger.debug(f"sevDesk API call: {method} {url}")

        response = self._session.request(
            method, url, json=payload, timeout=self.timeout
        )
        if not response.ok:
            logger.error(
                f"sevDesk API error: {response.status_code} {response.reason}: "
                f"{response.text[:500]}"
            )
        response.raise_for_status()
        return response.json()

    def _wrap_error(self, exception: Exception, action: str) -> ExternalServiceError:
        verdict = self.classifier.assess(exception)
        detail = _api_error_message(exception)

        message = f"Failed to {action}: {verdict.description}"
        if detail:
            message = f"{message}: {detail}"

        hint = None
        if verdict.outcome_unknown:
            hint = (
                "The accounting system may have processed the request; check "
                "it for the invoice before trying again"
            )
        return ExternalServiceError(
            message,
            retryable=verdict.retryable,
            outcome_unknown=verdict.outcome_unknown,
            status_code=verdict.status_code,
            recovery_hint=hint,
        )

    def _read(self, endpoint: str, action: str) -> Dict[str, Any]:
        try:
            return self.retry_handler.execute_with_retry(self._request, "GET", endpoint)
        except RetryExhaustedException as e:
            raise ExternalServiceError(
                f"Failed to {action}: {e}", retryable=True
            ) from e.last_exception
        except CircuitBreakerError as e:
            raise ExternalServiceError(
                f"Failed to {action}: accounting system unavailable ({e})",
                retryable=True,
            ) from e
        except (requests.RequestException, ValueError) as e:
            raise self._wrap_error(e, action) from e

    def build_invoice_payload(
        self,
        customer_external_id: str,
        line_items: Sequence[LineItem],
        period_start: dt.date,
        period_end: dt.date,
    ) -> Dict[str, Any]:
        """
        Build the saveInvoice request body.

        Args:
            customer_external_id: sevDesk contact id
            line_items: Invoice positions
            period_start: First day of the billed period
            period_end: Last day of the billed period

        Returns:
            JSON-serializable request body
        """
        period_label = format_period_label(period_start, period_end)
        tax_rate = float(self.tax_rate)

        positions: List[Dict[str, Any]] = [
            {
                "objectName": "InvoicePos",
                "mapAll": True,
                "quantity": float(item.quantity),
                "price": float(item.unit_price),
                "name": item.name,
                "unity": {"id": UNITY_HOURS, "objectName": "Unity"},
                "taxRate": tax_rate,
                "positionNumber": index,
            }
            for index, item in enumerate(line_items, start=1)
        ]

        return {
            "invoice": {
                "objectName": "Invoice",
                "mapAll": True,
                "contact": {
                    "id": _contact_id(customer_external_id),
                    "objectName": "Contact",
                },
                "invoiceDate": self.today().isoformat(),
                "header": f"Services {period_label}",
                "headText": f"Services rendered in the period {period_label}",
                "footText": "Thank you for your business.",
                "timeToPay": self.payment_terms_days,
                "discount": 0,
                "status": (
                    INVOICE_STATUS_OPEN if self.create_as_final else INVOICE_STATUS_DRAFT
                ),
                "taxRate": tax_rate,
                "taxType": "default",
                "invoiceType": "RE",
                "currency": self.currency,
            },
            "invoicePosSave": positions,
            "invoicePosDelete": None,
            "takeDefaultAddress": True,
        }

    def create_invoice(
        self,
        customer_external_id: str,
        line_items: Sequence[LineItem],
        period_start: dt.date,
        period_end: dt.date,
    ) -> CreatedInvoice:
        """
        Create an invoice with all its positions.

        Args:
            customer_external_id: sevDesk contact id
            line_items: Invoice positions (at least one)
            period_start: First day of the billed period
            period_end: Last day of the billed period

        Returns:
            CreatedInvoice with the invoice id and number

        Raises:
            ValueError: If line_items is empty
            ExternalServiceError: If the request fails or the response is unusable
        """
        if not line_items:
            raise ValueError("An invoice needs at least one line item")

        payload = self.build_invoice_payload(
            customer_external_id, line_items, period_start, period_end
        )
        try:
            response = self._request("POST", "/Invoice/Factory/saveInvoice", payload)
            invoice = response["objects"]["invoice"]
            invoice_id = str(invoice["id"])
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            raise self._wrap_error(e, "create invoice") from e

        invoice_number = invoice.get("invoiceNumber") or f"RE-{invoice_id}"
        logger.info(
            f"Created invoice {invoice_number} (id {invoice_id}) with "
            f"{len(line_items)} positions for contact {customer_external_id}"
        )
        return CreatedInvoice(invoice_id=invoice_id, invoice_number=invoice_number)

    def get_invoice_status(self, invoice_id: str) -> Optional[ExportStatus]:
        """
        Read the current status of an invoice.

        Args:
            invoice_id: sevDesk invoice id

        Returns:
            Mapped ExportStatus, or None if the status code is unknown

        Raises:
            ExternalServiceError: If the invoice cannot be read
        """
        payload = self._read(f"/Invoice/{invoice_id}", f"read invoice {invoice_id}")
        invoice = _first_object(payload)
        if not invoice:
            raise ExternalServiceError(
                f"Invoice {invoice_id} not found in the accounting system",
                retryable=False,
            )

        status = map_invoice_status(invoice.get("status"))
        if status is None:
            logger.warning(
                f"Unknown status {invoice.get('status')!r} for invoice {invoice_id}"
            )
        return status

    def list_contacts(self) -> List[AccountingContact]:
        """
        List the contacts customers can be linked to, ordered by name.

        Contacts without a company name are named after the person.

        Raises:
            ExternalServiceError: If the contacts cannot be read
        """
        payload = self._read("/Contact?depth=1&embed=category", "list contacts")
        objects = payload.get("objects") if isinstance(payload, dict) else None
        if not isinstance(objects, list):
            raise ExternalServiceError(
                "Unexpected contact list from the accounting system", retryable=False
            )

        contacts = [
            _to_contact(item)
            for item in objects
            if isinstance(item, dict) and item.get("id")
        ]
        contacts.sort(key=lambda contact: (contact.name.casefold(), contact.contact_id))
        logger.debug(f"Read {len(contacts)} contacts from the accounting system")
        return contacts

    def test_connection(self) -> str:
        """
        Check the credentials.

        Returns:
            Company name of the connected account

        Raises:
            ExternalServiceError: If the account cannot be read
        """
        client = _first_object(self._read("/SevClient", "read account"))
        if client and client.get("name"):
            return client["name"]

        user = _first_object(self._read("/SevUser", "read user"))
        if not user:
            raise ExternalServiceError(
                "No user data returned by the accounting system", retryable=False
            )
        return (
            (user.get("sevClient") or {}).get("name")
            or user.get("username")
            or "Connected"
        )


def _to_contact(item: Dict[str, Any]) -> AccountingContact:
    name = item.get("name") or " ".join(
        part for part in (item.get("surename"), item.get("familyname")) if part
    )
    category = item.get("category")
    return AccountingContact(
        contact_id=str(item["id"]),
        name=name,
        customer_number=item.get("customerNumber") or None,
        category=category.get("name") if isinstance(category, dict) else None,
        email=item.get("email") or None,
    )


def _api_error_message(exception: Exception) -> Optional[str]:
    """Error message from a sevDesk error body, if the response carries one."""
    response = getattr(exception, "response", None)
    if response is None:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return body.get("message")
