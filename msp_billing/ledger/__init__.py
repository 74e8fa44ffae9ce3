"""Export Ledger: durable proof of billed entries."""

from msp_billing.ledger.export_ledger import ExportLedger, to_export_record

__all__ = ["ExportLedger", "to_export_record"]
