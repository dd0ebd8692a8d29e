"""
Audit logging for money- and weight-changing operations.

Every posting, balance repair and reconciliation status change is written as
one JSON line to the "audit" logger. Where those lines are stored is up to the
configured log handlers.
"""
import logging
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Dict

# Separate logger for audit events (can be shipped to centralized logging)
audit_logger = logging.getLogger("audit")


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _emit(level: int, log_entry: Dict[str, Any]) -> None:
    log_entry.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    audit_logger.log(level, json.dumps(log_entry, default=_json_default))


class AuditLog:
    """Central audit logging for ledger and reconciliation events."""

    @staticmethod
    def log_invoice_posted(
        invoice_id: int,
        invoice_number: str,
        customer_id: int,
        final_amount: Decimal,
        previous_balance: Decimal,
        current_balance: Decimal,
    ):
        """
        Log a committed invoice (debit).

        Usage:
            AuditLog.log_invoice_posted(12, "202505280003", 4, Decimal("150.00"), Decimal("0"), Decimal("150.00"))
        """
        _emit(logging.INFO, {
            "event_type": "ledger.invoice_posted",
            "invoice_id": invoice_id,
            "invoice_number": invoice_number,
            "customer_id": customer_id,
            "final_amount": final_amount,
            "previous_balance": previous_balance,
            "current_balance": current_balance,
        })

    @staticmethod
    def log_payment_posted(
        payment_id: int,
        customer_id: int,
        amount: Decimal,
        previous_balance: Decimal,
        new_balance: Decimal,
        invoice_id: Optional[int] = None,
    ):
        """Log a committed payment (credit)."""
        log_entry = {
            "event_type": "ledger.payment_posted",
            "payment_id": payment_id,
            "customer_id": customer_id,
            "amount": amount,
            "previous_balance": previous_balance,
            "new_balance": new_balance,
        }
        if invoice_id is not None:
            log_entry["invoice_id"] = invoice_id
        _emit(logging.INFO, log_entry)

    @staticmethod
    def log_overpayment(
        customer_id: int,
        amount: Decimal,
        balance: Decimal,
        excess: Decimal,
    ):
        """
        Log a payment that exceeded the balance at posting time.

        The excess is not carried as credit; this line is the only trace of it
        until the balance auditor recomputes the customer.
        """
        _emit(logging.WARNING, {
            "event_severity": "WARNING",
            "event_type": "ledger.overpayment",
            "customer_id": customer_id,
            "amount": amount,
            "balance_before": balance,
            "excess": excess,
        })

    @staticmethod
    def log_balance_repaired(
        customer_id: int,
        old_balance: Decimal,
        new_balance: Decimal,
        drift: Decimal,
    ):
        """Log a cached balance overwritten by the auditor."""
        _emit(logging.WARNING, {
            "event_severity": "WARNING",
            "event_type": "ledger.balance_repaired",
            "customer_id": customer_id,
            "old_balance": old_balance,
            "new_balance": new_balance,
            "drift": drift,
        })

    @staticmethod
    def log_reconciliation(
        action: str,  # "created", "recalculated", "weights_corrected"
        reconciliation_id: int,
        truck_id: int,
        changes: Optional[Dict[str, Any]] = None,
    ):
        """
        Log reconciliation writes.

        Usage:
            AuditLog.log_reconciliation("created", 7, 2, changes={"wastage_percentage": "5.00"})
        """
        log_entry = {
            "event_type": f"reconciliation.{action}",
            "reconciliation_id": reconciliation_id,
            "truck_id": truck_id,
        }
        if changes:
            log_entry["changes"] = changes
        _emit(logging.INFO, log_entry)

    @staticmethod
    def log_status_change(
        reconciliation_id: int,
        old_status: str,
        new_status: str,
        reason: Optional[str] = None,
    ):
        """Log reconciliation status transitions (investigation flags included)."""
        log_entry = {
            "event_type": "reconciliation.status_changed",
            "reconciliation_id": reconciliation_id,
            "old_status": old_status,
            "new_status": new_status,
        }
        if reason:
            log_entry["reason"] = reason
        level = logging.WARNING if new_status == "UNDER_INVESTIGATION" else logging.INFO
        _emit(level, log_entry)
