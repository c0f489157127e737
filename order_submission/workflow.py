"""
workflow.py — Core Orchestration Logic for Order Submission

This module contains the write path of the service. It turns one order form
submission into QuickBase records in the correct sequence.

Workflow Overview:
1. Validate the form input (required fields, date format, quantities)
2. Resolve credentials and table ids
3. Create the Order Submission (header) record
4. Extract the generated header record id
5. Create all Line Item records in one batch, each pointing at the header
6. Handle line item failures with a compensating delete of the header (Saga Pattern)
"""

import logging
import math
import re
from enum import Enum
from typing import List, Optional

from .clients import QuickBaseClient, build_row, cell_value, exact_match
from .config import Settings
from .errors import QuickBaseError, ValidationError, WriteError
from .models import LineItem, OrderSubmissionRequest

log = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
# Dezimalzahl wie im Formular, nur ASCII-Ziffern
_NUMBER = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")


class OrderFields:
    """Field ids of the Order Submissions table (write contract)."""
    RECORD_ID = 3
    RELATED_JOB = 7
    ORDERED_BY = 11
    REQUEST_DATE = 12
    DATE_REQUIRED_FOR_DELIVERY = 13


class LineItemFields:
    """Field ids of the Order Submission Line Items table (write contract)."""
    RELATED_ORDER_SUBMISSION = 6
    ITEM_NAME = 8
    DESCRIPTION = 10
    QTY = 11
    RELATED_UOM = 12


class SubmissionState(str, Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    HEADER_CREATED = "header_created"
    COMPLETED = "completed"
    COMPENSATED = "compensated"
    COMPENSATION_FAILED = "compensation_failed"
    HEADER_ORPHANED = "header_orphaned"


REQUIRED_FIELDS = ("jobNumber", "reqDate", "dateRequiredForDelivery", "orderedBy")


def validate_date(value: str, field_name: str) -> str:
    """Returns `value` unchanged if it is ``YYYY-MM-DD``; QuickBase date fields take that string as-is."""
    if not DATE_PATTERN.fullmatch(value):
        raise ValidationError(
            f"Invalid date format for {field_name}: {value}. Expected YYYY-MM-DD",
            details={"field": field_name, "value": value},
        )
    return value


def parse_quantity(raw, line_number: int, strict: bool = True) -> float:
    """
    Converts a form quantity into a number.

    Args:
        raw: Quantity as sent by the form (string or number).
        line_number (int): 1-based line number, used in error messages.
        strict (bool): Reject unparseable input. When False, the leading number
            of the string is used (``"12 boxes"`` -> 12) and anything else becomes 0.

    Raises:
        ValidationError: In strict mode, if `raw` is not a finite number.
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool) and math.isfinite(raw):
        return float(raw)

    text = "" if raw is None else str(raw).strip()
    if strict:
        value = float(text) if _NUMBER.fullmatch(text) else None
        if value is None or not math.isfinite(value):
            raise ValidationError(
                f"Invalid quantity on line item {line_number}: {raw!r}. Expected a number.",
                details={"lineItem": line_number, "qty": raw},
            )
        return value

    match = _NUMBER.match(text)
    if match:
        return float(match.group(0))
    log.warning(f"Menge '{raw}' in Position {line_number} nicht lesbar, verwende 0.")
    return 0.0


def extract_record_id(result: dict) -> Optional[int]:
    """Reads the created record id from ``metadata.createdRecordIds`` or the echoed field 3."""
    created = (result.get("metadata") or {}).get("createdRecordIds") or []
    if created:
        return created[0]
    data = result.get("data") or []
    if data:
        return cell_value(data[0], OrderFields.RECORD_ID) or None
    return None


class SubmissionResult:
    def __init__(self, order_submission_id, line_items_created: int, state: SubmissionState):
        self.order_submission_id = order_submission_id
        self.line_items_created = line_items_created
        self.state = state

    def to_dict(self) -> dict:
        return {
            "success": True,
            "orderSubmissionId": self.order_submission_id,
            "lineItemsCreated": self.line_items_created,
        }


class OrderSubmissionWorkflow:
    """
    Executes the order submission saga for a single form submission.

    One instance is used per submission; ``state`` records how far the run got,
    so a failure report can say whether a header record was left behind.
    """

    def __init__(self, client: QuickBaseClient, settings: Settings):
        self.client = client
        self.settings = settings
        self.state = SubmissionState.PENDING
        self.header_id = None

    def validate(self, order: OrderSubmissionRequest) -> List[dict]:
        """
        Checks the form input before anything is written.

        Returns:
            list[dict]: The line item rows without the header reference.

        Raises:
            ValidationError: On missing fields, bad dates, no line items or
                (strict mode) unparseable quantities.
        """
        missing = [name for name in REQUIRED_FIELDS if not (getattr(order, name) or "").strip()]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing": missing},
            )

        if not order.lineItems:
            raise ValidationError("At least one line item is required")

        validate_date(order.reqDate, "reqDate")
        validate_date(order.dateRequiredForDelivery, "dateRequiredForDelivery")

        rows = [self._line_item_values(item, number)
                for number, item in enumerate(order.lineItems, start=1)]
        self.state = SubmissionState.VALIDATED
        return rows

    def _line_item_values(self, item: LineItem, number: int) -> dict:
        return {
            LineItemFields.ITEM_NAME: item.itemName,
            LineItemFields.DESCRIPTION: item.description,
            LineItemFields.QTY: parse_quantity(item.qty, number, strict=self.settings.strict_quantity),
            LineItemFields.RELATED_UOM: item.uom,
        }

    def run(self, order: OrderSubmissionRequest) -> SubmissionResult:
        """
        Executes the complete submission.

        Steps:
            1. Validate input (no network traffic on failure)
            2. Resolve credentials and table ids
            3. Create header record, extract its id
            4. Create line item records referencing the header
            5. On line item failure: compensate by deleting the header

        Returns:
            SubmissionResult: Header id and number of created line items.

        Raises:
            ValidationError, ConfigurationError: Before any write.
            QuickBaseError: If a write fails. After the header exists, the error's
                details carry ``orderSubmissionId`` and ``submissionState``.
            WriteError: If QuickBase did not return the header record id.
        """
        line_item_values = self.validate(order)

        self.settings.require_credentials()
        header_table, line_items_table = self.settings.require_tables(
            "order_submissions_table", "line_items_table")

        log_prefix = f"[Order: {order.orderedBy}]"
        log.info(f"{log_prefix} Schritt 1: Lege Bestellkopf an (Job {order.jobNumber}, "
                 f"{len(line_item_values)} Positionen)...")

        header = build_row({
            OrderFields.RELATED_JOB: order.jobNumber,
            OrderFields.REQUEST_DATE: order.reqDate,
            OrderFields.DATE_REQUIRED_FOR_DELIVERY: order.dateRequiredForDelivery,
            OrderFields.ORDERED_BY: order.orderedBy,
        })
        header_result = self.client.create_records(header_table, [header],
                                                   fields_to_return=[OrderFields.RECORD_ID])

        self.header_id = extract_record_id(header_result)
        if not self.header_id:
            log.error(f"{log_prefix} Keine Record-ID in der Antwort: {header_result}")
            raise WriteError(
                "Failed to get order submission record ID from QuickBase response",
                details={"response": header_result},
            )
        self.state = SubmissionState.HEADER_CREATED
        log_prefix = f"[Order: {self.header_id}]"
        log.info(f"{log_prefix} Bestellkopf angelegt.")

        # --- Line Items ---
        log.info(f"{log_prefix} Schritt 2: Lege {len(line_item_values)} Positionen an...")
        rows = [build_row({**values, LineItemFields.RELATED_ORDER_SUBMISSION: self.header_id})
                for values in line_item_values]
        try:
            line_items_result = self.client.create_records(line_items_table, rows,
                                                           fields_to_return=[OrderFields.RECORD_ID])
        except QuickBaseError as e:
            log.error(f"{log_prefix} Positionen fehlgeschlagen ({e.message}). Starte Kompensation.")
            self._compensate(header_table, log_prefix)
            e.details.update({
                "orderSubmissionId": self.header_id,
                "submissionState": self.state.value,
            })
            raise

        created = (line_items_result.get("metadata") or {}).get("createdRecordIds") or []
        self.state = SubmissionState.COMPLETED
        log.info(f"{log_prefix} Verarbeitung erfolgreich abgeschlossen ({len(created)} Positionen).")
        return SubmissionResult(self.header_id, len(created), self.state)

    def _compensate(self, header_table: str, log_prefix: str):
        """
        Removes the header record after its line items could not be written.
        Never raises: the caller re-raises the original line item error.
        """
        if not self.settings.compensate_orphaned_headers:
            self.state = SubmissionState.HEADER_ORPHANED
            log.critical(f"{log_prefix} Kompensation deaktiviert. Bestellkopf ohne Positionen bleibt bestehen!")
            return

        try:
            deleted = self.client.delete_records(header_table, exact_match(OrderFields.RECORD_ID, self.header_id))
        except QuickBaseError as comp_e:
            self.state = SubmissionState.COMPENSATION_FAILED
            log.critical(f"{log_prefix} KOMPENSATION FEHLGESCHLAGEN: {comp_e.message}. BENÖTIGT MANUELLE AKTION!")
            return

        if deleted:
            self.state = SubmissionState.COMPENSATED
            log.info(f"{log_prefix} Kompensation erfolgreich. Bestellkopf gelöscht.")
        else:
            self.state = SubmissionState.COMPENSATION_FAILED
            log.critical(f"{log_prefix} Kompensation hat keinen Datensatz gelöscht. BENÖTIGT MANUELLE AKTION!")


def process_order_submission(client: QuickBaseClient, settings: Settings, order: OrderSubmissionRequest) -> dict:
    """
    Runs one submission and returns the JSON response body.

    Args:
        client (QuickBaseClient): Shared QuickBase client.
        settings (Settings): Process configuration.
        order (OrderSubmissionRequest): Form payload.

    Returns:
        dict: ``{"success": True, "orderSubmissionId": ..., "lineItemsCreated": ...}``
    """
    return OrderSubmissionWorkflow(client, settings).run(order).to_dict()
