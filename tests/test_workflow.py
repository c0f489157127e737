"""
test_workflow.py — Tests for the order submission saga.

Tests cover:
  - Header + batched line items, each line item referencing the header id
  - Validation failures (missing fields, dates, quantities) with zero QuickBase calls
  - Strict and lenient quantity parsing
  - Record id extraction from both response shapes
  - Compensating delete of the header when the line items fail
  - No idempotency: the same payload twice creates two headers
"""

import httpx
import pytest

from order_submission.errors import ConfigurationError, UpstreamError, ValidationError, WriteError
from order_submission.models import OrderSubmissionRequest
from order_submission.workflow import (LineItemFields, OrderFields, OrderSubmissionWorkflow, SubmissionState,
                                       extract_record_id, parse_quantity, process_order_submission,
                                       validate_date)


def _order(payload):
    return OrderSubmissionRequest.model_validate(payload)


class TestHappyPath:

    def test_creates_header_and_all_line_items(self, qb_client, settings, quickbase, order_payload):
        result = process_order_submission(qb_client, settings, _order(order_payload()))

        headers = quickbase.records("bq_orders")
        assert len(headers) == 1
        header = headers[0]
        assert result == {"success": True, "orderSubmissionId": header[3], "lineItemsCreated": 2}
        assert header[OrderFields.RELATED_JOB] == "1"
        assert header[OrderFields.REQUEST_DATE] == "2024-03-01"
        assert header[OrderFields.DATE_REQUIRED_FOR_DELIVERY] == "2024-03-15"
        assert header[OrderFields.ORDERED_BY] == "buyer@example.com"

        line_items = quickbase.records("bq_lineitems")
        assert len(line_items) == 2
        assert all(item[LineItemFields.RELATED_ORDER_SUBMISSION] == header[3] for item in line_items)
        assert [item[LineItemFields.QTY] for item in line_items] == [12.0, 3.0]

    def test_line_items_written_in_one_call(self, qb_client, settings, quickbase, order_payload):
        items = [{"itemName": f"Item {n}", "qty": n, "uom": "1"} for n in range(1, 6)]
        process_order_submission(qb_client, settings, _order(order_payload(lineItems=items)))

        writes = quickbase.calls("POST", "/v1/records")
        assert [call["body"]["to"] for call in writes] == ["bq_orders", "bq_lineitems"]
        assert len(writes[1]["body"]["data"]) == 5

    def test_school_and_uom_record_ids_round_trip(self, qb_client, settings, quickbase, order_payload):
        payload = order_payload(jobNumber="S1", lineItems=[{"itemName": "Tape", "qty": "1", "uom": "U1"}])
        process_order_submission(qb_client, settings, _order(payload))

        assert quickbase.records("bq_orders")[0][OrderFields.RELATED_JOB] == "S1"
        assert quickbase.records("bq_lineitems")[0][LineItemFields.RELATED_UOM] == "U1"

    def test_null_values_are_not_written(self, qb_client, settings, quickbase, order_payload):
        payload = order_payload(lineItems=[{"itemName": "Tape", "qty": "1"}])
        process_order_submission(qb_client, settings, _order(payload))

        row = quickbase.calls("POST", "/v1/records")[1]["body"]["data"][0]
        assert str(LineItemFields.RELATED_UOM) not in row
        assert str(LineItemFields.DESCRIPTION) not in row

    def test_same_payload_twice_creates_two_headers(self, qb_client, settings, quickbase, order_payload):
        first = process_order_submission(qb_client, settings, _order(order_payload()))
        second = process_order_submission(qb_client, settings, _order(order_payload()))

        assert first["orderSubmissionId"] != second["orderSubmissionId"]
        assert len(quickbase.records("bq_orders")) == 2
        assert len(quickbase.records("bq_lineitems")) == 4

    def test_state_is_completed(self, qb_client, settings, quickbase, order_payload):
        workflow = OrderSubmissionWorkflow(qb_client, settings)
        workflow.run(_order(order_payload()))
        assert workflow.state is SubmissionState.COMPLETED


class TestValidation:

    def test_missing_job_number_names_the_field(self, qb_client, settings, quickbase, order_payload):
        with pytest.raises(ValidationError) as exc_info:
            process_order_submission(qb_client, settings, _order(order_payload(jobNumber="")))
        assert exc_info.value.status_code == 400
        assert "jobNumber" in exc_info.value.message
        assert exc_info.value.details == {"missing": ["jobNumber"]}
        assert quickbase.CALLS == []

    def test_every_missing_field_is_named(self, qb_client, settings, quickbase):
        with pytest.raises(ValidationError) as exc_info:
            process_order_submission(qb_client, settings, _order({"lineItems": [{"qty": 1}]}))
        assert exc_info.value.message == (
            "Missing required fields: jobNumber, reqDate, dateRequiredForDelivery, orderedBy")

    def test_no_line_items(self, qb_client, settings, quickbase, order_payload):
        with pytest.raises(ValidationError, match="At least one line item is required"):
            process_order_submission(qb_client, settings, _order(order_payload(lineItems=[])))
        assert quickbase.CALLS == []

    @pytest.mark.parametrize("bad_date", [
        "03/01/2024", "2024-3-1", "2024-03-01T00:00", " 2024-03-01", "tomorrow",
        "２０２４-０３-０１", "٢٠٢٤-٠٣-٠١",
    ])
    def test_bad_dates_make_no_calls(self, qb_client, settings, quickbase, order_payload, bad_date):
        with pytest.raises(ValidationError, match="Expected YYYY-MM-DD"):
            process_order_submission(qb_client, settings, _order(order_payload(reqDate=bad_date)))
        assert quickbase.CALLS == []

    def test_bad_quantity_in_strict_mode(self, qb_client, settings, quickbase, order_payload):
        payload = order_payload(lineItems=[{"itemName": "A", "qty": "2"}, {"itemName": "B", "qty": "lots"}])
        with pytest.raises(ValidationError, match="line item 2"):
            process_order_submission(qb_client, settings, _order(payload))
        assert quickbase.CALLS == []

    def test_validation_runs_before_configuration(self, qb_client, quickbase, order_payload):
        from order_submission.config import Settings

        with pytest.raises(ValidationError):
            process_order_submission(qb_client, Settings(), _order(order_payload(orderedBy=None)))

    def test_missing_table_ids(self, qb_client, settings, quickbase, order_payload):
        unconfigured = settings.model_copy(update={"line_items_table": None})
        with pytest.raises(ConfigurationError) as exc_info:
            process_order_submission(qb_client, unconfigured, _order(order_payload()))
        assert exc_info.value.details["missing"] == ["ORDER_SUBMISSIONS_LINEITEMS table ID"]
        assert quickbase.CALLS == []


class TestQuantityParsing:

    @pytest.mark.parametrize("raw, expected", [("12", 12.0), (" 2.5 ", 2.5), (4, 4.0), (0.25, 0.25), ("1e2", 100.0)])
    def test_strict_accepts_numbers(self, raw, expected):
        assert parse_quantity(raw, 1) == expected

    @pytest.mark.parametrize("raw", ["", None, "abc", "12 boxes", "nan", "inf", "1_000", "0x10", "１２", "1e999"])
    def test_strict_rejects(self, raw):
        with pytest.raises(ValidationError):
            parse_quantity(raw, 3)

    @pytest.mark.parametrize("raw, expected", [("12 boxes", 12.0), ("3.5ft", 3.5), ("abc", 0.0), ("", 0.0), (None, 0.0)])
    def test_lenient_uses_leading_number(self, raw, expected):
        assert parse_quantity(raw, 1, strict=False) == expected

    def test_lenient_mode_writes_zero(self, qb_client, settings, quickbase, order_payload):
        lenient = settings.model_copy(update={"strict_quantity": False})
        payload = order_payload(lineItems=[{"itemName": "A", "qty": "some"}])
        process_order_submission(qb_client, lenient, _order(payload))
        assert quickbase.records("bq_lineitems")[0][LineItemFields.QTY] == 0.0


def test_validate_date_returns_value_unchanged():
    assert validate_date("2024-12-31", "reqDate") == "2024-12-31"


class TestExtractRecordId:

    def test_from_metadata(self):
        assert extract_record_id({"metadata": {"createdRecordIds": [41]}, "data": [{"3": {"value": 99}}]}) == 41

    def test_from_echoed_field(self):
        assert extract_record_id({"metadata": {}, "data": [{"3": {"value": 7}}]}) == 7

    def test_missing(self):
        assert extract_record_id({"data": []}) is None

    def test_header_without_id_is_write_error(self, settings, fault_client, order_payload):
        def handler(request):
            return httpx.Response(200, json={"data": [], "metadata": {"createdRecordIds": []}})

        with pytest.raises(WriteError) as exc_info:
            process_order_submission(fault_client(handler), settings, _order(order_payload()))
        assert "record ID" in exc_info.value.message
        assert "response" in exc_info.value.details


class TestCompensation:

    def _reject_line_items(self, settings):
        return settings.model_copy(update={"line_items_table": "reject_lineitems"})

    def test_header_is_deleted_when_line_items_fail(self, qb_client, settings, quickbase, order_payload):
        workflow = OrderSubmissionWorkflow(qb_client, self._reject_line_items(settings))
        with pytest.raises(UpstreamError) as exc_info:
            workflow.run(_order(order_payload()))

        assert exc_info.value.status_code == 400
        assert exc_info.value.details["submissionState"] == "compensated"
        assert exc_info.value.details["orderSubmissionId"] == workflow.header_id
        assert workflow.state is SubmissionState.COMPENSATED
        assert quickbase.records("bq_orders") == []
        delete = quickbase.calls("DELETE", "/v1/records")[0]
        assert delete["body"] == {"from": "bq_orders", "where": f"{{3.EX.'{workflow.header_id}'}}"}

    def test_header_left_when_compensation_disabled(self, qb_client, settings, quickbase, order_payload):
        configured = self._reject_line_items(settings).model_copy(update={"compensate_orphaned_headers": False})
        workflow = OrderSubmissionWorkflow(qb_client, configured)
        with pytest.raises(UpstreamError) as exc_info:
            workflow.run(_order(order_payload()))

        assert exc_info.value.details["submissionState"] == "header_orphaned"
        assert len(quickbase.records("bq_orders")) == 1
        assert quickbase.calls("DELETE") == []

    def test_failed_compensation_keeps_original_error(self, settings, fault_client, order_payload):
        def handler(request):
            if request.method == "DELETE":
                return httpx.Response(500, json={"message": "Internal error"})
            if b"bq_lineitems" in request.content:
                return httpx.Response(400, json={"message": "Bad request", "description": "Invalid field"})
            return httpx.Response(200, json={"data": [{"3": {"value": 17}}],
                                             "metadata": {"createdRecordIds": [17]}})

        with pytest.raises(UpstreamError) as exc_info:
            process_order_submission(fault_client(handler), settings, _order(order_payload()))
        error = exc_info.value
        assert error.status_code == 400
        assert error.details["orderSubmissionId"] == 17
        assert error.details["submissionState"] == "compensation_failed"
