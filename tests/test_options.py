"""
test_options.py — Tests for the job/school and UOM option lists and field listings.
"""

import pytest

from order_submission.errors import ConfigurationError
from order_submission.options import (describe_order_tables, describe_table_fields, load_school_options,
                                      load_uom_options)


def test_school_options_sorted_case_insensitively(qb_client, settings, quickbase):
    quickbase.add_record("buy4q98bb", {6: "adams Academy"})
    result = load_school_options(qb_client, settings)

    assert result["success"] is True
    assert result["fieldId"] == 6
    assert result["recordIdFieldId"] == 3
    assert [o["schoolName"] for o in result["options"]] == [
        "adams Academy", "Lincoln High", "Oak Ridge Middle", "Westfield Elementary"]
    assert all(isinstance(o["recordId"], str) for o in result["options"])


def test_blank_names_are_dropped(qb_client, settings, quickbase):
    quickbase.add_record("buy4q98bb", {6: "   "})
    quickbase.add_record("buy4q98bb", {7: "J-100"})
    assert len(load_school_options(qb_client, settings)["options"]) == 3


def test_uom_options(qb_client, settings):
    result = load_uom_options(qb_client, settings)
    assert result["options"] == [
        {"recordId": "2", "uomValue": "BOX"},
        {"recordId": "1", "uomValue": "EA"},
        {"recordId": "3", "uomValue": "FT"},
        {"recordId": "4", "uomValue": "LB"},
    ]


def test_empty_table_yields_no_options(qb_client, settings, quickbase):
    quickbase.add_table("bq_empty_uom", [{"id": 6, "label": "UOM", "fieldType": "text", "baseType": "text"}])
    configured = settings.model_copy(update={"uom_table": "bq_empty_uom"})
    assert load_uom_options(qb_client, configured)["options"] == []


def test_uom_table_is_required(qb_client, settings, quickbase):
    with pytest.raises(ConfigurationError, match="UOM_TABLE"):
        load_uom_options(qb_client, settings.model_copy(update={"uom_table": None}))
    assert quickbase.CALLS == []


def test_describe_table_fields(qb_client):
    result = describe_table_fields(qb_client, "bq_uom")
    assert result["tableId"] == "bq_uom"
    assert [f["id"] for f in result["fields"]] == [3, 6]
    assert result["raw"][1]["label"] == "UOM"


def test_describe_order_tables_flags(qb_client, settings):
    result = describe_order_tables(qb_client, settings)
    header_fields = {f["label"]: f for f in result["fields"]["orderSubmissions"]}
    assert header_fields["Job Name"]["isReadOnly"] is True
    assert header_fields["Related Job"]["isReadOnly"] is False
    line_fields = {f["label"]: f for f in result["fields"]["lineItems"]}
    assert line_fields["UOM"]["isLookup"] is True


def test_describe_order_tables_embeds_errors(qb_client, settings):
    configured = settings.model_copy(update={"line_items_table": "bq_missing"})
    result = describe_order_tables(qb_client, configured)
    assert isinstance(result["fields"]["orderSubmissions"], list)
    assert "Table not found" in result["fields"]["lineItems"]["error"]


def test_unlabeled_field_does_not_break_options(qb_client, settings, quickbase):
    quickbase.add_table("bq_jobs_v2", [
        {"id": 5, "label": None, "fieldType": "text", "baseType": "text"},
        {"id": 6, "label": "School Name", "fieldType": "text", "baseType": "text"},
    ])
    quickbase.add_record("bq_jobs_v2", {5: "x", 6: "Lincoln High"})
    result = load_school_options(qb_client, settings.model_copy(update={"jobs_table": "bq_jobs_v2"}))
    assert result["fieldId"] == 6
    assert result["options"] == [{"recordId": "1", "schoolName": "Lincoln High"}]
