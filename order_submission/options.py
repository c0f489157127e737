"""
options.py — Reference Option Lists for the Order Form

The order form offers a job/school dropdown and a unit-of-measure dropdown per
line item. Both lists are read from QuickBase tables whose display field is
located by label cascade.
"""

import logging

from .clients import QuickBaseClient, cell_value
from .config import Settings
from .errors import QuickBaseError
from .fields import find_record_id_field, resolve_field, school_name_cascade, uom_cascade

log = logging.getLogger(__name__)


def _load_options(client: QuickBaseClient, table_id: str, cascade_factory, value_key: str, what: str) -> dict:
    fields = client.list_fields(table_id)
    log.info(f"[Options] {len(fields)} Felder aus Tabelle {table_id} ({what}) geladen.")

    record_id_field_id = find_record_id_field(fields)
    display_field = resolve_field(fields, cascade_factory(record_id_field_id), table_id=table_id)
    log.info(f"[Options] {what}-Feld: ID {display_field.id}, Label '{display_field.label}'.")

    records = client.query_records(table_id, select=[record_id_field_id, display_field.id])

    options = []
    for record in records:
        value = cell_value(record, display_field.id)
        value = "" if value is None else str(value)
        if not value.strip():
            continue
        record_id = cell_value(record, record_id_field_id)
        options.append({"recordId": "" if record_id is None else str(record_id), value_key: value})
    options.sort(key=lambda option: option[value_key].casefold())

    if not options:
        log.warning(f"[Options] Keine {what}-Optionen gefunden. Tabelle leer, Feld leer "
                    f"oder falsches Feld erkannt (ID {display_field.id}).")

    return {
        "success": True,
        "options": options,
        "fieldId": display_field.id,
        "recordIdFieldId": record_id_field_id,
    }


def load_school_options(client: QuickBaseClient, settings: Settings) -> dict:
    """Returns ``{success, options: [{recordId, schoolName}], fieldId, recordIdFieldId}``."""
    settings.require_credentials()
    (jobs_table,) = settings.require_tables("jobs_table")
    return _load_options(client, jobs_table, school_name_cascade, "schoolName", "School Name")


def load_uom_options(client: QuickBaseClient, settings: Settings) -> dict:
    """Returns ``{success, options: [{recordId, uomValue}], fieldId, recordIdFieldId}``."""
    settings.require_credentials()
    (uom_table,) = settings.require_tables("uom_table")
    return _load_options(client, uom_table, uom_cascade, "uomValue", "UOM")


def describe_table_fields(client: QuickBaseClient, table_id: str) -> dict:
    """Field listing of any table, formatted plus raw (``GET /table-fields``)."""
    raw = client.list_fields_raw(table_id)
    fields = [
        {
            "id": field.get("id"),
            "label": field.get("label"),
            "fieldType": field.get("fieldType"),
            "baseType": field.get("baseType"),
            "properties": field.get("properties"),
        }
        for field in raw
    ]
    return {"success": True, "tableId": table_id, "fields": fields, "raw": raw}


def describe_order_tables(client: QuickBaseClient, settings: Settings) -> dict:
    """
    Field listings of the Order Submissions and Line Items tables.

    Failures are reported per table inside the response instead of failing the request.
    """
    settings.require_credentials()
    result = {
        "orderSubmissionsTable": settings.order_submissions_table,
        "lineItemsTable": settings.line_items_table,
        "fields": {},
    }
    for key, table_id in (("orderSubmissions", settings.order_submissions_table),
                          ("lineItems", settings.line_items_table)):
        if not table_id:
            continue
        try:
            fields = client.list_fields(table_id)
        except QuickBaseError as e:
            log.warning(f"[Options] Felder von Tabelle {table_id} nicht lesbar: {e}")
            result["fields"][key] = {"error": str(e)}
            continue
        result["fields"][key] = [
            {
                "id": field.id,
                "label": field.label,
                "fieldType": field.fieldType,
                "baseType": field.baseType,
                "isReadOnly": bool((field.properties or {}).get("readOnly", False)),
                "isLookup": "lookup" in (field.fieldType, field.baseType),
                "isRelationship": "recordlink" in (field.fieldType, field.baseType),
            }
            for field in fields
        ]
    return result
