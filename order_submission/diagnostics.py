"""
diagnostics.py — Connectivity Probes for Operators

Ad-hoc endpoints that help set up a new deployment: which configuration values
are present, whether the token can reach the configured tables, and what the
stored date values look like. They report failures in the response body
instead of failing, and are not part of the order form's contract.
"""

import logging

from fastapi import APIRouter, Depends

from .clients import QuickBaseClient, cell_value
from .config import Settings
from .deps import get_quickbase_client, get_settings
from .errors import OrderServiceError, QuickBaseError
from .workflow import OrderFields

router = APIRouter()
log = logging.getLogger(__name__)


def _probe(name: str, call, **info) -> dict:
    """Runs one probe and records its outcome instead of raising."""
    result = {"name": name, **info}
    try:
        outcome = call()
    except QuickBaseError as e:
        result.update({"ok": False, "status": e.status_code, "error": e.message})
        log.warning(f"[Diagnose] {name}: fehlgeschlagen ({e.status_code}).")
        return result
    result.update({"ok": True, "status": 200})
    if outcome is not None:
        result["data"] = outcome
    return result


@router.get("/connection")
def connection(
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client)
):
    """
    Shows which configuration values are present and probes the Order Submissions table.
    The user token is never returned; only its length and first characters. The Firebase
    API key is reported as present or absent.
    """
    token = settings.user_token or ""
    diagnostics = {
        "config": {
            "realmHostname": {"value": settings.realm_hostname, "present": bool(settings.realm_hostname)},
            "userToken": {
                "present": bool(token),
                "length": len(token),
                "preview": f"{token[:10]}..." if token else "not set",
            },
            "orderSubmissionsTableId": {"value": settings.order_submissions_table,
                                        "present": bool(settings.order_submissions_table)},
            "lineItemsTableId": {"value": settings.line_items_table,
                                 "present": bool(settings.line_items_table)},
        },
        "firebase": {
            "apiKey": {"present": bool(settings.firebase_api_key)},
            "authDomain": {"value": settings.firebase_auth_domain,
                           "present": bool(settings.firebase_auth_domain)},
            "projectId": {"value": settings.firebase_project_id,
                          "present": bool(settings.firebase_project_id)},
        },
        "apiBaseUrl": settings.api_base_url,
    }

    if not (settings.realm_hostname and token and settings.order_submissions_table):
        return {"success": False, "message": "Configuration incomplete", "diagnostics": diagnostics}

    try:
        fields = client.list_fields(settings.order_submissions_table)
    except OrderServiceError as e:
        return {
            "success": False,
            "message": "Connection failed",
            "diagnostics": diagnostics,
            "error": {"status": e.status_code, "message": e.message, "details": e.details},
        }
    return {
        "success": True,
        "message": "Connection successful!",
        "diagnostics": diagnostics,
        "testResponse": {"status": 200, "fieldCount": len(fields)},
    }


@router.get("/api-access")
def api_access(
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client)
):
    """Query probes against the configured tables, plus app info when CFED_APP is set."""
    settings.require_credentials()
    tests = []
    if settings.order_submissions_table:
        tests.append(_probe(
            "Query ORDER_SUBMISSIONS table",
            lambda: len(client.query_records(settings.order_submissions_table, [OrderFields.RECORD_ID])),
            tableId=settings.order_submissions_table,
        ))
    if settings.jobs_table:
        tests.append(_probe(
            "Query JOBS table",
            lambda: len(client.query_records(settings.jobs_table, [OrderFields.RECORD_ID])),
            tableId=settings.jobs_table,
        ))
    if settings.app_id:
        tests.append(_probe("Get app info", lambda: client.get_app(settings.app_id), appId=settings.app_id))
        tests.append(_probe(
            "List app tables",
            lambda: [{"id": t.get("id"), "name": t.get("name")} for t in client.list_tables(settings.app_id)],
            appId=settings.app_id,
        ))
    return {"realmHostname": settings.realm_hostname, "tests": tests}


@router.get("/date-format")
def date_format(
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client)
):
    """Echoes the stored request/delivery dates of existing headers, to confirm the date format."""
    settings.require_credentials()
    (table_id,) = settings.require_tables("order_submissions_table")
    records = client.query_records(table_id, [
        OrderFields.RECORD_ID,
        OrderFields.RELATED_JOB,
        OrderFields.ORDERED_BY,
        OrderFields.REQUEST_DATE,
        OrderFields.DATE_REQUIRED_FOR_DELIVERY,
    ])
    date_formats = []
    for record in records:
        request_date = cell_value(record, OrderFields.REQUEST_DATE)
        delivery_date = cell_value(record, OrderFields.DATE_REQUIRED_FOR_DELIVERY)
        date_formats.append({
            "recordId": cell_value(record, OrderFields.RECORD_ID),
            "requestDate": request_date,
            "requestDateType": type(request_date).__name__,
            "deliveryDate": delivery_date,
            "deliveryDateType": type(delivery_date).__name__,
        })
    return {"success": True, "recordCount": len(records), "dateFormats": date_formats}


@router.get("/jobs-table")
def jobs_table(
        settings: Settings = Depends(get_settings),
        client: QuickBaseClient = Depends(get_quickbase_client)
):
    """Field listing and a record query probe against the Jobs table."""
    settings.require_credentials()
    (table_id,) = settings.require_tables("jobs_table")
    tests = [
        _probe("List fields",
               lambda: [field.summary() for field in client.list_fields(table_id)],
               tableId=table_id),
        _probe("Query records",
               lambda: client.query_records(table_id, [OrderFields.RECORD_ID]),
               tableId=table_id),
    ]
    return {"tableId": table_id, "realmHostname": settings.realm_hostname, "tests": tests}
