"""
mock_quickbase.py — Mock Implementation of the QuickBase REST API (v1)

This module provides a simulated QuickBase realm for local development and tests.
It exposes a FastAPI application that mimics the parts of the QuickBase API the
order submission service uses, backed by in-memory tables.

Simulation Scenarios:
    • Field listing, record query with ``{fid.EX.'value'}`` filters
    • Batched record creation with generated record ids
    • Record deletion (compensation of orphaned order headers)
    • Missing / wrong credentials (HTTP 401)
    • Unknown table (HTTP 404)
    • Rejected writes: table ids starting with "reject_" answer HTTP 400

Endpoints:
    GET    /v1/fields?tableId=
    POST   /v1/records/query
    POST   /v1/records
    DELETE /v1/records
    GET    /v1/apps/{appId}
    GET    /v1/tables?appId=

Port:
    Default: 8002 (HTTP)
"""

import logging
import re
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

app = FastAPI(title="Mock QuickBase API")
logging.basicConfig(level=logging.INFO)

REALM = "demo.quickbase.com"
USER_TOKEN = "b7738j_demo_token"
RECORD_ID_FIELD = 3

# table_id -> {"name", "fields", "records": {rid: {fid: value}}, "next_id"}
TABLES: Dict[str, dict] = {}
# Jeder Aufruf wird protokolliert (Tests prüfen Anzahl und Reihenfolge)
CALLS: List[dict] = []

_EXACT_FILTER = re.compile(r"^\{(\d+)\.EX\.'((?:[^']|'')*)'\}$")


class QuickBaseError(Exception):
    def __init__(self, status_code: int, message: str, description: str = ""):
        self.status_code = status_code
        self.message = message
        self.description = description


@app.exception_handler(QuickBaseError)
def handle_quickbase_error(request: Request, exc: QuickBaseError):
    return JSONResponse(status_code=exc.status_code,
                        content={"message": exc.message, "description": exc.description})


def reset():
    TABLES.clear()
    CALLS.clear()


def add_table(table_id: str, fields: List[dict], name: str = None):
    """
    Registers a table. A record id field (id 3) is added if `fields` has none.

    Args:
        table_id (str): QuickBase table id.
        fields (list[dict]): Field metadata dicts with id, label, fieldType, baseType.
    """
    fields = list(fields)
    if not any(f["id"] == RECORD_ID_FIELD for f in fields):
        fields.insert(0, {"id": RECORD_ID_FIELD, "label": "Record ID#", "fieldType": "recordid",
                          "baseType": "int", "properties": {"readOnly": True}})
    TABLES[table_id] = {"name": name or table_id, "fields": fields, "records": {}, "next_id": 1}


def add_record(table_id: str, values: Dict[int, Any]) -> int:
    table = _table(table_id)
    record_id = table["next_id"]
    table["next_id"] += 1
    table["records"][record_id] = {RECORD_ID_FIELD: record_id, **{int(k): v for k, v in values.items()}}
    return record_id


def records(table_id: str) -> List[dict]:
    return list(_table(table_id)["records"].values())


def calls(method: str = None, path: str = None) -> List[dict]:
    return [c for c in CALLS if (method is None or c["method"] == method)
            and (path is None or c["path"] == path)]


def _table(table_id: str) -> dict:
    table = TABLES.get(table_id)
    if table is None:
        raise QuickBaseError(404, "Table not found", f"Table with id {table_id} was not found")
    return table


def _authorize(request: Request, realm: Optional[str], authorization: Optional[str], body: Any = None):
    CALLS.append({"method": request.method, "path": request.url.path,
                  "params": dict(request.query_params), "body": body})
    if realm != REALM or authorization != f"QB-USER-TOKEN {USER_TOKEN}":
        logging.warning(f"[QB] Unberechtigter Zugriff auf {request.url.path}.")
        raise QuickBaseError(401, "Access denied", "User token is invalid")


def _matches(record: dict, where: Optional[str]) -> bool:
    if not where:
        return True
    match = _EXACT_FILTER.match(where.strip())
    if not match:
        raise QuickBaseError(400, "Bad request", f"Unsupported query: {where}")
    field_id, value = int(match.group(1)), match.group(2).replace("''", "'")
    return str(record.get(field_id, "")) == value


def _cells(record: dict, field_ids) -> dict:
    return {str(fid): {"value": record.get(fid)} for fid in field_ids}


class CreateRequest(BaseModel):
    to: str
    data: List[Dict[str, Dict[str, Any]]]
    fieldsToReturn: List[int] = []


@app.get("/v1/fields")
def list_fields(
        request: Request,
        tableId: str,
        qb_realm_hostname: Optional[str] = Header(None, alias="QB-Realm-Hostname"),
        authorization: Optional[str] = Header(None)
):
    _authorize(request, qb_realm_hostname, authorization)
    return _table(tableId)["fields"]


@app.post("/v1/records/query")
def query_records(
        request: Request,
        body: dict,
        qb_realm_hostname: Optional[str] = Header(None, alias="QB-Realm-Hostname"),
        authorization: Optional[str] = Header(None)
):
    _authorize(request, qb_realm_hostname, authorization, body)
    select = [int(fid) for fid in body.get("select", [])]
    table = _table(body.get("from", ""))
    matching = [r for r in table["records"].values() if _matches(r, body.get("where"))]
    logging.info(f"[QB] Abfrage {body.get('from')}: {len(matching)} Treffer.")
    return {
        "data": [_cells(r, select) for r in matching],
        "fields": [{"id": f["id"], "label": f["label"], "type": f.get("fieldType")}
                   for f in table["fields"] if f["id"] in select],
        "metadata": {"numFields": len(select), "numRecords": len(matching),
                     "skip": 0, "totalRecords": len(matching)},
    }


@app.post("/v1/records")
def create_records(
        request: Request,
        body: CreateRequest,
        qb_realm_hostname: Optional[str] = Header(None, alias="QB-Realm-Hostname"),
        authorization: Optional[str] = Header(None)
):
    _authorize(request, qb_realm_hostname, authorization, body.model_dump())

    if body.to.startswith("reject_"):
        logging.warning(f"[QB] Schreibzugriff auf {body.to} abgelehnt.")
        raise QuickBaseError(400, "Bad request", "Simulated write rejection")

    table = _table(body.to)
    known = {f["id"] for f in table["fields"]}
    created = []
    for row in body.data:
        values = {}
        for fid, cell in row.items():
            if int(fid) not in known:
                raise QuickBaseError(400, "Invalid field", f"Field {fid} does not exist in table {body.to}")
            values[int(fid)] = cell.get("value")
        created.append(add_record(body.to, values))

    logging.info(f"[QB] {len(created)} Datensätze in {body.to} angelegt: {created}")
    return {
        "data": [_cells(table["records"][rid], body.fieldsToReturn) for rid in created],
        "metadata": {
            "createdRecordIds": created,
            "totalNumberOfRecordsProcessed": len(created),
            "unchangedRecordIds": [],
            "updatedRecordIds": [],
        },
    }


@app.delete("/v1/records")
def delete_records(
        request: Request,
        body: dict,
        qb_realm_hostname: Optional[str] = Header(None, alias="QB-Realm-Hostname"),
        authorization: Optional[str] = Header(None)
):
    _authorize(request, qb_realm_hostname, authorization, body)
    table = _table(body.get("from", ""))
    doomed = [rid for rid, r in table["records"].items() if _matches(r, body.get("where"))]
    for rid in doomed:
        del table["records"][rid]
    logging.info(f"[QB] {len(doomed)} Datensätze aus {body.get('from')} gelöscht.")
    return {"numberDeleted": len(doomed)}


@app.get("/v1/apps/{app_id}")
def get_app(
        request: Request,
        app_id: str,
        qb_realm_hostname: Optional[str] = Header(None, alias="QB-Realm-Hostname"),
        authorization: Optional[str] = Header(None)
):
    _authorize(request, qb_realm_hostname, authorization)
    return {"id": app_id, "name": "Mock App", "description": "In-memory QuickBase app"}


@app.get("/v1/tables")
def list_tables(
        request: Request,
        appId: str,
        qb_realm_hostname: Optional[str] = Header(None, alias="QB-Realm-Hostname"),
        authorization: Optional[str] = Header(None)
):
    _authorize(request, qb_realm_hostname, authorization)
    return [{"id": table_id, "name": t["name"]} for table_id, t in TABLES.items()]


def seed_demo_data():
    """
    Fills the mock with the tables the order form needs, using the default ids
    of the service configuration for jobs and contacts.
    """
    reset()
    add_table("bq_orders", [
        {"id": 7, "label": "Related Job", "fieldType": "numeric", "baseType": "int"},
        {"id": 8, "label": "Job Name", "fieldType": "text", "baseType": "text", "properties": {"readOnly": True}},
        {"id": 11, "label": "Ordered By", "fieldType": "email", "baseType": "text"},
        {"id": 12, "label": "Request Date", "fieldType": "date", "baseType": "date"},
        {"id": 13, "label": "Date Required for Delivery", "fieldType": "date", "baseType": "date"},
    ], name="Order Submissions")
    add_table("bq_lineitems", [
        {"id": 6, "label": "Related Order Submission", "fieldType": "numeric", "baseType": "int"},
        {"id": 8, "label": "Item Name", "fieldType": "text", "baseType": "text"},
        {"id": 10, "label": "Description", "fieldType": "text-multi-line", "baseType": "text"},
        {"id": 11, "label": "QTY", "fieldType": "numeric", "baseType": "float"},
        {"id": 12, "label": "Related UOM", "fieldType": "numeric", "baseType": "int"},
        {"id": 13, "label": "UOM", "fieldType": "lookup", "baseType": "text"},
    ], name="Order Submission Line Items")
    add_table("buy4q98bb", [
        {"id": 6, "label": "School Name", "fieldType": "text", "baseType": "text"},
        {"id": 7, "label": "Job Number", "fieldType": "text", "baseType": "text"},
    ], name="Jobs")
    add_table("bq_uom", [{"id": 6, "label": "UOM", "fieldType": "text", "baseType": "text"}], name="UOM")
    add_table("buzhqi64n", [
        {"id": 6, "label": "Full Name", "fieldType": "text", "baseType": "text"},
        {"id": 9, "label": "Email Address", "fieldType": "email", "baseType": "text"},
        {"id": 15, "label": "Material Orders", "fieldType": "checkbox", "baseType": "bool"},
    ], name="Contacts Book")

    for school in ("Westfield Elementary", "Lincoln High", "Oak Ridge Middle"):
        add_record("buy4q98bb", {6: school})
    for uom in ("EA", "BOX", "FT", "LB"):
        add_record("bq_uom", {6: uom})
    add_record("buzhqi64n", {6: "Pat Buyer", 9: "buyer@example.com", 15: True})
    add_record("buzhqi64n", {6: "Sam Viewer", 9: "viewer@example.com", 15: False})


if __name__ == "__main__":
    import uvicorn

    seed_demo_data()
    logging.info("Mock QuickBase startet auf Port 8002.")
    uvicorn.run(app, host="0.0.0.0", port=8002)
