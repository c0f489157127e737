"""
This module provides the communication client for the QuickBase REST API (v1),
the hosted database in which order submissions, line items, jobs, units of
measure and contacts live.

The client encapsulates header-based authentication, timeouts and the mapping
of HTTP / transport failures to the service's error types. It never retries.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

import httpx

from .config import Settings
from .errors import NetworkError, UpstreamError, UpstreamTimeoutError
from .fields import parse_fields
from .models import FieldMeta

USER_AGENT = "NSI-Order-Submission/1.0"

log = logging.getLogger(__name__)


def cell_value(record: dict, field_id: int):
    """
    Returns the value of a field in a QuickBase record.

    Records come back as ``{"<fid>": {"value": ...}}``; some responses carry the
    bare value instead, so both shapes are accepted.
    """
    cell = record.get(str(field_id), record.get(field_id))
    if isinstance(cell, dict) and "value" in cell:
        return cell["value"]
    return cell


def exact_match(field_id: int, value) -> str:
    """Builds a QuickBase ``EX`` (exact match) filter, doubling single quotes."""
    escaped = str(value).replace("'", "''")
    return f"{{{field_id}.EX.'{escaped}'}}"


def build_row(values: Dict[int, object]) -> dict:
    """Converts ``{fid: value}`` into a QuickBase row, dropping None values."""
    return {str(fid): {"value": value} for fid, value in values.items() if value is not None}


def _error_details(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {"message": response.text[:500]}
    if isinstance(data, dict):
        return data
    return {"response": data}


def _error_message(details: dict) -> str:
    message = details.get("message") or details.get("error") or "Unknown error"
    if details.get("description"):
        message = f"{message} ({details['description']})"
    return str(message)


# --- QuickBase Client (REST) ---
class QuickBaseClient:
    """
    Client for the QuickBase REST API.
    Handles field listing, record queries, record creation and deletion.
    """
    def __init__(self, settings: Settings, http_client: httpx.Client = None):
        """
        Initializes the HTTP client for the configured API base URL.

        Args:
            settings (Settings): Process configuration (credentials, timeouts).
            http_client (httpx.Client, optional): Pre-built client, e.g. bound to a
                mock transport. Owned by the caller.
        """
        self.settings = settings
        self._owns_client = http_client is None
        self.client = http_client or httpx.Client(base_url=settings.api_base_url)

    def close(self):
        """Closes the HTTP client session if it was created here."""
        if self._owns_client:
            self.client.close()

    def _headers(self) -> dict:
        realm_hostname, user_token = self.settings.require_credentials()
        return {
            "QB-Realm-Hostname": realm_hostname,
            "Authorization": f"QB-USER-TOKEN {user_token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _request(self, method: str, path: str, action: str, timeout: Optional[float],
                 table_id: str = None, params: dict = None, body: dict = None):
        """
        Sends one request and returns the decoded JSON body.

        Raises:
            ConfigurationError: If realm hostname or user token are missing.
            UpstreamTimeoutError: If `timeout` elapses.
            NetworkError: On connection-level failures.
            UpstreamError: On any non-2xx status.
        """
        headers = self._headers()
        url = f"{self.settings.api_base_url}{path}"
        context = {"url": url}
        if table_id:
            context["tableId"] = table_id

        try:
            response = self.client.request(method, path, params=params, json=body,
                                           headers=headers, timeout=timeout)
        except httpx.TimeoutException:
            log.error(f"[QuickBase] Timeout nach {timeout}s bei '{action}' (Tabelle: {table_id}).")
            raise UpstreamTimeoutError(
                f"Request timeout: The QuickBase API did not respond within {timeout:g} seconds."
                if timeout else "Request timeout: The QuickBase API did not respond.",
                details=context,
            )
        except httpx.TransportError as e:
            log.error(f"[QuickBase] Netzwerkfehler bei '{action}' (Tabelle: {table_id}): {e}")
            raise NetworkError(f"Network error while trying to {action}: {e}", details=context)

        if not response.is_success:
            details = _error_details(response)
            log.error(f"[QuickBase] HTTP {response.status_code} bei '{action}' (Tabelle: {table_id}): {details}")
            raise UpstreamError(
                f"Failed to {action}: {_error_message(details)}",
                status_code=response.status_code,
                details={**context, "status": response.status_code, "response": details},
            )

        try:
            return response.json()
        except ValueError:
            raise UpstreamError(
                f"Failed to {action}: QuickBase returned a non-JSON response",
                status_code=502,
                details={**context, "response": response.text[:500]},
            )

    def list_fields(self, table_id: str) -> List[FieldMeta]:
        """
        Lists all fields of a table.
        Args:
            table_id (str): QuickBase table id.
        Returns:
            list[FieldMeta]: Field metadata in QuickBase order.
        """
        return parse_fields(self.list_fields_raw(table_id))

    def list_fields_raw(self, table_id: str) -> list:
        data = self._request("GET", "/fields", "fetch table fields", self.settings.read_timeout,
                             table_id=table_id, params={"tableId": table_id})
        return data if isinstance(data, list) else []

    def query_records(self, table_id: str, select: Sequence[int], where: str = None) -> List[dict]:
        """
        Runs a record query.
        Args:
            table_id (str): QuickBase table id.
            select (Sequence[int]): Field ids to return.
            where (str, optional): QuickBase filter expression, e.g. ``{6.EX.'x'}``.
        Returns:
            list[dict]: Records keyed by field id.
        """
        body = {"from": table_id, "select": list(select)}
        if where:
            body["where"] = where
        data = self._request("POST", "/records/query", "query records", self.settings.read_timeout,
                             table_id=table_id, body=body)
        return data.get("data") or []

    def create_records(self, table_id: str, rows: List[dict], fields_to_return: Iterable[int] = (3,)) -> dict:
        """
        Creates one or more records in a single call.
        Args:
            table_id (str): Target table id.
            rows (list[dict]): Rows built with `build_row`.
            fields_to_return (Iterable[int]): Field ids echoed back per created record.
        Returns:
            dict: Raw QuickBase response with ``data`` and ``metadata.createdRecordIds``.
        """
        body = {"to": table_id, "data": rows, "fieldsToReturn": list(fields_to_return)}
        return self._request("POST", "/records", "create records", self.settings.write_timeout,
                             table_id=table_id, body=body)

    def delete_records(self, table_id: str, where: str) -> int:
        """Deletes all records matching `where`. Returns the number of deleted records."""
        data = self._request("DELETE", "/records", "delete records", self.settings.write_timeout,
                             table_id=table_id, body={"from": table_id, "where": where})
        return int(data.get("numberDeleted") or 0)

    def get_app(self, app_id: str) -> dict:
        return self._request("GET", f"/apps/{app_id}", "fetch app info", self.settings.read_timeout)

    def list_tables(self, app_id: str) -> list:
        return self._request("GET", "/tables", "list app tables", self.settings.read_timeout,
                             params={"appId": app_id})
