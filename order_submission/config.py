"""
config.py — Configuration Layer

Configuration comes from two sources:
    1. A local ``KEY=VALUE`` file (``.config`` in the working directory by default)
    2. Process environment variables

Lookup order is always file first, environment second, then the default.
The file is read exactly once, when the resolver is built at process start;
the resulting `Settings` object is shared by all request handlers.
"""

import logging
import os
import re
from typing import Dict, Mapping, Optional, Tuple

from pydantic import BaseModel

from .errors import ConfigurationError

log = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = ".config"
DEFAULT_API_BASE_URL = "https://api.quickbase.com/v1"
DEFAULT_JOBS_TABLE = "buy4q98bb"
DEFAULT_CONTACTS_TABLE = "buzhqi64n"
DEFAULT_READ_TIMEOUT = 30.0

# Tabellen-Schlüssel -> Anzeigename in Fehlermeldungen
TABLE_LABELS = {
    "order_submissions_table": "ORDER_SUBMISSIONS table ID",
    "line_items_table": "ORDER_SUBMISSIONS_LINEITEMS table ID",
    "uom_table": "UOM_TABLE table ID",
    "jobs_table": "JOBS_TABLE table ID",
    "contacts_table": "CONTACTS_TABLE table ID",
}


def parse_config_file(path: str) -> Dict[str, str]:
    """
    Parses a ``KEY=VALUE`` configuration file.

    Blank lines and lines starting with ``#`` are skipped. Each line is split on
    the first ``=`` only, so values may themselves contain ``=``.

    Args:
        path (str): Path to the configuration file.

    Returns:
        dict: Parsed key/value pairs. Empty if the file does not exist.
    """
    config = {}
    if not os.path.exists(path):
        return config

    try:
        with open(path, encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                key, sep, value = line.partition("=")
                key = key.strip()
                if not sep or not key:
                    continue
                config[key] = value.strip()
    except OSError as e:
        log.error(f"Konfigurationsdatei {path} konnte nicht gelesen werden: {e}")
        return {}

    return config


class ConfigResolver:
    """Merges the parsed config file with the process environment."""

    def __init__(self, file_config: Mapping[str, str] = None, environ: Mapping[str, str] = None):
        self.file_config = dict(file_config or {})
        self.environ = os.environ if environ is None else environ

    @classmethod
    def from_file(cls, path: str = None, environ: Mapping[str, str] = None):
        environ = os.environ if environ is None else environ
        path = path or environ.get("ORDER_APP_CONFIG_FILE") or os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
        return cls(parse_config_file(path), environ)

    def resolve(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.file_config.get(key)
        if value:
            return value
        value = self.environ.get(key)
        if value:
            return value
        return default

    def resolve_first(self, *keys: str, default: Optional[str] = None) -> Optional[str]:
        for key in keys:
            value = self.resolve(key)
            if value:
                return value
        return default


def normalize_realm_hostname(value: Optional[str]) -> Optional[str]:
    """Strips whitespace, a leading ``http(s)://`` and one trailing slash."""
    if value is None:
        return None
    value = value.strip()
    value = re.sub(r"^https?://", "", value)
    value = re.sub(r"/$", "", value)
    return value or None


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _as_timeout(value: Optional[str], default: Optional[float]) -> Optional[float]:
    if value is None:
        return default
    value = value.strip().lower()
    if value in ("", "none", "0"):
        return None
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Invalid timeout value: {value!r}. Expected a number of seconds.")


class Settings(BaseModel):
    """
    Process-wide configuration, built once at startup.

    Attributes:
        realm_hostname (str): QuickBase realm, without protocol or trailing slash.
        user_token (str): QuickBase user token.
        api_base_url (str): QuickBase REST base URL.
        order_submissions_table / line_items_table / uom_table / jobs_table /
        contacts_table (str): QuickBase table ids.
        app_id (str): Optional QuickBase app id (diagnostics only).
        read_timeout (float): Timeout for field listing and record queries.
        write_timeout (float): Timeout for record writes. None waits indefinitely.
        strict_quantity (bool): Reject unparseable line-item quantities.
        compensate_orphaned_headers (bool): Delete the header when its line items fail.
        firebase_api_key / firebase_auth_domain / firebase_project_id (str):
            Identity service public configuration.
    """
    realm_hostname: Optional[str] = None
    user_token: Optional[str] = None
    api_base_url: str = DEFAULT_API_BASE_URL

    order_submissions_table: Optional[str] = None
    line_items_table: Optional[str] = None
    uom_table: Optional[str] = None
    jobs_table: Optional[str] = DEFAULT_JOBS_TABLE
    contacts_table: Optional[str] = DEFAULT_CONTACTS_TABLE
    app_id: Optional[str] = None

    read_timeout: Optional[float] = DEFAULT_READ_TIMEOUT
    write_timeout: Optional[float] = None

    strict_quantity: bool = True
    compensate_orphaned_headers: bool = True

    firebase_api_key: Optional[str] = None
    firebase_auth_domain: Optional[str] = None
    firebase_project_id: Optional[str] = None

    def require_credentials(self) -> Tuple[str, str]:
        """
        Returns (realm_hostname, user_token).

        Raises:
            ConfigurationError: If either value is missing.
        """
        missing = []
        if not self.realm_hostname:
            missing.append("QB_REALM_HOSTNAME (or QUICKBASE_REALM_HOSTNAME)")
        if not self.user_token:
            missing.append("QB_USER_TOKEN (or QUICKBASE_API_TOKEN)")
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}.",
                details={"missing": missing},
            )
        return self.realm_hostname, self.user_token

    def require_tables(self, *names: str) -> Tuple[str, ...]:
        """
        Returns the table ids for the given attribute names, in order.

        Raises:
            ConfigurationError: Naming every table id that is not configured.
        """
        missing = [TABLE_LABELS.get(name, name) for name in names if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}. "
                f"Please check your .config file or environment.",
                details={"missing": missing},
            )
        return tuple(getattr(self, name) for name in names)


def load_settings(resolver: ConfigResolver = None) -> Settings:
    """
    Builds the `Settings` object from the config file and environment.

    Args:
        resolver (ConfigResolver, optional): Pre-built resolver (tests). Defaults to
            reading ORDER_APP_CONFIG_FILE / ``.config`` and ``os.environ``.

    Returns:
        Settings: The immutable process configuration.
    """
    r = resolver or ConfigResolver.from_file()
    settings = Settings(
        realm_hostname=normalize_realm_hostname(r.resolve_first("QB_REALM_HOSTNAME", "QUICKBASE_REALM_HOSTNAME")),
        user_token=r.resolve_first("QB_USER_TOKEN", "QUICKBASE_API_TOKEN"),
        api_base_url=r.resolve("QB_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
        order_submissions_table=r.resolve("ORDER_SUBMISSIONS"),
        line_items_table=r.resolve("ORDER_SUBMISSIONS_LINEITEMS"),
        uom_table=r.resolve("UOM_TABLE"),
        jobs_table=r.resolve("JOBS_TABLE", DEFAULT_JOBS_TABLE),
        contacts_table=r.resolve("CONTACTS_TABLE", DEFAULT_CONTACTS_TABLE),
        app_id=r.resolve("CFED_APP"),
        read_timeout=_as_timeout(r.resolve("QB_READ_TIMEOUT"), DEFAULT_READ_TIMEOUT),
        write_timeout=_as_timeout(r.resolve("QB_WRITE_TIMEOUT"), None),
        strict_quantity=_as_bool(r.resolve("STRICT_QUANTITY"), True),
        compensate_orphaned_headers=_as_bool(r.resolve("COMPENSATE_ORPHANED_HEADERS"), True),
        firebase_api_key=r.resolve_first("FIREBASE_API_KEY", "NEXT_PUBLIC_FIREBASE_API_KEY"),
        firebase_auth_domain=r.resolve_first("FIREBASE_AUTH_DOMAIN", "NEXT_PUBLIC_FIREBASE_AUTH_DOMAIN"),
        firebase_project_id=r.resolve("FIREBASE_PROJECT_ID"),
    )
    log.info(
        f"Konfiguration geladen. Realm gesetzt: {bool(settings.realm_hostname)}, "
        f"Token gesetzt: {bool(settings.user_token)}."
    )
    return settings
