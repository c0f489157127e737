"""
access.py — Material Orders Access Gate

A signed-in user may use the order form only if their contact record in the
Contacts Book table has the "Material Orders" checkbox set. The check is run
once per login and is never cached.
"""

import logging

from .clients import QuickBaseClient, cell_value, exact_match
from .config import Settings
from .errors import ValidationError
from .fields import CONTACT_EMAIL, MATERIAL_ORDERS, resolve_field

log = logging.getLogger(__name__)

REASON_GRANTED = "Access granted"
REASON_NOT_FOUND = "Email not found in Contacts Book table"
REASON_NOT_CHECKED = "Material Orders checkbox is not checked"


def is_truthy_flag(value) -> bool:
    """
    Evaluates a QuickBase checkbox value.

    Only ``True``, the number 1, ``"1"`` and ``"true"`` (any case) count as set.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value == "1" or value.lower() == "true"
    return False


class AccessDecision:
    def __init__(self, has_access: bool, reason: str, email: str = None, material_orders=None):
        self.has_access = has_access
        self.reason = reason
        self.email = email
        self.material_orders = material_orders

    def to_dict(self) -> dict:
        body = {"hasAccess": self.has_access, "reason": self.reason}
        if self.reason != REASON_NOT_FOUND:
            body["record"] = {"email": self.email, "materialOrders": self.material_orders}
        return body


class AccessGate:
    """Looks up a contact by email and reads its Material Orders flag."""

    def __init__(self, client: QuickBaseClient, settings: Settings):
        self.client = client
        self.settings = settings

    def check(self, email: str) -> AccessDecision:
        """
        Args:
            email (str): Authenticated user's email address.
        Returns:
            AccessDecision: Whether access is granted and why.
        Raises:
            ValidationError: If `email` is blank.
            ConfigurationError / FieldResolutionError / QuickBaseError: On lookup problems.
        """
        email = (email or "").strip()
        if not email:
            raise ValidationError("Email is required")

        self.settings.require_credentials()
        (contacts_table,) = self.settings.require_tables("contacts_table")

        fields = self.client.list_fields(contacts_table)
        email_field = resolve_field(fields, CONTACT_EMAIL, table_id=contacts_table)
        flag_field = resolve_field(fields, MATERIAL_ORDERS, table_id=contacts_table)
        log.info(f"[Access] Felder gefunden: E-Mail={email_field.id}, Material Orders={flag_field.id}.")

        records = self.client.query_records(
            contacts_table,
            select=[email_field.id, flag_field.id],
            where=exact_match(email_field.id, email),
        )
        if not records:
            log.info(f"[Access] Kein Kontakt für {email} gefunden. Zugriff verweigert.")
            return AccessDecision(False, REASON_NOT_FOUND)

        record = records[0]
        flag_value = cell_value(record, flag_field.id)
        granted = is_truthy_flag(flag_value)
        log.info(f"[Access] {email}: Material Orders={flag_value!r} -> Zugriff {'erlaubt' if granted else 'verweigert'}.")
        return AccessDecision(
            granted,
            REASON_GRANTED if granted else REASON_NOT_CHECKED,
            email=cell_value(record, email_field.id),
            material_orders=flag_value,
        )


def has_material_orders_access(client: QuickBaseClient, settings: Settings, email: str) -> bool:
    return AccessGate(client, settings).check(email).has_access
