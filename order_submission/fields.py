"""
fields.py — Field Discovery by Label Cascades

QuickBase addresses columns by numeric field id. On the read paths the ids are
not known in advance and are found by matching field labels. A `FieldCascade`
is an ordered list of predicates; the first predicate that matches any field
decides, and the first matching field in list order is used.

All cascades used by the service are declared at the bottom of this module.
"""

from typing import Callable, Iterable, List, Optional, Sequence

from .errors import FieldResolutionError
from .models import FieldMeta

FieldPredicate = Callable[[FieldMeta], bool]

RECORD_ID_FIELD_ID = 3


def _label(field: FieldMeta) -> str:
    return (field.label or "").strip().lower()


def label_equals(*labels: str) -> FieldPredicate:
    wanted = {label.lower() for label in labels}

    def predicate(field):
        return _label(field) in wanted
    return predicate


def label_contains(*fragments: str) -> FieldPredicate:
    """Matches fields whose label contains every fragment (case-insensitive)."""
    wanted = [fragment.lower() for fragment in fragments]

    def predicate(field):
        label = _label(field)
        return bool(label) and all(fragment in label for fragment in wanted)
    return predicate


def first_of_base_type(*types: str, exclude_ids: Iterable[int] = ()) -> FieldPredicate:
    """Matches fields whose baseType or fieldType is one of `types`, skipping `exclude_ids`."""
    wanted = set(types)
    excluded = set(exclude_ids)

    def predicate(field):
        if field.id in excluded:
            return False
        return field.baseType in wanted or field.fieldType in wanted
    return predicate


class FieldCascade:
    """
    Named, ordered list of predicates locating one logical field.

    Args:
        name (str): Human-readable name used in error messages ("School Name").
        strategies (Sequence[FieldPredicate]): Predicates, most specific first.
        suggestion (str): Hint shown to the operator when nothing matches.
    """

    def __init__(self, name: str, strategies: Sequence[FieldPredicate], suggestion: str = ""):
        self.name = name
        self.strategies = tuple(strategies)
        self.suggestion = suggestion

    def __repr__(self):
        return f"FieldCascade({self.name!r}, {len(self.strategies)} strategies)"


def find_field(fields: Sequence[FieldMeta], strategies: Sequence[FieldPredicate]) -> Optional[FieldMeta]:
    """
    Applies `strategies` in order and returns the first match.

    Returns:
        FieldMeta | None: None when no strategy matches any field.
    """
    for strategy in strategies:
        for field in fields:
            if strategy(field):
                return field
    return None


def resolve_field(fields: Sequence[FieldMeta], cascade: FieldCascade, table_id: str = None) -> FieldMeta:
    """
    Like `find_field`, but a miss is a configuration problem of the target table.

    Raises:
        FieldResolutionError: With every candidate field attached for diagnosis.
    """
    field = find_field(fields, cascade.strategies)
    if field is None:
        details = {"availableFields": [f.summary() for f in fields]}
        if table_id:
            details["tableId"] = table_id
        if cascade.suggestion:
            details["suggestion"] = cascade.suggestion
        raise FieldResolutionError(
            f"Could not find {cascade.name} field"
            + (f" in table {table_id}" if table_id else "")
            + ". Please verify the table structure.",
            details=details,
        )
    return field


def find_record_id_field(fields: Sequence[FieldMeta]) -> int:
    """Returns the id of the record id field, falling back to QuickBase's default of 3."""
    for field in fields:
        if field.fieldType == "recordid" or field.baseType == "recordid" or field.id == RECORD_ID_FIELD_ID:
            return field.id
    return RECORD_ID_FIELD_ID


# --- Declared cascades ---

def school_name_cascade(record_id_field_id: int = RECORD_ID_FIELD_ID) -> FieldCascade:
    return FieldCascade(
        "School Name",
        [
            label_equals("school name"),
            label_contains("school", "name"),
            label_contains("school"),
            first_of_base_type("text", exclude_ids=[record_id_field_id]),
        ],
        suggestion='Look for a field with "school" or "name" in the label, or check the first text field',
    )


def uom_cascade(record_id_field_id: int = RECORD_ID_FIELD_ID) -> FieldCascade:
    return FieldCascade(
        "UOM",
        [
            label_equals("uom"),
            label_contains("uom"),
            label_contains("unit"),
            first_of_base_type("text", exclude_ids=[record_id_field_id]),
        ],
        suggestion='Look for a field labeled "UOM" or containing "UOM" in the label',
    )


CONTACT_EMAIL = FieldCascade(
    "Email Address",
    [
        label_equals("email address", "email"),
        label_contains("email address"),
    ],
    suggestion='Look for a field labeled "Email Address"',
)

MATERIAL_ORDERS = FieldCascade(
    "Material Orders",
    [
        label_equals("material orders"),
        label_contains("material orders"),
        label_contains("material", "order"),
    ],
    suggestion='Look for a checkbox labeled "Material Orders"',
)


def parse_fields(raw: List[dict]) -> List[FieldMeta]:
    return [FieldMeta.model_validate(item) for item in raw or []]
