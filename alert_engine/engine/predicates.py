"""
Store predicate templates.

The alert engine never lets callers hand it a query. It assembles every
predicate itself from the fixed templates in this module: a conjunction of
equality clauses over wire field names, with string values single-quoted
and embedded quotes doubled::

    source = 'ingest' AND status = 'active' AND hostName = 'node-1'
    id = '0b6f...'
    status = 'active'

The bundled stores use ``parse_predicate`` and ``matches`` to evaluate the
same grammar, so anything this module builds they can answer.
"""

import re
from typing import Dict, Sequence, Tuple

from alert_engine.interfaces.alert_store import PredicateError
from alert_engine.models.alerts import Alert, AlertStatus

FIELD_ID = "id"
FIELD_SOURCE = "source"
FIELD_HOST_NAME = "hostName"
FIELD_STATUS = "status"

# Wire field name -> Alert attribute
QUERYABLE_FIELDS: Dict[str, str] = {
    FIELD_ID: "id",
    FIELD_SOURCE: "source",
    FIELD_HOST_NAME: "host_name",
    "hostAddress": "host_address",
    FIELD_STATUS: "status",
    "title": "title",
    "priority": "priority",
}

_CLAUSE = re.compile(r"\s*([A-Za-z_][A-Za-z0-9_]*)\s*=\s*'((?:[^']|'')*)'\s*")
_AND = re.compile(r"AND\b", re.IGNORECASE)


def quote(value: str) -> str:
    """Quote a literal value for use in a predicate."""
    return "'" + value.replace("'", "''") + "'"


def conjunction(clauses: Sequence[Tuple[str, str]]) -> str:
    """
    Join equality clauses with AND.

    Args:
        clauses: (field, value) pairs, in the order they should appear.

    Returns:
        str: The predicate string.

    Raises:
        PredicateError: If no clauses are given or a field is not queryable.
    """
    if not clauses:
        raise PredicateError("A predicate needs at least one clause")
    parts = []
    for field, value in clauses:
        if field not in QUERYABLE_FIELDS:
            raise PredicateError(f"Field is not queryable: {field}")
        parts.append(f"{field} = {quote(value)}")
    return " AND ".join(parts)


def active_by_dedup_key(source: str, host_name: str) -> str:
    """Predicate for the active alert of a (source, host name) pair."""
    return conjunction(
        [
            (FIELD_SOURCE, source),
            (FIELD_STATUS, AlertStatus.ACTIVE.value),
            (FIELD_HOST_NAME, host_name),
        ]
    )


def by_id(alert_id: str) -> str:
    """Predicate for a single alert, whatever its status."""
    return conjunction([(FIELD_ID, alert_id)])


def all_active() -> str:
    """Predicate for every active alert."""
    return conjunction([(FIELD_STATUS, AlertStatus.ACTIVE.value)])


def parse_predicate(predicate: str) -> Dict[str, str]:
    """
    Parse a predicate back into its clauses.

    Args:
        predicate: A conjunction of ``field = 'value'`` clauses.

    Returns:
        Dict[str, str]: Field name to expected value.

    Raises:
        PredicateError: On syntax errors, unknown fields or contradicting
            clauses.

    Example:
        >>> parse_predicate("source = 'a' AND status = 'active'")
        {'source': 'a', 'status': 'active'}
    """
    clauses: Dict[str, str] = {}
    pos = 0
    while True:
        match = _CLAUSE.match(predicate, pos)
        if match is None:
            raise PredicateError(f"Unsupported predicate near position {pos}: {predicate!r}")

        field, raw_value = match.group(1), match.group(2)
        if field not in QUERYABLE_FIELDS:
            raise PredicateError(f"Field is not queryable: {field}")

        value = raw_value.replace("''", "'")
        if clauses.get(field, value) != value:
            raise PredicateError(f"Contradicting clauses for field {field}")
        clauses[field] = value

        pos = match.end()
        if pos == len(predicate):
            return clauses

        conj = _AND.match(predicate, pos)
        if conj is None:
            raise PredicateError(f"Expected AND at position {pos}: {predicate!r}")
        pos = conj.end()


def field_value(alert: Alert, field: str) -> str:
    """Return an alert's value for a wire field as a string."""
    value = getattr(alert, QUERYABLE_FIELDS[field])
    if isinstance(value, AlertStatus):
        return value.value
    if isinstance(value, int):
        return str(int(value))
    return str(value)


def matches(alert: Alert, clauses: Dict[str, str]) -> bool:
    """Check whether an alert satisfies every parsed clause."""
    return all(field_value(alert, field) == value for field, value in clauses.items())
