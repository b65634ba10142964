"""Column factories for the entity tables.

Each builder returns a ColumnConfig with the rendering, sorting and
filtering behaviour for one kind of field.
"""
from __future__ import annotations
from datetime import date, datetime, timezone
from typing import Any, Callable, Mapping, Optional

from .tables import ColumnConfig, get_nested_value

PLACEHOLDER = "—"

DATE_FORMATS = {
    "fr": "%d/%m/%Y",
    "en": "%m/%d/%Y",
}

BOOLEAN_LABELS = {
    "fr": ("Oui", "Non"),
    "en": ("Yes", "No"),
}


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix accepted) or date object."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def format_date(value: Any, locale: str = "fr") -> str:
    parsed = parse_date(value)
    if parsed is None:
        return PLACEHOLDER
    return parsed.strftime(DATE_FORMATS.get(locale, DATE_FORMATS["en"]))


def text_column(key: str, header: str, **kwargs) -> ColumnConfig:
    """Sortable text column, no filter."""
    return ColumnConfig(key=key, header=header, sortable=True, **kwargs)


def filterable_text_column(key: str, header: str, placeholder: Optional[str] = None, **kwargs) -> ColumnConfig:
    """Sortable column with a case-insensitive substring filter."""
    return ColumnConfig(
        key=key,
        header=header,
        sortable=True,
        filterable=True,
        filter_type="text",
        filter_placeholder=placeholder or f"Filter {header.lower()}...",
        **kwargs,
    )


def select_column(key: str, header: str, options=None, **kwargs) -> ColumnConfig:
    """Sortable column filtered by exact value; options default to values in the data."""
    return ColumnConfig(
        key=key,
        header=header,
        filterable=True,
        filter_type="select",
        filter_options=options,
        **kwargs,
    )


def boolean_column(key: str, header: str, locale: str = "en", filterable: bool = True) -> ColumnConfig:
    yes, no = BOOLEAN_LABELS.get(locale, BOOLEAN_LABELS["en"])

    def render(item: dict) -> str:
        return yes if get_nested_value(item, key) else no

    return ColumnConfig(
        key=key,
        header=header,
        render=render,
        filterable=filterable,
        filter_type="boolean",
        filter_options=[{"value": "true", "label": yes}, {"value": "false", "label": no}],
        align="center",
    )


def date_column(key: str, header: str, locale: str = "fr") -> ColumnConfig:
    """Locale-formatted date that sorts chronologically."""

    def render(item: dict) -> str:
        return format_date(get_nested_value(item, key), locale)

    def compare(a: dict, b: dict) -> int:
        left = parse_date(get_nested_value(a, key))
        right = parse_date(get_nested_value(b, key))
        if left is None or right is None:
            return (left is None) - (right is None)
        left_ts, right_ts = _timestamp(left), _timestamp(right)
        return (left_ts > right_ts) - (left_ts < right_ts)

    return ColumnConfig(key=key, header=header, render=render, sort_fn=compare)


def _timestamp(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def status_column(key: str, header: str, statuses: Mapping[str, Mapping[str, str]]) -> ColumnConfig:
    """Map raw status values to labels.

    Example:
        status_column("status", "Status", {
            "active": {"label": "Active", "variant": "default"},
            "inactive": {"label": "Inactive", "variant": "secondary"},
        })
    """

    def render(item: dict) -> str:
        raw = get_nested_value(item, key)
        status = "" if raw is None else str(raw)
        config = statuses.get(status)
        if config:
            return config.get("label", status)
        return status or PLACEHOLDER

    options = [{"value": value, "label": cfg.get("label", value)} for value, cfg in statuses.items()]
    return ColumnConfig(
        key=key,
        header=header,
        render=render,
        filterable=True,
        filter_type="select",
        filter_options=options,
    )


def badge_list_column(
    key: str,
    header: str,
    label: Callable[[Any], str] = lambda entry: str(entry.get("name", "")) if isinstance(entry, dict) else str(entry),
    filterable: bool = False,
    value_of: Optional[Callable[[Any], Any]] = None,
) -> ColumnConfig:
    """List field (roles, tags) rendered as labels.

    The filter matches any label, or any ``value_of(entry)`` when given
    (junction rows filtered by the linked id).
    """

    def entries(item: dict) -> list:
        value = get_nested_value(item, key)
        return list(value) if isinstance(value, (list, tuple)) else []

    def render(item: dict) -> list[str]:
        return [label(entry) for entry in entries(item)]

    def matches(item: dict, wanted: Any) -> bool:
        wanted = {str(w) for w in (wanted if isinstance(wanted, (list, tuple)) else [wanted])}
        for entry in entries(item):
            if label(entry) in wanted:
                return True
            if value_of is not None and str(value_of(entry)) in wanted:
                return True
        return False

    def compare(a: dict, b: dict) -> int:
        return len(render(a)) - len(render(b))

    return ColumnConfig(
        key=key,
        header=header,
        render=render,
        sort_fn=compare,
        filterable=filterable,
        filter_type="multi-select",
        filter_fn=matches,
    )


def action_column(*, view: bool = False, edit: bool = True, delete: bool = True, header: str = "Actions") -> ColumnConfig:
    """Row action buttons. The template reads the enabled actions from ``render``."""
    actions = [name for name, enabled in (("view", view), ("edit", edit), ("delete", delete)) if enabled]

    return ColumnConfig(
        key="_actions",
        header=header,
        sortable=False,
        filterable=False,
        render=lambda item: list(actions),
        align="right",
    )
