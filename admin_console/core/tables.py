"""Table state: column configuration, filtering, sorting, selection, paging.

Pure Python, no Flask dependency. State round-trips through query string
arguments so a table view is bookmarkable and survives redirects.
"""
from __future__ import annotations
import math
from functools import cmp_to_key
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

FILTER_PREFIX = "filter_"
FILTER_TYPES = ("text", "select", "multi-select", "boolean", "custom")
SORT_DIRECTIONS = ("asc", "desc")

FilterOption = dict  # {"value": ..., "label": ...}


@dataclass
class ColumnConfig:
    """How one column is displayed, sorted and filtered.

    ``render`` receives the whole item and returns display text; without it
    the (possibly nested) value at ``key`` is shown. ``sort_fn`` and
    ``filter_fn`` override the default comparisons.
    """
    key: str
    header: str
    sortable: bool = True
    sort_fn: Optional[Callable[[dict, dict], int]] = None
    filterable: bool = False
    filter_type: str = "text"
    filter_options: Union[Sequence[FilterOption], Callable[[], Sequence[FilterOption]], None] = None
    filter_fn: Optional[Callable[[dict, Any], bool]] = None
    filter_placeholder: Optional[str] = None
    render: Optional[Callable[[dict], Any]] = None
    hidden: bool = False
    align: str = "left"

    def __post_init__(self):
        if self.filter_type not in FILTER_TYPES:
            raise ValueError(f"Unknown filter type: {self.filter_type}")

    def value(self, item: dict) -> Any:
        return get_nested_value(item, self.key)

    def display(self, item: dict) -> Any:
        if self.render is not None:
            return self.render(item)
        value = self.value(item)
        return "" if value is None else value


@dataclass
class SortState:
    column: str
    direction: str = "asc"

    def __post_init__(self):
        if self.direction not in SORT_DIRECTIONS:
            self.direction = "asc"


@dataclass
class TablePage:
    items: list[dict]
    total: int
    page: int
    page_count: int
    page_size: int

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.page_count


def get_nested_value(item: Any, key: str) -> Any:
    """Resolve a dot-notation key (``position.title``) against nested dicts."""
    value = item
    for part in key.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
        if value is None:
            return None
    return value


def is_empty_filter_value(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple)) and len(value) == 0)


def has_active_filters(filters: Mapping[str, Any]) -> bool:
    return any(not is_empty_filter_value(v) for v in filters.values())


def _matches(column: ColumnConfig, item: dict, filter_value: Any) -> bool:
    if column.filter_fn is not None:
        return bool(column.filter_fn(item, filter_value))

    value = column.value(item)
    if column.filter_type == "text":
        text = "" if value is None else str(value)
        return str(filter_value).lower() in text.lower()
    if column.filter_type == "select":
        return str(value) == str(filter_value)
    if column.filter_type == "multi-select":
        wanted = filter_value if isinstance(filter_value, (list, tuple)) else [filter_value]
        if isinstance(value, (list, tuple)):
            return any(str(v) in wanted for v in value)
        return str(value) in wanted
    if column.filter_type == "boolean":
        return value == (str(filter_value).lower() == "true")
    # custom filter without filter_fn: nothing to compare against
    return True


def apply_filters(items: Iterable[dict], columns: Sequence[ColumnConfig], filters: Mapping[str, Any]) -> list[dict]:
    """Keep the items that satisfy every active filter."""
    by_key = {c.key: c for c in columns}
    active = [
        (by_key[key], value)
        for key, value in filters.items()
        if key in by_key and not is_empty_filter_value(value)
    ]
    if not active:
        return list(items)
    return [item for item in items if all(_matches(col, item, value) for col, value in active)]


def _sort_key(value: Any):
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value).lower())


def sort_items(items: Iterable[dict], columns: Sequence[ColumnConfig], sort: Optional[SortState]) -> list[dict]:
    """Stable sort; ``None`` values always go last whatever the direction."""
    items = list(items)
    if sort is None:
        return items
    column = next((c for c in columns if c.key == sort.column), None)
    if column is None or not column.sortable:
        return items
    reverse = sort.direction == "desc"

    present = [i for i in items if not _is_missing(column.value(i))]
    missing = [i for i in items if _is_missing(column.value(i))]
    if column.sort_fn is not None:
        present.sort(key=cmp_to_key(column.sort_fn), reverse=reverse)
    else:
        present.sort(key=lambda i: _sort_key(column.value(i)), reverse=reverse)
    return present + missing


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def toggle_sort(current: Optional[SortState], column: str) -> Optional[SortState]:
    """Cycle a column through asc → desc → unsorted."""
    if current is None or current.column != column:
        return SortState(column, "asc")
    if current.direction == "asc":
        return SortState(column, "desc")
    return None


def resolve_filter_options(column: ColumnConfig, items: Iterable[dict] = ()) -> list[FilterOption]:
    """Configured options for a select filter, or distinct values seen in ``items``.

    Columns with a ``filter_fn`` match on rendered values, so their options
    are collected from ``display`` instead of the raw value.
    """
    options = column.filter_options
    if callable(options):
        options = options()
    if options:
        return [dict(o) for o in options]

    seen: dict[str, Any] = {}
    for item in items:
        value = column.display(item) if column.filter_fn is not None else column.value(item)
        values = value if isinstance(value, (list, tuple)) else [value]
        for v in values:
            if v is None or v == "":
                continue
            seen.setdefault(str(v), v)
    return [{"value": key, "label": str(seen[key])} for key in sorted(seen, key=str.lower)]


def filters_from_args(args: Mapping[str, Any], columns: Sequence[ColumnConfig], prefix: str = FILTER_PREFIX) -> dict[str, Any]:
    """Read filter state from query string arguments.

    Multi-select values are comma-separated; unknown or empty keys are dropped.
    """
    filters: dict[str, Any] = {}
    for column in columns:
        if not column.filterable:
            continue
        name = f"{prefix}{column.key}"
        if column.filter_type == "multi-select":
            values = [v for raw in _getlist(args, name) for v in str(raw).split(",") if v]
            if values:
                filters[column.key] = values
            continue
        raw = args.get(name)
        if raw is None or raw == "":
            continue
        filters[column.key] = raw
    return filters


def filters_to_args(filters: Mapping[str, Any], prefix: str = FILTER_PREFIX) -> dict[str, str]:
    args: dict[str, str] = {}
    for key, value in filters.items():
        if is_empty_filter_value(value):
            continue
        if isinstance(value, (list, tuple)):
            args[f"{prefix}{key}"] = ",".join(str(v) for v in value)
        else:
            args[f"{prefix}{key}"] = str(value)
    return args


def _split_ids(values: Iterable[str]) -> list[str]:
    ids: list[str] = []
    for value in values:
        for part in str(value).split(","):
            part = part.strip()
            if part and part not in ids:
                ids.append(part)
    return ids


def _getlist(args: Mapping[str, Any], key: str) -> list:
    if hasattr(args, "getlist"):
        return args.getlist(key)
    value = args.get(key)
    if value is None:
        return []
    return list(value) if isinstance(value, (list, tuple)) else [value]


@dataclass
class TableState:
    """Everything a table view needs to render one page."""
    filters: dict[str, Any] = field(default_factory=dict)
    sort: Optional[SortState] = None
    selected: list[str] = field(default_factory=list)
    expanded: list[str] = field(default_factory=list)
    search: str = ""
    page: int = 1
    page_size: int = 20

    @classmethod
    def from_args(cls, args: Mapping[str, Any], columns: Sequence[ColumnConfig], page_size: int = 20) -> "TableState":
        sort = None
        sort_column = args.get("sort")
        if sort_column and any(c.key == sort_column and c.sortable for c in columns):
            sort = SortState(sort_column, args.get("dir", "asc"))
        try:
            page = max(1, int(args.get("page", 1)))
        except (TypeError, ValueError):
            page = 1
        return cls(
            filters=filters_from_args(args, columns),
            sort=sort,
            selected=_split_ids(_getlist(args, "selected")),
            expanded=_split_ids(_getlist(args, "expand")),
            search=(args.get("q") or "").strip(),
            page=page,
            page_size=page_size,
        )

    @property
    def has_active_filters(self) -> bool:
        return has_active_filters(self.filters) or bool(self.search)

    def to_args(self, **overrides) -> dict[str, Any]:
        """Query arguments reproducing this state, with ``overrides`` applied."""
        args: dict[str, Any] = filters_to_args(self.filters)
        if self.sort is not None:
            args["sort"] = self.sort.column
            args["dir"] = self.sort.direction
        if self.expanded:
            args["expand"] = ",".join(self.expanded)
        if self.search:
            args["q"] = self.search
        if self.page > 1:
            args["page"] = self.page
        for key, value in overrides.items():
            if value is None:
                args.pop(key, None)
            else:
                args[key] = value
        return args

    def sort_args(self, column: str) -> dict[str, Any]:
        """Query arguments for clicking a column header."""
        next_sort = toggle_sort(self.sort, column)
        if next_sort is None:
            return self.to_args(sort=None, dir=None, page=None)
        return self.to_args(sort=next_sort.column, dir=next_sort.direction, page=None)

    def expand_args(self, item_id: Any) -> dict[str, Any]:
        """Query arguments toggling the expanded state of one row."""
        item_id = str(item_id)
        expanded = [i for i in self.expanded if i != item_id]
        if item_id not in self.expanded:
            expanded.append(item_id)
        return self.to_args(expand=",".join(expanded) or None)

    def is_selected(self, item_id: Any) -> bool:
        return str(item_id) in self.selected

    def is_expanded(self, item_id: Any) -> bool:
        return str(item_id) in self.expanded

    def apply(self, items: Iterable[dict], columns: Sequence[ColumnConfig], search_fields: Sequence[str] = ()) -> TablePage:
        """Filter, sort and paginate ``items``."""
        rows = apply_filters(items, columns, self.filters)
        if self.search and search_fields:
            needle = self.search.lower()
            rows = [
                r for r in rows
                if any(needle in str(get_nested_value(r, f) or "").lower() for f in search_fields)
            ]
        rows = sort_items(rows, columns, self.sort)
        total = len(rows)
        page_count = max(1, math.ceil(total / self.page_size)) if self.page_size else 1
        page = min(self.page, page_count)
        if self.page_size:
            start = (page - 1) * self.page_size
            rows = rows[start:start + self.page_size]
        return TablePage(items=rows, total=total, page=page, page_count=page_count, page_size=self.page_size)
