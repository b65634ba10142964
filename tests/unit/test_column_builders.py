from datetime import date, datetime

from admin_console.core.column_builders import (
    PLACEHOLDER,
    action_column,
    badge_list_column,
    boolean_column,
    date_column,
    filterable_text_column,
    format_date,
    parse_date,
    select_column,
    status_column,
)
from admin_console.core.tables import SortState, apply_filters, resolve_filter_options, sort_items


def test_parse_date_accepts_iso_and_date_objects():
    assert parse_date("2024-03-05T10:00:00Z").tzinfo is not None
    assert parse_date(date(2024, 3, 5)) == datetime(2024, 3, 5)
    assert parse_date("not a date") is None
    assert parse_date("") is None


def test_format_date_by_locale():
    assert format_date("2024-03-05", "fr") == "05/03/2024"
    assert format_date("2024-03-05", "en") == "03/05/2024"
    assert format_date(None) == PLACEHOLDER


def test_filterable_text_column_default_placeholder():
    column = filterable_text_column("email", "Email")
    assert column.filterable and column.filter_type == "text"
    assert column.filter_placeholder == "Filter email..."


def test_select_column_without_options_uses_data():
    column = select_column("service", "Service")
    items = [{"service": "guardian"}, {"service": "identity"}, {"service": "guardian"}]
    assert [o["value"] for o in resolve_filter_options(column, items)] == ["guardian", "identity"]


def test_boolean_column_labels_and_filter():
    column = boolean_column("is_active", "Active", locale="fr")
    assert column.display({"is_active": True}) == "Oui"
    assert column.display({"is_active": False}) == "Non"
    assert [o["value"] for o in column.filter_options] == ["true", "false"]


def test_date_column_renders_and_sorts_chronologically():
    column = date_column("created_at", "Created", locale="fr")
    items = [
        {"id": 1, "created_at": "2024-12-01T00:00:00Z"},
        {"id": 2, "created_at": None},
        {"id": 3, "created_at": "2023-01-15T08:30:00"},
    ]

    assert column.display(items[0]) == "01/12/2024"
    assert column.display(items[1]) == PLACEHOLDER
    assert [i["id"] for i in sort_items(items, [column], SortState("created_at"))] == [3, 1, 2]
    assert [i["id"] for i in sort_items(items, [column], SortState("created_at", "desc"))] == [1, 3, 2]


def test_status_column_maps_labels():
    column = status_column("status", "Status", {"active": {"label": "Active"}, "inactive": {"label": "Inactive"}})
    assert column.display({"status": "active"}) == "Active"
    assert column.display({"status": "archived"}) == "archived"
    assert column.display({}) == PLACEHOLDER
    assert column.filter_options == [{"value": "active", "label": "Active"}, {"value": "inactive", "label": "Inactive"}]


def test_badge_list_column_renders_filters_and_sorts():
    column = badge_list_column("roles", "Roles", filterable=True)
    items = [
        {"id": 1, "roles": [{"name": "admin"}, {"name": "dev"}]},
        {"id": 2, "roles": []},
        {"id": 3, "roles": [{"name": "dev"}]},
    ]

    assert column.display(items[0]) == ["admin", "dev"]
    assert [i["id"] for i in apply_filters(items, [column], {"roles": ["admin"]})] == [1]
    assert [i["id"] for i in sort_items(items, [column], SortState("roles"))] == [2, 3, 1]
    assert [o["value"] for o in resolve_filter_options(column, items)] == ["admin", "dev"]


def test_action_column_lists_enabled_actions():
    column = action_column(view=True, delete=False)
    assert column.display({}) == ["view", "edit"]
    assert not column.sortable and not column.filterable


def test_badge_list_column_matches_junction_rows_by_linked_id():
    column = badge_list_column(
        "roles", "Roles",
        label=lambda row: row["role"]["name"],
        filterable=True,
        value_of=lambda row: row["role_id"],
    )
    items = [
        {"id": 1, "roles": [{"id": 10, "role_id": 5, "role": {"name": "Admin"}}]},
        {"id": 2, "roles": [{"id": 11, "role_id": 6, "role": {"name": "Viewer"}}]},
    ]

    assert column.display(items[0]) == ["Admin"]
    assert [i["id"] for i in apply_filters(items, [column], {"roles": ["5"]})] == [1]
    assert [i["id"] for i in apply_filters(items, [column], {"roles": "Viewer"})] == [2]
    assert apply_filters(items, [column], {"roles": ["10"]}) == []
