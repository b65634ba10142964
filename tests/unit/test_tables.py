"""Tests for table filtering, sorting and query-string state."""
import pytest
from werkzeug.datastructures import MultiDict

from admin_console.core.tables import (
    ColumnConfig,
    SortState,
    TableState,
    apply_filters,
    filters_from_args,
    filters_to_args,
    get_nested_value,
    has_active_filters,
    resolve_filter_options,
    sort_items,
    toggle_sort,
)

USERS = [
    {"id": 1, "email": "carol@example.com", "is_active": True, "position": {"title": "CTO"}, "roles": ["admin"]},
    {"id": 2, "email": "alice@example.com", "is_active": False, "position": None, "roles": []},
    {"id": 3, "email": "bob@example.com", "is_active": True, "position": {"title": "Dev"}, "roles": ["dev", "ops"]},
]

COLUMNS = [
    ColumnConfig("email", "Email", filterable=True),
    ColumnConfig("is_active", "Active", filterable=True, filter_type="boolean"),
    ColumnConfig("position.title", "Position", filterable=True, filter_type="select"),
    ColumnConfig("roles", "Roles", filterable=True, filter_type="multi-select"),
    ColumnConfig("actions", "", sortable=False),
]


def ids(items):
    return [i["id"] for i in items]


def test_unknown_filter_type_rejected():
    with pytest.raises(ValueError):
        ColumnConfig("x", "X", filter_type="range")


def test_get_nested_value():
    assert get_nested_value(USERS[0], "position.title") == "CTO"
    assert get_nested_value(USERS[1], "position.title") is None
    assert get_nested_value(USERS[0], "missing.key") is None


def test_text_filter_is_case_insensitive_substring():
    assert ids(apply_filters(USERS, COLUMNS, {"email": "ALI"})) == [2]


def test_boolean_filter():
    assert ids(apply_filters(USERS, COLUMNS, {"is_active": "false"})) == [2]


def test_select_filter_on_nested_key():
    assert ids(apply_filters(USERS, COLUMNS, {"position.title": "Dev"})) == [3]


def test_multi_select_filter_matches_any_value():
    assert ids(apply_filters(USERS, COLUMNS, {"roles": ["ops", "admin"]})) == [1, 3]


def test_filters_combine_with_and():
    assert ids(apply_filters(USERS, COLUMNS, {"is_active": "true", "email": "bob"})) == [3]


def test_empty_filters_are_ignored():
    assert ids(apply_filters(USERS, COLUMNS, {"email": "", "roles": []})) == [1, 2, 3]
    assert has_active_filters({"email": "", "roles": []}) is False


def test_custom_filter_fn():
    column = ColumnConfig("email", "Email", filterable=True, filter_type="custom",
                          filter_fn=lambda item, value: item["email"].startswith(value))
    assert ids(apply_filters(USERS, [column], {"email": "b"})) == [3]


def test_sort_puts_none_last_in_both_directions():
    asc = sort_items(USERS, COLUMNS, SortState("position.title", "asc"))
    desc = sort_items(USERS, COLUMNS, SortState("position.title", "desc"))
    assert ids(asc) == [1, 3, 2]
    assert ids(desc) == [3, 1, 2]


def test_sort_ignores_unsortable_columns():
    assert ids(sort_items(USERS, COLUMNS, SortState("actions"))) == [1, 2, 3]


def test_sort_with_custom_comparator():
    column = ColumnConfig("roles", "Roles", sort_fn=lambda a, b: len(a["roles"]) - len(b["roles"]))
    assert ids(sort_items(USERS, [column], SortState("roles", "desc"))) == [3, 1, 2]


def test_invalid_direction_defaults_to_asc():
    assert SortState("email", "sideways").direction == "asc"


def test_toggle_sort_cycles():
    state = toggle_sort(None, "email")
    assert (state.column, state.direction) == ("email", "asc")
    state = toggle_sort(state, "email")
    assert state.direction == "desc"
    assert toggle_sort(state, "email") is None
    assert toggle_sort(state, "roles").direction == "asc"


def test_filter_options_from_items():
    column = COLUMNS[3]
    assert resolve_filter_options(column, USERS) == [
        {"value": "admin", "label": "admin"},
        {"value": "dev", "label": "dev"},
        {"value": "ops", "label": "ops"},
    ]


def test_filter_options_from_callable():
    column = ColumnConfig("status", "Status", filter_type="select", filter_options=lambda: [{"value": "a", "label": "A"}])
    assert resolve_filter_options(column) == [{"value": "a", "label": "A"}]


def test_filters_from_args_splits_multi_select():
    args = MultiDict([("filter_roles", "dev,ops"), ("filter_roles", "admin"), ("filter_email", ""), ("filter_is_active", "true")])
    assert filters_from_args(args, COLUMNS) == {"roles": ["dev", "ops", "admin"], "is_active": "true"}


def test_filters_to_args_joins_lists():
    assert filters_to_args({"roles": ["dev", "ops"], "email": "", "is_active": "true"}) == {
        "filter_roles": "dev,ops",
        "filter_is_active": "true",
    }


def test_table_state_from_args():
    args = MultiDict([
        ("sort", "email"), ("dir", "desc"), ("selected", "1,2"), ("selected", "2"),
        ("expand", "3"), ("q", " bob "), ("page", "x"),
    ])
    state = TableState.from_args(args, COLUMNS, page_size=2)

    assert state.sort == SortState("email", "desc")
    assert state.selected == ["1", "2"]
    assert state.is_expanded(3)
    assert state.search == "bob"
    assert state.page == 1
    assert state.has_active_filters


def test_table_state_ignores_sort_on_unknown_column():
    state = TableState.from_args({"sort": "password"}, COLUMNS)
    assert state.sort is None


def test_table_state_round_trips_through_args():
    state = TableState(filters={"roles": ["dev"]}, sort=SortState("email", "asc"), expanded=["3"], search="b", page=2)
    args = state.to_args()
    assert args == {"filter_roles": "dev", "sort": "email", "dir": "asc", "expand": "3", "q": "b", "page": 2}

    restored = TableState.from_args(MultiDict(list(args.items())), COLUMNS)
    assert restored.filters == state.filters
    assert restored.sort == state.sort
    assert restored.page == 2


def test_sort_args_reset_page():
    state = TableState(sort=SortState("email", "desc"), page=3)
    assert state.sort_args("email") == {}
    assert state.sort_args("is_active") == {"sort": "is_active", "dir": "asc"}


def test_expand_args_toggles_row():
    state = TableState(expanded=["1"])
    assert state.expand_args(2) == {"expand": "1,2"}
    assert state.expand_args(1) == {}


def test_apply_searches_and_paginates():
    state = TableState(search="example", page=5, page_size=2)
    page = state.apply(USERS, COLUMNS, search_fields=("email",))

    assert page.total == 3
    assert page.page_count == 2
    assert page.page == 2
    assert ids(page.items) == [3]
    assert page.has_previous and not page.has_next


def test_apply_search_on_nested_field():
    state = TableState(search="cto")
    assert ids(state.apply(USERS, COLUMNS, search_fields=("position.title",)).items) == [1]
