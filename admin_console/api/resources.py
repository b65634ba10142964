"""Table definitions for the admin pages: users, roles, policies, customers."""
from __future__ import annotations
import logging
from typing import Any

from flask import flash

from admin_console.api.association_table import FormField, ImportOptions, TableDefinition
from admin_console.core.associations import MANY_TO_MANY, AssociationConfig
from admin_console.core.column_builders import (
    action_column,
    badge_list_column,
    boolean_column,
    date_column,
    filterable_text_column,
    select_column,
    text_column,
)
from admin_console.core.reconcile import sync_user_roles
from admin_console.core.schemas import CustomerForm, PolicyForm, RoleForm, UserCreateForm, UserUpdateForm
from admin_console.core.services import ServiceAPIError, UnauthorizedError
from admin_console.core.tables import get_nested_value
from admin_console.core.transfer import export_roles, import_roles, parse_roles_file

logger = logging.getLogger(__name__)

LANGUAGE_OPTIONS = [{"value": "fr", "label": "Français"}, {"value": "en", "label": "English"}]


def _options(items: list[dict], label_field: str = "name") -> list[dict]:
    return [
        {"value": str(item.get("id")), "label": str(item.get(label_field) or item.get("id"))}
        for item in items
        if item.get("id") is not None
    ]


def _safe_options(loader, label_field: str = "name"):
    """Select options from a backend list; an unreachable backend leaves the select empty."""

    def resolve(registry) -> list[dict]:
        try:
            return _options(loader(registry), label_field)
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            logger.warning("Could not load select options: %s", exc)
            return []

    return resolve


# ─────────────────────────────────────────────────────────────────────────────
# Users
# ─────────────────────────────────────────────────────────────────────────────
USER_ROLES = AssociationConfig(
    type=MANY_TO_MANY,
    name="roles",
    service="guardian",
    path="/roles",
    junction_endpoint="/user-roles",
    junction_query_param="user_id",
    add_body_field="role_id",
    link_item_field="role_id",
    delete_id_field="id",
    display_field="role.name",
    secondary_field="description",
    exclude_from_export=True,
    merge_into_rows=True,
)


def _role_label(row: dict) -> str:
    return str(get_nested_value(row, "role.name") or row.get("role_id") or "")


def _role_id(row: dict) -> Any:
    role_id = row.get("role_id")
    return role_id if role_id is not None else get_nested_value(row, "role.id")


def enrich_users(registry, users: list[dict]) -> list[dict]:
    """Attach ``position`` objects looked up from ``position_id``."""
    try:
        positions = registry.identity.position_lookup()
    except UnauthorizedError:
        raise
    except ServiceAPIError as exc:
        logger.warning("Could not load positions: %s", exc)
        return users
    enriched = []
    for user in users:
        position = positions.get(str(user.get("position_id")))
        enriched.append({**user, "position": position} if position else user)
    return enriched


def user_form_values(registry, user: dict) -> dict:
    values = dict(user)
    try:
        rows = registry.guardian.list_user_roles(user["id"])
        values["role_ids"] = [USER_ROLES.linked_id(r) for r in rows]
        values["roles_loaded"] = "true"
    except UnauthorizedError:
        raise
    except ServiceAPIError as exc:
        logger.warning("Could not load roles for user %s: %s", user.get("id"), exc)
        flash(f"Could not load current roles, role changes will not be saved: {exc.detail}", "warning")
        values["role_ids"] = []
        values["roles_loaded"] = "false"
    return values


def save_user_roles(registry, user_id: Any, form, is_edit: bool) -> list[str]:
    """Reconcile the role multi-select with the guardian junction."""
    if not is_edit and not form.role_ids:
        return []
    if is_edit and not form.roles_loaded:
        return ["Role assignment skipped: current roles could not be loaded"]
    result = sync_user_roles(registry.guardian, user_id, form.role_ids)
    return [f"Role assignment: {error}" for error in result.errors]


def users_definition(locale: str = "fr") -> TableDefinition:
    return TableDefinition(
        name="users",
        title="Users",
        entity_name="user",
        service="identity",
        path="/users",
        columns=[
            filterable_text_column("email", "Email"),
            filterable_text_column("first_name", "First name"),
            filterable_text_column("last_name", "Last name"),
            select_column("position.title", "Position"),
            badge_list_column("roles", "Roles", label=_role_label, filterable=True, value_of=_role_id),
            boolean_column("is_active", "Active", locale=locale),
            date_column("last_login_at", "Last login", locale=locale),
            date_column("created_at", "Created", locale=locale),
            action_column(),
        ],
        form_fields=[
            FormField("email", "Email", type="email", required=True),
            FormField("password", "Password", type="password", required=True, create_only=True),
            FormField("first_name", "First name"),
            FormField("last_name", "Last name"),
            FormField("phone_number", "Phone"),
            FormField("avatar_url", "Avatar URL", type="url"),
            FormField("language", "Language", type="select", options=LANGUAGE_OPTIONS),
            FormField(
                "position_id", "Position", type="select",
                options=_safe_options(lambda r: r.identity.list_positions(), "title"),
            ),
            FormField(
                "role_ids", "Roles", type="multiselect",
                options=_safe_options(lambda r: r.guardian.list_roles()),
            ),
            FormField("is_active", "Active", type="checkbox"),
            FormField("is_verified", "Verified", type="checkbox"),
            FormField("roles_loaded", "", type="hidden"),
        ],
        create_schema=UserCreateForm,
        update_schema=UserUpdateForm,
        default_form_values={
            "language": "fr", "is_active": True, "is_verified": False, "role_ids": [], "roles_loaded": "true",
        },
        associations=[USER_ROLES],
        search_fields=("email", "first_name", "last_name"),
        payload_exclude=("role_ids", "roles_loaded"),
        error_messages={"create": "Failed to create user", "update": "Failed to update user"},
        transform_item_to_form=user_form_values,
        on_after_save=save_user_roles,
        on_data_enrich=enrich_users,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Roles
# ─────────────────────────────────────────────────────────────────────────────
ROLE_POLICIES = AssociationConfig(
    type=MANY_TO_MANY,
    name="policies",
    service="guardian",
    path="/policies",
    junction_endpoint="/roles/{id}/policies",
    add_body_field="policy_id",
    secondary_field="description",
)


def export_role_file(registry, definition: TableDefinition, fmt: str, ids: list[str]):
    return export_roles(registry.guardian, registry.basic_io, fmt, ids or None)


def import_role_file(registry, definition: TableDefinition, upload, fmt: str, options: ImportOptions):
    rows = parse_roles_file(upload.read(), fmt)
    return import_roles(registry.guardian, rows, mode=options.mode)


def roles_definition(locale: str = "fr") -> TableDefinition:
    return TableDefinition(
        name="roles",
        title="Roles",
        entity_name="role",
        service="guardian",
        path="/roles",
        columns=[
            filterable_text_column("name", "Name"),
            filterable_text_column("description", "Description"),
            date_column("created_at", "Created", locale=locale),
            action_column(),
        ],
        form_fields=[
            FormField("name", "Name", required=True),
            FormField("description", "Description", type="textarea"),
        ],
        create_schema=RoleForm,
        associations=[ROLE_POLICIES],
        search_fields=("name", "description"),
        error_messages={"create": "Failed to create role", "delete": "Failed to delete role"},
        export_handler=export_role_file,
        import_handler=import_role_file,
        import_modes=("create", "merge"),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Policies
# ─────────────────────────────────────────────────────────────────────────────
POLICY_PERMISSIONS = AssociationConfig(
    type=MANY_TO_MANY,
    name="permissions",
    service="guardian",
    path="/permissions",
    junction_endpoint="/policies/{id}/permissions",
    add_body_field="permission_id",
    display_field="resource_name",
    secondary_field="operation",
    exclude_from_export=True,
    group_by=("service",),
)


def policies_definition(locale: str = "fr") -> TableDefinition:
    return TableDefinition(
        name="policies",
        title="Policies",
        entity_name="policy",
        service="guardian",
        path="/policies",
        columns=[
            filterable_text_column("name", "Name"),
            filterable_text_column("description", "Description"),
            date_column("created_at", "Created", locale=locale),
            action_column(),
        ],
        form_fields=[
            FormField("name", "Name", required=True),
            FormField("description", "Description", type="textarea"),
        ],
        create_schema=PolicyForm,
        associations=[POLICY_PERMISSIONS],
        search_fields=("name", "description"),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Customers
# ─────────────────────────────────────────────────────────────────────────────
def customers_definition(locale: str = "fr") -> TableDefinition:
    return TableDefinition(
        name="customers",
        title="Customers",
        entity_name="customer",
        service="identity",
        path="/customers",
        columns=[
            filterable_text_column("name", "Name"),
            filterable_text_column("email", "Email"),
            filterable_text_column("contact_person", "Contact"),
            filterable_text_column("phone_number", "Phone"),
            filterable_text_column("address", "Address"),
            action_column(),
        ],
        form_fields=[
            FormField("name", "Name", required=True),
            FormField("email", "Email", type="email"),
            FormField("contact_person", "Contact person"),
            FormField("phone_number", "Phone"),
            FormField("address", "Address", type="textarea"),
        ],
        create_schema=CustomerForm,
        search_fields=("name", "email", "contact_person"),
        error_messages={"create": "Failed to create customer"},
    )


def build_definitions(locale: str = "fr") -> list[TableDefinition]:
    return [
        users_definition(locale),
        roles_definition(locale),
        policies_definition(locale),
        customers_definition(locale),
    ]
