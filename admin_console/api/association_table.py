"""Generic association table pages.

``register_association_table(bp, definition)`` mounts, for one entity:

    GET  /<name>/                                   table (filters, sort, paging, expanded rows)
    GET  /<name>/new, /<name>/<id>/edit             create/edit form
    POST /<name>/, /<name>/<id>                     create, update
    POST /<name>/<id>/delete, /<name>/bulk-delete   delete one, delete selected
    GET  /<name>/<id>/associations/<assoc>          association dialog
    POST /<name>/<id>/associations/<assoc>          link selected items
    POST /<name>/<id>/associations/<assoc>/<link>/delete
    GET  /<name>/export                             JSON/CSV download
    POST /<name>/import                             upload + import report

Every mutation ends with a redirect back to the table, which re-fetches
the collection.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, Type

from flask import Blueprint, Response, abort, current_app, flash, redirect, render_template, request, url_for
from pydantic import BaseModel

from admin_console.api.decorators import require_login
from admin_console.core.associations import (
    AssociationConfig,
    AssociationManager,
    group_items,
    load_associations,
    merge_associations,
)
from admin_console.core.crud import TableCrud
from admin_console.core.schemas import payload, validate_form
from admin_console.core.services import (
    ExportResult,
    ImportFileError,
    ImportReport,
    ServiceAPIError,
    UnauthorizedError,
)
from admin_console.core.services.basic_io import ASSOCIATIONS_MODES, EXPORT_FORMATS
from admin_console.core.session import get_registry
from admin_console.core.tables import ColumnConfig, TableState, resolve_filter_options

ACTIONS = (
    "list", "new", "create", "edit", "update", "delete", "bulk_delete",
    "associations", "add_associations", "remove_association", "export", "import",
)


@dataclass
class FormField:
    """One input of the create/edit form."""
    name: str
    label: str
    type: str = "text"  # text, email, password, url, textarea, select, multiselect, checkbox, hidden
    required: bool = False
    options: Any = None  # [{"value", "label"}] or callable(registry) -> list
    create_only: bool = False
    placeholder: str = ""

    def resolve_options(self, registry) -> list[dict]:
        options = self.options
        if callable(options):
            options = options(registry)
        return [dict(o) for o in options or []]


@dataclass
class ImportOptions:
    resolve_refs: bool = True
    on_ambiguous: str = "skip"
    on_missing: str = "skip"
    associations_mode: str = "skip"
    mode: str = "create"

    @classmethod
    def from_form(cls, form) -> "ImportOptions":
        def choice(key: str, allowed: Sequence[str], default: str) -> str:
            value = (form.get(key) or default).lower()
            return value if value in allowed else default

        return cls(
            resolve_refs=form.get("resolve_refs", "true").lower() != "false",
            on_ambiguous=choice("on_ambiguous", ("skip", "fail"), "skip"),
            on_missing=choice("on_missing", ("skip", "fail"), "skip"),
            associations_mode=choice("associations_mode", ASSOCIATIONS_MODES, "skip"),
            mode=choice("mode", ("create", "merge"), "create"),
        )


@dataclass
class TableDefinition:
    """Everything the generic table needs to manage one entity."""
    name: str
    title: str
    entity_name: str
    service: str
    path: str
    columns: list[ColumnConfig]
    form_fields: list[FormField]
    create_schema: Type[BaseModel]
    update_schema: Optional[Type[BaseModel]] = None
    default_form_values: dict = field(default_factory=dict)
    associations: list[AssociationConfig] = field(default_factory=list)
    search_fields: Sequence[str] = ()
    enable_import_export: bool = True
    enable_row_selection: bool = True
    update_method: str = "PATCH"
    error_messages: dict = field(default_factory=dict)
    payload_exclude: tuple = ()
    # (payload, is_edit) -> payload
    transform_form_data: Optional[Callable[[dict, bool], dict]] = None
    # (registry, item) -> form values
    transform_item_to_form: Optional[Callable[..., dict]] = None
    # (registry, item_id, model, is_edit) -> warnings
    on_after_save: Optional[Callable[..., list[str]]] = None
    # (registry, items) -> items
    on_data_enrich: Optional[Callable[..., list[dict]]] = None
    # (registry, definition, fmt, ids) -> ExportResult
    export_handler: Optional[Callable[..., ExportResult]] = None
    # (registry, definition, upload, fmt, options) -> ImportReport
    import_handler: Optional[Callable[..., ImportReport]] = None
    import_modes: Sequence[str] = ()

    @property
    def endpoint_prefix(self) -> str:
        return self.name.replace("-", "_")

    def association(self, name: str) -> AssociationConfig:
        for config in self.associations:
            if config.name == name:
                return config
        abort(404)

    def visible_columns(self) -> list[ColumnConfig]:
        return [c for c in self.columns if not c.hidden]


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────
def _split_ids(values: Sequence[str]) -> list[str]:
    ids: list[str] = []
    for value in values:
        for part in value.split(","):
            part = part.strip()
            if part and part not in ids:
                ids.append(part)
    return ids


def form_values(definition: TableDefinition, form, is_edit: bool) -> dict:
    """Collect the submitted form into a dict shaped like the schema input."""
    values: dict[str, Any] = {}
    for f in definition.form_fields:
        if is_edit and f.create_only:
            continue
        if f.type == "checkbox":
            values[f.name] = f.name in form
        elif f.type == "multiselect":
            values[f.name] = form.getlist(f.name)
        else:
            values[f.name] = form.get(f.name, "")
    return values


def _safe_return_url(fallback: str) -> str:
    target = request.form.get("return_to") or request.args.get("return_to") or ""
    if target.startswith("/") and not target.startswith("//"):
        return target
    return fallback


def _default_export(registry, definition: TableDefinition, fmt: str, ids: list[str]) -> ExportResult:
    associations = [
        a.name for a in definition.associations
        if a.is_many_to_many and not a.exclude_from_export
    ]
    return registry.basic_io.export(
        definition.service,
        definition.path,
        fmt,
        entity=definition.name,
        ids=ids or None,
        enrich=True,
        associations=associations,
    )


def _default_import(registry, definition: TableDefinition, upload, fmt: str, options: ImportOptions) -> ImportReport:
    return registry.basic_io.import_file(
        definition.service,
        definition.path,
        upload.stream,
        upload.filename,
        fmt,
        resolve_refs=options.resolve_refs,
        on_ambiguous=options.on_ambiguous,
        on_missing=options.on_missing,
        associations_mode=options.associations_mode,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Registration
# ─────────────────────────────────────────────────────────────────────────────
def register_association_table(bp: Blueprint, definition: TableDefinition) -> None:
    """Mount the table routes for ``definition`` on ``bp``."""
    prefix = definition.endpoint_prefix
    base = f"/{definition.name}"
    endpoints = {action: f"{bp.name}.{prefix}_{action}" for action in ACTIONS}

    def crud_for(registry) -> TableCrud:
        return TableCrud(
            registry.client(definition.service),
            definition.path,
            error_messages=definition.error_messages,
            update_method=definition.update_method,
        )

    def list_url() -> str:
        return _safe_return_url(url_for(endpoints["list"]))

    def render_form(registry, values: dict, errors: dict, item_id: Optional[str] = None, status: int = 200):
        fields = [f for f in definition.form_fields if not (item_id and f.create_only)]
        options = {f.name: f.resolve_options(registry) for f in fields if f.type in ("select", "multiselect")}
        return render_template(
            "admin/form.html",
            title=f"{'Edit' if item_id else 'New'} {definition.entity_name}",
            definition=definition,
            endpoints=endpoints,
            fields=fields,
            options=options,
            values=values,
            errors=errors,
            item_id=item_id,
            return_to=_safe_return_url(url_for(endpoints["list"])),
        ), status

    def after_save(registry, item_id: Any, model: BaseModel, is_edit: bool) -> None:
        if definition.on_after_save is None or item_id is None:
            return
        for warning in definition.on_after_save(registry, item_id, model, is_edit) or []:
            flash(warning, "warning")

    # ── Table ───────────────────────────────────────────────────────────
    def list_view():
        registry = get_registry()
        cfg = current_app.config["APP_CONFIG"]
        state = TableState.from_args(request.args, definition.columns, page_size=cfg.table_page_size)

        items: list[dict] = []
        load_error = None
        try:
            items = crud_for(registry).list()
            if definition.on_data_enrich is not None:
                items = definition.on_data_enrich(registry, items)
            items = merge_associations(registry, definition.associations, items)
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            current_app.logger.warning(f"[{definition.name}] load failed: {exc}")
            load_error = exc.detail

        page = state.apply(items, definition.columns, definition.search_fields)
        expanded: dict[str, dict] = {}
        if definition.associations:
            for item in page.items:
                item_id = item.get("id")
                if item_id is not None and state.is_expanded(item_id):
                    expanded[str(item_id)] = load_associations(registry, definition.associations, item_id)

        filter_options = {
            c.key: resolve_filter_options(c, items)
            for c in definition.columns
            if c.filterable and c.filter_type in ("select", "multi-select", "boolean")
        }
        return render_template(
            "admin/table.html",
            title=definition.title,
            definition=definition,
            endpoints=endpoints,
            columns=definition.visible_columns(),
            page=page,
            state=state,
            expanded=expanded,
            filter_options=filter_options,
            load_error=load_error,
        )

    # ── Create / edit ───────────────────────────────────────────────────
    def new_view():
        return render_form(get_registry(), dict(definition.default_form_values), {})

    def edit_view(item_id: str):
        registry = get_registry()
        try:
            item = crud_for(registry).get(item_id)
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            flash(exc.detail, "error")
            return redirect(list_url())
        if not item:
            abort(404)
        if definition.transform_item_to_form is not None:
            values = definition.transform_item_to_form(registry, item)
        else:
            values = dict(item)
        return render_form(registry, values, {}, item_id=item_id)

    def save(item_id: Optional[str]):
        registry = get_registry()
        is_edit = item_id is not None
        values = form_values(definition, request.form, is_edit)
        schema = (definition.update_schema or definition.create_schema) if is_edit else definition.create_schema
        model, errors = validate_form(schema, values)
        if errors:
            return render_form(registry, values, errors, item_id=item_id, status=400)

        body = payload(model, exclude=definition.payload_exclude)
        if definition.transform_form_data is not None:
            body = definition.transform_form_data(body, is_edit)

        crud = crud_for(registry)
        try:
            if is_edit:
                crud.update(item_id, body)
                saved_id = item_id
            else:
                created = crud.create(body)
                saved_id = created.get("id")
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            flash(exc.detail, "error")
            status = exc.status_code if 400 <= exc.status_code < 500 else 502
            return render_form(registry, values, {}, item_id=item_id, status=status)

        after_save(registry, saved_id, model, is_edit)
        action = "updated" if is_edit else "created"
        flash(f"{definition.entity_name.capitalize()} {action}", "success")
        return redirect(list_url())

    def create_view():
        return save(None)

    def update_view(item_id: str):
        return save(item_id)

    # ── Delete ──────────────────────────────────────────────────────────
    def delete_view(item_id: str):
        try:
            crud_for(get_registry()).remove(item_id)
            flash(f"{definition.entity_name.capitalize()} deleted", "success")
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            flash(exc.detail, "error")
        return redirect(list_url())

    def bulk_delete_view():
        ids = _split_ids(request.form.getlist("selected"))
        if not ids:
            flash("No rows selected", "error")
            return redirect(list_url())
        deleted, failed = crud_for(get_registry()).remove_many(ids)
        if deleted:
            flash(f"Deleted {len(deleted)} {definition.name}", "success")
        for item_id, message in failed:
            flash(f"{item_id}: {message}", "error")
        return redirect(list_url())

    # ── Associations ────────────────────────────────────────────────────
    def associations_view(item_id: str, assoc: str):
        registry = get_registry()
        config = definition.association(assoc)
        manager = AssociationManager(registry, config)
        try:
            associated = manager.fetch_associated_items(item_id)
            available = manager.available_items(item_id, associated) if config.is_many_to_many else []
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            flash(exc.detail, "error")
            return redirect(list_url())

        search = (request.args.get("q") or "").strip()
        if search:
            needle = search.lower()
            available = [
                a for a in available
                if needle in config.display(a).lower() or needle in config.secondary(a).lower()
            ]
        return render_template(
            "admin/association_dialog.html",
            title=f"{config.title} of {definition.entity_name} {item_id}",
            definition=definition,
            endpoints=endpoints,
            config=config,
            item_id=item_id,
            associated=associated,
            groups=group_items(available, config.group_by),
            search=search,
            return_to=_safe_return_url(url_for(endpoints["list"], expand=item_id)),
        )

    def add_associations_view(item_id: str, assoc: str):
        config = definition.association(assoc)
        ids = _split_ids(request.form.getlist("item_ids"))
        if not ids:
            flash(f"Select at least one item to add to {config.title.lower()}", "error")
            return redirect(url_for(endpoints["associations"], item_id=item_id, assoc=assoc))
        try:
            result = AssociationManager(get_registry(), config).add_associations(item_id, ids)
        except ValueError as exc:
            flash(str(exc), "error")
            return redirect(list_url())
        if result.added:
            flash(f"Added {len(result.added)} {config.title.lower()}", "success")
        for failed_id, message in result.failed:
            flash(f"Failed to add {failed_id}: {message}", "error")
        return redirect(_safe_return_url(url_for(endpoints["list"], expand=item_id)))

    def remove_association_view(item_id: str, assoc: str, link_id: str):
        config = definition.association(assoc)
        try:
            AssociationManager(get_registry(), config).remove_association(item_id, link_id)
            flash(f"Removed from {config.title.lower()}", "success")
        except UnauthorizedError:
            raise
        except (ServiceAPIError, ValueError) as exc:
            flash(getattr(exc, "detail", None) or str(exc), "error")
        return redirect(_safe_return_url(url_for(endpoints["list"], expand=item_id)))

    # ── Import / export ─────────────────────────────────────────────────
    def export_view():
        fmt = (request.args.get("format") or "json").lower()
        if fmt not in EXPORT_FORMATS:
            abort(400, description=f"Unsupported export format: {fmt}")
        ids = _split_ids(request.args.getlist("selected"))
        handler = definition.export_handler or _default_export
        try:
            result = handler(get_registry(), definition, fmt, ids)
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            flash(f"Export failed: {exc.detail}", "error")
            return redirect(list_url())
        except (ValueError, RuntimeError) as exc:
            current_app.logger.error(f"[{definition.name}] export misconfigured: {exc}")
            flash(f"Export failed: {exc}", "error")
            return redirect(list_url())
        return Response(
            result.content,
            mimetype=result.content_type.split(";")[0],
            headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
        )

    def import_view():
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            flash("Select a file to import", "error")
            return redirect(list_url())
        fmt = (request.form.get("format") or "").lower()
        if fmt not in EXPORT_FORMATS:
            fmt = "csv" if upload.filename.lower().endswith(".csv") else "json"
        options = ImportOptions.from_form(request.form)
        handler = definition.import_handler or _default_import
        try:
            report = handler(get_registry(), definition, upload, fmt, options)
        except UnauthorizedError:
            raise
        except ImportFileError as exc:
            flash(f"Import failed: {exc}", "error")
            return redirect(list_url())
        except (ServiceAPIError, ValueError, RuntimeError) as exc:
            flash(f"Import failed: {getattr(exc, 'detail', None) or exc}", "error")
            return redirect(list_url())

        category = "warning" if report.has_failures else "success"
        flash(f"Import finished: {report.summary()}", category)
        return render_template(
            "admin/import_report.html",
            title=f"Import report: {definition.title}",
            definition=definition,
            endpoints=endpoints,
            report=report,
        )

    rules = [
        ("", "list", list_view, ["GET"]),
        ("", "create", create_view, ["POST"]),
        ("/new", "new", new_view, ["GET"]),
        ("/<item_id>/edit", "edit", edit_view, ["GET"]),
        ("/<item_id>", "update", update_view, ["POST"]),
        ("/<item_id>/delete", "delete", delete_view, ["POST"]),
        ("/<item_id>/associations/<assoc>", "associations", associations_view, ["GET"]),
        ("/<item_id>/associations/<assoc>", "add_associations", add_associations_view, ["POST"]),
        ("/<item_id>/associations/<assoc>/<link_id>/delete", "remove_association", remove_association_view, ["POST"]),
    ]
    if definition.enable_row_selection:
        rules.append(("/bulk-delete", "bulk_delete", bulk_delete_view, ["POST"]))
    if definition.enable_import_export:
        rules.append(("/export", "export", export_view, ["GET"]))
        rules.append(("/import", "import", import_view, ["POST"]))

    for suffix, action, view, methods in rules:
        path = f"{base}{suffix}" if suffix else f"{base}/"
        bp.add_url_rule(path, endpoint=f"{prefix}_{action}", view_func=require_login(view), methods=methods)
