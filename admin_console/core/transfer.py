"""Role export/import with role↔policy links.

basic-io handles flat columns but not the role↔policy junction, so roles
are exported through basic-io and then enriched with their policies here;
import creates (or merges) roles and re-attaches their policies.
"""
from __future__ import annotations
import csv
import io
import json
import logging
from datetime import date
from typing import Any, Iterable, Optional, Union

from .reconcile import sync_role_policies
from .services.basic_io import BasicIOService, ExportResult, ImportReport
from .services.exceptions import ImportFileError, ServiceAPIError, UnauthorizedError
from .services.guardian import GuardianService

logger = logging.getLogger(__name__)

POLICY_ID_SEPARATOR = ";"
IMPORT_MODES = ("create", "merge")


def _policy_summary(policy: dict) -> dict:
    return {
        "id": policy.get("id"),
        "name": policy.get("name"),
        "description": policy.get("description"),
    }


def attach_policies(roles: Iterable[dict], policies_by_role: dict[str, list[dict]]) -> list[dict]:
    """Copies of ``roles`` with a ``policies`` list of ``{id, name, description}``."""
    return [
        {**role, "policies": [_policy_summary(p) for p in policies_by_role.get(str(role.get("id")), [])]}
        for role in roles
    ]


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def render_roles(roles: list[dict], fmt: str) -> bytes:
    """Serialize roles (with ``policies``) as indented JSON or CSV.

    CSV drops the nested ``policies`` column and appends ``policy_ids``
    joined with ``;``.
    """
    if fmt == "json":
        return json.dumps(roles, indent=2, ensure_ascii=False).encode("utf-8")
    if fmt != "csv":
        raise ValueError(f"Unsupported export format: {fmt}")

    headers: list[str] = []
    for role in roles:
        for key in role:
            if key != "policies" and key not in headers:
                headers.append(key)
    headers.append("policy_ids")

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for role in roles:
        row = [_csv_cell(role.get(h)) for h in headers[:-1]]
        row.append(POLICY_ID_SEPARATOR.join(str(p.get("id")) for p in role.get("policies") or []))
        writer.writerow(row)
    return buffer.getvalue().encode("utf-8")


def export_roles(
    guardian: GuardianService,
    basic_io: BasicIOService,
    fmt: str = "json",
    ids: Optional[Iterable[Any]] = None,
    today: Optional[date] = None,
) -> ExportResult:
    """Export roles through basic-io (enriched JSON) and add their policies."""
    exported = basic_io.export("guardian", "/roles", "json", entity="roles", ids=ids, enrich=True)
    try:
        roles = json.loads(exported.content.decode("utf-8") or "[]")
    except ValueError as exc:
        raise ServiceAPIError(502, f"basic-io returned invalid JSON: {exc}", "/export") from exc
    if isinstance(roles, dict):
        roles = roles.get("data") or roles.get("roles") or []

    policies_by_role: dict[str, list[dict]] = {}
    for role in roles:
        role_id = role.get("id")
        if role_id is None:
            continue
        try:
            policies_by_role[str(role_id)] = guardian.list_role_policies(role_id)
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            logger.warning("Could not load policies for role %s: %s", role_id, exc)

    content = render_roles(attach_policies(roles, policies_by_role), fmt)
    today = today or date.today()
    return ExportResult(
        content=content,
        content_type="text/csv" if fmt == "csv" else "application/json",
        filename=f"roles_export_{today.isoformat()}.{fmt}",
        format=fmt,
    )


def _policy_id(entry: Any) -> Optional[str]:
    if isinstance(entry, dict):
        entry = entry.get("id")
    if entry is None:
        return None
    entry = str(entry).strip()
    return entry or None


def _normalize_role(raw: Any) -> dict:
    if not isinstance(raw, dict):
        raise ImportFileError("Each role must be a JSON object")
    policies = raw.get("policies")
    if policies is None and raw.get("policy_ids") is not None:
        policies = raw.get("policy_ids")
    if isinstance(policies, str):
        policies = policies.split(POLICY_ID_SEPARATOR)
    name = raw.get("name")
    description = raw.get("description")
    return {
        "name": "" if name is None else str(name).strip(),
        "description": str(description) if description not in (None, "") else None,
        "policy_ids": [pid for pid in (_policy_id(p) for p in policies or []) if pid],
    }


def parse_roles_file(content: Union[bytes, str], fmt: str) -> list[dict]:
    """Parse an uploaded roles file into ``[{name, description, policy_ids}]``.

    Raises:
        ImportFileError: Unreadable file, empty CSV or missing ``name`` column
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ImportFileError("File is not valid UTF-8") from exc

    if fmt == "json":
        try:
            parsed = json.loads(content)
        except ValueError as exc:
            raise ImportFileError(f"Invalid JSON file: {exc}") from exc
        rows = parsed if isinstance(parsed, list) else [parsed]
        return [_normalize_role(row) for row in rows]

    if fmt != "csv":
        raise ImportFileError(f"Unsupported import format: {fmt}")

    reader = csv.DictReader(io.StringIO(content, newline=""))
    headers = [h.strip() for h in reader.fieldnames or []]
    if not any(headers):
        raise ImportFileError("Empty CSV file")
    if "name" not in headers:
        raise ImportFileError('CSV must have "name" column')
    reader.fieldnames = headers

    roles = []
    for record in reader:
        if not any((value or "").strip() for value in record.values() if isinstance(value, str)):
            continue
        roles.append(_normalize_role({
            "name": record.get("name"),
            "description": record.get("description"),
            "policy_ids": record.get("policy_ids") or "",
        }))
    if not roles:
        raise ImportFileError("Empty CSV file")
    return roles


def import_roles(guardian: GuardianService, rows: list[dict], mode: str = "create") -> ImportReport:
    """Create (or merge) roles, then link their policies.

    ``create``: every row creates a role; a failed create is an error, a
    failed policy link is a warning.
    ``merge``: rows whose name matches an existing role (case-insensitive)
    update its description and reconcile its policies instead.
    """
    if mode not in IMPORT_MODES:
        raise ValueError(f"Invalid import mode: {mode}")

    report = ImportReport(total=len(rows))
    existing: dict[str, dict] = {}
    if mode == "merge":
        existing = {(r.get("name") or "").lower(): r for r in guardian.list_roles()}

    for row in rows:
        name = row.get("name") or ""
        if not name:
            report.add_error("Role without a name skipped")
            continue

        match = existing.get(name.lower())
        if match is not None:
            _merge_role(guardian, match, row, report)
            continue

        try:
            payload = {"name": name}
            if row.get("description"):
                payload["description"] = row["description"]
            created = guardian.create_role(payload)
        except UnauthorizedError:
            raise
        except ServiceAPIError as exc:
            report.add_error(f'Role "{name}": {exc.detail}')
            continue

        report.success += 1
        role_id = created.get("id")
        if role_id is None:
            if row.get("policy_ids"):
                report.warnings.append(f'Role "{name}": created without an id, policies not linked')
            continue
        report.id_mapping[name] = role_id
        for policy_id in row.get("policy_ids") or []:
            try:
                guardian.add_role_policy(role_id, policy_id)
            except UnauthorizedError:
                raise
            except ServiceAPIError as exc:
                report.warnings.append(f'Role "{name}": Failed to add policy {policy_id} ({exc.detail})')

    logger.info("Role import (%s): %s", mode, report.summary())
    return report


def _merge_role(guardian: GuardianService, role: dict, row: dict, report: ImportReport) -> None:
    name = row["name"]
    role_id = role.get("id")
    try:
        if row.get("description") and row["description"] != role.get("description"):
            guardian.update_role(role_id, {"description": row["description"]})
        result = sync_role_policies(guardian, role_id, row.get("policy_ids") or [])
    except UnauthorizedError:
        raise
    except ServiceAPIError as exc:
        report.add_error(f'Role "{name}": {exc.detail}')
        return

    report.success += 1
    report.id_mapping[name] = role_id
    for error in result.errors:
        report.warnings.append(f'Role "{name}": {error}')
