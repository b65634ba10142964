"""Bulk export/import and link reconciliation from the command line.

This module serves as a CLI wrapper around admin_console.core: the same
basic-io export/import, role transfer and user-role reconciliation the
admin pages use, without the web app.

Examples:
    python scripts/bulk_io.py export --entity customers --format csv -o customers.csv
    python scripts/bulk_io.py import --entity customers customers.csv --associations-mode merge
    python scripts/bulk_io.py import-roles roles.json --mode merge
    python scripts/bulk_io.py sync-user-roles --user-id 42 --role-id 1 --role-id 3
"""
from __future__ import annotations
import argparse
import os
import sys
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from admin_console.config import AppConfig
from admin_console.core.reconcile import sync_user_roles
from admin_console.core.services import ImportFileError, ServiceAPIError, ServiceRegistry
from admin_console.core.services.basic_io import ASSOCIATIONS_MODES, EXPORT_FORMATS
from admin_console.core.transfer import IMPORT_MODES, export_roles, import_roles, parse_roles_file

# entity -> (service, collection path)
ENTITIES = {
    "users": ("identity", "/users"),
    "customers": ("identity", "/customers"),
    "roles": ("guardian", "/roles"),
    "policies": ("guardian", "/policies"),
    "permissions": ("guardian", "/permissions"),
}


def build_config(args: argparse.Namespace) -> AppConfig:
    """Service URLs from flags, falling back to the same env vars as the web app."""
    return AppConfig(
        demo_mode=False,
        secret_key="",
        auth_service_url=os.environ.get("AUTH_SERVICE_URL", ""),
        identity_service_url=args.identity_url,
        guardian_service_url=args.guardian_url,
        basic_io_service_url=args.basic_io_url,
        basic_io_identity_service_url=os.environ.get("BASIC_IO_IDENTITY_SERVICE_URL", args.identity_url),
        basic_io_guardian_service_url=os.environ.get("BASIC_IO_GUARDIAN_SERVICE_URL", args.guardian_url),
        service_request_timeout=args.timeout,
    )


def _format_for(path: str, explicit: str | None) -> str:
    if explicit:
        return explicit
    return "csv" if path.lower().endswith(".csv") else "json"


def _print_report(label: str, report) -> None:
    print(f"[{label}] {report.summary()}")
    for error in report.errors:
        prefix = f"{error.original_id}: " if error.original_id else ""
        print(f"[{label}] Error: {prefix}{error.error}", file=sys.stderr)
    for warning in report.warnings:
        print(f"[{label}] Warning: {warning}", file=sys.stderr)


def _write_output(content: bytes, output: str | None, default_name: str) -> None:
    if output == "-":
        sys.stdout.buffer.write(content)
        return
    target = Path(output or default_name)
    target.write_bytes(content)
    print(f"[export] Wrote {len(content)} bytes to {target}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Admin console bulk import/export helper")
    parser.add_argument("--identity-url", default=os.environ.get("IDENTITY_SERVICE_URL", "http://localhost:5002"))
    parser.add_argument("--guardian-url", default=os.environ.get("GUARDIAN_SERVICE_URL", "http://localhost:5003"))
    parser.add_argument("--basic-io-url", default=os.environ.get("BASIC_IO_SERVICE_URL", "http://localhost:5004"))
    parser.add_argument("--access-token", default=os.environ.get("ADMIN_ACCESS_TOKEN"),
                        help="access_token cookie forwarded to the services (default: $ADMIN_ACCESS_TOKEN)")
    parser.add_argument("--timeout", type=float, default=float(os.environ.get("SERVICE_REQUEST_TIMEOUT", "30")))

    sub = parser.add_subparsers(dest="cmd")

    se = sub.add_parser("export", help="Export a collection through basic-io")
    se.add_argument("--entity", choices=sorted(ENTITIES), required=True)
    se.add_argument("--format", choices=EXPORT_FORMATS, default="json")
    se.add_argument("--ids", nargs="*", default=[])
    se.add_argument("--association", action="append", default=[], dest="associations")
    se.add_argument("--no-enrich", action="store_true")
    se.add_argument("-o", "--output", help="Output file ('-' for stdout)")

    si = sub.add_parser("import", help="Import a JSON/CSV file through basic-io")
    si.add_argument("file")
    si.add_argument("--entity", choices=sorted(ENTITIES), required=True)
    si.add_argument("--format", choices=EXPORT_FORMATS)
    si.add_argument("--no-resolve-refs", action="store_true")
    si.add_argument("--on-ambiguous", choices=("skip", "fail"), default="skip")
    si.add_argument("--on-missing", choices=("skip", "fail"), default="skip")
    si.add_argument("--associations-mode", choices=ASSOCIATIONS_MODES, default="skip")

    sr = sub.add_parser("import-roles", help="Import roles and re-attach their policies")
    sr.add_argument("file")
    sr.add_argument("--format", choices=EXPORT_FORMATS)
    sr.add_argument("--mode", choices=IMPORT_MODES, default="create")

    sx = sub.add_parser("export-roles", help="Export roles with their policy links")
    sx.add_argument("--format", choices=EXPORT_FORMATS, default="json")
    sx.add_argument("--ids", nargs="*", default=[])
    sx.add_argument("-o", "--output", help="Output file ('-' for stdout)")

    su = sub.add_parser("sync-user-roles", help="Make a user's roles exactly the given set")
    su.add_argument("--user-id", required=True)
    su.add_argument("--role-id", action="append", default=[], dest="role_ids")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Command-line entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return

    if not args.access_token:
        parser.error("Missing access token (--access-token or ADMIN_ACCESS_TOKEN)")

    registry = ServiceRegistry(build_config(args), cookies={"access_token": args.access_token})

    try:
        if args.cmd == "export":
            service, path = ENTITIES[args.entity]
            result = registry.basic_io.export(
                service, path, args.format,
                entity=args.entity,
                ids=args.ids or None,
                enrich=not args.no_enrich,
                associations=args.associations,
            )
            _write_output(result.content, args.output, result.filename)
        elif args.cmd == "import":
            service, path = ENTITIES[args.entity]
            fmt = _format_for(args.file, args.format)
            with open(args.file, "rb") as stream:
                report = registry.basic_io.import_file(
                    service, path, stream, Path(args.file).name, fmt,
                    resolve_refs=not args.no_resolve_refs,
                    on_ambiguous=args.on_ambiguous,
                    on_missing=args.on_missing,
                    associations_mode=args.associations_mode,
                )
            _print_report("import", report)
            if report.has_failures:
                sys.exit(1)
        elif args.cmd == "import-roles":
            rows = parse_roles_file(Path(args.file).read_bytes(), _format_for(args.file, args.format))
            report = import_roles(registry.guardian, rows, mode=args.mode)
            _print_report("import-roles", report)
            if report.has_failures:
                sys.exit(1)
        elif args.cmd == "export-roles":
            result = export_roles(registry.guardian, registry.basic_io, args.format, args.ids or None)
            _write_output(result.content, args.output, result.filename)
        elif args.cmd == "sync-user-roles":
            result = sync_user_roles(registry.guardian, args.user_id, args.role_ids)
            print(
                f"[sync-user-roles] added={len(result.added)} removed={len(result.removed)} "
                f"unchanged={len(result.diff.unchanged)}"
            )
            for error in result.errors:
                print(f"[sync-user-roles] Error: {error}", file=sys.stderr)
            if not result.ok:
                sys.exit(1)
        else:
            parser.print_help()
    except (ImportFileError, OSError) as e:
        print(f"[{args.cmd}] Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (ServiceAPIError, ValueError, RuntimeError) as e:
        print(f"[{args.cmd}] Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
