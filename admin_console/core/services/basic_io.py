"""basic-io service operations: generic JSON/CSV export and import.

basic-io reads from and writes to another service on our behalf. It is
given the target endpoint as a full URL (``url`` query parameter), which
must be the address basic-io itself can reach (container network names),
not the address this console uses.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import IO, Any, Dict, Iterable, Optional

from .client import ServiceClient, decode_json
from .exceptions import ServiceAPIError, raise_for_response

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "csv")
ON_AMBIGUOUS_MODES = ("skip", "fail")
ON_MISSING_MODES = ("skip", "fail")
ASSOCIATIONS_MODES = ("skip", "merge", "recreate")


def _flag(value: bool) -> str:
    return "true" if value else "false"


def export_filename(entity: str, fmt: str, today: Optional[date] = None) -> str:
    """Build ``<entity>_<YYYY-MM-DD>.<fmt>``."""
    today = today or date.today()
    return f"{entity.strip('/').replace('/', '_')}_{today.isoformat()}.{fmt}"


def format_from_content_type(content_type: str) -> str:
    return "csv" if "csv" in (content_type or "").lower() else "json"


# ─────────────────────────────────────────────────────────────────────────────
# Reports
# ─────────────────────────────────────────────────────────────────────────────
@dataclass
class ExportResult:
    """Downloaded export payload."""
    content: bytes
    content_type: str
    filename: str
    format: str


@dataclass
class ImportErrorEntry:
    """One record basic-io (or the role importer) failed to import."""
    error: str
    original_id: Optional[str] = None
    status_code: Optional[int] = None
    response_body: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ImportErrorEntry":
        if not isinstance(payload, dict):
            return cls(error=str(payload))
        original_id = payload.get("original_id")
        return cls(
            error=str(payload.get("error") or payload.get("message") or ""),
            original_id=str(original_id) if original_id is not None else None,
            status_code=payload.get("status_code"),
            response_body=payload.get("response_body"),
        )


@dataclass
class AssociationStats:
    """Per-association link statistics from an import run."""
    total: int = 0
    resolved: int = 0
    missing: int = 0
    ambiguous: int = 0
    created_links: int = 0
    failed_links: int = 0
    errors: list[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AssociationStats":
        return cls(
            total=int(payload.get("total") or 0),
            resolved=int(payload.get("resolved") or 0),
            missing=int(payload.get("missing") or 0),
            ambiguous=int(payload.get("ambiguous") or 0),
            created_links=int(payload.get("created_links") or 0),
            failed_links=int(payload.get("failed_links") or 0),
            errors=[str(e) for e in payload.get("errors") or []],
        )


@dataclass
class ResolutionDetail:
    """Outcome of resolving one foreign-key reference."""
    field: str
    status: str  # resolved | ambiguous | missing | error
    lookup_value: Any = None
    candidates: list = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ResolutionReport:
    """Foreign-key reference resolution summary."""
    resolved: int = 0
    ambiguous: int = 0
    missing: int = 0
    errors: int = 0
    details: list[ResolutionDetail] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ResolutionReport":
        details = [
            ResolutionDetail(
                field=str(d.get("field", "")),
                status=str(d.get("status", "")),
                lookup_value=d.get("lookup_value"),
                candidates=list(d.get("candidates") or []),
                error=d.get("error"),
            )
            for d in payload.get("details") or []
            if isinstance(d, dict)
        ]
        return cls(
            resolved=int(payload.get("resolved") or 0),
            ambiguous=int(payload.get("ambiguous") or 0),
            missing=int(payload.get("missing") or 0),
            errors=int(payload.get("errors") or 0),
            details=details,
        )


@dataclass
class ImportReport:
    """Outcome of an import run, whichever importer produced it."""
    total: int = 0
    success: int = 0
    failed: int = 0
    id_mapping: Dict[str, Any] = field(default_factory=dict)
    errors: list[ImportErrorEntry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    associations_stats: Dict[str, AssociationStats] = field(default_factory=dict)
    resolution: Optional[ResolutionReport] = None

    @property
    def has_failures(self) -> bool:
        return self.failed > 0 or bool(self.errors)

    def add_error(self, message: str, original_id: Optional[str] = None) -> None:
        self.failed += 1
        self.errors.append(ImportErrorEntry(error=message, original_id=original_id))

    def summary(self) -> str:
        return f"{self.success}/{self.total} imported, {self.failed} failed"

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ImportReport":
        """Parse a basic-io import response.

        Accepts the nested ``{"import_report": ..., "resolution_report": ...}``
        shape as well as the flat ``total_records``/``successful_imports``
        shape.
        """
        if "import_report" in payload:
            body = payload.get("import_report") or {}
            report = cls(
                total=int(body.get("total") or 0),
                success=int(body.get("success") or 0),
                failed=int(body.get("failed") or 0),
                id_mapping=dict(body.get("id_mapping") or {}),
                errors=[ImportErrorEntry.from_payload(e) for e in body.get("errors") or []],
                warnings=[str(w) for w in body.get("warnings") or []],
                associations_stats={
                    name: AssociationStats.from_payload(stats)
                    for name, stats in (body.get("associations_stats") or {}).items()
                    if isinstance(stats, dict)
                },
            )
            resolution = payload.get("resolution_report")
            if isinstance(resolution, dict):
                report.resolution = ResolutionReport.from_payload(resolution)
            return report

        return cls(
            total=int(payload.get("total_records") or 0),
            success=int(payload.get("successful_imports") or 0),
            failed=int(payload.get("failed_imports") or 0),
            id_mapping=dict(payload.get("id_mapping") or {}),
            errors=[ImportErrorEntry.from_payload(e) for e in payload.get("errors") or []],
            warnings=[str(w) for w in payload.get("warnings") or []],
        )


# ─────────────────────────────────────────────────────────────────────────────
# Service
# ─────────────────────────────────────────────────────────────────────────────
class BasicIOService:
    """Service for the basic-io REST API."""

    def __init__(self, client: ServiceClient, targets: Dict[str, str]):
        """Initialize basic-io service.

        Args:
            client: Service client bound to the basic-io base URL
            targets: Service name → base URL as seen from basic-io
        """
        self.client = client
        self.targets = targets

    def target_url(self, service: str, path: str) -> str:
        """Resolve the URL basic-io must call for ``service`` + ``path``.

        Raises:
            ValueError: Unknown service name
            RuntimeError: Service known but its URL is not configured
        """
        key = (service or "").lower()
        if key not in self.targets:
            raise ValueError(f"Unknown service: {service}")
        base = self.targets[key]
        if not base:
            raise RuntimeError(f"Service URL not configured: BASIC_IO_{key.upper()}_SERVICE_URL")
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{base.rstrip('/')}{path}"

    def export(
        self,
        service: str,
        path: str,
        fmt: str = "json",
        *,
        entity: Optional[str] = None,
        ids: Optional[Iterable[Any]] = None,
        enrich: bool = True,
        tree: bool = False,
        associations: Optional[Iterable[str]] = None,
    ) -> ExportResult:
        """Export a collection through basic-io.

        Args:
            service: Source service (identity, guardian)
            path: Collection path (e.g., "/customers")
            fmt: json or csv
            entity: Name used for the download filename (defaults to path)
            ids: Restrict the export to these record ids
            enrich: Add reference metadata used by import to resolve foreign keys
            tree: Nest parent/child records
            associations: Many-to-many associations to embed

        Returns:
            ExportResult with raw bytes and a dated filename

        Raises:
            ValueError: Unknown service or format
            ServiceAPIError: basic-io rejected the export
        """
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt}")

        params: Dict[str, str] = {
            "url": self.target_url(service, path),
            "type": fmt,
            "enrich": _flag(enrich),
        }
        if tree:
            params["tree"] = "true"
        id_list = [str(i) for i in ids or []]
        if id_list:
            params["ids"] = ",".join(id_list)
        assoc_list = list(associations or [])
        if assoc_list:
            params["associations"] = ",".join(assoc_list)

        resp = self.client.get("/export", params=params)
        content_type = resp.headers.get("Content-Type", "")
        actual_format = format_from_content_type(content_type)
        filename = export_filename(entity or path, actual_format)
        logger.info("Exported %s%s as %s (%d bytes)", service, path, actual_format, len(resp.content))
        return ExportResult(
            content=resp.content,
            content_type=content_type or f"application/{actual_format}",
            filename=filename,
            format=actual_format,
        )

    def import_file(
        self,
        service: str,
        path: str,
        stream: IO[bytes],
        filename: str,
        fmt: str = "json",
        *,
        resolve_refs: bool = True,
        on_ambiguous: str = "skip",
        on_missing: str = "skip",
        associations_mode: str = "skip",
    ) -> ImportReport:
        """Import a JSON/CSV file through basic-io.

        A response body carrying ``import_report`` is returned as a report
        even when basic-io answered 4xx, so partial failures reach the
        operator.

        Raises:
            ValueError: Unknown service, format or mode
            ServiceAPIError: basic-io failed without producing a report
        """
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported import format: {fmt}")
        if on_ambiguous not in ON_AMBIGUOUS_MODES:
            raise ValueError(f"Invalid on_ambiguous mode: {on_ambiguous}")
        if on_missing not in ON_MISSING_MODES:
            raise ValueError(f"Invalid on_missing mode: {on_missing}")
        if associations_mode not in ASSOCIATIONS_MODES:
            raise ValueError(f"Invalid associations_mode: {associations_mode}")

        params = {
            "url": self.target_url(service, path),
            "type": fmt,
            "resolve_refs": _flag(resolve_refs),
            "on_ambiguous": on_ambiguous,
            "on_missing": on_missing,
            "associations_mode": associations_mode,
        }
        mimetype = "text/csv" if fmt == "csv" else "application/json"
        resp = self.client.post(
            "/import",
            params=params,
            files={"file": (filename, stream, mimetype)},
            raise_for_status=False,
        )

        payload = decode_json(resp)
        if isinstance(payload, dict) and ("import_report" in payload or "total_records" in payload):
            report = ImportReport.from_payload(payload)
            logger.info("Imported into %s%s: %s", service, path, report.summary())
            return report

        raise_for_response(resp)
        raise ServiceAPIError(resp.status_code, "Import response did not contain a report", resp.url)
