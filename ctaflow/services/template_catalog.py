# ctaflow/services/template_catalog.py
"""
Template catalog used by the step picker.

Searches can overlap while the user types; each one takes a sequence number
and a response that arrives after a newer search was issued is discarded.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional

from ctaflow.core.exceptions import TransportFailure
from ctaflow.schemas.graph import TemplateButton, TemplateKind, TemplateSnapshot
from ctaflow.schemas.template import TemplateListResponse, TemplateMedia, TemplateSort, TemplateSummary
from ctaflow.services.flow_client import FlowApiClient

log = logging.getLogger("ctaflow.templates")

PAGE_SIZE = 100
DETAIL_CONCURRENCY = 4
UNSUPPORTED_HEADER_KINDS = {"location"}


class TemplateCatalog:

    def __init__(self, client: FlowApiClient):
        self.client = client
        self._seq = 0
        self._lock = threading.Lock()

    # ────────────────────────────────────────────
    # Sequence guard
    # ────────────────────────────────────────────

    def _issue(self) -> int:
        with self._lock:
            self._seq += 1
            return self._seq

    def is_current(self, seq: int) -> bool:
        with self._lock:
            return seq == self._seq

    # ────────────────────────────────────────────
    # Search
    # ────────────────────────────────────────────

    def search(
        self,
        query: str = "",
        media=TemplateMedia.ALL,
        sort=TemplateSort.UPDATED_DESC,
        page: int = 1,
    ) -> Optional[TemplateListResponse]:
        """
        Fetch one page of approved templates.

        Returns None when a newer search superseded this one. A failed
        fetch yields an empty page.
        """
        seq = self._issue()
        media = TemplateMedia.parse(media.value if isinstance(media, TemplateMedia) else media)
        sort = sort if isinstance(sort, TemplateSort) else TemplateSort(sort or TemplateSort.UPDATED_DESC.value)

        params = {"status": "APPROVED", "page": page, "pageSize": PAGE_SIZE, **sort.params}
        q = (query or "").strip()
        if q:
            params["q"] = q
        if media is not TemplateMedia.ALL:
            params["media"] = media.value

        try:
            result = self.client.list_templates(params)
        except TransportFailure as e:
            if not self.is_current(seq):
                return None
            log.error(f"❌ Error fetching templates: {e.message}")
            return TemplateListResponse(page=1)

        if not self.is_current(seq):
            log.debug(f"Discarding stale template search #{seq} ('{q}')")
            return None
        if not result.success:
            return TemplateListResponse(page=1)

        return TemplateListResponse(
            success=True,
            templates=[t for t in result.templates if t.name],
            page=result.page or page,
            total_pages=result.total_pages,
        )

    # ────────────────────────────────────────────
    # Detail -> snapshot
    # ────────────────────────────────────────────

    def snapshot(self, name: str, language: Optional[str] = None,
                 header_kind: Optional[str] = None, body_preview: str = "") -> Optional[TemplateSnapshot]:
        """Build the snapshot a new step is created from; None for unsupported headers"""
        kind = str(header_kind or "none").strip().lower()
        if kind in UNSUPPORTED_HEADER_KINDS:
            log.warning(f"⚠️ Template '{name}' has an unsupported {kind} header")
            return None

        detail = self.client.get_template(name, (language or "").strip() or None)
        raw_buttons = detail.get("buttons", detail.get("Buttons")) or []
        body = detail.get("Body", detail.get("body"))
        return TemplateSnapshot(
            name=name,
            type=TemplateKind.from_header_kind(kind),
            body=body if body is not None else body_preview or "",
            buttons=[TemplateButton.model_validate(b) for b in raw_buttons if isinstance(b, dict)],
        )

    def snapshots(self, summaries: Iterable[TemplateSummary]) -> List[TemplateSnapshot]:
        """Snapshots for a multi-select, skipping unsupported templates"""
        supported = [
            s for s in summaries
            if str(s.header_kind or "").strip().lower() not in UNSUPPORTED_HEADER_KINDS
        ]
        if not supported:
            return []
        with ThreadPoolExecutor(max_workers=DETAIL_CONCURRENCY) as pool:
            results = list(pool.map(
                lambda s: self.snapshot(s.name, s.language_code, s.header_kind, s.body_preview),
                supported,
            ))
        return [r for r in results if r is not None]
