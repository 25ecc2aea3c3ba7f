# ctaflow/services/drafts.py
"""
Draft resilience layer.

Every graph mutation schedules a debounced snapshot write to a session-scoped
cache keyed by (business, flow-or-"new"). Hiding the page or closing the
editor flushes at once, so at most one pending write can ever be lost.
"""
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from ctaflow.core.config import DRAFT_DEBOUNCE_SECONDS
from ctaflow.db.session import get_db_session
from ctaflow.models.draft_cache import DraftCacheEntry
from ctaflow.models.base import utcnow
from ctaflow.schemas.graph import Edge, Node

log = logging.getLogger("ctaflow.drafts")

DRAFT_VERSION = 1
KEY_PREFIX = "ctaFlow.visualBuilder.draft"


def draft_key(business_id: Optional[str], flow_id: Optional[str]) -> str:
    biz_part = f"biz.{business_id}" if business_id else "biz.unknown"
    flow_part = f"flow.{flow_id}" if flow_id else "new"
    return f"{KEY_PREFIX}.{biz_part}.{flow_part}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DraftSnapshot(BaseModel):
    """Versioned recovery snapshot of an editor session"""
    v: int = DRAFT_VERSION
    flow_id: Optional[str] = Field(None, alias="flowId")
    mode: Optional[str] = None
    flow_name: str = Field("", alias="flowName")
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    saved_at: str = Field(default_factory=_now_iso, alias="savedAt")

    class Config:
        populate_by_name = True

    def is_blank(self) -> bool:
        return not self.nodes and not self.edges and not self.flow_name.strip()

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# ────────────────────────────────────────────
# Stores
# ────────────────────────────────────────────

class DraftStore:
    """String key/value store backing the draft cache"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, business_id: Optional[str] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryDraftStore(DraftStore):
    """Process-local store; lives as long as the server session"""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            return self._data.get(key)

    def set(self, key, value, business_id=None):
        with self._lock:
            self._data[key] = value

    def delete(self, key):
        with self._lock:
            self._data.pop(key, None)


class SqlDraftStore(DraftStore):
    """Store backed by the draft_cache table"""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    def get(self, key):
        with get_db_session(self.session_factory) as db:
            entry = db.query(DraftCacheEntry).filter(DraftCacheEntry.key == key).first()
            return entry.payload if entry else None

    def set(self, key, value, business_id=None):
        with get_db_session(self.session_factory) as db:
            entry = db.query(DraftCacheEntry).filter(DraftCacheEntry.key == key).first()
            if entry is None:
                entry = DraftCacheEntry(key=key, business_id=business_id or "unknown", payload=value)
                db.add(entry)
            else:
                entry.payload = value
                entry.updated_at = utcnow()

    def delete(self, key):
        with get_db_session(self.session_factory) as db:
            db.query(DraftCacheEntry).filter(DraftCacheEntry.key == key).delete()


class DraftCache:
    """Single load/save/clear API over a DraftStore"""

    def __init__(self, store: Optional[DraftStore] = None):
        self.store = store or MemoryDraftStore()

    def load(self, key: str) -> Optional[DraftSnapshot]:
        raw = self.store.get(key)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError as e:
            log.warning(f"⚠️ Discarding unreadable draft cache entry {key}: {e}")
            return None
        if not isinstance(data, dict) or data.get("v") != DRAFT_VERSION:
            log.warning(f"⚠️ Discarding draft cache entry {key}: unsupported version")
            return None
        try:
            return DraftSnapshot.model_validate(data)
        except ValidationError as e:
            log.warning(f"⚠️ Discarding invalid draft cache entry {key}: {e.error_count()} errors")
            return None

    def save(self, key: str, snapshot: DraftSnapshot, business_id: Optional[str] = None) -> None:
        self.store.set(key, snapshot.to_json(), business_id=business_id)
        log.debug(f"💾 Draft snapshot written to {key} ({len(snapshot.nodes)} nodes)")

    def clear(self, key: str) -> None:
        self.store.delete(key)
        log.debug(f"🧹 Draft snapshot cleared for {key}")


# ────────────────────────────────────────────
# Debounce
# ────────────────────────────────────────────

class Debouncer:
    """
    Coalesce bursts of calls into one delayed call with the latest arguments.

    `timer_factory` must return an object with start()/cancel() and a daemon
    attribute, like threading.Timer (the default).
    """

    def __init__(self, delay: float, callback: Callable, timer_factory=None):
        self.delay = delay
        self.callback = callback
        self.timer_factory = timer_factory or threading.Timer
        self._lock = threading.Lock()
        self._timer = None
        self._args = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._args is not None

    def schedule(self, *args) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._args = args
            self._timer = self.timer_factory(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _take(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            args, self._args, self._timer = self._args, None, None
            return args

    def _fire(self) -> None:
        args = self._take()
        if args is not None:
            self.callback(*args)

    def flush(self) -> None:
        """Run the pending call now, if any"""
        self._fire()

    def cancel(self) -> None:
        self._take()


# ────────────────────────────────────────────
# Recorder
# ────────────────────────────────────────────

class DraftRecorder:
    """
    Observes a FlowGraph and keeps its recovery snapshot current.

    Snapshots are built on the caller's thread at mutation time; the timer
    thread only writes them.
    """

    def __init__(
        self,
        cache: DraftCache,
        business_id: Optional[str],
        flow_id: Optional[str] = None,
        mode: Optional[str] = None,
        delay: Optional[float] = None,
        timer_factory=None,
    ):
        self.cache = cache
        self.business_id = business_id
        self.flow_id = flow_id
        self.mode = mode
        self._graph = None
        self._debouncer = Debouncer(
            DRAFT_DEBOUNCE_SECONDS if delay is None else delay,
            self._write,
            timer_factory=timer_factory,
        )

    @property
    def key(self) -> str:
        return draft_key(self.business_id, self.flow_id)

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def attach(self, graph) -> None:
        self.detach()
        self._graph = graph
        graph.add_listener(self._on_mutation)

    def detach(self) -> None:
        if self._graph is not None:
            self._graph.remove_listener(self._on_mutation)
            self._graph = None

    def rekey(self, flow_id: Optional[str]) -> None:
        """Follow the flow to its server id (after create or fork)"""
        self._debouncer.cancel()
        self.flow_id = flow_id

    def snapshot(self) -> DraftSnapshot:
        graph = self._graph
        return DraftSnapshot(
            flow_id=self.flow_id,
            mode=self.mode,
            flow_name=graph.name if graph else "",
            nodes=[n.model_copy(deep=True) for n in graph.nodes] if graph else [],
            edges=[e.model_copy(deep=True) for e in graph.edges] if graph else [],
        )

    def _on_mutation(self, graph, action: str) -> None:
        self._debouncer.schedule(self.key, self.snapshot())

    def _write(self, key: str, snapshot: DraftSnapshot) -> None:
        try:
            self.cache.save(key, snapshot, business_id=self.business_id)
        except (SQLAlchemyError, OSError) as e:
            log.error(f"❌ Failed to write draft snapshot {key}: {e}")

    def flush(self) -> None:
        self._debouncer.flush()

    def page_hidden(self) -> None:
        """Write the current state now, bypassing the debounce"""
        self._debouncer.cancel()
        if self._graph is not None:
            self._write(self.key, self.snapshot())

    def restore_into(self, graph) -> bool:
        """
        Restore a cached snapshot into an empty graph for a new, unsaved flow.

        Flows with a server id always prefer the server copy.
        """
        if self.flow_id or not graph.is_empty():
            return False
        snapshot = self.cache.load(self.key)
        if snapshot is None or snapshot.is_blank():
            return False
        graph.replace(snapshot.nodes, snapshot.edges, name=snapshot.flow_name, dirty=True)
        log.info(f"♻️ Restored unsaved draft from {self.key} (saved {snapshot.saved_at})")
        return True

    def clear(self) -> None:
        self._debouncer.cancel()
        self.cache.clear(self.key)

    def close(self) -> None:
        self.flush()
        self.detach()
