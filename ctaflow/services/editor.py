# ctaflow/services/editor.py
"""
Editor session - ties the graph, draft recorder, lifecycle, mapper and
flow API client together for one open flow.

Canvas events map to graph mutations. Save/publish/fork are the action
boundary: transport and usage-lock errors are caught here and turned into
notifications. Graph and lifecycle changes that depend on the server are
applied only after the server call succeeded.
"""
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from ctaflow.core.exceptions import (
    InvalidTransition, ReadOnlyViolation, TransportFailure, UsageLockConflict
)
from ctaflow.schemas.editor import (
    ActionOutcome, CanvasView, EditorMode, LeaveCheck, Notification,
    NotificationLevel, ValidationReport
)
from ctaflow.schemas.flow import CampaignUsageLock
from ctaflow.schemas.graph import Edge, Node, TemplateSnapshot
from ctaflow.services.drafts import DraftCache, DraftRecorder
from ctaflow.services.flow_client import FlowApiClient
from ctaflow.services.graph import FlowGraph, synchronized
from ctaflow.services.layout import LayoutDirection, apply_layout
from ctaflow.services.mapper import UNTITLED_FLOW, WireMapper
from ctaflow.services.policy import FlowAction, FlowLifecycle
from ctaflow.services.validation import (
    blocking_message, first_blocking_issue, validate_nodes, warning_messages
)

log = logging.getLogger("ctaflow.editor")

LEAVE_PROMPT = "You have unsaved changes. Leave this page?"
LOCK_PROMPT = "This flow is attached to active campaign(s). Create a new draft version to edit it."


def _note(level: NotificationLevel, message: str) -> Notification:
    return Notification(level=level, message=message)


class FlowEditor:
    """
    One editor session.

    Args:
        client: Flow API client bound to the same business
        cache: Draft cache shared by all sessions of the process
        business_id: Explicit business context
        flow_id: Server id, or None for a new flow
        mode: "edit", "view" or None
        timer_factory/debounce: Passed to the draft recorder
    """

    def __init__(
        self,
        client: FlowApiClient,
        cache: DraftCache,
        business_id: Optional[str] = None,
        flow_id: Optional[str] = None,
        mode: Optional[str] = None,
        timer_factory=None,
        debounce: Optional[float] = None,
        id_factory=None,
    ):
        self.client = client
        self.business_id = business_id
        self.mode = EditorMode.parse(mode, flow_id)
        self.mapper = WireMapper(business_id)
        self.graph = FlowGraph(business_id=business_id, id_factory=id_factory)
        self.lifecycle = FlowLifecycle(flow_id)
        self.recorder = DraftRecorder(
            cache,
            business_id,
            flow_id=flow_id,
            mode=self.mode.value,
            delay=debounce,
            timer_factory=timer_factory,
        )
        self.load_failed = False
        # one caller at a time per session; save/publish hold it across the server call
        self._lock = threading.RLock()

    @property
    def flow_id(self) -> Optional[str]:
        return self.lifecycle.flow_id

    @property
    def readonly(self) -> bool:
        return self.graph.readonly

    def _sync_readonly(self) -> None:
        self.graph.readonly = (
            self.mode is EditorMode.VIEW
            or self.load_failed
            or not self.lifecycle.can_mutate
        )

    def _outcome(self, ok: bool, notes: List[Notification], **extra) -> ActionOutcome:
        for n in notes:
            log.info(f"[{n.level.value}] {n.message}")
        return ActionOutcome(
            ok=ok,
            state=self.lifecycle.state.value,
            flow_id=self.flow_id,
            notifications=notes,
            **extra,
        )

    # ────────────────────────────────────────────
    # Open
    # ────────────────────────────────────────────

    @synchronized
    def open(self) -> ActionOutcome:
        """Load the flow (or start a new one) and apply the open policy"""
        self.recorder.detach()
        if self.flow_id:
            outcome = self._load()
        else:
            outcome = self._start_new()
        self._sync_readonly()
        self.recorder.attach(self.graph)
        return outcome

    def _start_new(self) -> ActionOutcome:
        notes = []
        self.graph.replace([], [], name="")
        if self.recorder.restore_into(self.graph):
            notes.append(_note(NotificationLevel.INFO, "♻️ Restored your unsaved draft"))
        else:
            self.graph.name = UNTITLED_FLOW
        return self._outcome(True, notes)

    def _load(self) -> ActionOutcome:
        flow_id = self.flow_id
        try:
            document = self.client.get_flow(flow_id)
        except TransportFailure as e:
            log.error(f"❌ Failed to load flow {flow_id}: {e.message}")
            self.load_failed = True
            notes = [_note(NotificationLevel.ERROR, "❌ Failed to load flow")]
            return self._outcome(False, notes, error="transport")

        loaded = self.mapper.from_document(document)
        self.graph.replace(loaded.graph.nodes, loaded.graph.edges, name=loaded.graph.name)
        self.lifecycle = FlowLifecycle(flow_id, is_published=loaded.is_published)
        self.load_failed = False

        notes = []
        if self.mode is EditorMode.EDIT and loaded.is_published:
            self.lifecycle.usage_checked(self._usage_lock(flow_id))
            if self.lifecycle.fork_prompt_open:
                notes.append(_note(NotificationLevel.WARNING, LOCK_PROMPT))
        return self._outcome(True, notes)

    def _usage_lock(self, flow_id: str) -> CampaignUsageLock:
        try:
            usage = self.client.get_usage(flow_id)
        except UsageLockConflict as e:
            return CampaignUsageLock.from_campaigns(e.campaigns).model_copy(update={"locked": True})
        except TransportFailure as e:
            # an unknown attachment state is treated as attached
            log.warning(f"⚠️ Usage check failed for {flow_id}, locking: {e.message}")
            return CampaignUsageLock(locked=True, campaigns=[])
        return CampaignUsageLock.from_campaigns(usage.campaigns)

    # ────────────────────────────────────────────
    # Canvas events
    # ────────────────────────────────────────────

    @synchronized
    def add_templates(self, snapshots: Iterable[TemplateSnapshot]) -> List[Node]:
        return self.graph.add_nodes_batch(snapshots)

    @synchronized
    def update_node(self, node_id: str, fields: Dict[str, Any]) -> Optional[Node]:
        return self.graph.update_node_data(node_id, fields)

    @synchronized
    def move_node(self, node_id: str, x: float, y: float) -> bool:
        return self.graph.move_node(node_id, x, y)

    @synchronized
    def delete_node(self, node_id: str) -> bool:
        return self.graph.delete_node(node_id)

    @synchronized
    def delete_selection(self, node_ids=(), edge_ids=()) -> bool:
        return self.graph.delete_selection(node_ids, edge_ids)

    @synchronized
    def connect(self, source: str, source_handle: Optional[str], target: str) -> Optional[Edge]:
        return self.graph.connect(source, source_handle, target)

    @synchronized
    def disconnect(self, edge_id: str) -> bool:
        return self.graph.disconnect(edge_id)

    @synchronized
    def rename(self, name: str) -> None:
        self.graph.rename(name)

    @synchronized
    def auto_layout(self, direction=LayoutDirection.LEFT_TO_RIGHT) -> bool:
        if self.graph.readonly:
            return False
        apply_layout(self.graph, LayoutDirection.parse(getattr(direction, "value", direction)))
        return True

    @synchronized
    def validate(self) -> ValidationReport:
        issues = validate_nodes(self.graph.nodes)
        return ValidationReport(
            publishable=not issues,
            issues=issues,
            warnings=warning_messages(issues),
        )

    # ────────────────────────────────────────────
    # Save / publish
    # ────────────────────────────────────────────

    def _require_writable(self, action: str) -> None:
        if self.graph.readonly:
            raise ReadOnlyViolation(f"Cannot {action}: flow is read-only")

    def _conflict(self, error: UsageLockConflict, notes: List[Notification]) -> ActionOutcome:
        self.lifecycle.conflict(error.campaigns)
        self._sync_readonly()
        notes.append(_note(NotificationLevel.WARNING, LOCK_PROMPT))
        return self._outcome(
            False, notes,
            error="usage_lock",
            campaigns=[c.model_dump() for c in self.lifecycle.lock.campaigns],
        )

    def _persisted(self, revision: int, new_flow_id: Optional[str] = None) -> None:
        """
        Server now holds the content as of `revision`.

        The recovery copy is dropped and the graph marked clean only if nothing
        changed since that payload was built; later edits stay dirty and keep
        their snapshot (moved to the new key when the flow just got an id).
        """
        unchanged = self.graph.revision == revision
        if unchanged or new_flow_id:
            self.recorder.clear()
        if new_flow_id:
            self.recorder.rekey(new_flow_id)
            self.mode = EditorMode.EDIT
            self.recorder.mode = self.mode.value
        if unchanged:
            self.graph.dirty = False
            return
        log.info(f"✏️ Flow edited while saving; keeping {self.recorder.key} marked unsaved")
        if new_flow_id:
            self.recorder.page_hidden()

    @synchronized
    def save_draft(self) -> ActionOutcome:
        """Save without publishing; content issues only warn"""
        self._require_writable("save")
        notes = [
            _note(NotificationLevel.WARNING, msg)
            for msg in warning_messages(validate_nodes(self.graph.nodes))
        ]
        revision = self.graph.revision
        payload = self.mapper.to_payload(self.graph)

        try:
            if self.flow_id:
                result = self.client.update_flow(self.flow_id, payload)
                self.lifecycle.saved(needs_republish=result.needs_republish)
                self._persisted(revision)
                notes.append(_note(NotificationLevel.SUCCESS, "✅ Flow updated (draft)"))
            else:
                result = self.client.create_flow(payload)
                if not result.flow_id:
                    raise TransportFailure("Server did not return a flow id")
                self.lifecycle.saved(flow_id=result.flow_id)
                self._persisted(revision, result.flow_id)
                notes.append(_note(NotificationLevel.SUCCESS, "✅ Flow saved (draft)"))
        except UsageLockConflict as e:
            return self._conflict(e, notes)
        except TransportFailure as e:
            log.error(f"❌ Save draft failed: {e.message}")
            notes.append(_note(NotificationLevel.ERROR, "❌ Failed to save draft"))
            return self._outcome(False, notes, error="transport")

        if self.lifecycle.republish_needed:
            notes.append(_note(
                NotificationLevel.INFO,
                "Published flow changed. Publish again to make the changes live.",
            ))
        return self._outcome(True, notes)

    @synchronized
    def publish(self) -> ActionOutcome:
        """
        Validate, then update-then-publish (or create-then-publish).

        A failure after the update leaves the flow saved as a draft with the
        latest content; nothing is rolled back.
        """
        self._require_writable("publish")
        issue = first_blocking_issue(self.graph.nodes)
        if issue is not None:
            return self._outcome(
                False,
                [_note(NotificationLevel.ERROR, blocking_message(issue))],
                error="validation",
                blocking_issue=issue,
            )

        revision = self.graph.revision
        payload = self.mapper.to_payload(self.graph)
        notes: List[Notification] = []
        try:
            if self.flow_id:
                self.client.update_flow(self.flow_id, payload)
                self.lifecycle.saved()
                self._persisted(revision)
                self.client.publish_flow(self.flow_id)
                self.lifecycle.published()
                notes.append(_note(NotificationLevel.SUCCESS, "✅ Flow published"))
            else:
                result = self.client.create_flow(payload)
                if not result.flow_id:
                    self._persisted(revision)
                    notes.append(_note(
                        NotificationLevel.SUCCESS, "✅ Flow created (but publish step uncertain)"
                    ))
                    return self._outcome(True, notes)
                self.lifecycle.saved(flow_id=result.flow_id)
                self._persisted(revision, result.flow_id)
                self.client.publish_flow(result.flow_id)
                self.lifecycle.published()
                notes.append(_note(NotificationLevel.SUCCESS, "✅ Flow created & published"))
        except UsageLockConflict as e:
            return self._conflict(e, notes)
        except TransportFailure as e:
            log.error(f"❌ Publish failed: {e.message}")
            notes.append(_note(NotificationLevel.ERROR, e.message or "❌ Failed to publish"))
            return self._outcome(False, notes, error="transport")
        return self._outcome(True, notes)

    # ────────────────────────────────────────────
    # Fork
    # ────────────────────────────────────────────

    @synchronized
    def fork(self) -> ActionOutcome:
        """Create a new draft version of a locked flow and continue editing it"""
        if not self.flow_id or not self.lifecycle.allows(FlowAction.FORK):
            raise InvalidTransition(self.lifecycle.state.value, FlowAction.FORK.value)
        try:
            result = self.client.fork_flow(self.flow_id)
            if not result.flow_id:
                raise TransportFailure("Server did not return a flow id for the fork")
        except TransportFailure as e:
            log.error(f"❌ Fork of {self.flow_id} failed: {e.message}")
            notes = [_note(NotificationLevel.ERROR, "❌ Failed to create draft copy")]
            return self._outcome(False, notes, error="transport")

        # the fork gets its own deep copy; the locked original is never touched again
        forked = self.graph.clone()
        forked.dirty = False
        self.recorder.detach()
        self.recorder.rekey(result.flow_id)
        self.graph = forked
        self.lifecycle.forked(result.flow_id)
        self.mode = EditorMode.EDIT
        self._sync_readonly()
        self.recorder.mode = self.mode.value
        self.recorder.attach(self.graph)
        return self._outcome(True, [_note(NotificationLevel.SUCCESS, "✅ New draft version created")])

    @synchronized
    def decline_fork(self) -> ActionOutcome:
        self.lifecycle.decline_fork()
        self._sync_readonly()
        return self._outcome(True, [])

    # ────────────────────────────────────────────
    # Page lifecycle
    # ────────────────────────────────────────────

    @synchronized
    def page_hidden(self) -> None:
        if self.graph.dirty or self.recorder.pending:
            self.recorder.page_hidden()

    @synchronized
    def confirm_leave(self) -> LeaveCheck:
        if self.graph.dirty and not self.graph.readonly:
            return LeaveCheck(confirm=True, message=LEAVE_PROMPT)
        return LeaveCheck(confirm=False)

    @synchronized
    def close(self) -> None:
        self.recorder.close()

    @synchronized
    def canvas_view(self, session_id: Optional[str] = None) -> CanvasView:
        targets = self.graph.compute_reachability()
        return CanvasView(
            session_id=session_id,
            flow_id=self.flow_id,
            mode=self.mode,
            state=self.lifecycle.state.value,
            name=self.graph.name,
            readonly=self.graph.readonly,
            dirty=self.graph.dirty,
            republish_needed=self.lifecycle.republish_needed,
            fork_prompt_open=self.lifecycle.fork_prompt_open,
            lock=self.lifecycle.lock,
            nodes=self.graph.nodes,
            edges=self.graph.edges,
            has_no_incoming=[n.id for n in self.graph.nodes if n.id not in targets],
        )
