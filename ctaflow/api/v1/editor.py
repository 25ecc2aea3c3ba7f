# ctaflow/api/v1/editor.py
"""Editor session endpoints driven by the canvas"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from ctaflow.api.deps import get_business_id, get_editor, get_sessions
from ctaflow.schemas.editor import (
    ActionOutcome, AddFromCatalogRequest, AddNodesRequest, CanvasView, ConnectRequest,
    LayoutRequest, LeaveCheck, MoveNodeRequest, MutationResponse, OpenSessionRequest,
    RenameRequest, SelectionDeleteRequest, SessionOpenedResponse, ValidationReport,
    VisibilityRequest
)
from ctaflow.services.editor import FlowEditor
from ctaflow.services.sessions import EditorSessions

log = logging.getLogger("ctaflow.api.editor")

router = APIRouter()

ERROR_STATUS = {
    "validation": 422,
    "usage_lock": status.HTTP_409_CONFLICT,
    "transport": status.HTTP_502_BAD_GATEWAY,
}


def _action_response(outcome: ActionOutcome) -> ActionOutcome:
    """Failed outcomes become HTTP errors carrying the outcome as detail"""
    if outcome.ok:
        return outcome
    raise HTTPException(
        status_code=ERROR_STATUS.get(outcome.error, status.HTTP_400_BAD_REQUEST),
        detail=outcome.model_dump(mode="json")
    )


def _mutation(editor: FlowEditor, session_id: str, applied: bool, created_ids=()) -> MutationResponse:
    return MutationResponse(
        applied=bool(applied),
        created_ids=list(created_ids),
        view=editor.canvas_view(session_id)
    )


def _require_node(editor: FlowEditor, node_id: str) -> None:
    if editor.graph.get_node(node_id) is None:
        raise HTTPException(status_code=404, detail=f"Node {node_id} not found")


# ────────────────────────────────────────────
# Sessions
# ────────────────────────────────────────────

@router.post("/sessions", response_model=SessionOpenedResponse, status_code=201)
def open_session(
    data: OpenSessionRequest,
    business_id: Optional[str] = Depends(get_business_id),
    sessions: EditorSessions = Depends(get_sessions)
):
    """
    Open an editor session

    - **flow_id**: Server id of the flow to load (omit for a new flow)
    - **mode**: `edit`, `view` or omitted
    """
    session_id, editor, outcome = sessions.open(business_id, data.flow_id, data.mode)
    if not outcome.ok:
        sessions.close(session_id)
        _action_response(outcome)
    return SessionOpenedResponse(
        session_id=session_id,
        outcome=outcome,
        view=editor.canvas_view(session_id)
    )


@router.get("/sessions/{session_id}", response_model=CanvasView)
def get_session(session_id: str, editor: FlowEditor = Depends(get_editor)):
    """Current canvas view"""
    return editor.canvas_view(session_id)


@router.delete("/sessions/{session_id}")
def close_session(
    session_id: str,
    editor: FlowEditor = Depends(get_editor),
    sessions: EditorSessions = Depends(get_sessions)
):
    """Close the session, flushing any pending draft write"""
    sessions.close(session_id)
    return {"success": True, "session_id": session_id}


# ────────────────────────────────────────────
# Nodes
# ────────────────────────────────────────────

@router.post("/sessions/{session_id}/nodes", response_model=MutationResponse)
def add_nodes(session_id: str, data: AddNodesRequest, editor: FlowEditor = Depends(get_editor)):
    """Add one step per template snapshot"""
    added = editor.add_templates(data.templates)
    return _mutation(editor, session_id, bool(added), [n.id for n in added])


@router.post("/sessions/{session_id}/nodes/from-catalog", response_model=MutationResponse)
def add_nodes_from_catalog(
    session_id: str,
    data: AddFromCatalogRequest,
    business_id: Optional[str] = Depends(get_business_id),
    editor: FlowEditor = Depends(get_editor),
    sessions: EditorSessions = Depends(get_sessions)
):
    """Fetch template details for a picker selection and add them as steps"""
    if editor.readonly:
        return _mutation(editor, session_id, False)
    snapshots = sessions.catalog_for(business_id).snapshots(data.templates)
    if not snapshots:
        raise HTTPException(
            status_code=422,
            detail="Selected templates are not supported in CTA flows yet."
        )
    added = editor.add_templates(snapshots)
    return _mutation(editor, session_id, bool(added), [n.id for n in added])


@router.patch("/sessions/{session_id}/nodes/{node_id}", response_model=MutationResponse)
def update_node(
    session_id: str,
    node_id: str,
    fields: Dict[str, Any] = Body(...),
    editor: FlowEditor = Depends(get_editor)
):
    """Shallow-merge node fields (snake_case names)"""
    _require_node(editor, node_id)
    updated = editor.update_node(node_id, fields)
    return _mutation(editor, session_id, updated is not None)


@router.post("/sessions/{session_id}/nodes/{node_id}/move", response_model=MutationResponse)
def move_node(
    session_id: str,
    node_id: str,
    data: MoveNodeRequest,
    editor: FlowEditor = Depends(get_editor)
):
    _require_node(editor, node_id)
    return _mutation(editor, session_id, editor.move_node(node_id, data.x, data.y))


@router.delete("/sessions/{session_id}/nodes/{node_id}", response_model=MutationResponse)
def delete_node(session_id: str, node_id: str, editor: FlowEditor = Depends(get_editor)):
    """Delete a step and every transition touching it"""
    _require_node(editor, node_id)
    return _mutation(editor, session_id, editor.delete_node(node_id))


@router.post("/sessions/{session_id}/selection/delete", response_model=MutationResponse)
def delete_selection(
    session_id: str,
    data: SelectionDeleteRequest,
    editor: FlowEditor = Depends(get_editor)
):
    applied = editor.delete_selection(data.node_ids, data.edge_ids)
    return _mutation(editor, session_id, applied)


# ────────────────────────────────────────────
# Edges
# ────────────────────────────────────────────

@router.post("/sessions/{session_id}/edges", response_model=MutationResponse)
def connect(session_id: str, data: ConnectRequest, editor: FlowEditor = Depends(get_editor)):
    """
    Wire a button handle to a target step

    A rejected connection (missing handle, handle already wired) is not an
    error: `applied` is false and the view is unchanged.
    """
    edge = editor.connect(data.source, data.source_handle, data.target)
    return _mutation(editor, session_id, edge is not None, [edge.id] if edge else [])


@router.delete("/sessions/{session_id}/edges/{edge_id}", response_model=MutationResponse)
def disconnect(session_id: str, edge_id: str, editor: FlowEditor = Depends(get_editor)):
    if editor.graph.get_edge(edge_id) is None:
        raise HTTPException(status_code=404, detail=f"Edge {edge_id} not found")
    return _mutation(editor, session_id, editor.disconnect(edge_id))


# ────────────────────────────────────────────
# Flow-level edits
# ────────────────────────────────────────────

@router.put("/sessions/{session_id}/name", response_model=MutationResponse)
def rename_flow(session_id: str, data: RenameRequest, editor: FlowEditor = Depends(get_editor)):
    readonly = editor.readonly
    editor.rename(data.name)
    return _mutation(editor, session_id, not readonly)


@router.post("/sessions/{session_id}/layout", response_model=MutationResponse)
def auto_layout(session_id: str, data: LayoutRequest, editor: FlowEditor = Depends(get_editor)):
    """
    Re-position every step with the layered layout

    - **direction**: `LR` (left-to-right) or `TB` (top-to-bottom)
    """
    return _mutation(editor, session_id, editor.auto_layout(data.direction))


@router.get("/sessions/{session_id}/validation", response_model=ValidationReport)
def validate(session_id: str, editor: FlowEditor = Depends(get_editor)):
    return editor.validate()


# ────────────────────────────────────────────
# Lifecycle
# ────────────────────────────────────────────

@router.post("/sessions/{session_id}/save", response_model=ActionOutcome)
def save_draft(session_id: str, editor: FlowEditor = Depends(get_editor)):
    """Save as draft; content issues come back as warnings"""
    return _action_response(editor.save_draft())


@router.post("/sessions/{session_id}/publish", response_model=ActionOutcome)
def publish(session_id: str, editor: FlowEditor = Depends(get_editor)):
    """
    Publish the flow

    Returns 422 with the first blocking issue when content is not ready,
    409 with the attached campaigns when the flow is usage-locked.
    """
    return _action_response(editor.publish())


@router.post("/sessions/{session_id}/fork", response_model=ActionOutcome)
def fork(session_id: str, editor: FlowEditor = Depends(get_editor)):
    """Create a new draft version of a locked flow"""
    return _action_response(editor.fork())


@router.post("/sessions/{session_id}/fork/decline", response_model=ActionOutcome)
def decline_fork(session_id: str, editor: FlowEditor = Depends(get_editor)):
    """Close the fork prompt; the session stays read-only"""
    return _action_response(editor.decline_fork())


# ────────────────────────────────────────────
# Page lifecycle
# ────────────────────────────────────────────

@router.post("/sessions/{session_id}/visibility")
def visibility_changed(
    session_id: str,
    data: VisibilityRequest,
    editor: FlowEditor = Depends(get_editor)
):
    """Page hidden: write the recovery snapshot now"""
    if data.hidden:
        editor.page_hidden()
    return {"success": True, "flushed": data.hidden}


@router.get("/sessions/{session_id}/leave", response_model=LeaveCheck)
def confirm_leave(session_id: str, editor: FlowEditor = Depends(get_editor)):
    """Whether navigating away needs a confirmation prompt"""
    return editor.confirm_leave()
