# ctaflow/api/deps.py
"""
API dependencies for business context and editor session lookup.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from ctaflow.core import config
from ctaflow.services import get_editor_sessions
from ctaflow.services.editor import FlowEditor
from ctaflow.services.sessions import EditorSessions


# ────────────────────────────────────────────
# Business context
# ────────────────────────────────────────────

def get_business_id(
    x_business_id: Optional[str] = Header(None, alias=config.BUSINESS_HEADER)
) -> Optional[str]:
    """
    Business id from the X-Business-Id header.

    Falls back to DEFAULT_BUSINESS_ID; None means "unknown business".
    """
    value = (x_business_id or "").strip()
    return value or config.DEFAULT_BUSINESS_ID


# ────────────────────────────────────────────
# Sessions
# ────────────────────────────────────────────

def get_sessions() -> EditorSessions:
    sessions = get_editor_sessions()
    if sessions is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Editor service not initialized"
        )
    return sessions


def get_editor(
    session_id: str,
    business_id: Optional[str] = Depends(get_business_id),
    sessions: EditorSessions = Depends(get_sessions)
) -> FlowEditor:
    editor = sessions.get(session_id, business_id)
    if editor is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Editor session {session_id} not found"
        )
    return editor
