# ctaflow/services/__init__.py
"""
Service layer initialization.
Holds the process-wide editor session registry.
"""
from typing import Optional

from ctaflow.services.sessions import EditorSessions

# Global session registry instance
_sessions: Optional[EditorSessions] = None


def set_editor_sessions(sessions: Optional[EditorSessions]):
    """Set global session registry"""
    global _sessions
    _sessions = sessions


def get_editor_sessions() -> Optional[EditorSessions]:
    """Get global session registry"""
    return _sessions


__all__ = [
    'EditorSessions',
    'set_editor_sessions',
    'get_editor_sessions'
]
