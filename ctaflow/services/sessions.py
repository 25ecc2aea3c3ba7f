# ctaflow/services/sessions.py
"""In-process registry of open editor sessions"""
import logging
import threading
import uuid
from typing import Callable, Dict, Optional

from ctaflow.services.drafts import DraftCache
from ctaflow.services.editor import FlowEditor
from ctaflow.services.flow_client import FlowApiClient
from ctaflow.services.template_catalog import TemplateCatalog

log = logging.getLogger("ctaflow.sessions")

ClientFactory = Callable[[Optional[str]], FlowApiClient]


class EditorSessions:
    """
    Holds one FlowEditor per open canvas, plus one API client per business.

    Args:
        cache: Draft cache shared by every session
        client_factory: Builds a FlowApiClient for a business id
        editor_options: Extra FlowEditor kwargs (timer_factory, debounce, id_factory)
    """

    def __init__(self, cache: DraftCache, client_factory: Optional[ClientFactory] = None, **editor_options):
        self.cache = cache
        self.client_factory = client_factory or (lambda business_id: FlowApiClient(business_id))
        self.editor_options = editor_options
        self._sessions: Dict[str, FlowEditor] = {}
        self._clients: Dict[Optional[str], FlowApiClient] = {}
        self._catalogs: Dict[Optional[str], TemplateCatalog] = {}
        self._lock = threading.Lock()

    def client_for(self, business_id: Optional[str]) -> FlowApiClient:
        with self._lock:
            client = self._clients.get(business_id)
            if client is None:
                client = self.client_factory(business_id)
                self._clients[business_id] = client
            return client

    def catalog_for(self, business_id: Optional[str]) -> TemplateCatalog:
        client = self.client_for(business_id)
        with self._lock:
            catalog = self._catalogs.get(business_id)
            if catalog is None:
                catalog = TemplateCatalog(client)
                self._catalogs[business_id] = catalog
            return catalog

    def open(self, business_id: Optional[str], flow_id: Optional[str] = None, mode: Optional[str] = None):
        """Open a new session; returns (session_id, editor, outcome)"""
        editor = FlowEditor(
            self.client_for(business_id),
            self.cache,
            business_id=business_id,
            flow_id=flow_id,
            mode=mode,
            **self.editor_options,
        )
        outcome = editor.open()
        session_id = uuid.uuid4().hex
        with self._lock:
            self._sessions[session_id] = editor
        log.info(f"📂 Session {session_id} opened (flow={flow_id or 'new'}, mode={editor.mode.value})")
        return session_id, editor, outcome

    def get(self, session_id: str, business_id: Optional[str] = None) -> Optional[FlowEditor]:
        with self._lock:
            editor = self._sessions.get(session_id)
        if editor is None or (business_id is not None and editor.business_id != business_id):
            return None
        return editor

    def close(self, session_id: str) -> bool:
        with self._lock:
            editor = self._sessions.pop(session_id, None)
        if editor is None:
            return False
        editor.close()
        log.info(f"📁 Session {session_id} closed")
        return True

    def close_all(self) -> None:
        with self._lock:
            sessions, self._sessions = list(self._sessions.items()), {}
            clients, self._clients = list(self._clients.values()), {}
            self._catalogs = {}
        for session_id, editor in sessions:
            editor.close()
        for client in clients:
            client.close()
