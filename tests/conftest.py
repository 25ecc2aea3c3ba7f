"""Shared fixtures: deterministic timers, a fake flow API and sample templates."""
import itertools
import json

import httpx
import pytest

from ctaflow.schemas.graph import TemplateButton, TemplateSnapshot
from ctaflow.services.drafts import DraftCache, MemoryDraftStore
from ctaflow.services.editor import FlowEditor
from ctaflow.services.flow_client import FlowApiClient
from ctaflow.services.graph import FlowGraph

BUSINESS_ID = "biz-1"


# ────────────────────────────────────────────
# Timers
# ────────────────────────────────────────────

class FakeTimer:
    def __init__(self, delay, fn):
        self.delay = delay
        self.fn = fn
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.fn()


class TimerFactory:
    """Stands in for threading.Timer; tests fire timers by hand"""

    def __init__(self):
        self.timers = []

    def __call__(self, delay, fn):
        timer = FakeTimer(delay, fn)
        self.timers.append(timer)
        return timer

    @property
    def live(self):
        return [t for t in self.timers if t.started and not t.cancelled]

    def fire_all(self):
        for timer in list(self.live):
            timer.fire()


# ────────────────────────────────────────────
# Fake flow API
# ────────────────────────────────────────────

class FakeFlowApi:
    """Route table behind httpx.MockTransport; records every request"""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, status=200, json=None, raises=None, hook=None):
        self.routes[(method, path)] = (status, json, raises, hook)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/api/"):
            path = path[len("/api/"):]
        self.requests.append(request)
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"message": f"no route for {request.method} {path}"})
        status, body, raises, hook = route
        if hook is not None:
            hook(request)
        if raises is not None:
            raise raises
        return httpx.Response(status, json=body if body is not None else {})

    @property
    def calls(self):
        return [(r.method, r.url.path[len("/api/"):]) for r in self.requests]

    def body(self, index=-1):
        content = self.requests[index].content
        return json.loads(content) if content else None

    def transport(self):
        return httpx.MockTransport(self.handler)


def flow_doc(published=False, name="Onboarding"):
    """GET flow/{id} response in the server's camelCase shape"""
    return {
        "flowName": name,
        "isPublished": published,
        "nodes": [
            {
                "id": "a",
                "positionX": 0,
                "positionY": 0,
                "templateName": "welcome",
                "templateType": "text_template",
                "messageBody": "Hi {{1}}",
                "bodyParams": ["Sam"],
                "buttons": [
                    {"text": "Yes", "type": "QUICK_REPLY", "index": 0},
                    {"text": "No", "type": "QUICK_REPLY", "index": 1},
                ],
            },
            {
                "id": "b",
                "positionX": 400,
                "positionY": 0,
                "templateName": "promo",
                "templateType": "image_template",
                "headerMediaUrl": "https://cdn.example.com/p.png",
                "messageBody": "Sale",
                "buttons": [],
            },
        ],
        "edges": [{"fromNodeId": "a", "toNodeId": "b", "sourceHandle": "Yes"}],
    }


# ────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────

@pytest.fixture
def timers():
    return TimerFactory()


@pytest.fixture
def ids():
    counter = itertools.count(1)
    return lambda: f"n{next(counter)}"


@pytest.fixture
def graph(ids):
    return FlowGraph(business_id=BUSINESS_ID, name="Test flow", id_factory=ids)


@pytest.fixture
def store():
    return MemoryDraftStore()


@pytest.fixture
def cache(store):
    return DraftCache(store)


@pytest.fixture
def api():
    return FakeFlowApi()


@pytest.fixture
def client(api):
    c = FlowApiClient(BUSINESS_ID, base_url="http://flows.test", token="secret", transport=api.transport())
    yield c
    c.close()


@pytest.fixture
def make_editor(client, cache, timers, ids):
    def factory(flow_id=None, mode=None):
        editor = FlowEditor(
            client,
            cache,
            business_id=BUSINESS_ID,
            flow_id=flow_id,
            mode=mode,
            timer_factory=timers,
            id_factory=ids,
        )
        editor.open()
        return editor
    return factory


@pytest.fixture
def text_snapshot():
    return TemplateSnapshot(
        name="welcome",
        type="text_template",
        body="Hi {{1}}, pick one",
        buttons=[TemplateButton(text="Yes"), TemplateButton(text="No")],
    )


@pytest.fixture
def image_snapshot():
    return TemplateSnapshot(
        name="promo",
        type="image_template",
        body="Big sale",
        buttons=[TemplateButton(text="Shop")],
    )


@pytest.fixture
def make_doc():
    return flow_doc
