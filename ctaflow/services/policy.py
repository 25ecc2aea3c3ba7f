# ctaflow/services/policy.py
"""
Publish/fork lifecycle of a flow.

    NEW_UNSAVED --save--> DRAFT --publish--> PUBLISHED
    PUBLISHED --edit, usage lock found--> PUBLISHED_LOCKED
    PUBLISHED_LOCKED --fork--> DRAFT (new id)
    PUBLISHED_LOCKED --decline fork--> READ_ONLY_FORK --fork--> DRAFT
    any --409 conflict--> PUBLISHED_LOCKED

The 409 conflict is the only server-driven transition.
"""
import logging
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from ctaflow.core.exceptions import InvalidTransition
from ctaflow.schemas.flow import CampaignUsageLock

log = logging.getLogger("ctaflow.policy")


class FlowState(str, Enum):
    NEW_UNSAVED = "new_unsaved"
    DRAFT = "draft"
    PUBLISHED = "published"
    PUBLISHED_LOCKED = "published_locked"
    READ_ONLY_FORK = "read_only_fork"


class FlowAction(str, Enum):
    SAVE = "save"
    PUBLISH = "publish"
    CHECK_USAGE = "check_usage"
    FORK = "fork"
    DECLINE_FORK = "decline_fork"
    CONFLICT = "conflict"


S, A = FlowState, FlowAction

TRANSITIONS: Dict[Tuple[FlowState, FlowAction], FlowState] = {
    (S.NEW_UNSAVED, A.SAVE): S.DRAFT,
    (S.DRAFT, A.SAVE): S.DRAFT,
    (S.PUBLISHED, A.SAVE): S.PUBLISHED,
    (S.NEW_UNSAVED, A.PUBLISH): S.PUBLISHED,
    (S.DRAFT, A.PUBLISH): S.PUBLISHED,
    (S.PUBLISHED, A.PUBLISH): S.PUBLISHED,
    (S.PUBLISHED_LOCKED, A.FORK): S.DRAFT,
    (S.READ_ONLY_FORK, A.FORK): S.DRAFT,
    (S.PUBLISHED_LOCKED, A.DECLINE_FORK): S.READ_ONLY_FORK,
}

LOCKED_STATES = frozenset({S.PUBLISHED_LOCKED, S.READ_ONLY_FORK})


class FlowLifecycle:
    """Tracks where one flow is in its draft/publish/fork lifecycle"""

    def __init__(self, flow_id: Optional[str] = None, is_published: bool = False):
        self.flow_id = flow_id
        if not flow_id:
            self.state = FlowState.NEW_UNSAVED
        else:
            self.state = FlowState.PUBLISHED if is_published else FlowState.DRAFT
        self.lock = CampaignUsageLock()
        self.fork_prompt_open = False
        self.republish_needed = False

    # ────────────────────────────────────────────
    # Queries
    # ────────────────────────────────────────────

    @property
    def can_mutate(self) -> bool:
        return self.state not in LOCKED_STATES

    @property
    def is_published(self) -> bool:
        return self.state in (S.PUBLISHED, S.PUBLISHED_LOCKED, S.READ_ONLY_FORK)

    def allows(self, action: FlowAction) -> bool:
        if action is A.CONFLICT:
            return True
        if action is A.CHECK_USAGE:
            return self.state is S.PUBLISHED
        return (self.state, action) in TRANSITIONS

    def _advance(self, action: FlowAction, next_state: Optional[FlowState] = None) -> FlowState:
        if not self.allows(action):
            raise InvalidTransition(self.state.value, action.value)
        previous = self.state
        self.state = next_state or TRANSITIONS[(previous, action)]
        if previous is not self.state:
            log.info(f"🔁 Flow {self.flow_id or '(new)'}: {previous.value} --{action.value}--> {self.state.value}")
        return self.state

    # ────────────────────────────────────────────
    # Transitions
    # ────────────────────────────────────────────

    def saved(self, flow_id: Optional[str] = None, needs_republish: bool = False) -> FlowState:
        if self.state is S.NEW_UNSAVED and not flow_id:
            raise InvalidTransition(self.state.value, "save without a server id")
        self._advance(A.SAVE)
        self.flow_id = flow_id or self.flow_id
        if self.state is S.PUBLISHED and needs_republish:
            self.republish_needed = True
        return self.state

    def published(self, flow_id: Optional[str] = None) -> FlowState:
        if not (flow_id or self.flow_id):
            raise InvalidTransition(self.state.value, "publish without a server id")
        self._advance(A.PUBLISH)
        self.flow_id = flow_id or self.flow_id
        self.republish_needed = False
        return self.state

    def usage_checked(self, lock: CampaignUsageLock) -> FlowState:
        """Editing a published flow: lock it when campaigns are attached"""
        if lock.locked:
            self._advance(A.CHECK_USAGE, S.PUBLISHED_LOCKED)
            self.lock = lock
            self.fork_prompt_open = True
        else:
            self._advance(A.CHECK_USAGE, S.PUBLISHED)
        return self.state

    def conflict(self, campaigns: Iterable = ()) -> FlowState:
        """HTTP 409 from the server: another actor attached a campaign"""
        self._advance(A.CONFLICT, S.PUBLISHED_LOCKED)
        self.lock = CampaignUsageLock.from_campaigns(campaigns)
        self.lock.locked = True
        self.fork_prompt_open = True
        return self.state

    def decline_fork(self) -> FlowState:
        self._advance(A.DECLINE_FORK)
        self.fork_prompt_open = False
        return self.state

    def forked(self, new_flow_id: str) -> FlowState:
        if not new_flow_id:
            raise InvalidTransition(self.state.value, "fork without a new id")
        self._advance(A.FORK)
        self.flow_id = new_flow_id
        self.lock = CampaignUsageLock()
        self.fork_prompt_open = False
        self.republish_needed = False
        return self.state
