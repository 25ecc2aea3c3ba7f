# ctaflow/services/validation.py
"""
Content-readiness checks for a flow.

Every check is a pure function over the node list and returns issues as data.
Callers decide the policy: save-draft warns, publish blocks on the first issue.
Checks run in a fixed priority order: header media, body placeholders,
dynamic URL buttons.
"""
import re
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from ctaflow.schemas.graph import URL_PARAM_SLOTS, IssueKind, Node, ValidationIssue

_POSITIONAL_RE = re.compile(r"\{\{\s*\d+\s*\}\}")
_EMPTY_RE = re.compile(r"\{\{\s*\}\}")


def count_placeholders(body: Optional[str]) -> int:
    """Count {{n}} and {{}} tokens in a message body"""
    if not body:
        return 0
    text = str(body)
    return len(_POSITIONAL_RE.findall(text)) + len(_EMPTY_RE.findall(text))


def is_valid_https_url(value: Optional[str]) -> bool:
    raw = str(value or "").strip()
    if not raw:
        return False
    try:
        parsed = urlparse(raw)
    except ValueError:
        return False
    return parsed.scheme == "https" and bool(parsed.netloc) and not any(ch.isspace() for ch in raw)


def _configured(nodes: Iterable[Node]) -> List[Node]:
    return [n for n in nodes or [] if n.template_name]


# ────────────────────────────────────────────
# Checks
# ────────────────────────────────────────────

def header_media_issues(nodes: Iterable[Node]) -> List[ValidationIssue]:
    issues = []
    for node in _configured(nodes):
        if not node.template_type.requires_header_media:
            continue
        url = node.header_media_url.strip()
        if not url:
            reason = "Missing header media URL"
        elif not is_valid_https_url(url):
            reason = "Header media URL must be a valid https:// URL"
        else:
            continue
        issues.append(ValidationIssue(
            node_id=node.id,
            template_name=node.template_name,
            reason=reason,
            check=IssueKind.HEADER_MEDIA,
        ))
    return issues


def body_param_issues(nodes: Iterable[Node]) -> List[ValidationIssue]:
    issues = []
    for node in _configured(nodes):
        count = count_placeholders(node.message_body)
        for slot in range(1, count + 1):
            if node.use_profile_name and node.profile_name_slot == slot:
                continue
            value = node.body_params[slot - 1] if slot - 1 < len(node.body_params) else ""
            if not str(value or "").strip():
                issues.append(ValidationIssue(
                    node_id=node.id,
                    template_name=node.template_name,
                    reason=f"Missing body value for {{{{{slot}}}}}",
                    check=IssueKind.BODY_PLACEHOLDER,
                    slot=slot,
                ))
                # first issue per node is enough for UX
                break
    return issues


def url_button_issues(nodes: Iterable[Node]) -> List[ValidationIssue]:
    issues = []
    for node in _configured(nodes):
        for btn in node.buttons:
            if not btn.is_dynamic_url:
                continue
            idx = min(max(btn.index, 0), URL_PARAM_SLOTS - 1)
            value = node.url_button_params[idx] if idx < len(node.url_button_params) else ""
            if not str(value or "").strip():
                issues.append(ValidationIssue(
                    node_id=node.id,
                    template_name=node.template_name,
                    reason=f"Missing dynamic URL param for button {idx + 1}",
                    check=IssueKind.DYNAMIC_URL,
                    button_index=idx + 1,
                    button_text=btn.text,
                ))
                break
    return issues


CHECKS = (header_media_issues, body_param_issues, url_button_issues)


def validate_nodes(nodes: Iterable[Node]) -> List[ValidationIssue]:
    """All issues, grouped by check in priority order"""
    nodes = list(nodes or [])
    issues: List[ValidationIssue] = []
    for check in CHECKS:
        issues.extend(check(nodes))
    return issues


def first_blocking_issue(nodes: Iterable[Node]) -> Optional[ValidationIssue]:
    """The issue publish should stop on, or None when the flow is publish-ready"""
    nodes = list(nodes or [])
    for check in CHECKS:
        found = check(nodes)
        if found:
            return found[0]
    return None


# ────────────────────────────────────────────
# User-facing messages
# ────────────────────────────────────────────

_WARN_PREFIX = {
    IssueKind.HEADER_MEDIA: "Some steps need a valid https Header Media URL before publish.",
    IssueKind.BODY_PLACEHOLDER: "Some steps need body variable values before publish.",
    IssueKind.DYNAMIC_URL: "Some steps need dynamic URL button values before publish.",
}

_BLOCK_HINT = {
    IssueKind.HEADER_MEDIA: "Set the Header Media URL on that step.",
    IssueKind.BODY_PLACEHOLDER: "Fill body variables on that step.",
    IssueKind.DYNAMIC_URL: "Fill the dynamic URL button value on that step.",
}


def warning_messages(issues: Iterable[ValidationIssue]) -> List[str]:
    """One save-draft warning per failing check, naming its first issue"""
    seen = {}
    for issue in issues:
        seen.setdefault(issue.check, issue)
    return [
        f"{_WARN_PREFIX[kind]} First: {issue.template_name} ({issue.reason})"
        for kind, issue in sorted(seen.items(), key=lambda kv: list(IssueKind).index(kv[0]))
    ]


def blocking_message(issue: ValidationIssue) -> str:
    return f"Cannot publish: {issue.template_name} ({issue.reason}). {_BLOCK_HINT[issue.check]}"
