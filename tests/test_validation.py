"""Content-readiness checks and the messages built from them."""
import pytest

from ctaflow.schemas.graph import Button, IssueKind, Node
from ctaflow.services.validation import (
    blocking_message, body_param_issues, count_placeholders, first_blocking_issue,
    header_media_issues, is_valid_https_url, url_button_issues, validate_nodes,
    warning_messages
)


def image_node(url="", **kw):
    return Node(id=kw.pop("id", "img"), template_name="promo", template_type="image_template",
                header_media_url=url, **kw)


class TestPlaceholders:

    @pytest.mark.parametrize("body, expected", [
        ("Hi {{1}}, {{ 2 }} and {{}}", 3),
        ("{{1}} then {{1}} again", 2),
        ("Hello {{name}}", 0),
        ("", 0),
        (None, 0),
    ])
    def test_count(self, body, expected):
        assert count_placeholders(body) == expected

    @pytest.mark.parametrize("url, ok", [
        ("https://cdn.example.com/a.png", True),
        ("http://cdn.example.com/a.png", False),
        ("https://", False),
        ("https://cdn.example.com/a b.png", False),
        ("ftp://cdn.example.com/a.png", False),
        ("", False),
        (None, False),
    ])
    def test_https_url(self, url, ok):
        assert is_valid_https_url(url) is ok


class TestHeaderMedia:

    def test_missing_url(self):
        issues = header_media_issues([image_node()])

        assert len(issues) == 1
        assert issues[0].node_id == "img"
        assert issues[0].reason == "Missing header media URL"
        assert issues[0].check is IssueKind.HEADER_MEDIA

    def test_non_https_url(self):
        issues = header_media_issues([image_node("http://cdn.example.com/a.png")])

        assert issues[0].reason == "Header media URL must be a valid https:// URL"

    def test_valid_url_and_text_templates_pass(self):
        nodes = [
            image_node("https://cdn.example.com/a.png"),
            Node(id="t", template_name="hello", template_type="text_template"),
        ]
        assert header_media_issues(nodes) == []

    def test_unconfigured_nodes_are_skipped(self):
        node = Node(id="blank", template_type="video_template")
        assert header_media_issues([node]) == []


class TestBodyParams:

    def test_profile_slot_is_implicitly_filled(self):
        node = Node(
            id="n",
            template_name="order",
            message_body="Hi {{1}}, your order {{2}} shipped",
            use_profile_name=True,
            profile_name_slot=1,
            body_params=["", "ORD123"],
        )

        assert body_param_issues([node]) == []

    def test_one_issue_per_node(self):
        nodes = [
            Node(id="a", template_name="first", message_body="{{1}} {{2}}", body_params=["", ""]),
            Node(id="b", template_name="second", message_body="{{1}}", body_params=["  "]),
        ]

        issues = body_param_issues(nodes)

        assert [(i.node_id, i.slot) for i in issues] == [("a", 1), ("b", 1)]
        assert issues[0].reason == "Missing body value for {{1}}"

    def test_short_param_list_counts_as_missing(self):
        node = Node(id="a", template_name="x", message_body="{{1}} {{2}}", body_params=["ok"])

        issues = body_param_issues([node])

        assert issues[0].slot == 2


class TestUrlButtons:

    def url_node(self, params, index=1, value="https://shop.example.com/{{1}}"):
        return Node(
            id="u",
            template_name="shop",
            url_button_params=params,
            buttons=[
                Button(text="Reply", index=0),
                Button(text="Open", type="URL", value=value, index=index),
            ],
        )

    def test_missing_dynamic_param(self):
        issues = url_button_issues([self.url_node(["", "", ""])])

        assert len(issues) == 1
        assert issues[0].button_index == 2
        assert issues[0].button_text == "Open"
        assert issues[0].reason == "Missing dynamic URL param for button 2"

    def test_filled_param_passes(self):
        assert url_button_issues([self.url_node(["", "sku-9", ""])]) == []

    def test_static_url_needs_nothing(self):
        node = self.url_node(["", "", ""], value="https://shop.example.com/")
        assert url_button_issues([node]) == []

    def test_index_clamped_to_last_slot(self):
        issues = url_button_issues([self.url_node(["", "", ""], index=7)])
        assert issues[0].button_index == 3

        assert url_button_issues([self.url_node(["", "", "x"], index=7)]) == []

    def test_subtype_marks_url_button(self):
        node = Node(
            id="s",
            template_name="shop",
            buttons=[Button(text="Go", type="BUTTON", sub_type="url", value="https://x.com/{{1}}")],
        )
        assert len(url_button_issues([node])) == 1


class TestPolicyHelpers:

    def test_checks_run_in_priority_order(self):
        node = image_node(message_body="{{1}}", body_params=[""])

        issues = validate_nodes([node])

        assert [i.check for i in issues] == [IssueKind.HEADER_MEDIA, IssueKind.BODY_PLACEHOLDER]
        assert first_blocking_issue([node]).check is IssueKind.HEADER_MEDIA

    def test_first_blocking_issue_none_when_ready(self):
        node = image_node("https://cdn.example.com/a.png", message_body="Hi")
        assert first_blocking_issue([node]) is None

    def test_warning_message_names_first_issue(self):
        issues = validate_nodes([image_node(), image_node(id="img2")])

        assert warning_messages(issues) == [
            "Some steps need a valid https Header Media URL before publish. "
            "First: promo (Missing header media URL)"
        ]

    def test_one_warning_per_failing_check(self):
        nodes = [
            image_node(),
            Node(id="b", template_name="body", message_body="{{1}}", body_params=[""]),
        ]

        messages = warning_messages(validate_nodes(nodes))

        assert len(messages) == 2
        assert messages[1].startswith("Some steps need body variable values before publish.")

    def test_blocking_message(self):
        issue = first_blocking_issue([image_node()])

        assert blocking_message(issue) == (
            "Cannot publish: promo (Missing header media URL). Set the Header Media URL on that step."
        )
