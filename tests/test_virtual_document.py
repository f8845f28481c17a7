"""Tests for virtual TypeScript document synthesis."""

import pytest

from aurelia_lsp.companion import CompanionBinding
from aurelia_lsp.expressions import ExpressionKind, ExpressionSpan
from aurelia_lsp.virtual_document import (
    RECEIVER,
    RECEIVER_PREFIX,
    STATEMENT_PREFIX_LENGTH,
    BindableTarget,
    BindingDirection,
    append_bindable_checks,
    binding_direction,
    relative_import,
    rewrite_expression,
    statement_prefix,
    synthesize,
    virtual_path_for,
)

BINDING = CompanionBinding(class_name="MyPage", source_path="/app/my-page.ts")
VIRTUAL_PATH = "/app/my-page.html.virtual.ts"


def span(text, start, kind=ExpressionKind.INTERPOLATION):
    return ExpressionSpan(text=text, kind=kind, start=start, end=start + len(text))


class TestRewriteExpression:
    """Test receiver rewriting of member identifiers."""

    def test_member_rewritten(self):
        text, inserted = rewrite_expression("count + 1", ["count"])
        assert text == "_this.count + 1"
        assert inserted == [(0, 0)]

    def test_property_access_not_rewritten(self):
        text, _ = rewrite_expression("user.name", ["user", "name"])
        assert text == "_this.user.name"

    def test_non_members_untouched(self):
        text, inserted = rewrite_expression("item.title", ["items"])
        assert text == "item.title"
        assert inserted == []

    def test_literal_keywords_never_rewritten(self):
        text, _ = rewrite_expression("true || null", ["true", "null"])
        assert text == "true || null"

    def test_string_contents_skipped(self):
        text, _ = rewrite_expression("'count' + count", ["count"])
        assert text == "'count' + _this.count"

    def test_template_literal_skipped(self):
        text, _ = rewrite_expression("`count` + count", ["count"])
        assert text == "`count` + _this.count"

    def test_multiple_insertions(self):
        text, inserted = rewrite_expression("first + last", ["first", "last"])
        assert text == "_this.first + _this.last"
        # second insertion: expression offset 8, rewritten offset 8 + one prefix
        assert inserted == [(0, 0), (8, 8 + len(RECEIVER_PREFIX))]

    def test_spread_is_not_member_access(self):
        text, _ = rewrite_expression("[...items]", ["items"])
        assert text == "[..._this.items]"

    def test_identifier_suffix_not_matched(self):
        text, _ = rewrite_expression("counter", ["count"])
        assert text == "counter"


class TestSynthesize:
    """Test synthesize output and mapping records."""

    def test_header(self):
        content, records = synthesize([], ["message"], BINDING, VIRTUAL_PATH)
        assert content.startswith("import { MyPage } from './my-page';\n")
        assert f"declare const {RECEIVER}: MyPage;" in content
        assert records == ()

    def test_statement_per_expression(self):
        spans = [span("message", 5), span("count + 1", 30)]
        content, records = synthesize(spans, ["message", "count"], BINDING, VIRTUAL_PATH)
        assert "const ___expr_000001 = (_this.message);\n" in content
        assert "const ___expr_000002 = (_this.count + 1);\n" in content
        assert len(records) == 2

    def test_record_ranges(self):
        spans = [span("count + 1", 5)]
        content, records = synthesize(spans, ["count"], BINDING, VIRTUAL_PATH)
        record = records[0]
        assert record.template_start == 5
        assert record.template_end == 14
        assert record.value_start == record.block_start + STATEMENT_PREFIX_LENGTH
        assert content[record.value_start:record.value_end] == "_this.count + 1"
        assert content[record.block_start:record.block_end] == "const ___expr_000001 = (_this.count + 1);\n"
        assert record.kind == ExpressionKind.INTERPOLATION

    def test_rewrite_records(self):
        spans = [span("count + 1", 5)]
        content, records = synthesize(spans, ["count"], BINDING, VIRTUAL_PATH)
        (rewrite,) = records[0].rewrites
        assert rewrite.template_start == 5
        assert rewrite.width == len(RECEIVER_PREFIX)
        assert content[rewrite.virtual_start:rewrite.virtual_end] == RECEIVER_PREFIX
        assert records[0].rewrote_implicit_receiver

    def test_empty_expression_uses_bare_receiver(self):
        spans = [span("", 5)]
        content, records = synthesize(spans, ["message"], BINDING, VIRTUAL_PATH)
        record = records[0]
        assert content[record.value_start:record.value_end] == RECEIVER
        assert record.rewrites[0].width == len(RECEIVER)

    def test_deterministic(self):
        spans = [span("message", 5)]
        assert synthesize(spans, ["message"], BINDING, VIRTUAL_PATH) == synthesize(
            spans, ["message"], BINDING, VIRTUAL_PATH
        )

    def test_prefix_width_fixed(self):
        assert len(statement_prefix(1)) == len(statement_prefix(999999)) == STATEMENT_PREFIX_LENGTH


class TestBindingDirection:
    """Test binding command directions."""

    @pytest.mark.parametrize(
        "attribute, expected",
        [
            ("value.bind", BindingDirection.TO_VIEW),
            ("value.to-view", BindingDirection.TO_VIEW),
            ("value.from-view", BindingDirection.FROM_VIEW),
            ("value.two-way", BindingDirection.TWO_WAY),
            ("Value.Two-Way", BindingDirection.TWO_WAY),
            ("click.trigger", None),
            ("value.one-time", None),
            ("repeat.for", None),
            ("if", None),
        ],
    )
    def test_direction(self, attribute, expected):
        assert binding_direction(attribute) is expected


class TestBindableChecks:
    """Test type-check statements for custom element bindables."""

    def target(self, direction):
        return BindableTarget("/app/user-card.ts", "UserCard", "name", direction)

    def test_no_targets_leaves_content(self):
        content, records = synthesize([span("count", 5)], ["count"], BINDING, VIRTUAL_PATH)
        assert append_bindable_checks(content, records, {}, VIRTUAL_PATH) == (content, ())

    def test_to_view_assigns_expression(self):
        spans = [span("count", 5), span("message", 20, ExpressionKind.BINDING)]
        content, records = synthesize(spans, ["count", "message"], BINDING, VIRTUAL_PATH)

        checked, checks = append_bindable_checks(
            content, records, {1: self.target(BindingDirection.TO_VIEW)}, VIRTUAL_PATH
        )

        assert checked.startswith(content)
        assert checked[len(content):] == (
            "\n"
            "declare const ___el_000002: import('./user-card').UserCard;\n"
            "___el_000002.name = ___expr_000002;\n"
        )
        (check,) = checks
        assert (check.template_start, check.template_end) == (20, 27)
        assert checked[check.block_start:check.block_end] == "___el_000002.name = ___expr_000002;\n"

    def test_from_view_assigns_back(self):
        content, records = synthesize([span("message", 5, ExpressionKind.BINDING)], ["message"], BINDING, VIRTUAL_PATH)
        checked, (check,) = append_bindable_checks(
            content, records, {0: self.target(BindingDirection.FROM_VIEW)}, VIRTUAL_PATH
        )
        assert checked[check.block_start:check.block_end] == (
            "const ___back_000001: typeof ___expr_000001 = ___el_000001.name;\n"
        )

    def test_two_way_checks_both_directions(self):
        content, records = synthesize([span("message", 5, ExpressionKind.BINDING)], ["message"], BINDING, VIRTUAL_PATH)
        checked, (check,) = append_bindable_checks(
            content, records, {0: self.target(BindingDirection.TWO_WAY)}, VIRTUAL_PATH
        )
        block = checked[check.block_start:check.block_end]
        assert "___el_000001.name = ___expr_000001;" in block
        assert "typeof ___expr_000001 = ___el_000001.name;" in block

    def test_records_unchanged(self):
        content, records = synthesize([span("message", 5, ExpressionKind.BINDING)], ["message"], BINDING, VIRTUAL_PATH)
        checked, _ = append_bindable_checks(
            content, records, {0: self.target(BindingDirection.TO_VIEW)}, VIRTUAL_PATH
        )
        record = records[0]
        assert checked[record.value_start:record.value_end] == "_this.message"


class TestPaths:
    """Test virtual path and import helpers."""

    def test_virtual_path(self):
        assert virtual_path_for("/app/my-page.html") == "/app/my-page.html.virtual.ts"

    @pytest.mark.parametrize(
        "source, expected",
        [
            ("/app/my-page.ts", "./my-page"),
            ("/app/pages/home.ts", "./pages/home"),
            ("/shared/base.ts", "../shared/base"),
        ],
    )
    def test_relative_import(self, source, expected):
        assert relative_import("/app/my-page.html.virtual.ts", source) == expected
