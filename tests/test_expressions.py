"""Tests for template expression extraction."""

import pytest

from aurelia_lsp.expressions import (
    ExpressionKind,
    MarkupContextKind,
    TemplateParser,
    is_binding_attribute,
    markup_context,
    mask_interpolations,
)


class TestIsBindingAttribute:
    """Test binding attribute detection."""

    @pytest.mark.parametrize(
        "name",
        ["value.bind", "click.trigger", "repeat.for", "if", "with", "ref", "checked.two-way", "Value.Bind"],
    )
    def test_binding(self, name):
        assert is_binding_attribute(name)

    @pytest.mark.parametrize("name", ["class", "id", "data-x", "value."])
    def test_plain(self, name):
        assert not is_binding_attribute(name)


class TestTemplateParser:
    """Test TemplateParser.extract."""

    @pytest.fixture
    def parser(self):
        return TemplateParser()

    def test_interpolation(self, parser):
        text = "<p>Hello ${name}!</p>"
        spans = parser.extract(text)
        assert len(spans) == 1
        span = spans[0]
        assert span.kind == ExpressionKind.INTERPOLATION
        assert span.text == "name"
        assert text[span.start:span.end] == "name"

    def test_multiple_interpolations_sorted(self, parser):
        text = "<div>${first} and ${second}</div>\n<span>${third}</span>"
        spans = parser.extract(text)
        assert [s.text for s in spans] == ["first", "second", "third"]
        assert spans == sorted(spans, key=lambda s: s.start)

    def test_binding_attribute(self, parser):
        text = '<input value.bind="firstName">'
        spans = parser.extract(text)
        assert len(spans) == 1
        span = spans[0]
        assert span.kind == ExpressionKind.BINDING
        assert span.text == "firstName"
        assert span.attribute == "value.bind"
        assert span.element == "input"
        assert text[span.start:span.end] == "firstName"

    def test_repeat_for(self, parser):
        text = '<li repeat.for="item of items">${item.name}</li>'
        spans = parser.extract(text)
        assert [s.text for s in spans] == ["item of items", "item.name"]
        assert spans[0].attribute == "repeat.for"

    def test_empty_binding_value(self, parser):
        text = '<div if.bind=""></div>'
        spans = parser.extract(text)
        assert len(spans) == 1
        assert spans[0].text == "true"
        assert spans[0].start == spans[0].end == text.index('""') + 1

    def test_empty_interpolation(self, parser):
        text = "<p>${}</p>"
        spans = parser.extract(text)
        assert len(spans) == 1
        assert spans[0].text == ""
        assert spans[0].start == spans[0].end == 5

    def test_plain_attributes_ignored(self, parser):
        assert parser.extract('<div class="box" id="main"></div>') == []

    def test_script_content_ignored(self, parser):
        text = "<script>const s = `${value}`;</script>"
        assert parser.extract(text) == []

    def test_non_ascii_offsets(self, parser):
        text = "<p>Grüße ${name}</p>"
        spans = parser.extract(text)
        assert len(spans) == 1
        assert text[spans[0].start:spans[0].end] == "name"

    def test_no_expressions(self, parser):
        assert parser.extract("<template><p>static</p></template>") == []

    def test_comparison_in_interpolation(self, parser):
        text = "<p>${count < 10}</p><p>${count <= 10}</p>"
        spans = parser.extract(text)
        assert [s.text for s in spans] == ["count < 10", "count <= 10"]
        assert all(text[s.start:s.end] == s.text for s in spans)

    def test_comparison_does_not_swallow_markup(self, parser):
        text = '<p>${a < b}</p><input value.bind="name">'
        spans = parser.extract(text)
        assert [(s.kind, s.text) for s in spans] == [
            (ExpressionKind.INTERPOLATION, "a < b"),
            (ExpressionKind.BINDING, "name"),
        ]

    def test_non_ascii_inside_interpolation(self, parser):
        text = "<p>${'Grüße' < name}</p>"
        spans = parser.extract(text)
        assert len(spans) == 1
        assert text[spans[0].start:spans[0].end] == "'Grüße' < name"

    def test_malformed_markup_recovers(self, parser):
        spans = parser.extract("<div><span ${broken</div><p>${ok}</p>")
        assert [s.text for s in spans] == ["ok"]

    def test_template_content_traversed_inline(self, parser):
        text = '<template><p>${message}</p><input value.bind="name"></template>'
        spans = parser.extract(text)
        assert [s.text for s in spans] == ["message", "name"]

    def test_spans_do_not_overlap(self, parser):
        text = (
            '<div if.bind="show" class="box">${first} and ${second}'
            '<input value.bind="name & debounce"><li repeat.for="i of items">${i}</li></div>'
        )
        spans = parser.extract(text)
        assert len(spans) == 6
        for before, after in zip(spans, spans[1:]):
            assert before.end <= after.start


class TestMaskInterpolations:
    """Test masking of interpolation contents before parsing."""

    def test_byte_length_kept(self):
        text = "<p>${'ä' < b}</p>"
        masked = mask_interpolations(text)
        assert len(masked.encode("utf-8")) == len(text.encode("utf-8"))
        assert "<" not in masked[3:-4]

    def test_quotes_kept(self):
        assert mask_interpolations("${a ? 'x' : \"y\"}") == "${    ' '   \" \"}"

    def test_markup_left_alone(self):
        text = "<span ${broken</div><p>${ok}</p>"
        assert mask_interpolations(text) == text


class TestMarkupContext:
    """Test markup_context classification."""

    def test_tag_name(self):
        context = markup_context("<us", 3)
        assert context.kind == MarkupContextKind.TAG_NAME
        assert context.word == "us"

    def test_bare_open_bracket(self):
        context = markup_context("<p></p><", 8)
        assert context.kind == MarkupContextKind.TAG_NAME
        assert context.word == ""

    def test_attribute(self):
        text = '<user-card class="a" na'
        context = markup_context(text, len(text))
        assert context.kind == MarkupContextKind.ATTRIBUTE
        assert context.tag == "user-card"
        assert context.word == "na"

    def test_binding_command(self):
        text = "<user-card name."
        context = markup_context(text, len(text))
        assert context.kind == MarkupContextKind.BINDING_COMMAND
        assert context.tag == "user-card"
        assert context.word == "name"

    def test_character_content(self):
        text = "<p>some text"
        assert markup_context(text, len(text)) is None

    def test_inside_attribute_value(self):
        text = '<input value="ab'
        assert markup_context(text, len(text)) is None
