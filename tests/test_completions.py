"""Tests for the completion provider."""

import pytest

from lsprotocol import types as lsp
from aurelia_lsp.completions import (
    AureliaCompletionProvider,
    is_bare_term_position,
    is_pipe_position,
)
from aurelia_lsp.oracle import OracleCompletion, SymbolKind


def completion_params(uri, line, character):
    return lsp.CompletionParams(
        text_document=lsp.TextDocumentIdentifier(uri=uri),
        position=lsp.Position(line=line, character=character),
    )


class TestPositionHelpers:
    """Test cursor classification helpers."""

    @pytest.mark.parametrize("text", ["", "  ", "count + ", "mes", "a && ", "fn(", "x ? "])
    def test_bare_term(self, text):
        assert is_bare_term_position(text)

    @pytest.mark.parametrize("text", ["user.", "user.na", "'abc", "items]"])
    def test_not_bare_term(self, text):
        assert not is_bare_term_position(text)

    @pytest.mark.parametrize("text", ["date | ", "date |", "date | fo"])
    def test_pipe(self, text):
        assert is_pipe_position(text)

    @pytest.mark.parametrize("text", ["a || ", "a || b", "date"])
    def test_not_pipe(self, text):
        assert not is_pipe_position(text)


class TestExpressionCompletions:
    """Test completions inside template expressions."""

    @pytest.fixture
    def provider(self, mock_server):
        return AureliaCompletionProvider(mock_server)

    @pytest.mark.asyncio
    async def test_empty_expression_offers_all_members(self, provider, open_template):
        entry = open_template("<p>${}</p>")
        result = await provider.get_completions(completion_params(entry.uri, 0, 5))

        assert result is not None
        labels = [item.label for item in result.items]
        assert sorted(labels) == ["count", "greet", "message"]
        assert all(item.sort_text.startswith("0_vm_always_") for item in result.items)
        assert all(item.detail == "(view-model member)" for item in result.items)

    @pytest.mark.asyncio
    async def test_partial_identifier_fallback(self, provider, open_template):
        entry = open_template("<p>${mes}</p>")
        result = await provider.get_completions(completion_params(entry.uri, 0, 8))

        assert [item.label for item in result.items] == ["message"]
        assert result.items[0].sort_text.startswith("0_vm_partial_")

    @pytest.mark.asyncio
    async def test_oracle_results_filtered_and_ranked(self, provider, open_template, oracle):
        entry = open_template("<p>${message}</p>")
        oracle.get_completions_at.return_value = [
            OracleCompletion("true", SymbolKind.KEYWORD),
            OracleCompletion("console", SymbolKind.VARIABLE),
            OracleCompletion("message", SymbolKind.PROPERTY, detail="string"),
            OracleCompletion("___expr_000001", SymbolKind.VARIABLE),
            OracleCompletion("___el_000001", SymbolKind.VARIABLE),
            OracleCompletion("___back_000001", SymbolKind.VARIABLE),
            OracleCompletion("_this", SymbolKind.VARIABLE),
            OracleCompletion("MyPage", SymbolKind.CLASS),
            OracleCompletion("if", SymbolKind.KEYWORD),
            OracleCompletion("Symbol.iterator", SymbolKind.OTHER),
        ]

        result = await provider.get_completions(completion_params(entry.uri, 0, 12))

        assert [item.label for item in result.items] == ["message", "console", "true"]
        assert result.items[0].kind == lsp.CompletionItemKind.Property
        assert result.items[0].detail == "string"

    @pytest.mark.asyncio
    async def test_oracle_queried_at_virtual_offset(self, provider, open_template, oracle):
        entry = open_template("<p>${message}</p>")
        await provider.get_completions(completion_params(entry.uri, 0, 12))

        path, offset = oracle.get_completions_at.call_args_list[0][0]
        assert path == entry.virtual.path
        assert entry.virtual.content[:offset].endswith("_this.message")

    @pytest.mark.asyncio
    async def test_members_merged_from_receiver(self, provider, open_template, oracle):
        entry = open_template("<p>${count + }</p>")
        receiver_end = entry.virtual.records[0].rewrites[0].virtual_end

        async def complete(path, offset):
            if offset == receiver_end:
                return [
                    OracleCompletion("message", SymbolKind.PROPERTY, detail="string"),
                    OracleCompletion("greet", SymbolKind.METHOD),
                    OracleCompletion("constructor", SymbolKind.OTHER),
                ]
            return [OracleCompletion("console", SymbolKind.VARIABLE)]

        oracle.get_completions_at.side_effect = complete
        result = await provider.get_completions(completion_params(entry.uri, 0, 13))

        items = {item.label: item for item in result.items}
        assert set(items) == {"console", "message", "greet", "count"}
        assert items["message"].detail == "this.message: string"
        assert items["greet"].detail == "this.greet"
        assert items["count"].detail == "(view-model member)"
        assert oracle.get_completions_at.await_count == 2

    @pytest.mark.asyncio
    async def test_value_converters_after_pipe(self, provider, open_template, session, project):
        session.registry.update_file(
            project.path("date-format.ts"),
            text="export class DateFormatValueConverter { toView(v) { return v; } }\n",
        )
        entry = open_template("<p>${message | }</p>")
        result = await provider.get_completions(completion_params(entry.uri, 0, 15))

        assert [item.label for item in result.items] == ["dateFormat"]
        assert result.items[0].detail == "Value Converter"

    @pytest.mark.asyncio
    async def test_stale_result_discarded(self, provider, open_template, oracle, session):
        entry = open_template("<p>${message}</p>")

        async def complete(path, offset):
            session.change(entry.uri, "<p>${count}</p>", 2)
            return [OracleCompletion("message", SymbolKind.PROPERTY)]

        oracle.get_completions_at.side_effect = complete
        result = await provider.get_completions(completion_params(entry.uri, 0, 12))
        assert result is None

    @pytest.mark.asyncio
    async def test_oracle_failure_falls_back_to_members(self, provider, open_template, oracle):
        entry = open_template("<p>${}</p>")
        oracle.get_completions_at.side_effect = RuntimeError("engine crashed")
        result = await provider.get_completions(completion_params(entry.uri, 0, 5))
        assert sorted(item.label for item in result.items) == ["count", "greet", "message"]

    @pytest.mark.asyncio
    async def test_unknown_document(self, provider):
        result = await provider.get_completions(completion_params("file:///nowhere.html", 0, 0))
        assert result is None


class TestMarkupCompletions:
    """Test completions outside expressions."""

    @pytest.fixture
    def provider(self, mock_server, session, project):
        session.registry.update_file(
            project.path("user-card.ts"),
            text=(
                "@customElement('user-card')\n"
                "export class UserCard {\n"
                "  @bindable fullName: string;\n"
                "}\n"
            ),
        )
        session.registry.update_file(
            project.path("tooltip.ts"),
            text="@customAttribute('tooltip')\nexport class Tooltip {}\n",
        )
        return AureliaCompletionProvider(mock_server)

    @pytest.mark.asyncio
    async def test_tag_names(self, provider, open_template):
        entry = open_template("<div>\n  <us")
        result = await provider.get_completions(completion_params(entry.uri, 1, 5))
        assert [item.label for item in result.items] == ["user-card"]
        assert result.items[0].kind == lsp.CompletionItemKind.Class

    @pytest.mark.asyncio
    async def test_attributes(self, provider, open_template):
        entry = open_template("<user-card ")
        result = await provider.get_completions(completion_params(entry.uri, 0, 11))
        labels = [item.label for item in result.items]
        assert labels[:2] == ["full-name", "full-name.bind"]
        assert "tooltip" in labels
        assert "repeat.for" in labels
        assert "if" in labels

    @pytest.mark.asyncio
    async def test_binding_commands(self, provider, open_template):
        entry = open_template("<user-card full-name.")
        result = await provider.get_completions(completion_params(entry.uri, 0, 21))
        labels = [item.label for item in result.items]
        assert "bind" in labels
        assert "two-way" in labels
        assert "ref" not in labels
        assert "bindable 'full-name'" in result.items[0].detail

    @pytest.mark.asyncio
    async def test_disabled(self, provider, open_template, mock_server):
        mock_server.settings.markup_completions_enabled = False
        entry = open_template("<us")
        result = await provider.get_completions(completion_params(entry.uri, 0, 3))
        assert result is None

    @pytest.mark.asyncio
    async def test_character_content(self, provider, open_template):
        entry = open_template("<p>plain text")
        result = await provider.get_completions(completion_params(entry.uri, 0, 13))
        assert result is None
