"""Tests for quick fixes and formatting."""

import pytest

from lsprotocol import types as lsp
from aurelia_lsp.code_actions import AureliaCodeActionProvider
from aurelia_lsp.oracle import FileEdit, OracleCodeFix

TEMPLATE = "<p>${mesage}</p>"


def expression_range():
    return lsp.Range(
        start=lsp.Position(line=0, character=5),
        end=lsp.Position(line=0, character=11),
    )


def action_params(uri, only=None):
    return lsp.CodeActionParams(
        text_document=lsp.TextDocumentIdentifier(uri=uri),
        range=expression_range(),
        context=lsp.CodeActionContext(
            diagnostics=[
                lsp.Diagnostic(
                    range=expression_range(),
                    message="Cannot find name 'mesage'. Did you mean 'message'?",
                    code=2552,
                    source="typescript",
                )
            ],
            only=only,
        ),
    )


class TestAureliaCodeActionProvider:
    """Test the AureliaCodeActionProvider class."""

    @pytest.fixture
    def provider(self, mock_server):
        return AureliaCodeActionProvider(mock_server)

    @pytest.mark.asyncio
    async def test_quick_fix_mapped(self, provider, open_template, oracle):
        entry = open_template(TEMPLATE)
        record = entry.virtual.records[0]
        oracle.get_code_fixes_at.return_value = [
            OracleCodeFix(
                title="Change spelling to 'message'",
                edits=[FileEdit(entry.virtual.path, record.value_start, record.value_start + 6, "message")],
                kind="quickfix",
            ),
            OracleCodeFix(
                title="Add missing import",
                edits=[FileEdit(entry.virtual.path, 0, 0, "import { message } from './x';\n")],
            ),
        ]

        actions = await provider.get_code_actions(action_params(entry.uri))

        assert [a.title for a in actions] == ["Change spelling to 'message'"]
        action = actions[0]
        assert action.kind == lsp.CodeActionKind.QuickFix
        (text_edit,) = action.edit.changes[entry.uri]
        assert text_edit.range == expression_range()
        assert text_edit.new_text == "message"

    @pytest.mark.asyncio
    async def test_oracle_receives_virtual_range(self, provider, open_template, oracle):
        entry = open_template(TEMPLATE)
        record = entry.virtual.records[0]
        await provider.get_code_actions(action_params(entry.uri))

        path, start, end, diagnostics = oracle.get_code_fixes_at.call_args[0]
        assert path == entry.virtual.path
        assert (start, end) == (record.value_start, record.value_start + 6)
        assert diagnostics[0].code == 2552

    @pytest.mark.asyncio
    async def test_other_kinds_not_offered(self, provider, open_template, oracle):
        entry = open_template(TEMPLATE)
        actions = await provider.get_code_actions(
            action_params(entry.uri, only=[lsp.CodeActionKind.SourceOrganizeImports])
        )
        assert actions is None
        oracle.get_code_fixes_at.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_fixes(self, provider, open_template):
        entry = open_template(TEMPLATE)
        assert await provider.get_code_actions(action_params(entry.uri)) is None

    def test_formatting_is_noop(self, provider):
        params = lsp.DocumentFormattingParams(
            text_document=lsp.TextDocumentIdentifier(uri="file:///app/my-page.html"),
            options=lsp.FormattingOptions(tab_size=2, insert_spaces=True),
        )
        assert provider.format_document(params) == []
