"""Tests for semantic tokens."""

import pytest

from lsprotocol import types as lsp
from aurelia_lsp.oracle import OracleClassification, SymbolKind
from aurelia_lsp.semantic_tokens import (
    LEGEND,
    SEMANTIC_TOKEN_TYPES,
    AureliaSemanticTokensProvider,
    encode_tokens,
)


class TestEncodeTokens:
    """Test relative token encoding."""

    def test_encoding(self):
        tokens = [(2, 1, 4, 2, 1), (0, 5, 3, 1, 0), (0, 10, 2, 0, 0)]
        assert encode_tokens(tokens) == [
            0, 5, 3, 1, 0,
            0, 5, 2, 0, 0,
            2, 1, 4, 2, 1,
        ]

    def test_empty(self):
        assert encode_tokens([]) == []

    def test_legend(self):
        assert LEGEND.token_types == SEMANTIC_TOKEN_TYPES
        assert "other" not in LEGEND.token_types


class TestAureliaSemanticTokensProvider:
    """Test the AureliaSemanticTokensProvider class."""

    @pytest.fixture
    def provider(self, mock_server):
        return AureliaSemanticTokensProvider(mock_server)

    def params(self, uri):
        return lsp.SemanticTokensParams(text_document=lsp.TextDocumentIdentifier(uri=uri))

    @pytest.mark.asyncio
    async def test_tokens_mapped_into_template(self, provider, open_template, oracle):
        entry = open_template("<p>${message}</p>\n<b>${count}</b>")
        first, second = entry.virtual.records
        oracle.get_semantic_classifications.return_value = [
            # import of the view-model class
            OracleClassification(9, 15, SymbolKind.CLASS),
            OracleClassification(first.value_start, first.value_start + 5, SymbolKind.VARIABLE),
            OracleClassification(first.value_start + 6, first.value_start + 13, SymbolKind.PROPERTY),
            OracleClassification(
                second.value_start + 6, second.value_start + 11, SymbolKind.PROPERTY, frozenset({"readonly"})
            ),
            OracleClassification(second.value_start + 6, second.value_start + 11, SymbolKind.OTHER),
        ]

        result = await provider.get_semantic_tokens(self.params(entry.uri))

        property_type = SEMANTIC_TOKEN_TYPES.index("property")
        assert result.data == [
            0, 5, 7, property_type, 0,
            1, 5, 5, property_type, 2,
        ]

    @pytest.mark.asyncio
    async def test_stale_result_empty(self, provider, open_template, oracle, session):
        entry = open_template("<p>${message}</p>")
        record = entry.virtual.records[0]

        async def classify(path):
            session.change(entry.uri, "<p>${count}</p>", 2)
            return [OracleClassification(record.value_start + 6, record.value_start + 13, SymbolKind.PROPERTY)]

        oracle.get_semantic_classifications.side_effect = classify
        result = await provider.get_semantic_tokens(self.params(entry.uri))
        assert result.data == []

    @pytest.mark.asyncio
    async def test_unbound_template_empty(self, provider, project, session, oracle):
        path = project.write("orphan.html", "<p>${value}</p>")
        session.open(project.uri("orphan.html"), path, "<p>${value}</p>", 1)
        result = await provider.get_semantic_tokens(self.params(project.uri("orphan.html")))
        assert result.data == []
        oracle.get_semantic_classifications.assert_not_awaited()
