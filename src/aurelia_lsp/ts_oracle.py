"""
TypeScript oracle for aurelia-lsp.

This module implements the TypeOracle protocol by delegating to a child
TypeScript language server (typescript-language-server by default). It
spawns the child process, keeps virtual documents synchronized, translates
offsets to the child's line/column positions and back, decodes the
child's symbol kinds into the closed SymbolKind set, and collects the
diagnostics the child publishes asynchronously.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

from lsprotocol import types as lsp
from pygls.lsp.client import LanguageClient
from pygls.uris import to_fs_path

from aurelia_lsp import __version__
from aurelia_lsp.oracle import (
    FileEdit,
    FileSpan,
    OracleClassification,
    OracleCodeFix,
    OracleCompletion,
    OracleDefinition,
    OracleDiagnostic,
    OracleQuickInfo,
    SymbolKind,
)
from aurelia_lsp.text import LineIndex, read_text_file

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = ["typescript-language-server", "--stdio"]

_COMPLETION_KINDS: dict[lsp.CompletionItemKind, SymbolKind] = {
    lsp.CompletionItemKind.Property: SymbolKind.PROPERTY,
    lsp.CompletionItemKind.Field: SymbolKind.PROPERTY,
    lsp.CompletionItemKind.Method: SymbolKind.METHOD,
    lsp.CompletionItemKind.Variable: SymbolKind.VARIABLE,
    lsp.CompletionItemKind.Constant: SymbolKind.VARIABLE,
    lsp.CompletionItemKind.Function: SymbolKind.FUNCTION,
    lsp.CompletionItemKind.Constructor: SymbolKind.FUNCTION,
    lsp.CompletionItemKind.Class: SymbolKind.CLASS,
    lsp.CompletionItemKind.Keyword: SymbolKind.KEYWORD,
}

# Semantic token type names as advertised in the child's legend
_TOKEN_KINDS: dict[str, SymbolKind] = {
    "property": SymbolKind.PROPERTY,
    "method": SymbolKind.METHOD,
    "member": SymbolKind.METHOD,
    "variable": SymbolKind.VARIABLE,
    "parameter": SymbolKind.VARIABLE,
    "function": SymbolKind.FUNCTION,
    "class": SymbolKind.CLASS,
    "keyword": SymbolKind.KEYWORD,
}


def classify_completion_kind(kind: lsp.CompletionItemKind | None) -> SymbolKind:
    if kind is None:
        return SymbolKind.OTHER
    return _COMPLETION_KINDS.get(kind, SymbolKind.OTHER)


def classify_token_type(name: str) -> SymbolKind:
    return _TOKEN_KINDS.get(name, SymbolKind.OTHER)


@dataclass
class _SyncedDocument:
    """Text the child currently holds for a document."""

    text: str
    version: int
    index: LineIndex


class TsServerOracle:
    """Type oracle that delegates to a child TypeScript language server."""

    def __init__(
        self,
        command: list[str] | None = None,
        on_diagnostics: Callable[[str, int, list[OracleDiagnostic]], None] | None = None,
        read_file: Callable[[str], str | None] = read_text_file,
    ) -> None:
        """Initialize the oracle.

        Args:
            command: Command to spawn the child server.
            on_diagnostics: Callback for asynchronous diagnostics from the child.
                Called with (path, version, diagnostics) for synchronized documents.
            read_file: Reads files the child reports locations in but that
                were never synchronized.
        """
        self._command = command or list(DEFAULT_COMMAND)
        self._client: LanguageClient | None = None
        self._on_diagnostics = on_diagnostics
        self._read_file = read_file
        self._started = False
        self._documents: dict[str, _SyncedDocument] = {}
        self._diagnostics: dict[str, tuple[int, list[OracleDiagnostic]]] = {}
        self._token_types: list[str] = []
        self._token_modifiers: list[str] = []

    @property
    def command(self) -> list[str]:
        return list(self._command)

    @property
    def started(self) -> bool:
        return self._started

    async def start(self, workspace_root: str | None = None) -> None:
        """Start the child server.

        Spawns the child process, sends initialize/initialized, and registers
        handlers for notifications from the child. Failure leaves the oracle
        stopped; every query then returns an empty result.
        """
        logger.info(f"ORACLE: starting child: command={self._command}, workspace={workspace_root}")

        self._client = LanguageClient("aurelia-lsp-oracle", __version__)
        _patch_converter(self._client.protocol._converter)

        @self._client.feature(lsp.TEXT_DOCUMENT_PUBLISH_DIAGNOSTICS)
        def on_publish_diagnostics(params: lsp.PublishDiagnosticsParams) -> None:
            self._handle_diagnostics(params)

        @self._client.feature(lsp.WINDOW_LOG_MESSAGE)
        def on_log_message(params: lsp.LogMessageParams) -> None:
            self._handle_log_message(params)

        try:
            await self._client.start_io(*self._command)
            logger.info("ORACLE: child process spawned")
        except Exception as e:
            logger.error(f"ORACLE: failed to start {self._command}: {e}")
            self._client = None
            return

        workspace_uri = Path(workspace_root).as_uri() if workspace_root else None
        workspace_folders = None
        if workspace_root:
            workspace_folders = [
                lsp.WorkspaceFolder(uri=workspace_uri, name=Path(workspace_root).name)
            ]

        try:
            result = await self._client.initialize_async(
                lsp.InitializeParams(
                    capabilities=lsp.ClientCapabilities(
                        text_document=lsp.TextDocumentClientCapabilities(
                            completion=lsp.CompletionClientCapabilities(
                                completion_item=lsp.ClientCompletionItemOptions(
                                    snippet_support=False,
                                ),
                            ),
                            hover=lsp.HoverClientCapabilities(
                                content_format=[lsp.MarkupKind.Markdown, lsp.MarkupKind.PlainText],
                            ),
                            definition=lsp.DefinitionClientCapabilities(link_support=True),
                            references=lsp.ReferenceClientCapabilities(),
                            rename=lsp.RenameClientCapabilities(prepare_support=True),
                            signature_help=lsp.SignatureHelpClientCapabilities(),
                            publish_diagnostics=lsp.PublishDiagnosticsClientCapabilities(
                                version_support=True,
                            ),
                            code_action=lsp.CodeActionClientCapabilities(
                                code_action_literal_support=lsp.ClientCodeActionLiteralOptions(
                                    code_action_kind=lsp.ClientCodeActionKindOptions(
                                        value_set=[lsp.CodeActionKind.QuickFix],
                                    ),
                                ),
                            ),
                            semantic_tokens=lsp.SemanticTokensClientCapabilities(
                                requests=lsp.ClientSemanticTokensRequestOptions(full=True),
                                token_types=[t.value for t in lsp.SemanticTokenTypes],
                                token_modifiers=[m.value for m in lsp.SemanticTokenModifiers],
                                formats=[lsp.TokenFormat.Relative],
                            ),
                        ),
                        workspace=lsp.WorkspaceClientCapabilities(
                            workspace_folders=True,
                            workspace_edit=lsp.WorkspaceEditClientCapabilities(
                                document_changes=True,
                            ),
                        ),
                    ),
                    root_uri=workspace_uri,
                    workspace_folders=workspace_folders,
                )
            )
            server_info = getattr(result, "server_info", None)
            logger.info(f"ORACLE: child initialized: {server_info}")
            self._read_semantic_legend(result)
        except Exception as e:
            logger.error(f"ORACLE: initialization failed: {e}")
            await self._try_stop_client()
            return

        self._client.initialized(lsp.InitializedParams())
        self._started = True
        logger.info(f"ORACLE: ready: {' '.join(self._command)}")

    async def stop(self) -> None:
        """Stop the child server and forget all synchronized state."""
        await self._try_stop_client()
        self._started = False
        self._documents.clear()
        self._diagnostics.clear()

    async def _try_stop_client(self) -> None:
        """Attempt to gracefully stop the client."""
        if self._client is None:
            return
        try:
            await self._client.shutdown_async(None)
            self._client.exit(None)
        except Exception as e:
            logger.debug(f"Error during oracle shutdown: {e}")
        try:
            await self._client.stop()
        except Exception as e:
            logger.debug(f"Error stopping oracle client: {e}")
        self._client = None

    # ------------------------------------------------------------------
    # Document synchronization
    # ------------------------------------------------------------------

    def sync_document(self, path: str, content: str, version: int) -> None:
        """Send didOpen the first time a document is seen, didChange after."""
        if not self._started or self._client is None:
            return

        uri = Path(path).as_uri()
        current = self._documents.get(path)
        if current is not None and current.version == version and current.text == content:
            return

        self._documents[path] = _SyncedDocument(text=content, version=version, index=LineIndex(content))
        try:
            if current is None:
                self._client.text_document_did_open(
                    lsp.DidOpenTextDocumentParams(
                        text_document=lsp.TextDocumentItem(
                            uri=uri,
                            language_id="typescript",
                            version=version,
                            text=content,
                        )
                    )
                )
            else:
                self._client.text_document_did_change(
                    lsp.DidChangeTextDocumentParams(
                        text_document=lsp.VersionedTextDocumentIdentifier(uri=uri, version=version),
                        content_changes=[lsp.TextDocumentContentChangeWholeDocument(text=content)],
                    )
                )
        except Exception as e:
            logger.debug(f"ORACLE: sync error for {path}: {e}")

    def close_document(self, path: str) -> None:
        self._diagnostics.pop(path, None)
        if self._documents.pop(path, None) is None:
            return
        if not self._started or self._client is None:
            return
        try:
            self._client.text_document_did_close(
                lsp.DidCloseTextDocumentParams(
                    text_document=lsp.TextDocumentIdentifier(uri=Path(path).as_uri())
                )
            )
        except Exception as e:
            logger.debug(f"ORACLE: close error for {path}: {e}")

    def _index_for(self, path: str, cache: dict[str, LineIndex | None] | None = None) -> LineIndex | None:
        """Line table for *path*: the synchronized text, else the file on disk."""
        document = self._documents.get(path)
        if document is not None:
            return document.index
        if cache is not None and path in cache:
            return cache[path]
        text = self._read_file(path)
        index = LineIndex(text) if text is not None else None
        if cache is not None:
            cache[path] = index
        return index

    def _position(self, path: str, offset: int) -> tuple[str, lsp.Position] | None:
        index = self._index_for(path)
        if index is None:
            return None
        return Path(path).as_uri(), index.position_at(offset)

    def _span_of(
        self, uri: str, rng: lsp.Range, cache: dict[str, LineIndex | None]
    ) -> FileSpan | None:
        path = to_fs_path(uri)
        if path is None:
            return None
        index = self._index_for(path, cache)
        if index is None:
            logger.debug(f"ORACLE: cannot read {path} to translate a location")
            return None
        start, end = index.offsets_of(rng)
        return FileSpan(path=path, start=start, end=end)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_completions_at(self, path: str, offset: int) -> list[OracleCompletion]:
        """Get completions from the child server."""
        if not self._started or self._client is None:
            return []

        try:
            located = self._position(path, offset)
            if located is None:
                return []
            uri, position = located

            result = await self._client.text_document_completion_async(
                lsp.CompletionParams(
                    text_document=lsp.TextDocumentIdentifier(uri=uri),
                    position=position,
                )
            )

            if result is None:
                return []

            items: list[lsp.CompletionItem] = []
            if isinstance(result, lsp.CompletionList):
                items = result.items
            elif isinstance(result, list):
                items = result

            completions = []
            for item in items:
                insert_text = item.insert_text
                if insert_text is None and isinstance(item.text_edit, (lsp.TextEdit, lsp.InsertReplaceEdit)):
                    insert_text = item.text_edit.new_text
                completions.append(
                    OracleCompletion(
                        name=item.label,
                        kind=classify_completion_kind(item.kind),
                        sort_text=item.sort_text or "",
                        insert_text=insert_text,
                        detail=item.detail,
                    )
                )
            return completions

        except Exception as e:
            logger.debug(f"ORACLE: completion error: {e}")
            return []

    async def get_quick_info_at(self, path: str, offset: int) -> OracleQuickInfo | None:
        """Get hover information from the child server."""
        if not self._started or self._client is None:
            return None

        try:
            located = self._position(path, offset)
            if located is None:
                return None
            uri, position = located

            result = await self._client.text_document_hover_async(
                lsp.HoverParams(
                    text_document=lsp.TextDocumentIdentifier(uri=uri),
                    position=position,
                )
            )

            if result is None:
                return None

            text = _hover_markdown(result.contents)
            if not text:
                return None

            span = None
            index = self._index_for(path)
            if result.range is not None and index is not None:
                span = index.offsets_of(result.range)
            return OracleQuickInfo(text=text, span=span)

        except Exception as e:
            logger.debug(f"ORACLE: hover error: {e}")
            return None

    async def get_definition_at(self, path: str, offset: int) -> OracleDefinition | None:
        """Get definitions from the child server."""
        if not self._started or self._client is None:
            return None

        try:
            located = self._position(path, offset)
            if located is None:
                return None
            uri, position = located

            result = await self._client.text_document_definition_async(
                lsp.DefinitionParams(
                    text_document=lsp.TextDocumentIdentifier(uri=uri),
                    position=position,
                )
            )

            if result is None:
                return None

            cache: dict[str, LineIndex | None] = {}
            targets: list[FileSpan] = []
            origin: tuple[int, int] | None = None
            items = result if isinstance(result, list) else [result]
            for item in items:
                if isinstance(item, lsp.LocationLink):
                    target = self._span_of(item.target_uri, item.target_selection_range, cache)
                    if origin is None and item.origin_selection_range is not None:
                        index = self._index_for(path)
                        if index is not None:
                            origin = index.offsets_of(item.origin_selection_range)
                elif isinstance(item, lsp.Location):
                    target = self._span_of(item.uri, item.range, cache)
                else:
                    continue
                if target is not None:
                    targets.append(target)

            return OracleDefinition(targets=targets, span=origin)

        except Exception as e:
            logger.debug(f"ORACLE: definition error: {e}")
            return None

    async def get_signature_help_at(self, path: str, offset: int) -> lsp.SignatureHelp | None:
        """Get signature help from the child server."""
        if not self._started or self._client is None:
            return None

        try:
            located = self._position(path, offset)
            if located is None:
                return None
            uri, position = located

            return await self._client.text_document_signature_help_async(
                lsp.SignatureHelpParams(
                    text_document=lsp.TextDocumentIdentifier(uri=uri),
                    position=position,
                )
            )

        except Exception as e:
            logger.debug(f"ORACLE: signature help error: {e}")
            return None

    async def prepare_rename_at(self, path: str, offset: int) -> tuple[int, int] | None:
        """Ask the child whether the symbol at *offset* can be renamed."""
        if not self._started or self._client is None:
            return None

        try:
            located = self._position(path, offset)
            if located is None:
                return None
            uri, position = located

            result = await self._client.text_document_prepare_rename_async(
                lsp.PrepareRenameParams(
                    text_document=lsp.TextDocumentIdentifier(uri=uri),
                    position=position,
                )
            )

            index = self._index_for(path)
            if result is None or index is None:
                return None
            if isinstance(result, lsp.Range):
                return index.offsets_of(result)
            rng = getattr(result, "range", None)
            if isinstance(rng, lsp.Range):
                return index.offsets_of(rng)
            return None

        except Exception as e:
            logger.debug(f"ORACLE: prepare rename error: {e}")
            return None

    async def find_rename_locations_at(
        self, path: str, offset: int, new_name: str
    ) -> list[FileEdit]:
        """Get rename edits from the child server."""
        if not self._started or self._client is None:
            return []

        try:
            located = self._position(path, offset)
            if located is None:
                return []
            uri, position = located

            result = await self._client.text_document_rename_async(
                lsp.RenameParams(
                    text_document=lsp.TextDocumentIdentifier(uri=uri),
                    position=position,
                    new_name=new_name,
                )
            )

            if result is None:
                return []
            return self._edits_of(result)

        except Exception as e:
            logger.debug(f"ORACLE: rename error: {e}")
            return []

    async def find_references_at(self, path: str, offset: int) -> list[FileSpan]:
        """Get references from the child server."""
        if not self._started or self._client is None:
            return []

        try:
            located = self._position(path, offset)
            if located is None:
                return []
            uri, position = located

            result = await self._client.text_document_references_async(
                lsp.ReferenceParams(
                    text_document=lsp.TextDocumentIdentifier(uri=uri),
                    position=position,
                    context=lsp.ReferenceContext(include_declaration=True),
                )
            )

            if result is None:
                return []

            cache: dict[str, LineIndex | None] = {}
            spans = []
            for location in result:
                span = self._span_of(location.uri, location.range, cache)
                if span is not None:
                    spans.append(span)
            return spans

        except Exception as e:
            logger.debug(f"ORACLE: references error: {e}")
            return []

    async def get_semantic_classifications(self, path: str) -> list[OracleClassification]:
        """Get semantic tokens for a synchronized document from the child server."""
        if not self._started or self._client is None:
            return []

        document = self._documents.get(path)
        if document is None:
            return []

        try:
            result = await self._client.text_document_semantic_tokens_full_async(
                lsp.SemanticTokensParams(
                    text_document=lsp.TextDocumentIdentifier(uri=Path(path).as_uri()),
                )
            )

            if result is None:
                return []
            return self._decode_semantic_tokens(result.data, document.index)

        except Exception as e:
            logger.debug(f"ORACLE: semantic tokens error: {e}")
            return []

    def get_diagnostics_for(self, path: str, version: int) -> list[OracleDiagnostic] | None:
        stored = self._diagnostics.get(path)
        if stored is None or stored[0] != version:
            return None
        return list(stored[1])

    async def get_code_fixes_at(
        self,
        path: str,
        start: int,
        end: int,
        diagnostics: list[OracleDiagnostic],
    ) -> list[OracleCodeFix]:
        """Get quick fixes from the child server."""
        if not self._started or self._client is None:
            return []

        try:
            index = self._index_for(path)
            if index is None:
                return []

            result = await self._client.text_document_code_action_async(
                lsp.CodeActionParams(
                    text_document=lsp.TextDocumentIdentifier(uri=Path(path).as_uri()),
                    range=index.range_of(start, end),
                    context=lsp.CodeActionContext(
                        diagnostics=[
                            lsp.Diagnostic(
                                range=index.range_of(d.start, d.end),
                                message=d.message,
                                severity=d.severity,
                                code=d.code,
                                source=d.source,
                            )
                            for d in diagnostics
                        ],
                        only=[lsp.CodeActionKind.QuickFix],
                    ),
                )
            )

            if result is None:
                return []

            fixes = []
            for action in result:
                if not isinstance(action, lsp.CodeAction) or action.edit is None:
                    continue
                fixes.append(
                    OracleCodeFix(
                        title=action.title,
                        edits=self._edits_of(action.edit),
                        kind=action.kind,
                    )
                )
            return fixes

        except Exception as e:
            logger.debug(f"ORACLE: code action error: {e}")
            return []

    # ------------------------------------------------------------------
    # Result decoding
    # ------------------------------------------------------------------

    def _edits_of(self, edit: lsp.WorkspaceEdit) -> list[FileEdit]:
        """Flatten a workspace edit into offset edits; file operations are ignored."""
        cache: dict[str, LineIndex | None] = {}
        pairs: list[tuple[str, Any]] = []
        if edit.document_changes:
            for change in edit.document_changes:
                if isinstance(change, lsp.TextDocumentEdit):
                    pairs.extend((change.text_document.uri, e) for e in change.edits)
        elif edit.changes:
            for uri, text_edits in edit.changes.items():
                pairs.extend((uri, e) for e in text_edits)

        edits = []
        for uri, text_edit in pairs:
            span = self._span_of(uri, text_edit.range, cache)
            if span is not None:
                edits.append(FileEdit(path=span.path, start=span.start, end=span.end, new_text=text_edit.new_text))
        return edits

    def _decode_semantic_tokens(self, data: list[int], index: LineIndex) -> list[OracleClassification]:
        """Decode the child's delta-encoded tokens into offset classifications."""
        classifications: list[OracleClassification] = []
        current_line = 0
        current_char = 0
        for i in range(0, len(data) - 4, 5):
            delta_line, delta_char, length, token_type, token_modifiers = data[i : i + 5]

            if delta_line > 0:
                current_line += delta_line
                current_char = delta_char
            else:
                current_char += delta_char

            name = self._token_types[token_type] if token_type < len(self._token_types) else ""
            modifiers = frozenset(
                modifier
                for bit, modifier in enumerate(self._token_modifiers)
                if token_modifiers & (1 << bit)
            )
            start = index.offset_at(lsp.Position(line=current_line, character=current_char))
            end = index.offset_at(lsp.Position(line=current_line, character=current_char + length))
            classifications.append(
                OracleClassification(start=start, end=end, kind=classify_token_type(name), modifiers=modifiers)
            )
        return classifications

    def _read_semantic_legend(self, init_result: lsp.InitializeResult) -> None:
        caps = init_result.capabilities
        provider = getattr(caps, "semantic_tokens_provider", None)
        legend = getattr(provider, "legend", None) if provider is not None else None
        if legend is None:
            self._token_types = []
            self._token_modifiers = []
            return
        self._token_types = list(legend.token_types)
        self._token_modifiers = list(legend.token_modifiers)

    def _handle_diagnostics(self, params: lsp.PublishDiagnosticsParams) -> None:
        """Store diagnostics published by the child for a synchronized document."""
        path = to_fs_path(params.uri)
        document = self._documents.get(path) if path is not None else None
        if path is None or document is None:
            logger.debug(f"ORACLE: ignoring diagnostics for unsynchronized {params.uri}")
            return

        version = params.version if params.version is not None else document.version
        if version != document.version:
            logger.debug(f"ORACLE: dropping diagnostics for {path} v{version}, current is v{document.version}")
            return

        diagnostics = []
        for diag in params.diagnostics or []:
            start, end = document.index.offsets_of(diag.range)
            diagnostics.append(
                OracleDiagnostic(
                    start=start,
                    end=end,
                    message=diag.message,
                    severity=diag.severity,
                    code=diag.code,
                    source=diag.source,
                )
            )

        self._diagnostics[path] = (version, diagnostics)
        if self._on_diagnostics is not None:
            self._on_diagnostics(path, version, diagnostics)

    def _handle_log_message(self, params: lsp.LogMessageParams) -> None:
        """Forward window/logMessage from child to our logger."""
        level_map = {
            lsp.MessageType.Error: logging.ERROR,
            lsp.MessageType.Warning: logging.WARNING,
            lsp.MessageType.Info: logging.INFO,
            lsp.MessageType.Log: logging.DEBUG,
            lsp.MessageType.Debug: logging.DEBUG,
        }
        level = level_map.get(params.type, logging.DEBUG)
        logger.log(level, f"[tsserver] {params.message}")


def _hover_markdown(contents: Any) -> str | None:
    if isinstance(contents, lsp.MarkupContent):
        return contents.value
    if isinstance(contents, str):
        return contents
    if isinstance(contents, list):
        parts = [p for p in (_hover_markdown(item) for item in contents) if p]
        return "\n\n".join(parts) if parts else None
    # MarkedString with a language
    language = getattr(contents, "language", None)
    value = getattr(contents, "value", None)
    if language is not None and value is not None:
        return f"```{language}\n{value}\n```"
    return None


# ---------------------------------------------------------------------------
# Workaround for lsprotocol issue #430: the cattrs converter is missing a
# structure hook for the Optional variant of the notebook document filter
# union. Register the missing hook on the client's converter.
# ---------------------------------------------------------------------------
_NotebookFilterUnion = Optional[
    Union[
        str,
        lsp.NotebookDocumentFilterNotebookType,
        lsp.NotebookDocumentFilterScheme,
        lsp.NotebookDocumentFilterPattern,
    ]
]


def _patch_converter(converter: Any) -> None:
    """Register missing lsprotocol cattrs hooks on *converter*."""

    def _notebook_filter_hook(obj: Any, _: Any) -> Any:
        if obj is None:
            return None
        if isinstance(obj, str):
            return obj
        if "notebookType" in obj:
            return converter.structure(obj, lsp.NotebookDocumentFilterNotebookType)
        if "scheme" in obj:
            return converter.structure(obj, lsp.NotebookDocumentFilterScheme)
        return converter.structure(obj, lsp.NotebookDocumentFilterPattern)

    converter.register_structure_hook(_NotebookFilterUnion, _notebook_filter_hook)
