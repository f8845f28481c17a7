"""
Aurelia Language Server

Main LSP server implementation using pygls.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Any

from lsprotocol import types as lsp
from pygls.lsp.server import LanguageServer
from pygls.uris import to_fs_path

from aurelia_lsp import __version__
from aurelia_lsp.code_actions import AureliaCodeActionProvider
from aurelia_lsp.completions import AureliaCompletionProvider
from aurelia_lsp.definition import AureliaDefinitionProvider
from aurelia_lsp.diagnostics import AureliaDiagnosticsProvider
from aurelia_lsp.hover import AureliaHoverProvider
from aurelia_lsp.registry import is_scannable_source
from aurelia_lsp.scheduler import RescanScheduler
from aurelia_lsp.semantic_tokens import LEGEND, AureliaSemanticTokensProvider
from aurelia_lsp.session import Session, TemplateEntry
from aurelia_lsp.settings import ServerSettings
from aurelia_lsp.ts_oracle import TsServerOracle

# Configure logging; WARNING by default so stderr stays quiet
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".html"

# Files scanned between yields to the event loop during the initial scan
_SCAN_BATCH = 50


class AureliaLanguageServer(LanguageServer):
    """Language Server for Aurelia templates."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)

        self.settings = ServerSettings()
        self.session = Session()
        self.completion_provider = AureliaCompletionProvider(self)
        self.hover_provider = AureliaHoverProvider(self)
        self.definition_provider = AureliaDefinitionProvider(self)
        self.diagnostics_provider = AureliaDiagnosticsProvider(self)
        self.semantic_tokens_provider = AureliaSemanticTokensProvider(self)
        self.code_action_provider = AureliaCodeActionProvider(self)
        self.scheduler = RescanScheduler(
            process=self.rescan_sources,
            remove=self.forget_source,
        )

        self._workspace_root: str | None = None
        self._tsserver_command: list[str] | None = None
        self._rescan_handle: asyncio.TimerHandle | None = None

    def create_oracle(self) -> TsServerOracle:
        def on_diagnostics(path: str, version: int, diagnostics: list) -> None:
            self.diagnostics_provider.on_oracle_diagnostics(path, version, diagnostics)

        command = self._tsserver_command or self.settings.tsserver_command
        return TsServerOracle(
            command=command,
            on_diagnostics=on_diagnostics,
            read_file=self.session.resolver.read_file,
        )

    async def restart_oracle(self) -> None:
        """Replace the oracle with one running the configured command."""
        if self.session.oracle is not None:
            await self.session.oracle.stop()
        oracle = self.create_oracle()
        self.session.oracle = oracle
        await oracle.start(self._workspace_root)
        self.session.resync()

    def refresh_entries(self, entries: list[TemplateEntry]) -> None:
        for entry in entries:
            self.session.ensure_fresh(entry.uri)
            self.diagnostics_provider.refresh(entry)

    # ------------------------------------------------------------------
    # Registry rescans
    # ------------------------------------------------------------------

    def rescan_sources(self, paths: list[str]) -> None:
        changed = False
        for path in paths:
            changed = self.session.registry.update_file(path) or changed
        if changed:
            logger.info(f"Component registry updated: {len(self.session.registry)} components")
            self.refresh_entries(self.session.registry_changed())

    def forget_source(self, path: str) -> None:
        if self.session.registry.remove_file(path):
            logger.info(f"Removed components declared in {path}")
            self.refresh_entries(self.session.registry_changed())

    def schedule_rescan(self) -> None:
        """Arm a timer for the scheduler's current deadline."""
        delay = self.scheduler.time_until_due()
        if delay is None:
            return
        if self._rescan_handle is not None:
            self._rescan_handle.cancel()
        loop = asyncio.get_running_loop()
        self._rescan_handle = loop.call_later(delay, self._on_rescan_timer)

    def _on_rescan_timer(self) -> None:
        self._rescan_handle = None
        if not self.scheduler.tick():
            # Events arrived meanwhile and pushed the deadline back
            self.schedule_rescan()

    async def scan_workspace(self) -> None:
        """Register every component in the workspace, yielding between batches."""
        if self._workspace_root is None:
            return
        registry = self.session.registry
        count = 0
        for path in registry.iter_sources(self._workspace_root):
            registry.update_file(path)
            count += 1
            if count % _SCAN_BATCH == 0:
                await asyncio.sleep(0)
        logger.info(f"Scanned {count} TypeScript files: {len(registry)} components")
        # Templates opened during the scan were checked against a partial registry
        self.session.registry_changed()


# Create server instance
server = AureliaLanguageServer(
    name="aurelia-lsp",
    version=__version__,
)


def _template_path(uri: str) -> str | None:
    path = to_fs_path(uri)
    if path is None or not path.endswith(TEMPLATE_SUFFIX):
        return None
    return path


# ============================================================================
# Lifecycle Events
# ============================================================================


@server.feature(lsp.INITIALIZE)
async def initialize(params: lsp.InitializeParams) -> None:
    """Handle the initialize request - read settings from initializationOptions."""
    server.settings.update(params.initialization_options or {})
    server.settings.apply_log_level()

    server._workspace_root = None
    if params.root_uri:
        server._workspace_root = to_fs_path(params.root_uri)
    elif params.root_path:
        server._workspace_root = params.root_path

    # Started in `initialized` after the handshake completes
    server.session.oracle = server.create_oracle()


@server.feature(lsp.INITIALIZED)
async def initialized(params: lsp.InitializedParams) -> None:
    """Start the oracle, scan the workspace and watch for source changes."""
    oracle = server.session.oracle
    if oracle is not None:
        await oracle.start(server._workspace_root)
        # Templates opened while the oracle was starting
        server.session.resync()

    await server.scan_workspace()

    try:
        await server.client_register_capability_async(
            lsp.RegistrationParams(
                registrations=[
                    lsp.Registration(
                        id="aurelia-lsp-watched-files",
                        method=lsp.WORKSPACE_DID_CHANGE_WATCHED_FILES,
                        register_options=lsp.DidChangeWatchedFilesRegistrationOptions(
                            watchers=[
                                lsp.FileSystemWatcher(glob_pattern="**/*.ts"),
                                lsp.FileSystemWatcher(glob_pattern="**/*.html"),
                            ]
                        ),
                    )
                ]
            )
        )
    except Exception as e:
        logger.warning(f"Could not register file watchers: {e}")

    server.refresh_entries(server.session.entries())


@server.feature(lsp.SHUTDOWN)
async def shutdown(params: Any) -> None:
    """Handle the shutdown request."""
    if server._rescan_handle is not None:
        server._rescan_handle.cancel()
        server._rescan_handle = None
    if server.session.oracle is not None:
        await server.session.oracle.stop()


# ============================================================================
# Document Events
# ============================================================================


@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
async def did_open(params: lsp.DidOpenTextDocumentParams) -> None:
    """Handle document open."""
    uri = params.text_document.uri
    path = _template_path(uri)
    if path is None:
        return
    logger.debug(f"Template opened: {uri}")

    entry = server.session.open(uri, path, params.text_document.text, params.text_document.version)
    server.diagnostics_provider.refresh(entry)


@server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
async def did_change(params: lsp.DidChangeTextDocumentParams) -> None:
    """Handle document change."""
    uri = params.text_document.uri
    if uri not in server.session:
        return
    doc = server.workspace.get_text_document(uri)
    logger.debug(f"Template changed: {uri} v{doc.version}")

    entry = server.session.change(uri, doc.source, doc.version or 0)
    if entry is not None:
        server.diagnostics_provider.refresh(entry)


@server.feature(lsp.TEXT_DOCUMENT_DID_SAVE)
async def did_save(params: lsp.DidSaveTextDocumentParams) -> None:
    """Saving a view-model refreshes the templates bound to it."""
    path = to_fs_path(params.text_document.uri)
    if path is None or not is_scannable_source(path):
        return
    logger.debug(f"Source saved: {path}")

    server.refresh_entries(server.session.companion_changed(path))
    server.scheduler.notify_changed([path])
    server.schedule_rescan()


@server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
async def did_close(params: lsp.DidCloseTextDocumentParams) -> None:
    """Handle document close."""
    uri = params.text_document.uri
    if server.session.close(uri) is None:
        return
    logger.debug(f"Template closed: {uri}")

    server.text_document_publish_diagnostics(
        lsp.PublishDiagnosticsParams(uri=uri, diagnostics=[])
    )


# ============================================================================
# Completion
# ============================================================================


@server.feature(
    lsp.TEXT_DOCUMENT_COMPLETION,
    lsp.CompletionOptions(
        trigger_characters=[".", "<", "|", " ", "{"],
        resolve_provider=False,
    ),
)
async def completion(params: lsp.CompletionParams) -> lsp.CompletionList | None:
    """Provide completions."""
    return await server.completion_provider.get_completions(params)


# ============================================================================
# Hover & Signature Help
# ============================================================================


@server.feature(lsp.TEXT_DOCUMENT_HOVER)
async def hover(params: lsp.HoverParams) -> lsp.Hover | None:
    """Provide hover information."""
    return await server.hover_provider.get_hover(params)


@server.feature(
    lsp.TEXT_DOCUMENT_SIGNATURE_HELP,
    lsp.SignatureHelpOptions(trigger_characters=["(", ","]),
)
async def signature_help(params: lsp.SignatureHelpParams) -> lsp.SignatureHelp | None:
    """Provide signature help."""
    return await server.hover_provider.get_signature_help(params)


# ============================================================================
# Navigation & Rename
# ============================================================================


@server.feature(lsp.TEXT_DOCUMENT_DEFINITION)
async def definition(params: lsp.DefinitionParams) -> list[lsp.LocationLink] | None:
    """Provide go-to-definition."""
    return await server.definition_provider.get_definition(params)


@server.feature(lsp.TEXT_DOCUMENT_REFERENCES)
async def references(params: lsp.ReferenceParams) -> list[lsp.Location] | None:
    """Provide find-references."""
    return await server.definition_provider.get_references(params)


@server.feature(lsp.TEXT_DOCUMENT_PREPARE_RENAME)
async def prepare_rename(params: lsp.PrepareRenameParams) -> lsp.Range | None:
    """Check a rename is possible at the position."""
    return await server.definition_provider.prepare_rename(params)


@server.feature(lsp.TEXT_DOCUMENT_RENAME, lsp.RenameOptions(prepare_provider=True))
async def rename(params: lsp.RenameParams) -> lsp.WorkspaceEdit | None:
    """Rename a symbol across templates and view-models."""
    return await server.definition_provider.rename(params)


# ============================================================================
# Semantic Tokens
# ============================================================================


@server.feature(lsp.TEXT_DOCUMENT_SEMANTIC_TOKENS_FULL, LEGEND)
async def semantic_tokens_full(params: lsp.SemanticTokensParams) -> lsp.SemanticTokens:
    """Provide semantic tokens for template expressions."""
    return await server.semantic_tokens_provider.get_semantic_tokens(params)


# ============================================================================
# Code Actions & Formatting
# ============================================================================


@server.feature(
    lsp.TEXT_DOCUMENT_CODE_ACTION,
    lsp.CodeActionOptions(code_action_kinds=[lsp.CodeActionKind.QuickFix]),
)
async def code_action(params: lsp.CodeActionParams) -> list[lsp.CodeAction] | None:
    """Provide quick fixes."""
    return await server.code_action_provider.get_code_actions(params)


@server.feature(lsp.TEXT_DOCUMENT_FORMATTING)
def formatting(params: lsp.DocumentFormattingParams) -> list[lsp.TextEdit]:
    """Templates are not formatted."""
    return server.code_action_provider.format_document(params)


# ============================================================================
# Workspace Events
# ============================================================================


@server.feature(lsp.WORKSPACE_DID_CHANGE_WATCHED_FILES)
async def did_change_watched_files(params: lsp.DidChangeWatchedFilesParams) -> None:
    """Queue changed sources for a registry rescan; deletions apply at once."""
    changed: list[str] = []
    deleted: list[str] = []
    affected: dict[str, TemplateEntry] = {}

    for event in params.changes:
        path = to_fs_path(event.uri)
        if path is None or not is_scannable_source(path):
            continue
        if event.type == lsp.FileChangeType.Deleted:
            deleted.append(path)
        else:
            changed.append(path)
        for entry in server.session.companion_changed(path):
            affected[entry.uri] = entry

    if deleted:
        server.scheduler.notify_deleted(deleted)
    if changed:
        server.scheduler.notify_changed(changed)
        server.schedule_rescan()
    server.refresh_entries(list(affected.values()))


@server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
async def did_change_configuration(params: lsp.DidChangeConfigurationParams) -> None:
    """Handle workspace configuration changes."""
    previous_command = list(server.settings.tsserver_command)
    server.settings.update(params.settings)
    server.settings.apply_log_level()

    if server._tsserver_command is None and server.settings.tsserver_command != previous_command:
        logger.info(f"Restarting oracle with {server.settings.tsserver_command}")
        await server.restart_oracle()

    # Re-publishes (or clears) diagnostics under the new settings
    server.refresh_entries(server.session.entries())


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the language server."""
    parser = argparse.ArgumentParser(
        description="Aurelia Language Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--stdio",
        action="store_true",
        default=True,
        help="Use stdio for communication (default)",
    )
    parser.add_argument(
        "--tcp",
        action="store_true",
        help="Use TCP for communication",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="TCP host (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=2087,
        help="TCP port (default: 2087)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Set the logging level (default: WARNING)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"aurelia-lsp {__version__}",
    )
    parser.add_argument(
        "--tsserver-command",
        nargs="+",
        help='Command to start the TypeScript language server (e.g. "typescript-language-server --stdio")',
    )

    args = parser.parse_args()

    # Set log level
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    # A command given on the command line wins over editor settings
    server._tsserver_command = args.tsserver_command

    if args.tcp:
        logger.info(f"Starting aurelia-lsp in TCP mode on {args.host}:{args.port}")
        server.start_tcp(args.host, args.port)
    else:
        logger.info("Starting aurelia-lsp in stdio mode")
        server.start_io()


if __name__ == "__main__":
    main()
