"""Shared fixtures: a scripted oracle and on-disk Aurelia projects."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from aurelia_lsp.session import Session
from aurelia_lsp.settings import ServerSettings


MY_PAGE_TS = """\
export class MyPage {
  message = 'Hello';
  count = 0;

  greet(name: string) {
    return `${this.message}, ${name}`;
  }
}
"""

USER_CARD_TS = """\
import { bindable, customElement } from 'aurelia';

@customElement('user-card')
export class UserCard {
  @bindable name: string;
  @bindable({ attribute: 'is-active' }) active = false;
}
"""


class FakeOracle:
    """In-memory stand-in for a type oracle.

    Synchronization is recorded; every query is an AsyncMock whose return
    value (or side effect) a test scripts.
    """

    def __init__(self):
        self.documents = {}
        self.closed = []
        self.diagnostics = {}
        self.start = AsyncMock()
        self.stop = AsyncMock()
        self.get_completions_at = AsyncMock(return_value=[])
        self.get_quick_info_at = AsyncMock(return_value=None)
        self.get_definition_at = AsyncMock(return_value=None)
        self.get_signature_help_at = AsyncMock(return_value=None)
        self.prepare_rename_at = AsyncMock(return_value=None)
        self.find_rename_locations_at = AsyncMock(return_value=[])
        self.find_references_at = AsyncMock(return_value=[])
        self.get_semantic_classifications = AsyncMock(return_value=[])
        self.get_code_fixes_at = AsyncMock(return_value=[])

    def sync_document(self, path, content, version):
        self.documents[path] = (content, version)

    def close_document(self, path):
        self.documents.pop(path, None)
        self.closed.append(path)

    def get_diagnostics_for(self, path, version):
        stored = self.diagnostics.get(path)
        if stored is None or stored[0] != version:
            return None
        return list(stored[1])


class Project:
    """A throwaway project directory."""

    def __init__(self, root: Path):
        self.root = root

    def path(self, name: str) -> str:
        return str(self.root / name)

    def uri(self, name: str) -> str:
        return (self.root / name).as_uri()

    def write(self, name: str, text: str) -> str:
        target = self.root / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        return str(target)


@pytest.fixture
def project(tmp_path):
    """Project with a ``my-page`` view-model; templates are written by tests."""
    proj = Project(tmp_path)
    proj.write("my-page.ts", MY_PAGE_TS)
    return proj


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def session(oracle):
    return Session(oracle=oracle)


@pytest.fixture
def mock_server(session):
    """Create a mock server carrying a real session."""
    server = MagicMock()
    server.session = session
    server.settings = ServerSettings()
    return server


@pytest.fixture
def open_template(project, session):
    """Write a template next to ``my-page.ts`` and open it in the session."""

    def _open(text, name="my-page.html", version=1):
        path = project.write(name, text)
        return session.open(project.uri(name), path, text, version)

    return _open


@pytest.fixture
def user_card(project, session):
    """Register a ``user-card`` element with ``name`` and ``active`` bindables."""
    path = project.write("user-card.ts", USER_CARD_TS)
    session.registry.update_file(path)
    return path
