"""
Server settings.

Settings arrive as ``initializationOptions`` and again with every
``workspace/didChangeConfiguration``; either payload may nest them under
an ``aurelia`` key. Unknown keys are ignored and malformed values leave
the current setting unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from aurelia_lsp.ts_oracle import DEFAULT_COMMAND

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "none": logging.CRITICAL + 10,
}


def _lookup(options: dict[str, Any], dotted: str) -> Any:
    """Find *dotted* either as a flat key or as nested dictionaries."""
    if dotted in options:
        return options[dotted]
    value: Any = options
    for part in dotted.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


@dataclass
class ServerSettings:
    diagnostics_enabled: bool = True
    markup_completions_enabled: bool = True
    log_level: str | None = None
    tsserver_command: list[str] = field(default_factory=lambda: list(DEFAULT_COMMAND))

    def update(self, options: Any) -> None:
        """Apply an options payload on top of the current settings."""
        if not isinstance(options, dict):
            return
        if isinstance(options.get("aurelia"), dict):
            options = options["aurelia"]

        enabled = _lookup(options, "diagnostics.enable")
        if isinstance(enabled, bool):
            self.diagnostics_enabled = enabled

        markup = _lookup(options, "completions.markup.enable")
        if isinstance(markup, bool):
            self.markup_completions_enabled = markup

        level = _lookup(options, "logging.level")
        if isinstance(level, str) and level.lower() in LOG_LEVELS:
            self.log_level = level.lower()
        elif level is not None:
            logger.warning(f"Ignoring unknown logging.level {level!r}")

        command = options.get("tsserverCommand")
        if isinstance(command, str) and command.strip():
            self.tsserver_command = command.split()
        elif isinstance(command, list) and command and all(isinstance(c, str) for c in command):
            self.tsserver_command = list(command)

    def apply_log_level(self) -> None:
        if self.log_level is None:
            return
        logging.getLogger("aurelia_lsp").setLevel(LOG_LEVELS[self.log_level])
