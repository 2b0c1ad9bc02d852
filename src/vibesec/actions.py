"""
vibesec - Actions

An Action is the one thing the guard is asked about per invocation: a shell
command the agent wants to run, or a file it wants to write or edit. Actions
are built from the host's PreToolUse event and never persisted.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path


class ActionKind(Enum):
    SHELL_EXECUTE = "shell-execute"
    FILE_WRITE = "file-write"
    FILE_EDIT = "file-edit"


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    tool: str
    command: str = ""
    path: str = ""
    target: str = ""
    content: str = ""
    home: Path | None = None
    arrived_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_shell(self) -> bool:
        return self.kind is ActionKind.SHELL_EXECUTE

    @property
    def text(self) -> str:
        """Textual form used for allowlist matching and logging."""
        return self.command if self.is_shell else self.path


def normalize_target(path: str, home: Path | None = None) -> str:
    """Normalize a file path and spell the home directory as ~.

    Protected targets in the catalog are written as ~/..., so /Users/me/.zshrc,
    ~/.zshrc and ~/./.zshrc must all compare equal.
    """
    if not path:
        return ""
    path = os.path.normpath(path)
    if path.startswith("//"):
        # normpath keeps a leading double slash
        path = "/" + path.lstrip("/")
    if home is not None and path.startswith("/"):
        home_str = os.path.normpath(str(home)).rstrip("/")
        if home_str and path == home_str:
            return "~"
        if home_str and path.startswith(home_str + "/"):
            return "~/" + path[len(home_str) + 1:]
    return path


def shell(command: str, home: Path | None = None) -> Action:
    return Action(kind=ActionKind.SHELL_EXECUTE, tool="Bash", command=command, home=home)


def file_write(path: str, content: str = "", home: Path | None = None) -> Action:
    return Action(kind=ActionKind.FILE_WRITE, tool="Write", path=path,
                  target=normalize_target(path, home), content=content)


def file_edit(path: str, new_text: str = "", tool: str = "Edit", home: Path | None = None) -> Action:
    return Action(kind=ActionKind.FILE_EDIT, tool=tool, path=path,
                  target=normalize_target(path, home), content=new_text)


def _str(value) -> str:
    return value if isinstance(value, str) else ""


def from_hook_event(event, home: Path | None = None) -> Action | None:
    """Build an Action from a PreToolUse event.

    Returns None for anything the guard does not evaluate: other tools,
    empty commands, missing paths, or payloads of the wrong shape.
    """
    if not isinstance(event, dict):
        return None

    tool_name = event.get("tool_name", "")
    tool_input = event.get("tool_input") or {}
    if not isinstance(tool_input, dict):
        return None

    if tool_name == "Bash":
        command = _str(tool_input.get("command"))
        if not command.strip():
            return None
        return shell(command, home=home)

    file_path = _str(tool_input.get("file_path"))
    if not file_path:
        return None

    if tool_name == "Write":
        return file_write(file_path, _str(tool_input.get("content")), home=home)

    if tool_name == "Edit":
        return file_edit(file_path, _str(tool_input.get("new_string")), home=home)

    if tool_name == "MultiEdit":
        edits = tool_input.get("edits") or []
        if not isinstance(edits, list):
            return None
        # Combine all new_strings for analysis
        new_text = "\n".join(
            _str(edit.get("new_string")) for edit in edits if isinstance(edit, dict)
        )
        return file_edit(file_path, new_text, tool="MultiEdit", home=home)

    return None
