"""
vibesec - Telemetry

Anonymous, category-only usage events. The hook never talks to the network
for telemetry: it appends one line to a local queue, and the queue is flushed
later by `vibesec telemetry flush` (or any long-running caller).

What a block_triggered event carries:
  block_level  - "L1", "L2" or "L3"
  block_type   - rule category, e.g. "rm_rf", "exfil", "protected_file"
  tool         - the intercepted tool: Bash, Write, Edit, MultiEdit
  cmd_len      - length bucket: xs(<50) s(<200) m(<500) l(<2000) xl
  interpreter  - first word if it is a known interpreter, else "other_cmd"

What it never carries: the command, file paths or contents, matched secrets.

Opt out: VIBE_SEC_TELEMETRY=off, or touch <config_dir>/.no-telemetry
"""

import json
import os
import platform
import re
import urllib.error
import urllib.request
import uuid
from datetime import datetime, timezone

from vibesec import __version__, shell
from vibesec.actions import Action
from vibesec.log import debug

SEND_TIMEOUT = 3

KNOWN_INTERPRETERS = frozenset({
    "bash", "sh", "zsh", "fish", "dash", "ksh",
    "python", "python2", "python3", "pypy", "pypy3",
    "node", "deno", "bun", "ruby", "perl", "php", "lua", "osascript",
    "pwsh", "powershell", "npx", "bunx", "uvx",
})
LENGTH_BUCKETS = ((50, "xs"), (200, "s"), (500, "m"), (2000, "l"))

_UUID = re.compile(r"^[0-9a-f-]{36}$")
_PYTHON_VERSIONED = re.compile(r"^(python|pypy)(\d(?:\.\d+)?)?$")


def length_bucket(n: int) -> str:
    for limit, name in LENGTH_BUCKETS:
        if n < limit:
            return name
    return "xl"


def guess_interpreter(action: Action) -> str:
    """Coarse interpreter guess. A classification aid, not a security boundary."""
    if not action.is_shell:
        return "file"
    commands = shell.simple_commands(action.command)
    if not commands:
        return "other_cmd"
    name = shell.program_name(commands[0][0])
    m = _PYTHON_VERSIONED.match(name)
    if m:
        # python3.12 -> python3
        name = m.group(1) + (m.group(2) or "")[:1]
    return name if name in KNOWN_INTERPRETERS else "other_cmd"


def block_event(decision, action: Action) -> dict:
    subject = action.command if action.is_shell else action.content
    return {
        "event": "block_triggered",
        "block_level": decision.tier.level,
        "block_type": decision.category,
        "tool": action.tool,
        "cmd_len": length_bucket(len(subject)),
        "interpreter": guess_interpreter(action),
    }


# ============================================================
# Queue (hook side: sync, no network)
# ============================================================

def queue_event(config, event: dict):
    """Append one event to the local queue. Raises OSError on I/O failure."""
    if not config.telemetry_enabled:
        return
    entry = dict(event)
    entry["_queued_at"] = datetime.now(timezone.utc).isoformat()
    config.config_dir.mkdir(parents=True, exist_ok=True)
    with open(config.telemetry_queue_file, 'a', encoding='utf-8') as f:
        f.write(json.dumps(entry) + "\n")


def read_queue(config) -> list:
    entries = []
    try:
        with open(config.telemetry_queue_file, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(entry, dict):
                    entries.append(entry)
    except FileNotFoundError:
        pass
    return entries


# ============================================================
# Flush (CLI side)
# ============================================================

def get_or_create_device_id(config) -> str:
    try:
        existing = config.device_id_file.read_text(encoding='utf-8').strip()
        if _UUID.match(existing):
            return existing
    except OSError:
        pass

    device_id = str(uuid.uuid4())
    try:
        config.config_dir.mkdir(parents=True, exist_ok=True)
        fd = os.open(config.device_id_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(device_id)
    except OSError as e:
        debug(f"Could not persist device id: {e}")
    return device_id


def _os_version() -> str:
    mac = platform.mac_ver()[0]
    return mac or platform.release()


def send(config, payload: dict) -> bool:
    """POST one event. Never raises."""
    try:
        req = urllib.request.Request(
            config.telemetry_endpoint,
            data=json.dumps(payload).encode('utf-8'),
            headers={"Content-Type": "application/json"},
            method="POST"
        )
        with urllib.request.urlopen(req, timeout=SEND_TIMEOUT):  # nosec B310
            return True
    except (urllib.error.URLError, OSError, ValueError) as e:
        debug(f"Telemetry send failed: {e}")
        return False


def flush_queue(config) -> int:
    """Send every queued event. Returns the number of events delivered.

    The queue is truncated before sending so a failing endpoint cannot cause
    duplicates on the next flush.
    """
    if not config.telemetry_enabled:
        return 0
    entries = read_queue(config)
    if not entries:
        return 0
    try:
        config.telemetry_queue_file.write_text("", encoding='utf-8')
    except OSError as e:
        debug(f"Could not truncate telemetry queue: {e}")
        return 0

    base = {
        "device_id": get_or_create_device_id(config),
        "version": __version__,
        "os_version": _os_version(),
        "python_version": platform.python_version(),
    }

    sent = 0
    for entry in entries:
        queued_at = entry.pop("_queued_at", None)
        payload = {**base, "ts": queued_at or datetime.now(timezone.utc).isoformat(), **entry}
        if send(config, payload):
            sent += 1
    return sent


def set_opt_out(config, value: bool):
    config.config_dir.mkdir(parents=True, exist_ok=True)
    if value:
        config.telemetry_opt_out_file.write_text("", encoding='utf-8')
    else:
        try:
            config.telemetry_opt_out_file.unlink()
        except FileNotFoundError:
            pass
