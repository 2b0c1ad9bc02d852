"""
vibesec - Blocked Action Log

Append-only JSONL record of every deny, with the full action text. Lives next
to the allowlist so `vibesec allow --last` can offer the most recent
suggestion. Entries are never rewritten.
"""

import json
from datetime import datetime, timezone
from pathlib import Path


def blocked_entry(decision, action) -> dict:
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "tier": decision.tier.level,
        "rule_id": decision.rule_id,
        "reason": decision.reason,
        "tool": action.tool,
        "subject": action.text,
    }
    if decision.suggested_allow_pattern:
        entry["suggested_pattern"] = decision.suggested_allow_pattern
    return entry


def append_blocked(config, decision, action):
    """Append one entry. Raises OSError on I/O failure."""
    config.config_dir.mkdir(parents=True, exist_ok=True)
    with open(config.blocked_log_file, 'a', encoding='utf-8') as f:
        f.write(json.dumps(blocked_entry(decision, action)) + "\n")


def read_blocked(path: Path) -> list:
    entries = []
    try:
        with open(path, 'r', encoding='utf-8') as f:
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


def last_blocked(path: Path) -> dict | None:
    entries = read_blocked(path)
    return entries[-1] if entries else None
