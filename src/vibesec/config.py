"""
vibesec - Configuration

Everything the guard needs to know about its environment is read here, once,
at the entry point. The resulting GuardConfig is immutable and is passed down
to the engine, the responder and the CLI; nothing else reads os.environ.

Sources:
  - environment variables (kill switch, capability key, telemetry opt-out)
  - <config_dir>/config.json (escalation provider/model/timeout, notifications)
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CONFIG_DIR = Path(".config") / "vibe-sec"
DEFAULT_TELEMETRY_ENDPOINT = "https://vibe-sec-telemetry.dev-a96.workers.dev/v1/event"

ESCALATION_PROVIDERS = ("gemini", "claude")
# The one environment variable holding the capability key, per provider
ESCALATION_KEY_VARS = {
    "gemini": "GEMINI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
}
DEFAULT_ESCALATION_TIMEOUT = 5.0
# Escalation runs synchronously before a tool call: keep it in single digits
MIN_ESCALATION_TIMEOUT = 1.0
MAX_ESCALATION_TIMEOUT = 9.0

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True)
class GuardConfig:
    config_dir: Path
    home: Path | None = None
    disabled: bool = False
    escalation_key: str | None = None
    escalation_provider: str = "gemini"
    escalation_model: str | None = None
    escalation_timeout: float = DEFAULT_ESCALATION_TIMEOUT
    notifications_enabled: bool = True
    telemetry_enabled: bool = True
    telemetry_endpoint: str = DEFAULT_TELEMETRY_ENDPOINT
    debug: bool = False

    @property
    def allowlist_file(self) -> Path:
        return self.config_dir / "allowlist"

    @property
    def blocked_log_file(self) -> Path:
        return self.config_dir / "blocked.log"

    @property
    def telemetry_queue_file(self) -> Path:
        return self.config_dir / "telemetry-queue.jsonl"

    @property
    def device_id_file(self) -> Path:
        return self.config_dir / "device-id"

    @property
    def telemetry_opt_out_file(self) -> Path:
        return self.config_dir / ".no-telemetry"

    @property
    def settings_file(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def escalation_enabled(self) -> bool:
        return bool(self.escalation_key)


def _load_settings(path: Path) -> dict:
    """Read the optional JSON settings file. Missing or broken files mean defaults."""
    try:
        if path.exists():
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if isinstance(data, dict):
                return data
    except (OSError, ValueError):
        pass
    return {}


def _clamp_timeout(value) -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        return DEFAULT_ESCALATION_TIMEOUT
    return min(max(timeout, MIN_ESCALATION_TIMEOUT), MAX_ESCALATION_TIMEOUT)


def load_config(environ=None, home: Path | None = None) -> GuardConfig:
    """Build the GuardConfig for this invocation."""
    if environ is None:
        environ = os.environ
    if home is None:
        home = Path.home()

    config_dir = environ.get("VIBE_SEC_CONFIG_DIR")
    config_dir = Path(config_dir).expanduser() if config_dir else home / DEFAULT_CONFIG_DIR

    settings = _load_settings(config_dir / "config.json")
    escalation = settings.get("escalation") or {}
    if not isinstance(escalation, dict):
        escalation = {}
    notifications = settings.get("notifications") or {}
    if not isinstance(notifications, dict):
        notifications = {}

    provider = escalation.get("provider", "gemini")
    if provider not in ESCALATION_PROVIDERS:
        provider = "gemini"

    telemetry_enabled = (
        environ.get("VIBE_SEC_TELEMETRY", "").lower() != "off"
        and not (config_dir / ".no-telemetry").exists()
    )

    return GuardConfig(
        config_dir=config_dir,
        home=home,
        disabled=environ.get("VIBE_SEC_GUARD", "").lower() == "off",
        escalation_key=environ.get(ESCALATION_KEY_VARS[provider]) or None,
        escalation_provider=provider,
        escalation_model=escalation.get("model") or None,
        escalation_timeout=_clamp_timeout(escalation.get("timeout", DEFAULT_ESCALATION_TIMEOUT)),
        notifications_enabled=bool(notifications.get("enabled", True)),
        telemetry_enabled=telemetry_enabled,
        telemetry_endpoint=environ.get("VIBE_SEC_TELEMETRY_ENDPOINT") or DEFAULT_TELEMETRY_ENDPOINT,
        debug=environ.get("VIBE_SEC_DEBUG", "").lower() in _TRUTHY,
    )
