"""
vibesec - Decision Responder

Turns a Decision into the hook's answer: exit code 0 for allow, exit code 2
plus an explanation on stderr for deny. Before answering a deny, the side
effects run once through an Effects object:

  - desktop notification
  - blocked.log entry (full action text, suggested pattern)
  - telemetry queue entry (coarse fields only)

Each effect is attempted on its own and any failure is swallowed. None of them
can change the exit code.
"""

import shlex

from vibesec import audit, notify, telemetry
from vibesec.log import debug

EXIT_ALLOW = 0
EXIT_DENY = 2

MAX_SUBJECT_CHARS = 300
KILL_SWITCH_HINT = "export VIBE_SEC_GUARD=off"


class Effects:
    """The side effects of a deny, bound to one GuardConfig."""

    def __init__(self, config):
        self.config = config

    def notify(self, decision, action):
        if not self.config.notifications_enabled:
            return
        notify.send_notification(f"{notify.TITLE}: {decision.tier.title}", decision.reason)

    def log_blocked(self, decision, action):
        audit.append_blocked(self.config, decision, action)

    def queue_telemetry(self, decision, action):
        telemetry.queue_event(self.config, telemetry.block_event(decision, action))

    def apply(self, decision, action):
        for effect in (self.notify, self.log_blocked, self.queue_telemetry):
            try:
                effect(decision, action)
            except Exception as e:
                debug(f"{effect.__name__} failed: {e}")


def _cap(text: str) -> str:
    if len(text) <= MAX_SUBJECT_CHARS:
        return text
    return text[:MAX_SUBJECT_CHARS] + "…"


def _remediation(decision) -> list:
    if not decision.tier.bypassable:
        return [
            "This rule cannot be allowlisted.",
            "If the user really wants this, they must run it themselves in a terminal.",
        ]
    if decision.suggested_allow_pattern:
        command = f"vibesec allow {shlex.quote(decision.suggested_allow_pattern)}"
        return [
            "If the user confirms this is intended, offer to run:",
            f"  {command}",
            "then retry.",
        ]
    return ["If this is intended, ask the user to run it manually."]


def format_explanation(decision, action) -> str:
    label = "Command" if action.is_shell else "File"
    lines = [
        f"⛔ vibe-sec {decision.tier.level}: {decision.tier.title}",
        "",
        f"Reason: {decision.reason}",
    ]
    if decision.explanation:
        lines += ["", decision.explanation]
    lines += ["", f"{label}: {_cap(action.text)}", ""]
    lines += _remediation(decision)
    lines += ["", f"Emergency off switch: {KILL_SWITCH_HINT}"]
    return "\n".join(lines)


def respond(decision, action, effects, stderr) -> int:
    """Answer the host. Returns the exit code."""
    if decision.allow:
        return EXIT_ALLOW

    effects.apply(decision, action)
    try:
        print(format_explanation(decision, action), file=stderr)
    except (OSError, ValueError) as e:
        debug(f"Could not write explanation: {e}")
    return EXIT_DENY
