"""
vibesec - Pattern Catalog

Static, versioned detection rules. The catalog is plain data: the engine walks
it in tier order and never needs to know what an individual rule looks for.

Three tiers, evaluated strictly in this order:

  L1 Irrevocable  - catastrophic actions; never suppressible by the allowlist
  L2 Heuristic    - composite signals (read a secret AND send it somewhere)
  L3 Escalation   - borderline commands, judged by a remote model (opt-in)
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from vibesec import shell
from vibesec.actions import Action, ActionKind, normalize_target

CATALOG_VERSION = "2026.10.1"


class Tier(Enum):
    IRREVOCABLE = "irrevocable"
    HEURISTIC = "heuristic"
    ESCALATION = "escalation"

    @property
    def bypassable(self) -> bool:
        return TIER_BYPASSABLE[self]

    @property
    def level(self) -> str:
        return TIER_LEVELS[self]

    @property
    def title(self) -> str:
        return TIER_TITLES[self]


# Every Tier must appear in each table; tests assert the tables are exhaustive.
TIER_ORDER = (Tier.IRREVOCABLE, Tier.HEURISTIC, Tier.ESCALATION)
TIER_BYPASSABLE = {
    Tier.IRREVOCABLE: False,
    Tier.HEURISTIC: True,
    Tier.ESCALATION: True,
}
TIER_LEVELS = {
    Tier.IRREVOCABLE: "L1",
    Tier.HEURISTIC: "L2",
    Tier.ESCALATION: "L3",
}
TIER_TITLES = {
    Tier.IRREVOCABLE: "BLOCKED",
    Tier.HEURISTIC: "POSSIBLE PROMPT INJECTION",
    Tier.ESCALATION: "SEMANTIC CHECK: SUSPICIOUS COMMAND",
}

SHELL = frozenset({ActionKind.SHELL_EXECUTE})
FILES = frozenset({ActionKind.FILE_WRITE, ActionKind.FILE_EDIT})


@dataclass(frozen=True)
class Signal:
    """One half of a composite detection: a labelled pattern over command text."""
    signal_id: str
    label: str
    pattern: re.Pattern

    def search(self, text: str) -> str | None:
        m = self.pattern.search(text)
        return m.group(0) if m else None


@dataclass(frozen=True)
class Rule:
    """A detection rule.

    predicate(action) returns None when the rule does not match, otherwise a
    tuple of (label, matched_text) spans. `reason` and `explanation` may use
    {0}, {1}... placeholders, filled with the span labels.
    """
    rule_id: str
    tier: Tier
    category: str
    applies_to: frozenset
    predicate: Callable[[Action], tuple | None]
    reason: str
    explanation: str

    def match(self, action: Action) -> tuple | None:
        if action.kind not in self.applies_to:
            return None
        return self.predicate(action)


def first_match(signals, text: str) -> tuple | None:
    """(label, matched_text) for the first signal in catalog order that matches."""
    for signal in signals:
        hit = signal.search(text)
        if hit is not None:
            return (signal.label, hit)
    return None


# ============================================================
# L1 - IRREVOCABLE (shell)
# ============================================================

# Targets that denote the home directory or the filesystem root as a whole.
# ~/Downloads/tmp is NOT one of them.
_HOME_OR_ROOT_TARGET = re.compile(r"^(?:~|\$HOME|\$\{HOME\})/*\*?$|^/+\*?$")
_SHELLS = {"sh", "bash", "zsh", "dash", "ksh"}
MAX_NESTING = 3


def _is_recursive_rm(flags) -> bool:
    for flag in flags:
        if flag == "--recursive":
            return True
        if not flag.startswith("--") and ("r" in flag or "R" in flag):
            return True
    return False


def _is_home_or_root(target: str, home) -> bool:
    if _HOME_OR_ROOT_TARGET.match(target):
        return True
    # /Users/me and /Users/me/ name the home directory too
    if home is not None and target.startswith("/"):
        return _HOME_OR_ROOT_TARGET.match(normalize_target(target, home)) is not None
    return False


def _rm_targets_home_or_root(argv, home=None) -> str | None:
    if shell.program_name(argv[0]) != "rm":
        return None
    flags, targets = [], []
    end_of_options = False
    for token in argv[1:]:
        if token == "--" and not end_of_options:
            end_of_options = True
        elif token.startswith("-") and not end_of_options:
            flags.append(token)
        else:
            targets.append(token)
    if not _is_recursive_rm(flags):
        return None
    for target in targets:
        if _is_home_or_root(target, home):
            return target
    return None


def _inner_shell_command(argv) -> str | None:
    """The script of `bash -c '...'` and `eval '...'` style invocations."""
    name = shell.program_name(argv[0])
    if name == "eval":
        return " ".join(argv[1:]) or None
    if name not in _SHELLS:
        return None
    for i, token in enumerate(argv[1:-1], start=1):
        if token.startswith("-") and not token.startswith("--") and "c" in token:
            return argv[i + 1]
    return None


def _rm_home_or_root(action: Action) -> tuple | None:
    return _scan_rm(action.command, action.home, 0)


def _scan_rm(command: str, home, depth: int) -> tuple | None:
    """Look for the rm in the line itself, then inside nested scripts and substitutions."""
    nested = []
    for argv in shell.simple_commands(command):
        argv = _unwrap_xargs(argv)
        target = _rm_targets_home_or_root(argv, home)
        if target is not None:
            return (("rm target", target),)
        inner = _inner_shell_command(argv)
        if inner:
            nested.append(inner)
    nested.extend(shell.substitutions(command))

    if depth >= MAX_NESTING:
        return None
    for inner in nested:
        found = _scan_rm(inner, home, depth + 1)
        if found:
            return found
    return None


def _unwrap_xargs(argv):
    if shell.program_name(argv[0]) != "xargs":
        return argv
    i = 1
    while i < len(argv) and argv[i].startswith("-"):
        i += 1
    return argv[i:] or argv


def _regex_rule(pattern: re.Pattern, label: str):
    def predicate(action: Action) -> tuple | None:
        m = pattern.search(action.command)
        return ((label, m.group(0)),) if m else None
    return predicate


CURL_PIPE_SHELL = re.compile(r"\bcurl\b[^#\n|]*\|\s*(?:sudo\s+)?(?:ba|z)?sh\b")
WGET_PIPE_SHELL = re.compile(r"\bwget\b[^#\n|]*\|\s*(?:sudo\s+)?(?:ba|z)?sh\b")
BASE64_PIPE_SHELL = re.compile(r"\bbase64\s+(?:-d|--decode|-D)\b[^#\n|]*\|\s*(?:ba|z)?sh\b")
FORK_BOMB = re.compile(r":\(\)\s*\{[^}]*:\s*\|\s*:")
SUDO_DESTRUCTIVE = re.compile(r"\bsudo\s+(?:rm\s+-[rRfF]+\b|dd\s+if=|mkfs\b|fdisk\b|shred\b)")


# ============================================================
# L1 - IRREVOCABLE (files)
# ============================================================

PROTECTED_TARGETS = (
    "~/.ssh/authorized_keys",
    "~/.ssh/id_rsa",
    "~/.bashrc",
    "~/.zshrc",
    "~/.profile",
    "~/.bash_profile",
    "/etc/hosts",
    "/etc/passwd",
    "/etc/sudoers",
)


def _protected_target(action: Action) -> tuple | None:
    target = action.target
    for protected in PROTECTED_TARGETS:
        if target == protected or target.startswith(protected + "/"):
            return ((protected, target),)
    return None


# ============================================================
# L2 - HEURISTIC (composite: sensitive read + exfiltration)
# ============================================================

_READERS = r"(?:cat|cp|tar|zip|less|head|tail|base64|xxd|gzip)"

SENSITIVE_READ_SIGNALS = (
    Signal("ssh_dir", "~/.ssh/",
           re.compile(_READERS + r"\s+.*(?:~|\$HOME|\$\{HOME\}|/home/[^/\s]+|/root)/\.ssh/")),
    Signal("aws_dir", "~/.aws/",
           re.compile(_READERS + r"\s+.*(?:~|\$HOME|\$\{HOME\}|/home/[^/\s]+|/root)/\.aws/")),
    Signal("claude_dir", "~/.claude/",
           re.compile(_READERS + r"\s+.*(?:~|\$HOME|\$\{HOME\}|/home/[^/\s]+|/root)/\.claude/")),
    Signal("clawdbot_config", "~/.clawdbot/clawdbot.json",
           re.compile(_READERS + r"\s+.*(?:~|\$HOME|\$\{HOME\})/\.clawdbot/clawdbot\.json")),
    Signal("system_accounts", "/etc/passwd|shadow|sudoers",
           re.compile(_READERS + r"\s+.*/etc/(?:passwd|shadow|sudoers)")),
    Signal("dotenv", ".env file",
           re.compile(r"(?:cat|less|head|tail)\s+.*\.env(?:\.\w+)?(?:\s|$|[|;&)])")),
    Signal("env_secrets", "environment variables with secrets",
           re.compile(r"\bprintenv\b|\benv\b.*(?:API_KEY|TOKEN|SECRET)")),
)

EXFIL_SIGNALS = (
    Signal("curl_external", "curl to an external URL",
           re.compile(r"\bcurl\b[^#\n]*https?://(?!localhost|127\.0\.0\.1|0\.0\.0\.0)")),
    Signal("wget_external", "wget to an external URL",
           re.compile(r"\bwget\b[^#\n]*https?://(?!localhost|127\.0\.0\.1)")),
    Signal("netcat_ip", "netcat to an IP address",
           re.compile(r"\b(?:nc|ncat|netcat)\b[^#\n]*\d{1,3}\.\d{1,3}\.\d{1,3}")),
    Signal("base64_encode", "base64 (encoding output)",
           re.compile(r"\bbase64\b(?!\s*(?:-d|--decode))")),
    Signal("openssl_enc", "openssl encryption",
           re.compile(r"\bopenssl\s+enc\b")),
    Signal("ssh_external", "ssh to an external host",
           re.compile(r"\bssh\b[^#\n]*@[a-z0-9][a-z0-9.-]+\.[a-z]{2,}")),
)


def _sensitive_read_and_exfil(action: Action) -> tuple | None:
    sensitive = first_match(SENSITIVE_READ_SIGNALS, action.command)
    if sensitive is None:
        return None
    exfil = first_match(EXFIL_SIGNALS, action.command)
    if exfil is None:
        return None
    return (sensitive, exfil)


SHELL_STARTUP_FILES = frozenset({
    ".bashrc", ".bash_profile", ".bash_login", ".profile",
    ".zshrc", ".zprofile", ".zshenv", ".zlogin",
})
SHELL_CONFIG_PAYLOAD = re.compile(r"\bcurl\b|\bwget\b|\bnc\b|\beval\s*\(|\beval\s+\"?\$\(|base64")


def _shell_config_backdoor(action: Action) -> tuple | None:
    name = action.target.rsplit("/", 1)[-1]
    if name not in SHELL_STARTUP_FILES:
        return None
    m = SHELL_CONFIG_PAYLOAD.search(action.content)
    return (("shell startup payload", m.group(0)),) if m else None


# ============================================================
# L3 - ESCALATION gate (borderline, higher recall)
# ============================================================

BORDERLINE_SIGNALS = (
    Signal("history_grep", "searching shell history",
           re.compile(r"\bhistory\b.*\bgrep\b")),
    Signal("find_keys", "searching for key material",
           re.compile(r"\bfind\b.*-i?name.*\.(?:pem|key|crt|pfx|p12)\b")),
    Signal("find_dotenv", "searching for .env files",
           re.compile(r"\bfind\b.*-i?name.*\.env\b")),
    Signal("grep_credentials", "grepping for credential-shaped terms",
           re.compile(r"\b(?:grep|rg)\b.*(?:password|secret|token|api.key)", re.IGNORECASE)),
)


def _borderline(action: Action) -> tuple | None:
    hit = first_match(BORDERLINE_SIGNALS, action.command)
    return (hit,) if hit else None


# ============================================================
# THE CATALOG
# ============================================================

CATALOG = (
    Rule(
        rule_id="rm_home_or_root",
        tier=Tier.IRREVOCABLE,
        category="rm_rf",
        applies_to=SHELL,
        predicate=_rm_home_or_root,
        reason="attempt to delete the home or root directory",
        explanation="rm -rf ~/ destroys every file you own, with no way back.",
    ),
    Rule(
        rule_id="curl_pipe_shell",
        tier=Tier.IRREVOCABLE,
        category="curl_bash",
        applies_to=SHELL,
        predicate=_regex_rule(CURL_PIPE_SHELL, "curl | sh"),
        reason="remote code execution: curl | bash",
        explanation="Downloads an external script and executes it immediately.\n"
                    "A classic prompt injection attack vector.",
    ),
    Rule(
        rule_id="wget_pipe_shell",
        tier=Tier.IRREVOCABLE,
        category="wget_sh",
        applies_to=SHELL,
        predicate=_regex_rule(WGET_PIPE_SHELL, "wget | sh"),
        reason="remote code execution: wget | sh",
        explanation="Same as curl | bash: an external script runs without review.",
    ),
    Rule(
        rule_id="base64_pipe_shell",
        tier=Tier.IRREVOCABLE,
        category="base64_exec",
        applies_to=SHELL,
        predicate=_regex_rule(BASE64_PIPE_SHELL, "base64 -d | sh"),
        reason="obfuscated command execution: base64 -d | bash",
        explanation="The command is hidden in base64 to get past review.\n"
                    "Legitimate tasks do not need to disguise what they run.",
    ),
    Rule(
        rule_id="fork_bomb",
        tier=Tier.IRREVOCABLE,
        category="fork_bomb",
        applies_to=SHELL,
        predicate=_regex_rule(FORK_BOMB, "fork bomb"),
        reason="fork bomb: will freeze the system",
        explanation=":(){ :|:& };: exhausts the process table.",
    ),
    Rule(
        rule_id="sudo_destructive",
        tier=Tier.IRREVOCABLE,
        category="sudo_destructive",
        applies_to=SHELL,
        predicate=_regex_rule(SUDO_DESTRUCTIVE, "sudo destructive"),
        reason="destructive operation with root privileges",
        explanation="Destructive commands run through sudo carry the highest risk.",
    ),
    Rule(
        rule_id="protected_file",
        tier=Tier.IRREVOCABLE,
        category="protected_file",
        applies_to=FILES,
        predicate=_protected_target,
        reason="write to protected system file: {0}",
        explanation="Changing this file can hand an attacker access to the system or account.\n"
                    "If this is legitimate, make the change by hand.",
    ),
    Rule(
        rule_id="sensitive_read_exfil",
        tier=Tier.HEURISTIC,
        category="exfil",
        applies_to=SHELL,
        predicate=_sensitive_read_and_exfil,
        reason="reading a secret file ({0}) + sending data out ({1})",
        explanation="This is the classic prompt injection pattern:\n"
                    "a malicious page or file told the agent to read secrets and send them away.\n\n"
                    "Sensitive source: {0}\n"
                    "Network activity: {1}",
    ),
    Rule(
        rule_id="shell_config_backdoor",
        tier=Tier.HEURISTIC,
        category="shell_config_backdoor",
        applies_to=FILES,
        predicate=_shell_config_backdoor,
        reason="shell startup file gains network or encoding commands",
        explanation="Writing network commands into a login shell's startup file is a sign of\n"
                    "a backdoor install. Check the content by hand before writing it.",
    ),
    Rule(
        rule_id="semantic_borderline",
        tier=Tier.ESCALATION,
        category="semantic",
        applies_to=SHELL,
        predicate=_borderline,
        reason="semantic analysis found signs of prompt injection",
        explanation="",
    ),
)


def rules_for(tier: Tier, catalog=CATALOG) -> tuple:
    return tuple(rule for rule in catalog if rule.tier is tier)
