"""
vibesec - PreToolUse hook

Reads one hook event (JSON) from stdin and answers with an exit code:
  0 - allow
  2 - deny; the explanation is on stderr for the user and the agent

Anything that goes wrong before a real Decision exists (bad JSON, unknown
tool, an exception inside the engine) allows. The guard must never become the
reason the agent cannot work.
"""

import json
import sys

from vibesec import log
from vibesec.actions import from_hook_event
from vibesec.allowlist import AllowlistStore
from vibesec.config import load_config
from vibesec.engine import RuleEngine
from vibesec.escalation import EscalationClient
from vibesec.log import debug
from vibesec.responder import EXIT_ALLOW, Effects, respond


def build_engine(config) -> RuleEngine:
    return RuleEngine(
        allowlist=AllowlistStore(config.allowlist_file),
        escalator=EscalationClient.from_config(config),
    )


def run(stdin, stderr, config=None) -> int:
    if config is None:
        try:
            config = load_config()
        except Exception as e:
            debug(f"Could not load config, allowing: {e}")
            return EXIT_ALLOW
    log.configure(config.debug)
    debug("Hook started")

    if config.disabled:
        debug("VIBE_SEC_GUARD=off, allowing")
        return EXIT_ALLOW

    try:
        event = json.load(stdin)
    except (ValueError, OSError, RecursionError) as e:
        # Decode errors are ValueErrors; a broken pipe is an OSError
        debug(f"Could not read hook event: {e}")
        return EXIT_ALLOW

    action = from_hook_event(event, home=config.home)
    if action is None:
        debug("Nothing to evaluate, skipping")
        return EXIT_ALLOW
    debug(f"Evaluating {action.kind.value} from {action.tool}")

    try:
        decision = build_engine(config).evaluate(action)
    except Exception as e:
        debug(f"Evaluation failed, allowing: {e}")
        return EXIT_ALLOW

    return respond(decision, action, Effects(config), stderr)


def main():
    sys.exit(run(sys.stdin, sys.stderr))


if __name__ == "__main__":
    main()
