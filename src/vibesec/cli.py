"""
vibesec - Command line

  vibesec allow PATTERN          add a trust pattern to the allowlist
  vibesec allow --last [--yes]   allowlist the most recently blocked action
  vibesec allowlist [--clear]    show (or empty) the allowlist
  vibesec telemetry status|on|off|flush

Allowlist patterns only ever suppress L2/L3 blocks. L1 blocks stay blocked.
"""

import argparse
import sys

from vibesec import audit, log, telemetry
from vibesec.allowlist import AllowlistStore, InvalidPatternError
from vibesec.config import load_config


def cmd_allow(config, args, prompt=input) -> int:
    store = AllowlistStore(config.allowlist_file)

    if args.last:
        entry = audit.last_blocked(config.blocked_log_file)
        if entry is None:
            print("Nothing has been blocked yet.")
            return 1
        print(f"Last blocked ({entry.get('tier', '?')}): {entry.get('reason', '')}")
        print(f"  {entry.get('subject', '')[:200]}")
        if entry.get("tier") == "L1":
            print("This was an L1 block and cannot be allowlisted.")
            return 1
        suggested = entry.get("suggested_pattern", "")
        if args.yes:
            pattern = suggested
        else:
            answer = prompt(f"Pattern [{suggested}]: ").strip()
            pattern = answer or suggested
    else:
        pattern = args.pattern

    if not pattern:
        print("A pattern is required: vibesec allow PATTERN", file=sys.stderr)
        return 1

    try:
        added = store.append(pattern)
    except InvalidPatternError as e:
        print(f"Not added: {e}", file=sys.stderr)
        return 1

    if added:
        print(f"✓ Added to allowlist: {pattern}")
    else:
        print(f"Already in allowlist: {pattern}")
    return 0


def cmd_allowlist(config, args) -> int:
    store = AllowlistStore(config.allowlist_file)
    if args.clear:
        store.clear()
        print("Allowlist cleared.")
        return 0

    entries = store.entries
    if not entries:
        print(f"Allowlist is empty ({config.allowlist_file})")
        return 0
    print(f"{len(entries)} pattern(s) in {config.allowlist_file}:")
    for entry in entries:
        suffix = f"  (added {entry.added_at})" if entry.added_at else ""
        print(f"  {entry.pattern}{suffix}")
    return 0


def cmd_telemetry(config, args) -> int:
    if args.action == "on":
        telemetry.set_opt_out(config, False)
        print("Telemetry enabled.")
    elif args.action == "off":
        telemetry.set_opt_out(config, True)
        print("Telemetry disabled.")
    elif args.action == "flush":
        sent = telemetry.flush_queue(config)
        print(f"Sent {sent} event(s).")
    else:
        state = "enabled" if config.telemetry_enabled else "disabled"
        queued = len(telemetry.read_queue(config))
        print(f"Telemetry: {state}")
        print(f"Queued events: {queued}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vibesec", description="Manage the vibe-sec guard")
    sub = parser.add_subparsers(dest="command", required=True)

    allow = sub.add_parser("allow", help="Add a regex to the allowlist")
    allow.add_argument("pattern", nargs="?", help="Regular expression to trust")
    allow.add_argument("--last", action="store_true",
                       help="Use the most recently blocked action's suggested pattern")
    allow.add_argument("--yes", "-y", action="store_true",
                       help="With --last, accept the suggestion without prompting")

    allowlist = sub.add_parser("allowlist", help="Show the allowlist")
    allowlist.add_argument("--clear", action="store_true", help="Remove every pattern")

    tele = sub.add_parser("telemetry", help="Anonymous usage statistics")
    tele.add_argument("action", nargs="?", default="status",
                      choices=["status", "on", "off", "flush"])
    return parser


def main(argv=None, config=None) -> int:
    args = build_parser().parse_args(argv)
    if config is None:
        config = load_config()
    log.configure(config.debug)

    if args.command == "allow":
        if args.pattern and args.last:
            print("Use either PATTERN or --last, not both.", file=sys.stderr)
            return 1
        return cmd_allow(config, args)
    if args.command == "allowlist":
        return cmd_allowlist(config, args)
    return cmd_telemetry(config, args)


if __name__ == "__main__":
    sys.exit(main())
