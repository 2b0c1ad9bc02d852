import sys

DEBUG = False


def configure(debug: bool):
    """Enable or disable debug tracing for this process."""
    global DEBUG
    DEBUG = debug


def debug(msg):
    if DEBUG:
        print(f"[vibesec] {msg}", file=sys.stderr)
