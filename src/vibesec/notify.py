"""
vibesec - Desktop Notifications

Best-effort only: the notifier is launched detached and never waited on, so
a missing or hung notifier costs the hook nothing. The hook's exit code never
depends on this.
"""

import shutil
import subprocess
import sys

TITLE = "vibe-sec"


def _applescript_string(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def notification_command(title: str, message: str) -> list | None:
    if sys.platform == "darwin":
        script = (f"display notification {_applescript_string(message)} "
                  f"with title {_applescript_string(title)}")
        return ["osascript", "-e", script]
    if shutil.which("notify-send"):
        return ["notify-send", "--app-name", TITLE, title, message]
    return None


def send_notification(title: str, message: str) -> bool:
    cmd = notification_command(title, message[:200])
    if cmd is None:
        return False
    try:
        subprocess.Popen(cmd, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL,
                         stderr=subprocess.DEVNULL, start_new_session=True)
    except (OSError, ValueError):
        return False
    return True
