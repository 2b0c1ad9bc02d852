#!/usr/bin/env python3
"""
vibesec guard - PreToolUse hook for Bash, Write, Edit and MultiEdit.

Plugin-mode entry point: runs straight from a checkout without the package
being installed. Installed users point the hook at the `vibesec-guard`
console script instead.
"""

import os
import sys

SRC_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src")
if os.path.isdir(SRC_DIR) and SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from vibesec.hook import main, run  # noqa: E402,F401

if __name__ == "__main__":
    main()
