"""vibesec - PreToolUse guard against prompt-injected shell commands and file writes."""

__version__ = "0.3.0"
