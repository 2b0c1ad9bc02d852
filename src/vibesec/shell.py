"""Quote-aware splitting of shell command text.

Rules that reason about arguments (rather than substrings) need to see each
simple command on its own. Chains (&&, ||, ;), pipes and newlines are split
while respecting single and double quotes, so that `echo "a; b"` stays one
segment.
"""

import re
import shlex

_ENV_ASSIGNMENT = re.compile(r"^[A-Za-z_]\w*=")
_PREFIX_COMMANDS = {"sudo", "doas", "command", "nohup", "time", "exec", "env"}
# Reserved words and grouping that can precede a command: then rm, do rm, ! rm, { rm
_SHELL_KEYWORDS = {"if", "then", "else", "elif", "while", "until", "do", "!", "{", "(", "(("}
_SUBSTITUTION_START = re.compile(r"[$<>]\(")
_BACKTICKS = re.compile(r"`([^`]*)`")
# Wrapper options that consume the following token (sudo -u root)
_OPTIONS_WITH_ARG = {
    "sudo": {"-u", "-g", "-C", "-D", "-h", "-p", "-r", "-t", "-U"},
    "doas": {"-u", "-C"},
    "env": {"-u", "-C"},
}


def _split_respecting_quotes(text, is_delimiter):
    """Split text on unquoted delimiters while respecting single/double quotes.

    is_delimiter(text, i, current) returns the delimiter width at position i,
    or None if position i is not a delimiter.
    """
    parts = []
    current = []
    in_single = False
    in_double = False
    i = 0
    while i < len(text):
        c = text[i]
        if c == "'" and not in_double:
            in_single = not in_single
            current.append(c)
        elif c == '"' and not in_single:
            in_double = not in_double
            current.append(c)
        elif not in_single and not in_double:
            skip = is_delimiter(text, i, current)
            if skip is not None:
                parts.append("".join(current).strip())
                current = []
                i += skip
                continue
            current.append(c)
        else:
            current.append(c)
        i += 1
    if current:
        parts.append("".join(current).strip())
    return [p for p in parts if p]


def _is_segment_delimiter(text, i, current):
    two = text[i:i + 2]
    if two in ("&&", "||", "|&"):
        return 2
    c = text[i]
    if c == "&":
        # Redirections like 2>&1 and &> are not background operators
        prev = text[i - 1] if i > 0 else ""
        nxt = text[i + 1] if i + 1 < len(text) else ""
        if prev in "<>" or nxt == ">":
            return None
        return 1
    if c in ";|":
        return 1
    if c == "\n":
        return 1
    return None


def split_segments(command: str) -> list:
    """Split a command line into simple commands (chains, pipes, newlines)."""
    # Backslash-newline continues the line
    return _split_respecting_quotes(command.replace("\\\n", " "), _is_segment_delimiter)


def tokenize(segment: str) -> list:
    """Split one simple command into argv, falling back to whitespace on bad quoting."""
    try:
        return shlex.split(segment, posix=True)
    except ValueError:
        return segment.split()


def strip_prefixes(argv: list) -> list:
    """Drop leading VAR=value assignments, shell keywords and wrappers like sudo/env/nohup."""
    argv = list(argv)
    i = 0
    while i < len(argv):
        token = argv[i]
        if _ENV_ASSIGNMENT.match(token) or token in _SHELL_KEYWORDS:
            i += 1
        elif len(token) > 1 and token[0] in "({":
            # Grouping glued to the command: (rm -rf ~/)
            argv[i] = token.lstrip("({")
        elif token in _PREFIX_COMMANDS:
            takes_arg = _OPTIONS_WITH_ARG.get(token, ())
            i += 1
            # Options of the wrapper itself (sudo -u root, env -i)
            while i < len(argv) and argv[i].startswith("-"):
                i += 2 if argv[i] in takes_arg else 1
        else:
            break
    return argv[i:]


def _strip_closers(token: str) -> str:
    """~/) -> ~/ ; balanced tokens like $(pwd) are left alone."""
    while token and token[-1] in ")}" and token.count(")") > token.count("("):
        token = token[:-1]
    if token.endswith("}") and "{" not in token:
        token = token.rstrip("}")
    return token


def program_name(token: str) -> str:
    """Basename of an executable token: /bin/rm -> rm."""
    return token.rsplit("/", 1)[-1]


def substitutions(command: str) -> list:
    """Bodies of $(...), <(...), >(...) and `...` found anywhere in the text."""
    bodies = []
    for m in _SUBSTITUTION_START.finditer(command):
        depth = 1
        j = m.end()
        while j < len(command) and depth:
            if command[j] == "(":
                depth += 1
            elif command[j] == ")":
                depth -= 1
            j += 1
        bodies.append(command[m.end():j - 1 if depth == 0 else j])
    bodies.extend(_BACKTICKS.findall(command))
    return [body for body in bodies if body.strip()]


def simple_commands(command: str) -> list:
    """argv lists (wrappers stripped) for each simple command in the line."""
    result = []
    for segment in split_segments(command):
        argv = [_strip_closers(t) for t in strip_prefixes(tokenize(segment))]
        argv = [t for t in argv if t]
        if argv:
            result.append(argv)
    return result
