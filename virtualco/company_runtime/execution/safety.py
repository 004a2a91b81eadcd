"""Deny-list filter for agent shell commands.

This is a blunt defense-in-depth layer, **not** a sandbox: it rejects a
handful of obviously destructive command shapes and is trivially bypassed
by obfuscation (variables, base64, ``eval``).  Real isolation belongs to the
container the runtime is launched in.
"""

from __future__ import annotations

import re

_ROOT = r"/(?:\s|$|\*)"

DANGEROUS_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"rm\s+(-[a-z]*r[a-z]*|--recursive)(\s+-\S+)*\s+" + _ROOT), "Recursive delete on root"),
    (re.compile(r"rm\s+(-[a-z]*r[a-z]*|--recursive)(\s+-\S+)*\s+~"), "Recursive delete on home directory"),
    (re.compile(r"mkfs"), "Filesystem formatting"),
    (re.compile(r"\bdd\s+if="), "Raw disk write"),
    (re.compile(r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:"), "Fork bomb"),
    (re.compile(r"\b(shutdown|reboot|poweroff|halt)\b"), "System shutdown/reboot"),
    (re.compile(r"\bformat\s+[a-z]:"), "Disk formatting (Windows)"),
    (re.compile(r"\bdel\s+/[sf]\s+[a-z]:\\"), "Recursive delete (Windows)"),
    (re.compile(r"\breg\s+(delete|add)\b"), "Registry modification"),
    (re.compile(r"\bcurl\s+.*\|\s*(bash|sh|python)"), "Remote code execution via pipe"),
    (re.compile(r"\bwget\s+.*\|\s*(bash|sh|python)"), "Remote code execution via pipe"),
    (re.compile(r"chmod\s+(-r\s+)?777\s+" + _ROOT), "Dangerous permission change on root"),
    (re.compile(r"chown\s+(-r\s+)?\S+\s+" + _ROOT), "Ownership change on root"),
    (re.compile(r">\s*/dev/sd[a-z]"), "Direct disk write"),
    (re.compile(r"iptables\s+(-f|-x|--flush)"), "Firewall flush"),
    (re.compile(r"\bpasswd\b"), "Password change"),
    (re.compile(r"\b(useradd|userdel|adduser|deluser)\b"), "User management"),
    (re.compile(r"\bsudo\b"), "Sudo execution not allowed"),
    (re.compile(r"\bsu\b\s"), "User switch not allowed"),
]


def check_command_safety(command: str) -> str | None:
    """Return the reason the first matching pattern blocks *command*, else ``None``.

    Matching is case-insensitive (the command is lower-cased and trimmed).
    """
    normalized = command.strip().lower()
    for pattern, reason in DANGEROUS_PATTERNS:
        if pattern.search(normalized):
            return reason
    return None
