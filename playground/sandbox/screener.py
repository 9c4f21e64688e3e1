"""Static screening of submitted C sources.

This is a fast text-pattern check that rejects obviously disallowed
constructs (spawning processes, raw networking) before anything is compiled.
It is a heuristic: string splicing, macros or alternate spellings get past
it. Whatever actually contains a running program must be provided by the
host (containers, seccomp, namespaces), not by this module.
"""

import re
from collections.abc import Iterable
from typing import NamedTuple

from playground.models.execution import SubmittedFile


class ScreenRule(NamedTuple):
    pattern: re.Pattern[str]
    reason: str


# Evaluated in order; the first match wins.
RULES: tuple[ScreenRule, ...] = (
    ScreenRule(re.compile(r"\bsystem\s*\("), "Calls to system() are not allowed."),
    ScreenRule(re.compile(r"\bv?fork\s*\("), "Creating processes (fork) is not allowed."),
    ScreenRule(
        re.compile(r"\bexec(?:l|lp|le|v|vp|ve|vpe)?\s*\("),
        "Executing other binaries (exec family) is not allowed.",
    ),
    ScreenRule(re.compile(r"\bpopen\s*\("), "Command pipes (popen) are not allowed."),
    ScreenRule(re.compile(r"<\s*sys/socket\.h\s*>"), "Network access (sockets) is blocked."),
    ScreenRule(re.compile(r"<\s*netinet/in\.h\s*>"), "Network access is blocked."),
)

POLICY_NOTICE = "This environment is a sandbox for educational use."


def screen(source: str) -> str | None:
    """Return the reason the source is rejected, or None if it passes."""
    for rule in RULES:
        if rule.pattern.search(source):
            return rule.reason
    return None


def screen_files(files: Iterable[SubmittedFile]) -> str | None:
    for file in files:
        reason = screen(file.content or "")
        if reason:
            return reason
    return None


def policy_message(reason: str) -> str:
    return f"[Security] {reason}\n{POLICY_NOTICE}"
