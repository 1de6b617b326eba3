"""Output parser — find working-directory changes in raw shell output.

Two sources, both best-effort:

* OSC 7 (``ESC ] 7 ; file://host/path BEL``) emitted by shells configured
  to report their cwd.  Structured and reliable when present.
* Prompt heuristics for PowerShell (``PS C:\\path>``), CMD (``C:\\path>``)
  and POSIX shells (``user@host:/path$``).  Locale and prompt dependent;
  a path containing the prompt terminator is cut short.

Nothing here touches session state; callers decide what to do with the
result, or turn detection off entirely.
"""

from __future__ import annotations

import re
from typing import Literal
from urllib.parse import unquote

CwdDetection = Literal["all", "osc7", "off"]

_OSC7_RE = re.compile(r"\x1b\]7;file://[^/\x07\x1b]*([^\x07\x1b]+)(?:\x07|\x1b\\)")
_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")

_POWERSHELL_RE = re.compile(r"PS\s+([A-Za-z]:\\[^>]*?)>")
_CMD_RE = re.compile(r"(?:^|\n|\r)([A-Za-z]:\\[^>]*?)>")
_POSIX_RE = re.compile(r"(?:^|\n|\r)(?:[^@\s]+@[^:\s]+:)?([~/][^$\n\r]*?)\$")


def strip_ansi(text: str) -> str:
    """Strip ANSI CSI and OSC escape sequences from text."""
    return _ANSI_RE.sub("", text)


def parse_osc7(data: str) -> str | None:
    """Return the path from the last OSC 7 sequence in ``data``, URL-decoded."""
    last: str | None = None
    for match in _OSC7_RE.finditer(data):
        last = unquote(match.group(1))
    return last


def extract_cwd_from_prompt(data: str) -> str | None:
    """Guess the working directory from a shell prompt in ``data``.

    Tried in order: PowerShell, CMD, POSIX.  ``~`` is returned unexpanded.
    """
    text = strip_ansi(data)

    match = _POWERSHELL_RE.search(text)
    if match:
        return match.group(1).strip()

    match = _CMD_RE.search(text)
    if match:
        return match.group(1).strip()

    match = _POSIX_RE.search(text)
    if match:
        return match.group(1).strip()

    return None


def detect_cwd(data: str, mode: CwdDetection = "all") -> str | None:
    """Best-effort cwd detection over one chunk of output.

    OSC 7 wins over prompt heuristics when both are present.
    """
    if mode == "off":
        return None
    cwd = parse_osc7(data)
    if cwd is not None or mode == "osc7":
        return cwd
    return extract_cwd_from_prompt(data)
