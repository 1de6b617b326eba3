"""Encode Textual key events as the bytes a VT100-style terminal would send."""

from __future__ import annotations

_SPECIAL: dict[str, str] = {
    "backspace": "\x7f",
    "enter": "\r",
    "tab": "\t",
    "shift+tab": "\x1b[Z",
    "escape": "\x1b",
    "up": "\x1b[A",
    "down": "\x1b[B",
    "right": "\x1b[C",
    "left": "\x1b[D",
    "home": "\x1b[H",
    "end": "\x1b[F",
    "pageup": "\x1b[5~",
    "pagedown": "\x1b[6~",
    "insert": "\x1b[2~",
    "delete": "\x1b[3~",
    "f1": "\x1bOP",
    "f2": "\x1bOQ",
    "f3": "\x1bOR",
    "f4": "\x1bOS",
    "f5": "\x1b[15~",
    "f6": "\x1b[17~",
    "f7": "\x1b[18~",
    "f8": "\x1b[19~",
    "f9": "\x1b[20~",
    "f10": "\x1b[21~",
    "f11": "\x1b[23~",
    "f12": "\x1b[24~",
}

_CTRL_PUNCT: dict[str, str] = {
    "ctrl+@": "\x00",
    "ctrl+space": "\x00",
    "ctrl+left_square_bracket": "\x1b",
    "ctrl+backslash": "\x1c",
    "ctrl+right_square_bracket": "\x1d",
    "ctrl+circumflex_accent": "\x1e",
    "ctrl+underscore": "\x1f",
}


def encode_key(key: str, character: str | None = None) -> str | None:
    """Return the input sequence for a key, or None if it has none.

    ``key`` is a Textual key name (``ctrl+a``, ``pageup``); ``character``
    is the printable character Textual reports, if any.
    """
    if key in _SPECIAL:
        return _SPECIAL[key]
    if key in _CTRL_PUNCT:
        return _CTRL_PUNCT[key]

    if key.startswith("ctrl+") and len(key) == 6 and key[-1].isalpha():
        return chr(ord(key[-1].lower()) - ord("a") + 1)

    if key.startswith("alt+"):
        inner = encode_key(key[4:], character)
        return "\x1b" + inner if inner else None

    if character and character.isprintable():
        return character
    if len(key) == 1 and key.isprintable():
        return key
    return None
