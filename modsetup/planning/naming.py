"""Filesystem-safe naming helpers shared by the layout planner."""

import re

from babel import Locale, UnknownLocaleError

MAX_SEGMENT_LENGTH = 255

RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)

_INVALID_FILE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

# CLDR placeholders, not cultures
PSEUDO_LOCALES = frozenset(["root", "und"])


def _is_reserved(name: str) -> bool:
    return name.split(".", 1)[0].upper() in RESERVED_NAMES


def clean_up_file_name(text: str) -> str:
    """
    Turn a type or namespace name into a filesystem-safe file name.

    Everything after the first ``:`` or generic-arity backtick is dropped;
    letters, digits, ``-`` and ``_`` are kept, single dots are kept and
    any other character becomes ``-``.

    Example:
        >>> clean_up_file_name("List`1")
        'List'
        >>> clean_up_file_name("Terraria.GameContent")
        'Terraria.GameContent'
        >>> clean_up_file_name("CON")
        'CON_'
    """
    for separator in (":", "`"):
        pos = text.find(separator)
        if pos > 0:
            text = text[:pos]
    text = text.strip()

    chars: list[str] = []
    for c in text:
        if c.isalnum() or c in "-_":
            chars.append(c)
        elif c == "." and chars and chars[-1] != ".":
            chars.append(".")
        else:
            chars.append("-")
        if len(chars) >= MAX_SEGMENT_LENGTH:
            break

    name = "".join(chars) or "-"
    if name == ".":
        return "_"
    if _is_reserved(name):
        return name + "_"
    return name


def escape_file_name(segment: str) -> str:
    """
    Escape one path segment of a resource name.

    Unlike ``clean_up_file_name`` this keeps the literal name and only
    replaces characters no filesystem accepts.
    """
    name = _INVALID_FILE_CHARS.sub("-", segment).strip().rstrip(".")
    if not name or name == "..":
        return "-"
    name = name[:MAX_SEGMENT_LENGTH]
    if _is_reserved(name):
        return name + "_"
    return name


def is_culture_name(tag: str) -> bool:
    """
    Check whether ``tag`` names a known culture (e.g. ``en-US``, ``de``).

    Example:
        >>> is_culture_name("en-US")
        True
        >>> is_culture_name("Strings")
        False
    """
    if not tag or not tag.replace("-", "").isalpha():
        return False
    if tag.split("-", 1)[0].lower() in PSEUDO_LOCALES:
        return False
    try:
        Locale.parse(tag, sep="-")
    except (ValueError, UnknownLocaleError):
        return False
    return True


def path_key(path: str) -> str:
    """Comparison key for case-insensitive path equality."""
    return path.replace("\\", "/").casefold()


def to_windows_path(path: str) -> str:
    """Render a planned POSIX path the way build descriptors expect it."""
    return path.replace("/", "\\")
