"""
Request tokenizer and argument parsers.

Arguments are separated by whitespace; an argument in double quotes may
contain spaces, with backslash escaping the next character. Every parser
raises ArgError with the message clients expect for that kind of value.
"""

from typing import Optional

from .errors import ArgError

WHITESPACE = " \t"


def tokenize(line: str) -> list[str]:
    """Split a request line into verb and arguments.

    Raises:
        ArgError: on an unterminated quote or garbage after a quoted argument
    """
    tokens: list[str] = []
    i, length = 0, len(line)

    while i < length:
        if line[i] in WHITESPACE:
            i += 1
            continue

        if line[i] == '"':
            i += 1
            chars = []
            while True:
                if i >= length:
                    raise ArgError("Missing closing '\"'")
                ch = line[i]
                if ch == "\\":
                    i += 1
                    if i >= length:
                        raise ArgError("Missing closing '\"'")
                    chars.append(line[i])
                elif ch == '"':
                    i += 1
                    break
                else:
                    chars.append(ch)
                i += 1
            if i < length and line[i] not in WHITESPACE:
                raise ArgError("Space expected after closing '\"'")
            tokens.append("".join(chars))
        else:
            start = i
            while i < length and line[i] not in WHITESPACE:
                i += 1
            tokens.append(line[start:i])

    return tokens


def parse_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ArgError(f"Integer expected: {value}") from None


def parse_uint(value: str) -> int:
    number = parse_int(value)
    if number < 0:
        raise ArgError(f"Number is negative: {value}")
    return number


def parse_bool(value: str) -> bool:
    if value not in ("0", "1"):
        raise ArgError(f"Boolean (0/1) expected: {value}")
    return value == "1"


def parse_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise ArgError(f"Float expected: {value}") from None
    if number != number or number in (float("inf"), float("-inf")):
        raise ArgError(f"Float expected: {value}")
    return number


def parse_range(value: str) -> tuple[int, Optional[int]]:
    """Parse `N`, `N:M` or `N:` into a half-open (start, end) pair.

    A bare `N` means the single position N; `N:` runs to the end (None).
    """
    if ":" not in value:
        start = parse_uint(value)
        return start, start + 1

    head, tail = value.split(":", 1)
    start = parse_uint(head) if head else 0
    if not tail:
        return start, None
    end = parse_uint(tail)
    if end < start:
        raise ArgError(f"Malformed range: {value}")
    return start, end


def parse_time_range(value: str) -> tuple[Optional[float], Optional[float]]:
    """Parse `START:END` seconds for `rangeid`; either side may be empty."""
    if ":" not in value:
        raise ArgError(f"Malformed range: {value}")
    head, tail = value.split(":", 1)
    start = parse_float(head) if head else None
    end = parse_float(tail) if tail else None
    if (start is not None and start < 0) or (end is not None and end < 0):
        raise ArgError(f"Malformed range: {value}")
    if start is not None and end is not None and end <= start:
        raise ArgError(f"Malformed range: {value}")
    return start, end


def parse_priority(value: str) -> int:
    priority = parse_int(value)
    if not 0 <= priority <= 255:
        raise ArgError(f"Priority out of range: {value}")
    return priority


def parse_volume(value: str) -> int:
    volume = parse_int(value)
    if not 0 <= volume <= 100:
        raise ArgError("Invalid volume value")
    return volume


def parse_seek_time(value: str) -> tuple[float, bool]:
    """Parse a seekcur time: a leading sign makes it relative."""
    relative = value[:1] in ("+", "-")
    seconds = parse_float(value)
    if not relative and seconds < 0:
        raise ArgError(f"Negative seek time: {value}")
    return seconds, relative


def parse_filters(args: list[str]) -> list[tuple[str, str]]:
    """Parse legacy `TAG VALUE [TAG VALUE ...]` filter pairs.

    Tags are case-insensitive; `file`, `base` and `any` are accepted besides
    the song tags.
    """
    from minion_mpd.domain.library import TAG_FIELDS

    if not args or len(args) % 2:
        raise ArgError("Incorrect number of filter arguments")

    known = {name.lower() for name in TAG_FIELDS} | {"file", "base", "any"}
    filters = []
    for tag, value in zip(args[::2], args[1::2]):
        if tag.lower() not in known:
            raise ArgError(f"Unknown filter type: {tag}")
        filters.append((tag.lower(), value))
    return filters
