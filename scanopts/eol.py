"""Print end-of-life date entries for Debian and Ubuntu releases."""

from __future__ import annotations

import re
import sys
from collections.abc import Iterable, Iterator
from datetime import date
from pathlib import Path

_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_ZERO = date(1, 1, 1)


def _parse_date(text: str) -> date:
    match = _DATE_RE.match(text)
    if match is None:
        return _ZERO
    try:
        return date(*(int(part) for part in match.groups()))
    except ValueError:
        return _ZERO


def _entry(name: str, year: int, month: int, day: int) -> str:
    return f'"{name}": time.Date({year}, {month}, {day}, 23, 59, 59, 0, time.UTC),'


def debian_eol(lines: Iterable[str]) -> Iterator[str]:
    """Yield one entry per Debian release line; unreleased ones get year 3000."""
    for line in lines:
        fields = line.rstrip("\n").split(",")
        if len(fields) < 6 and fields[0]:
            yield _entry(fields[0], 3000, 1, 1)
        elif len(fields) == 6:
            eol = _parse_date(fields[5])
            yield _entry(fields[0], eol.year, eol.month, eol.day)


def ubuntu_eol(lines: Iterable[str]) -> Iterator[str]:
    """Yield one entry per Ubuntu release line, keyed by the version number."""
    for line in lines:
        fields = line.rstrip("\n").split(",")
        eol = _parse_date(fields[-1])
        yield _entry(fields[0].split()[0], eol.year, eol.month, eol.day)


def main(argv: list[str] | None = None) -> int:
    """Print the entries read from ``data/debian.csv`` and ``data/ubuntu.csv``."""
    args = sys.argv[1:] if argv is None else argv
    data_dir = Path(args[0]) if args else Path("data")
    print("Debian")
    with open(data_dir / "debian.csv", encoding="utf-8") as f:
        for entry in debian_eol(f):
            print(entry)
    print("\nUbuntu")
    with open(data_dir / "ubuntu.csv", encoding="utf-8") as f:
        for entry in ubuntu_eol(f):
            print(entry)
    return 0