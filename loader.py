"""Program loader: turns Intcode source text into initial memory words."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from errors import MalformedProgram

_INT_TOKEN = re.compile(r"[+-]?[0-9]+")


def parse_program(source: str) -> list[int]:
    """Parse a comma-separated list of integers.

    Whitespace around tokens and empty tokens are ignored. Raises
    MalformedProgram on a non-integer token or when nothing is left.
    """
    words: list[int] = []
    for pos, token in enumerate(source.split(",")):
        token = token.strip()
        if not token:
            continue
        if not _INT_TOKEN.fullmatch(token):
            msg = f"Invalid program token #{pos}: {token!r}"
            raise MalformedProgram(msg)
        words.append(int(token))
    if not words:
        msg = "Program source is empty"
        raise MalformedProgram(msg)
    logging.debug("Loader: parsed %d words", len(words))
    return words


def load_program(path: str | Path) -> list[int]:
    """Read and parse the first non-empty line of a program file."""
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                return parse_program(line)
    msg = f"Program file {p} is empty"
    raise MalformedProgram(msg)
