"""Tests for program source parsing."""

from __future__ import annotations

from pathlib import Path

import pytest
from errors import IntcodeError, MalformedProgram
from loader import load_program, parse_program


def test_parse_plain_program() -> None:
    assert parse_program("1,0,0,0,99") == [1, 0, 0, 0, 99]


def test_whitespace_and_empty_tokens_are_ignored() -> None:
    assert parse_program("  1, -2 ,,+3,\n") == [1, -2, 3]


def test_values_beyond_32_bits() -> None:
    assert parse_program("104,1125899906842624,99")[1] == 1125899906842624


@pytest.mark.parametrize("source", ["", " , ,\n", "1,two,3", "1.5,2", "1_000", "0x10"])
def test_malformed_sources(source: str) -> None:
    with pytest.raises(MalformedProgram):
        parse_program(source)


def test_malformed_program_is_an_intcode_error() -> None:
    assert issubclass(MalformedProgram, IntcodeError)
    assert issubclass(MalformedProgram, ValueError)


def test_load_program_uses_first_non_empty_line(tmp_path: Path) -> None:
    p = tmp_path / "prog.txt"
    p.write_text("\n3,0,4,0,99\n", encoding="utf-8")
    assert load_program(p) == [3, 0, 4, 0, 99]


def test_load_empty_file(tmp_path: Path) -> None:
    p = tmp_path / "empty.txt"
    p.write_text("\n\n", encoding="utf-8")
    with pytest.raises(MalformedProgram):
        load_program(str(p))
