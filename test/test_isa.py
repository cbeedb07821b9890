"""Tests for instruction decoding, predicates and the disassembler."""

from __future__ import annotations

import pytest
from errors import UnknownOpcode
from isa import (
    ARITY,
    Instruction,
    OpCode,
    Parameter,
    ParameterMode,
    compare,
    decode_instr,
    decode_opcode,
    disassemble,
    jump_taken,
    mnemonic,
)


def _reader(words: list[int]):
    def read(addr: int) -> int:
        return words[addr] if addr < len(words) else 0

    return read


def test_modes_read_least_significant_digit_first() -> None:
    instr = decode_instr(_reader([1002, 4, 3, 4]), 0)
    assert instr.opcode == OpCode.MUL
    assert [p.mode for p in instr.parameters] == [
        ParameterMode.POSITION,
        ParameterMode.IMMEDIATE,
        ParameterMode.POSITION,
    ]
    assert [p.data for p in instr.parameters] == [4, 3, 4]
    assert instr.size == 4


def test_relative_mode_and_missing_digits_default_to_position() -> None:
    instr = decode_instr(_reader([0, 0, 21101, 70, 7, 5]), 2)
    assert instr.opcode == OpCode.ADD
    assert [p.mode for p in instr.parameters] == [
        ParameterMode.IMMEDIATE,
        ParameterMode.IMMEDIATE,
        ParameterMode.RELATIVE,
    ]


def test_extra_mode_digits_beyond_arity_are_ignored() -> None:
    instr = decode_instr(_reader([11104, 7]), 0)
    assert instr.opcode == OpCode.OUTPUT
    assert instr.parameters == (Parameter(7, ParameterMode.IMMEDIATE),)


def test_unknown_mode_digit_decodes_as_position() -> None:
    instr = decode_instr(_reader([904, 3]), 0)
    assert instr.parameters[0].mode == ParameterMode.POSITION


def test_parameters_past_the_end_read_as_zero() -> None:
    instr = decode_instr(_reader([1101]), 0)
    assert [p.data for p in instr.parameters] == [0, 0, 0]


@pytest.mark.parametrize("opcode", list(OpCode))
def test_arity_table_covers_every_opcode(opcode: OpCode) -> None:
    instr = decode_instr(_reader([int(opcode), 1, 2, 3]), 0)
    assert len(instr.parameters) == ARITY[opcode]


@pytest.mark.parametrize("word", [0, 10, 42, 98, 100, -1, -99])
def test_unknown_opcodes(word: int) -> None:
    with pytest.raises(UnknownOpcode) as exc:
        decode_opcode(word, 17)
    assert exc.value.pointer == 17
    assert exc.value.word == word


def test_predicates() -> None:
    assert jump_taken(OpCode.JUMP_IF_TRUE, 5)
    assert not jump_taken(OpCode.JUMP_IF_TRUE, 0)
    assert jump_taken(OpCode.JUMP_IF_FALSE, 0)
    assert not jump_taken(OpCode.JUMP_IF_FALSE, -3)
    assert compare(OpCode.LESS_THAN, -2, 1) == 1
    assert compare(OpCode.LESS_THAN, 1, 1) == 0
    assert compare(OpCode.EQUALS, 8, 8) == 1
    assert compare(OpCode.EQUALS, 8, 9) == 0
    with pytest.raises(ValueError):
        jump_taken(OpCode.ADD, 1)
    with pytest.raises(ValueError):
        compare(OpCode.HALT, 1, 1)


def test_mnemonic() -> None:
    instr = Instruction(
        OpCode.LESS_THAN,
        (
            Parameter(3, ParameterMode.POSITION),
            Parameter(-4, ParameterMode.IMMEDIATE),
            Parameter(-2, ParameterMode.RELATIVE),
        ),
        1007,
    )
    assert mnemonic(instr) == "LESS_THAN [3], -4, [rb-2]"
    assert mnemonic(Instruction(OpCode.HALT, (), 99)) == "HALT"


def test_disassemble_lists_data_words_one_by_one() -> None:
    assert disassemble([3, 0, 4, 0, 99, 7, 1105, 1]) == [
        "0 - 3,0 - INPUT [0]",
        "2 - 4,0 - OUTPUT [0]",
        "4 - 99 - HALT",
        "5 - 7,1105,1,0 - LESS_THAN [1105], [1], [0]",
    ]
    assert disassemble([42, -5]) == ["0 - 42 - DATA 42", "1 - -5 - DATA -5"]
