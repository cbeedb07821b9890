"""ISA: Intcode opcodes, parameter modes, instruction decoding and listing."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import IntEnum

from errors import UnknownOpcode


class OpCode(IntEnum):
    """Keeps opcodes from all operations."""

    ADD = 1  # p3 = p1 + p2
    MUL = 2  # p3 = p1 * p2
    INPUT = 3  # p1 = next input
    OUTPUT = 4  # output p1
    JUMP_IF_TRUE = 5  # if p1 != 0: IP = p2
    JUMP_IF_FALSE = 6  # if p1 == 0: IP = p2
    LESS_THAN = 7  # p3 = p1 < p2
    EQUALS = 8  # p3 = p1 == p2
    ADJUST_BASE = 9  # RB += p1
    HALT = 99


class ParameterMode(IntEnum):
    """How a parameter's raw data maps to an operand."""

    POSITION = 0
    IMMEDIATE = 1
    RELATIVE = 2


ARITY: dict[OpCode, int] = {
    OpCode.ADD: 3,
    OpCode.MUL: 3,
    OpCode.INPUT: 1,
    OpCode.OUTPUT: 1,
    OpCode.JUMP_IF_TRUE: 2,
    OpCode.JUMP_IF_FALSE: 2,
    OpCode.LESS_THAN: 3,
    OpCode.EQUALS: 3,
    OpCode.ADJUST_BASE: 1,
    OpCode.HALT: 0,
}

JUMPS = (OpCode.JUMP_IF_TRUE, OpCode.JUMP_IF_FALSE)
COMPARISONS = (OpCode.LESS_THAN, OpCode.EQUALS)


@dataclass(frozen=True)
class Parameter:
    """Raw parameter word together with its addressing mode."""

    data: int
    mode: ParameterMode


@dataclass(frozen=True)
class Instruction:
    """Decoded instruction: opcode, parameters and the word it came from."""

    opcode: OpCode
    parameters: tuple[Parameter, ...]
    word: int

    @property
    def size(self) -> int:
        return len(self.parameters) + 1


def jump_taken(opcode: OpCode, value: int) -> bool:
    """Evaluate the predicate of a conditional jump."""
    if opcode == OpCode.JUMP_IF_TRUE:
        return value != 0
    if opcode == OpCode.JUMP_IF_FALSE:
        return value == 0
    err = f"{opcode.name} is not a jump"
    raise ValueError(err)


def compare(opcode: OpCode, a: int, b: int) -> int:
    """Evaluate a comparison opcode, returning 1 or 0."""
    if opcode == OpCode.LESS_THAN:
        return 1 if a < b else 0
    if opcode == OpCode.EQUALS:
        return 1 if a == b else 0
    err = f"{opcode.name} is not a comparison"
    raise ValueError(err)


def _mode_of(digit: int) -> ParameterMode:
    try:
        return ParameterMode(digit)
    except ValueError:
        # unknown mode digits decode as position mode
        return ParameterMode.POSITION


def decode_opcode(word: int, pointer: int = 0) -> OpCode:
    """Return the OpCode of an instruction word.

    Raises UnknownOpcode for negative words and unsupported low digits.
    """
    if word < 0:
        raise UnknownOpcode(word, pointer)
    try:
        return OpCode(word % 100)
    except ValueError as e:
        raise UnknownOpcode(word, pointer) from e


def decode_instr(read: Callable[[int], int], pointer: int) -> Instruction:
    """Decode the instruction at `pointer`.

    `read` returns the memory word at an address (0 past the end). The
    parameter words following the opcode are read here, before anything
    is executed. Mode digits beyond the opcode's arity are ignored.
    """
    word = read(pointer)
    opcode = decode_opcode(word, pointer)
    modes = word // 100
    params: list[Parameter] = []
    for i in range(ARITY[opcode]):
        params.append(Parameter(read(pointer + 1 + i), _mode_of(modes % 10)))
        modes //= 10
    return Instruction(opcode, tuple(params), word)


def _format_param(param: Parameter) -> str:
    if param.mode == ParameterMode.IMMEDIATE:
        return str(param.data)
    if param.mode == ParameterMode.RELATIVE:
        return f"[rb{param.data:+d}]"
    return f"[{param.data}]"


def mnemonic(instr: Instruction) -> str:
    """Get operation mnemonic."""
    if not instr.parameters:
        return instr.opcode.name
    args = ", ".join(_format_param(p) for p in instr.parameters)
    return f"{instr.opcode.name} {args}"


def disassemble(words: Sequence[int]) -> list[str]:
    """Produce a linear listing of `words`.

    Each line reads "<addr> - <raw words> - <mnemonic>". Words that do not
    decode are listed one at a time as DATA.
    """

    def read(addr: int) -> int:
        return words[addr] if 0 <= addr < len(words) else 0

    lines: list[str] = []
    pc = 0
    while pc < len(words):
        try:
            instr = decode_instr(read, pc)
        except UnknownOpcode:
            lines.append(f"{pc} - {words[pc]} - DATA {words[pc]}")
            pc += 1
            continue
        raw = ",".join(str(read(pc + i)) for i in range(instr.size))
        lines.append(f"{pc} - {raw} - {mnemonic(instr)}")
        pc += instr.size
    return lines
