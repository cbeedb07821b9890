"""Processor (Datapath + ControlUnit) and CLI wrapper.

The Datapath owns the machine state: a growable memory, the instruction
pointer, the relative base and the I/O adapter. The ControlUnit runs the
fetch-decode-execute loop and the suspend/resume state machine:

    IDLE -> RUNNING -> (PAUSED <-> RUNNING) -> HALTED

`run_to_completion` runs until halt. `run_to_next_output` stops right
after the next output so that a driver can pump several machines.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any

from config import ConfigError, load_config
from errors import (
    InputUnavailable,
    IntcodeError,
    InvalidAddress,
    MachineFaulted,
    MalformedProgram,
    NoOutputProduced,
    StepLimitExceeded,
)
from isa import (
    COMPARISONS,
    JUMPS,
    Instruction,
    OpCode,
    Parameter,
    ParameterMode,
    compare,
    decode_instr,
    disassemble,
    jump_taken,
    mnemonic,
)
from loader import load_program, parse_program

LOGFILE = "processor.log"

InputSource = Callable[[int], int]


def init_logging(logfile: str = LOGFILE, debug: bool = False, console: bool = False) -> None:
    """Configure root logger to write to `logfile`.

    If debug=True set DEBUG level. If console=True also echo logs to stderr.
    In debug mode the compact format has no timestamp, so entries look like:
        DEBUG root:processor.py:301 ControlUnit: HALT at 8
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    lvl = logging.DEBUG if debug else logging.CRITICAL
    root.setLevel(lvl)

    if debug:
        file_fmt = "%(levelname)s %(name)s:%(filename)s:%(lineno)d %(message)s"
    else:
        file_fmt = "%(levelname)-5s %(message)s"

    fh = logging.FileHandler(logfile, mode="w", encoding="utf-8")
    fh.setLevel(lvl)
    fh.setFormatter(logging.Formatter(file_fmt))
    root.addHandler(fh)

    if debug and console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(lvl)
        ch.setFormatter(logging.Formatter("%(levelname)5s %(message)s"))
        root.addHandler(ch)


def close_logging() -> None:
    """Flush and detach every root handler installed by init_logging."""
    root = logging.getLogger()
    for h in list(root.handlers):
        h.flush()
        h.close()
        root.removeHandler(h)
    root.setLevel(logging.WARNING)


# --- input sources ---
def stdin_input(ordinal: int) -> int:
    """Default input source: read one integer per line from stdin."""
    line = sys.stdin.readline()
    if not line:
        msg = f"Invalid input #{ordinal}: standard input is closed"
        raise InputUnavailable(msg)
    try:
        return int(line.strip())
    except ValueError as e:
        msg = f"Invalid input #{ordinal}: not a number: {line.strip()!r}"
        raise InputUnavailable(msg) from e


def list_input(values: Sequence[int]) -> InputSource:
    """Input source answering the n-th request with values[n]."""
    fixed = [int(v) for v in values]

    def source(ordinal: int) -> int:
        if ordinal < len(fixed):
            return fixed[ordinal]
        msg = f"Too many inputs: #{ordinal} requested, {len(fixed)} available"
        raise InputUnavailable(msg)

    return source


def constant_input(value: int) -> InputSource:
    """Input source answering every request with the same value."""

    def source(ordinal: int) -> int:
        return value

    return source


class Memory:
    """Linear address space that grows with zero-fill on write.

    Reads past the end return 0. Negative addresses raise InvalidAddress.
    """

    words: list[int]

    def __init__(self, words: Sequence[int] = ()) -> None:
        self.words = [int(w) for w in words]

    def __len__(self) -> int:
        return len(self.words)

    def _check(self, addr: int) -> None:
        if addr < 0:
            err = f"Negative address {addr}"
            raise InvalidAddress(err)

    def read(self, addr: int) -> int:
        self._check(addr)
        if addr >= len(self.words):
            return 0
        return self.words[addr]

    def write(self, addr: int, value: int) -> None:
        self._check(addr)
        gap = addr - len(self.words)
        if gap >= 0:
            # zero-fill up to addr, then append the value itself
            self.words.extend([0] * gap)
            self.words.append(int(value))
            logging.debug("Memory: grew to %d words", len(self.words))
        else:
            self.words[addr] = int(value)


class Datapath:
    """Datapath (memory + registers + I/O adapter) for one machine."""

    memory: Memory
    IP: int  # instruction pointer
    RB: int  # relative base
    input_source: InputSource
    input_count: int
    output: list[int]

    def __init__(self, words: Sequence[int], input_source: InputSource | None = None) -> None:
        """Load `words` at address 0; the stdin adapter is the default input."""
        self.memory = Memory(words)
        self.IP = 0
        self.RB = 0
        self.input_source = input_source if input_source is not None else stdin_input
        self.input_count = 0
        self.output = []

    def patch(self, address: int, value: int) -> None:
        """Overwrite one memory cell, growing memory if needed."""
        self.memory.write(address, value)

    def peek(self, address: int) -> int:
        return self.memory.read(address)

    def set_input(self, input_source: InputSource) -> None:
        self.input_source = input_source

    def request_input(self) -> int:
        """Ask the input source for the next value.

        The input cursor advances even when the source fails.
        """
        ordinal = self.input_count
        self.input_count += 1
        try:
            value = int(self.input_source(ordinal))
        except InputUnavailable:
            raise
        except Exception as e:
            msg = f"Input source failed on request #{ordinal}: {e}"
            raise InputUnavailable(msg) from e
        logging.debug("Datapath: input #%d -> %s", ordinal, value)
        return value

    def value_of(self, param: Parameter) -> int:
        """Resolve a parameter to the operand it denotes."""
        if param.mode == ParameterMode.IMMEDIATE:
            return param.data
        if param.mode == ParameterMode.RELATIVE:
            return self.memory.read(self.RB + param.data)
        return self.memory.read(param.data)

    def address_of(self, param: Parameter) -> int:
        """Resolve a parameter used as write target to an absolute address."""
        if param.mode == ParameterMode.IMMEDIATE:
            err = f"Immediate-mode write target {param.data}"
            raise InvalidAddress(err)
        addr = self.RB + param.data if param.mode == ParameterMode.RELATIVE else param.data
        if addr < 0:
            err = f"Negative write address {addr} (data {param.data}, RB {self.RB})"
            raise InvalidAddress(err)
        return addr


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    HALTED = "halted"


class ControlUnit:
    """Control unit implementing the FETCH-DECODE-EXEC loop for the Datapath."""

    dp: Datapath
    state: RunState
    steps: int
    step_limit: int | None
    trace: bool
    fault: IntcodeError | None

    def __init__(self, dp: Datapath, step_limit: int | None = None, trace: bool = False) -> None:
        """Create a ControlUnit bound to `dp`, in the IDLE state."""
        self.dp = dp
        self.state = RunState.IDLE
        self.steps = 0
        self.step_limit = step_limit
        self.trace = trace
        self.fault = None

    @classmethod
    def from_config(cls, dp: Datapath, config: dict[str, Any] | None = None) -> ControlUnit:
        cfg = load_config(config)
        return cls(dp, step_limit=cfg["step_limit"], trace=cfg["trace"])

    def is_running(self) -> bool:
        return self.state in (RunState.RUNNING, RunState.PAUSED)

    def _log_step(self, pc: int, instr: Instruction) -> None:
        if not self.trace:
            return
        logging.debug(
            "STATE: %-8s STEP: %6d IP: %5d RB: %5d INSTR: %s",
            self.state.value.upper(),
            self.steps,
            pc,
            self.dp.RB,
            mnemonic(instr),
        )

    def _begin(self) -> None:
        if self.fault is not None:
            err = f"Machine faulted earlier: {self.fault}"
            raise MachineFaulted(err) from self.fault
        if self.state == RunState.IDLE:
            self.dp.IP = 0
            logging.debug("ControlUnit: IDLE -> RUNNING")
        elif self.state == RunState.PAUSED:
            logging.debug("ControlUnit: resume at IP %d", self.dp.IP)
        self.state = RunState.RUNNING

    def step(self) -> bool:
        """Execute one instruction; return False once the program has halted."""
        if self.state == RunState.HALTED:
            return False
        if self.fault is not None:
            err = f"Machine faulted earlier: {self.fault}"
            raise MachineFaulted(err) from self.fault
        if self.state == RunState.IDLE:
            self.state = RunState.RUNNING
        try:
            return self._execute()
        except IntcodeError as e:
            self.fault = e
            logging.debug("ControlUnit: fault at IP %d after %d steps: %s", self.dp.IP, self.steps, e)
            raise

    def _execute(self) -> bool:  # noqa: C901
        dp = self.dp
        if self.step_limit is not None and self.steps >= self.step_limit:
            err = f"Step limit {self.step_limit} reached at IP {dp.IP}"
            raise StepLimitExceeded(err)

        pc = dp.IP
        instr = decode_instr(dp.memory.read, pc)
        # default advance; taken jumps overwrite it below
        dp.IP = pc + instr.size
        self.steps += 1
        self._log_step(pc, instr)

        opcode = instr.opcode
        p = instr.parameters

        if opcode == OpCode.ADD:
            a, b = dp.value_of(p[0]), dp.value_of(p[1])
            dp.memory.write(dp.address_of(p[2]), a + b)
        elif opcode == OpCode.MUL:
            a, b = dp.value_of(p[0]), dp.value_of(p[1])
            dp.memory.write(dp.address_of(p[2]), a * b)
        elif opcode == OpCode.INPUT:
            value = dp.request_input()
            dp.memory.write(dp.address_of(p[0]), value)
        elif opcode == OpCode.OUTPUT:
            value = dp.value_of(p[0])
            dp.output.append(value)
            logging.debug("ControlUnit: output %s", value)
        elif opcode in JUMPS:
            if jump_taken(opcode, dp.value_of(p[0])):
                target = dp.value_of(p[1])
                if target < 0:
                    err = f"Jump to negative address {target} at IP {pc}"
                    raise InvalidAddress(err)
                dp.IP = target
        elif opcode in COMPARISONS:
            a, b = dp.value_of(p[0]), dp.value_of(p[1])
            dp.memory.write(dp.address_of(p[2]), compare(opcode, a, b))
        elif opcode == OpCode.ADJUST_BASE:
            dp.RB += dp.value_of(p[0])
        elif opcode == OpCode.HALT:
            self.state = RunState.HALTED
            logging.debug("ControlUnit: HALT at %d after %d steps", pc, self.steps)
            return False
        return True

    def run_to_completion(self) -> list[int]:
        """Run until halt and return the whole output log."""
        if self.state == RunState.HALTED:
            return list(self.dp.output)
        self._begin()
        while self.step():
            pass
        return list(self.dp.output)

    def run_to_next_output(self) -> int:
        """Run until the next output, then pause and return it.

        Raises NoOutputProduced if the program halts first, and on every
        call once the machine is halted.
        """
        if self.state == RunState.HALTED:
            err = "Machine is halted"
            raise NoOutputProduced(err)
        self._begin()
        mark = len(self.dp.output)
        while self.step():
            if len(self.dp.output) > mark:
                self.state = RunState.PAUSED
                return self.dp.output[mark]
        err = "Machine halted without producing output"
        raise NoOutputProduced(err)

    # convenience pass-throughs to the datapath
    def patch(self, address: int, value: int) -> None:
        self.dp.patch(address, value)

    def peek(self, address: int) -> int:
        return self.dp.peek(address)

    def set_input(self, input_source: InputSource) -> None:
        self.dp.set_input(input_source)

    @property
    def output(self) -> list[int]:
        return list(self.dp.output)


def build_machine(
    program: str | Sequence[int],
    inputs: Sequence[int] | InputSource | None = None,
    config: dict[str, Any] | None = None,
) -> ControlUnit:
    """Create an IDLE machine from source text or words.

    `inputs` may be a list of values, an input callback or None (stdin).
    """
    words = parse_program(program) if isinstance(program, str) else program
    if inputs is None or callable(inputs):
        source = inputs
    else:
        source = list_input(inputs)
    return ControlUnit.from_config(Datapath(words, source), config)


def run_source(
    program: str | Sequence[int],
    inputs: Sequence[int] | InputSource | None = None,
    config: dict[str, Any] | None = None,
) -> tuple[list[int], ControlUnit]:
    """Run a program to completion; return its outputs and the machine."""
    cu = build_machine(program, inputs, config)
    out = cu.run_to_completion()
    return out, cu


# ---------- CLI ----------
def _parse_patch(text: str) -> tuple[int, int]:
    addr, sep, value = text.partition("=")
    if not sep:
        err = f"Bad patch {text!r}: expected ADDR=VALUE"
        raise ValueError(err)
    return int(addr), int(value)


def _run_amplifiers(words: list[int], args: argparse.Namespace, cfg: dict[str, Any]) -> int:
    from pipeline import best_phase_setting, run_feedback_loop, run_serial_chain

    try:
        phases = parse_program(args.phases)
    except MalformedProgram as e:
        print("Bad phases:", e, file=sys.stderr)
        return 2

    if args.search:
        signal, best = best_phase_setting(words, phases, feedback=args.feedback, config=cfg)
        print(f"Best signal: {signal}")
        print("Phases: " + ",".join(str(v) for v in best))
    elif args.feedback:
        print(f"Signal: {run_feedback_loop(words, phases, config=cfg)}")
    else:
        print(f"Signal: {run_serial_chain(words, phases, config=cfg)}")
    return 0


def main(argv: list[str] | None = None) -> int:  # noqa: C901
    """Command line entry point; returns the process exit code."""
    ap = argparse.ArgumentParser(
        description="Intcode VM runner. PROGRAM is a file holding one line of comma-separated integers. "
        "Without --input, inputs are read from stdin, one integer per line."
    )
    ap.add_argument("program", help="program file")
    ap.add_argument("--input", dest="inputs", type=int, action="append", metavar="N", help="input value (repeatable)")
    ap.add_argument("--patch", action="append", default=[], metavar="ADDR=VALUE", help="patch memory before running")
    ap.add_argument("--peek", type=int, action="append", default=[], metavar="ADDR", help="print memory cell after run")
    ap.add_argument("--listing", action="store_true", help="print a disassembly and exit")
    ap.add_argument("--phases", default=None, help="comma-separated phase settings: run an amplifier chain")
    ap.add_argument("--feedback", action="store_true", help="wire amplifiers in a feedback ring (with --phases)")
    ap.add_argument("--search", action="store_true", help="try every ordering of --phases, print the best")
    ap.add_argument("--config", help="path to yaml config", default=None)

    help_debug = "enable debug logging to logfile."
    help_logfile = "path to processor log"
    help_console = "also echo logs to console (only when --debug)"
    ap.add_argument("--debug", action="store_true", help=help_debug)
    ap.add_argument("--logfile", default=LOGFILE, help=help_logfile)
    ap.add_argument("--console", action="store_true", help=help_console)
    args = ap.parse_args(argv)

    init_logging(logfile=args.logfile, debug=args.debug, console=args.console)
    try:
        try:
            cfg = load_config(args.config)
        except ConfigError as e:
            print("Bad config:", e, file=sys.stderr)
            return 2

        try:
            words = load_program(args.program)
        except OSError as e:
            print("Cannot read program file:", e, file=sys.stderr)
            return 2
        except MalformedProgram as e:
            print("Bad program:", e, file=sys.stderr)
            return 2

        if args.listing:
            print("\n".join(disassemble(words)))
            return 0

        try:
            if args.phases is not None:
                return _run_amplifiers(words, args, cfg)

            try:
                patches = [_parse_patch(p) for p in args.patch]
            except ValueError as e:
                print(e, file=sys.stderr)
                return 2

            cu = build_machine(words, args.inputs, cfg)
            for addr, value in patches:
                cu.patch(addr, value)
            out = cu.run_to_completion()
            peeks = [(addr, cu.peek(addr)) for addr in args.peek]
        except IntcodeError as e:
            logging.debug("CLI: run failed: %s", e)
            print(f"VM error ({type(e).__name__}): {e}", file=sys.stderr)
            return 1

        sys.stdout.write(",".join(str(v) for v in out))
        sys.stdout.write("\n")
        for addr, value in peeks:
            sys.stdout.write(f"[{addr}] = {value}\n")
        sys.stdout.write("STEPS: " + str(cu.steps))
        sys.stdout.write("\n")
        return 0
    finally:
        close_logging()


if __name__ == "__main__":
    sys.exit(main())
