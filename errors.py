"""Error taxonomy shared by the loader, the VM and the pipeline."""


class IntcodeError(RuntimeError):
    """Base class for every failure raised by the Intcode machine."""

    pass


class MalformedProgram(IntcodeError, ValueError):
    """Raised when program source is empty or holds a non-integer token."""

    pass


class UnknownOpcode(IntcodeError):
    """Raised when the instruction word names no supported opcode."""

    def __init__(self, word: int, pointer: int) -> None:
        self.word = word
        self.pointer = pointer
        super().__init__(f"Unknown opcode {word} at address {pointer}")


class InvalidAddress(IntcodeError):
    """Raised for negative resolved addresses and immediate-mode write targets."""

    pass


class InputUnavailable(IntcodeError):
    """Raised when the input source fails or is exhausted."""

    pass


class NoOutputProduced(IntcodeError):
    """Raised by run_to_next_output when the program halts without output.

    This is the normal end of a pumped machine, not a fault.
    """

    pass


class MachineFaulted(IntcodeError):
    """Raised when a machine is run again after a fatal error."""

    pass


class StepLimitExceeded(IntcodeError):
    """Raised when a machine executes more instructions than configured."""

    pass
