"""Amplifier pipelines: several machines chained in a line or in a ring.

In a feedback ring every machine runs on its own worker thread and talks
to its neighbours only through Channels (one per directed edge):

    orchestrator -> ch0 -> M0 -> ch1 -> M1 -> ... -> chN -> orchestrator
                     ^                                        |
                     +-------------- fed back ----------------+

Each worker pumps its machine with run_to_next_output and forwards every
value. The ring is done when the last machine halts and closes chN.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from collections.abc import Sequence
from typing import Any

from config import load_config
from errors import InputUnavailable, IntcodeError, NoOutputProduced
from processor import ControlUnit, Datapath, run_source


class ChannelClosed(Exception):
    """Raised by Channel.recv once the channel is closed and drained."""

    pass


class Channel:
    """Ordered, blocking, single-producer/single-consumer channel.

    `capacity` 0 means unbounded. Sends on a closed channel are dropped
    and reported by returning False; receives drain what is buffered and
    then raise ChannelClosed.
    """

    def __init__(self, name: str, capacity: int = 0) -> None:
        self.name = name
        self.capacity = capacity
        self._items: deque[int] = deque()
        self._closed = False
        self._cond = threading.Condition()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def send(self, value: int) -> bool:
        with self._cond:
            while not self._closed and self.capacity and len(self._items) >= self.capacity:
                self._cond.wait()
            if self._closed:
                return False
            self._items.append(value)
            self._cond.notify_all()
            return True

    def recv(self) -> int:
        with self._cond:
            while not self._items and not self._closed:
                self._cond.wait()
            if not self._items:
                err = f"Channel {self.name} is closed"
                raise ChannelClosed(err)
            value = self._items.popleft()
            self._cond.notify_all()
            return value

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


class AmplifierWorker(threading.Thread):
    """Thread pumping one machine between an inbound and an outbound channel."""

    def __init__(
        self,
        index: int,
        cu: ControlUnit,
        inbound: Channel,
        outbound: Channel,
        shutdown: threading.Event,
    ) -> None:
        super().__init__(name=f"amp-{index}", daemon=True)
        self.cu = cu
        self.inbound = inbound
        self.outbound = outbound
        self.shutdown = shutdown
        self.sent: list[int] = []
        self.error: IntcodeError | None = None
        cu.set_input(self._receive)

    def _receive(self, ordinal: int) -> int:
        try:
            return self.inbound.recv()
        except ChannelClosed as e:
            msg = f"{self.name}: input #{ordinal} unavailable, {e}"
            raise InputUnavailable(msg) from e

    def run(self) -> None:
        logging.debug("%s: started", self.name)
        try:
            while True:
                try:
                    value = self.cu.run_to_next_output()
                except NoOutputProduced:
                    break
                self.sent.append(value)
                # the next stage may already be gone at the end of the ring
                if not self.outbound.send(value):
                    logging.debug("%s: dropped %s, %s is closed", self.name, value, self.outbound.name)
        except InputUnavailable as e:
            if self.shutdown.is_set():
                logging.debug("%s: stopped by shutdown while waiting for input", self.name)
            else:
                self.error = e
                logging.debug("%s: fault: %s", self.name, e)
        except IntcodeError as e:
            self.error = e
            logging.debug("%s: fault: %s", self.name, e)
        finally:
            self.inbound.close()
            self.outbound.close()
            logging.debug("%s: exit, state %s, %d outputs", self.name, self.cu.state.value, len(self.sent))


def _raise_worker_error(workers: Sequence[AmplifierWorker]) -> None:
    errors = [w.error for w in workers if w.error is not None]
    if not errors:
        return
    # starved neighbours fail with InputUnavailable; report the root cause
    for err in errors:
        if not isinstance(err, InputUnavailable):
            raise err
    raise errors[0]


class FeedbackPipeline:
    """Ring of machines, one worker thread each. Runs once."""

    def __init__(self, programs: Sequence[Sequence[int]], config: dict[str, Any] | None = None) -> None:
        if not programs:
            err = "A pipeline needs at least one program"
            raise ValueError(err)
        cfg = load_config(config)
        n = len(programs)
        self.channels = [Channel(f"ch{i}", cfg["channel_capacity"]) for i in range(n + 1)]
        self.machines = [ControlUnit.from_config(Datapath(words), cfg) for words in programs]
        self.shutdown = threading.Event()
        self.workers = [
            AmplifierWorker(i, cu, self.channels[i], self.channels[i + 1], self.shutdown)
            for i, cu in enumerate(self.machines)
        ]
        self.received: list[int] = []
        self._started = False

    def run(self, signal: int = 0, preload: Sequence[Sequence[int]] = ()) -> list[int]:
        """Start the ring and return every value the last machine produced.

        `preload[i]` values are queued on machine i's input before any
        worker starts, so each machine reads them ahead of upstream output.
        `signal` is then fed to the first machine.
        """
        if self._started:
            err = "FeedbackPipeline can only run once"
            raise RuntimeError(err)
        for ch, values in zip(self.channels, preload):
            if ch.capacity and len(values) > ch.capacity:
                err = f"{len(values)} preloaded values do not fit {ch.name} (capacity {ch.capacity})"
                raise ValueError(err)
        self._started = True

        feed, result = self.channels[0], self.channels[-1]
        for ch, values in zip(self.channels, preload):
            for v in values:
                ch.send(v)
        for w in self.workers:
            w.start()
        feed.send(signal)

        while True:
            try:
                value = result.recv()
            except ChannelClosed:
                break
            self.received.append(value)
            if not feed.send(value):
                logging.debug("Pipeline: dropped %s, %s is closed", value, feed.name)

        self.shutdown.set()
        for ch in self.channels:
            ch.close()
        for w in self.workers:
            w.join()
        logging.debug("Pipeline: finished with %d values", len(self.received))

        _raise_worker_error(self.workers)
        return list(self.received)


def run_feedback_loop(
    words: Sequence[int],
    phases: Sequence[int],
    signal: int = 0,
    config: dict[str, Any] | None = None,
) -> int:
    """Run one copy of `words` per phase in a feedback ring; return the final signal."""
    pipeline = FeedbackPipeline([words] * len(phases), config)
    received = pipeline.run(signal, [[p] for p in phases])
    if not received:
        err = "Feedback loop produced no output"
        raise NoOutputProduced(err)
    return received[-1]


def run_serial_chain(
    words: Sequence[int],
    phases: Sequence[int],
    signal: int = 0,
    config: dict[str, Any] | None = None,
) -> int:
    """Feed `signal` through one machine per phase, each run to completion."""
    for i, phase in enumerate(phases):
        out, _ = run_source(words, [phase, signal], config)
        if not out:
            err = f"Amplifier {i} (phase {phase}) produced no output"
            raise NoOutputProduced(err)
        signal = out[0]
    return signal


def best_phase_setting(
    words: Sequence[int],
    phase_values: Sequence[int],
    feedback: bool = False,
    config: dict[str, Any] | None = None,
) -> tuple[int, tuple[int, ...]]:
    """Try every ordering of `phase_values`; return the best (signal, phases)."""
    if not phase_values:
        err = "No phase values given"
        raise ValueError(err)
    run = run_feedback_loop if feedback else run_serial_chain
    best: tuple[int, tuple[int, ...]] | None = None
    for phases in itertools.permutations(phase_values):
        signal = run(words, phases, config=config)
        if best is None or signal > best[0]:
            best = (signal, phases)
    logging.debug("Pipeline: best signal %s with phases %s", best[0], best[1])
    return best
