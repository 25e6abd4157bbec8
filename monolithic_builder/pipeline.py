"""Finite state machine base for the orchestrators.

Subclasses declare a transition table and one handler per state; each
handler performs its step and returns the next state. The machine refuses
transitions missing from the table, records every visited state in
``history``, and moves to the failed state when a handler raises.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Generic, TypeVar

from monolithic_builder.errors import BuilderError, CancellationError, PipelineError

if TYPE_CHECKING:
    from monolithic_builder.process import Capabilities

StateT = TypeVar("StateT", bound=Enum)


class StateMachine(abc.ABC, Generic[StateT]):
    """Runs state handlers until the terminal state is reached.

    Class attributes:
        transitions: Allowed successor states per state.
        initial: Start state.
        done: Terminal success state.
        failed: Terminal failure state.
    """

    transitions: ClassVar[dict]
    initial: ClassVar[Enum]
    done: ClassVar[Enum]
    failed: ClassVar[Enum]

    def __init__(self, caps: Capabilities) -> None:
        self.caps = caps
        self.invoker = caps.invoker
        self.logger: logging.Logger = caps.logger
        self.state: StateT = self.initial  # type: ignore[assignment]
        self.history: list[StateT] = [self.state]
        self.failed_at: StateT | None = None

    @abc.abstractmethod
    def handlers(self) -> dict[StateT, Callable[[], StateT]]:
        """Map each non-terminal state to its step."""

    def _transition(self, next_state: StateT) -> None:
        allowed = self.transitions.get(self.state, frozenset())
        if next_state not in allowed:
            raise RuntimeError(
                f"Illegal transition {self.state.value} -> {next_state.value}"
            )
        self.logger.debug("State %s -> %s", self.state.value, next_state.value)
        self.state = next_state
        self.history.append(next_state)

    def run_machine(self) -> None:
        """Drive the machine from its current state to ``done``."""
        handlers = self.handlers()
        try:
            while self.state != self.done:
                self._transition(handlers[self.state]())
        except BaseException:
            self.failed_at = self.state
            self.state = self.failed  # type: ignore[assignment]
            self.history.append(self.state)
            raise

    @contextmanager
    def fatal(self, message: str) -> Iterator[None]:
        """Convert step failures into PipelineError with the cause chained.

        Cancellation and already-wrapped pipeline errors pass through.
        """
        try:
            yield
        except (CancellationError, PipelineError):
            raise
        except (BuilderError, OSError) as e:
            raise PipelineError(f"{message}: {e}", state=self.state.value) from e


__all__ = ["StateMachine"]
