"""
Pure decision logic for module installation.

Given an execution mode and what the state store says, these functions
decide what should happen next. They do no I/O; the orchestrator turns a
CONFIRM decision into a question for its PromptSource.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol


class Mode(str, Enum):
    ASK = "ask"
    FORCE = "force"
    REINSTALL = "reinstall"


class Decision(str, Enum):
    RUN = "run"
    SKIP = "skip"
    CONFIRM = "confirm"


class RunOutcome(str, Enum):
    INSTALLED = "installed"
    SKIPPED = "skipped"
    DECLINED = "declined"


def decide_target(mode: Mode, installed: bool) -> Decision:
    """What to do with the module the operator asked for."""
    if not installed or mode == Mode.REINSTALL:
        return Decision.RUN
    if mode == Mode.FORCE:
        return Decision.SKIP
    return Decision.CONFIRM


def decide_dependency(mode: Mode, installed: bool) -> Decision:
    """What to do with a dependency of the module being installed."""
    if installed:
        return Decision.SKIP
    if mode == Mode.ASK:
        return Decision.CONFIRM
    return Decision.RUN


def dependency_mode(mode: Mode) -> Mode:
    """Mode used when recursing into a dependency."""
    return Mode.ASK if mode == Mode.ASK else Mode.FORCE


class PromptSource(Protocol):
    def confirm(self, message: str) -> bool:
        ...


class ScriptedPrompt:
    """
    Non-interactive prompt source.

    Answers every question with a fixed value, or pops answers from a list
    in order. Every question asked is kept in ``asked``.
    """

    def __init__(self, answer: bool = True, answers: list[bool] | None = None):
        self.answer = answer
        self.answers = list(answers) if answers is not None else None
        self.asked: list[str] = []

    def confirm(self, message: str) -> bool:
        self.asked.append(message)
        if self.answers:
            return self.answers.pop(0)
        return self.answer
