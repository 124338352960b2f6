"""Operator decisions during a synchronization pass.

The orchestrator never reads stdin itself: it asks an injected
``DecisionProvider``.  ``ConsolePrompt`` asks interactively through rich;
``FixedAnswer`` answers every question the same way (``--yes`` / ``--no``
on the CLI, scripted runs).
"""

from typing import Protocol

from rich.console import Console
from rich.prompt import Confirm


class DecisionProvider(Protocol):
    """Blocking yes/no decision."""

    def ask(self, question: str) -> bool:
        ...


class ConsolePrompt:
    """Ask the operator on the terminal.  Defaults to "no"."""

    def __init__(self, console: Console | None = None):
        self._console = console or Console()

    def ask(self, question: str) -> bool:
        return Confirm.ask(question, console=self._console, default=False)


class FixedAnswer:
    """Answer every question with the same value, recording the questions.

    Example:
        >>> prompt = FixedAnswer(False)
        >>> prompt.ask("Restore?")
        False
        >>> prompt.questions
        ['Restore?']
    """

    def __init__(self, answer: bool):
        self.answer = answer
        self.questions: list[str] = []

    def ask(self, question: str) -> bool:
        self.questions.append(question)
        return self.answer
