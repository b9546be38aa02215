"""Interactive prompting for missing configuration values.

Configuration resolution takes any object implementing Prompter, so the
same logic runs against a terminal (questionary) or a scripted fake.
"""

from __future__ import annotations

from typing import Protocol

import questionary


class Prompter(Protocol):
    """Capability to ask the operator for a single value."""

    def ask(self, label: str, *, secret: bool = False, default: str | None = None) -> str:
        """Ask for a value.

        Raises:
            KeyboardInterrupt: If the operator cancels.
        """
        ...


class QuestionaryPrompter:
    """Terminal prompter backed by questionary."""

    def ask(self, label: str, *, secret: bool = False, default: str | None = None) -> str:
        if secret:
            answer = questionary.password(f"{label}:").ask()
        else:
            answer = questionary.text(f"{label}:", default=default or "").ask()

        if answer is None:
            # User cancelled (Ctrl+C)
            raise KeyboardInterrupt("Prompt cancelled by user")

        return answer.strip()
