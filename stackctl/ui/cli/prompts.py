"""
Confirmation providers — how destructive commands ask for a yes.

Commands never read stdin directly. They call the provider stored in the
click context object (``ctx.obj["confirm"]``), which tests replace with a
``StaticConfirmer``.
"""

from __future__ import annotations

from typing import Protocol

import click


class Confirmer(Protocol):
    def __call__(self, prompt: str, emphasized: bool = False) -> bool: ...


class ClickConfirmer:
    """Interactive y/N prompt on the terminal. Defaults to no."""

    def __call__(self, prompt: str, emphasized: bool = False) -> bool:
        text = click.style(prompt, fg="red", bold=True) if emphasized else click.style(prompt, fg="yellow")
        try:
            return click.confirm(text, default=False)
        except click.Abort:
            # EOF or Ctrl-C at the prompt counts as "no"
            click.echo()
            return False


class StaticConfirmer:
    """Answers every prompt with a fixed value and remembers the prompts."""

    def __init__(self, answer: bool):
        self.answer = answer
        self.prompts: list[str] = []

    def __call__(self, prompt: str, emphasized: bool = False) -> bool:
        self.prompts.append(prompt)
        return self.answer
