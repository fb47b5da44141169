"""
Per-action confirmation for mutating role assignment calls.

The decision (apply, simulate, decline) is a pure function of the run mode
and the operator's answer. Asking the operator is a separate, injectable side
effect so the engine can be tested without a console.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import click


class ActionDecision(str, Enum):
    """What to do with one mutating action."""

    APPLY = "apply"
    SIMULATE = "simulate"
    DECLINE = "decline"


@dataclass(frozen=True)
class PendingAction:
    """A mutating call waiting for a decision."""

    verb: str  # "Add" or "RemoveOld"
    role: str
    scope: str
    principal_id: str

    def describe(self) -> str:
        if self.verb == "Add":
            return f"Grant '{self.role}' to {self.principal_id} at {self.scope}"
        return f"Revoke '{self.role}' from {self.principal_id} at {self.scope}"


def requires_prompt(what_if: bool, confirm: bool) -> bool:
    """True if the operator must be asked before this action."""
    return confirm and not what_if


def decide(what_if: bool, confirm: bool, approved: Optional[bool] = None) -> ActionDecision:
    """
    Decide how to treat a mutating action.

    Dry-run always simulates and never prompts. In confirmation mode the
    action is applied only on an explicit approval; a missing answer counts
    as a decline.

    Args:
        what_if: Dry-run mode
        confirm: Interactive confirmation mode
        approved: Operator answer, only consulted in confirmation mode

    Returns:
        ActionDecision
    """
    if what_if:
        return ActionDecision.SIMULATE
    if confirm and approved is not True:
        return ActionDecision.DECLINE
    return ActionDecision.APPLY


Prompter = Callable[[PendingAction], bool]


def console_prompter(action: PendingAction) -> bool:
    """Ask on the console; any answer other than yes declines."""
    return click.confirm(f"{action.describe()}?", default=False)


class ActionGate:
    """Combines the decision table with the prompt side effect for one run."""

    def __init__(
        self,
        what_if: bool = False,
        confirm: bool = False,
        prompter: Optional[Prompter] = None,
    ):
        self.what_if = what_if
        self.confirm = confirm
        self.prompter = prompter or console_prompter

    def evaluate(self, action: PendingAction) -> ActionDecision:
        approved: Optional[bool] = None
        if requires_prompt(self.what_if, self.confirm):
            approved = bool(self.prompter(action))
        return decide(self.what_if, self.confirm, approved)
