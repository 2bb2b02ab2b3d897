"""
Error types raised by the analysis engine.

Findings are not errors: they are the engine's output. These exceptions
cover inputs the engine cannot analyze at all.
"""

from typing import Optional


class AccountGuardError(Exception):
    """Base class for all accountguard errors."""


class ModelError(AccountGuardError):
    """
    The Program Model is internally inconsistent.

    Raised for dangling slot references, constraints or effects citing a
    nonexistent account, and cyclic constraint references. Fatal for the
    instruction it was raised for; other instructions are unaffected.
    """

    def __init__(
        self,
        message: str,
        instruction: Optional[str] = None,
        slot: Optional[str] = None,
    ):
        self.instruction = instruction
        self.slot = slot
        location = ""
        if instruction and slot:
            location = f"{instruction}.{slot}: "
        elif instruction:
            location = f"{instruction}: "
        super().__init__(f"{location}{message}")
        self.detail = message


class ConfigError(AccountGuardError, ValueError):
    """Engine options reference unknown rules or severities."""
