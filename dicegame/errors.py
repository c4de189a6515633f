"""Error codes raised by the dice game."""

from __future__ import annotations

from enum import Enum

_FIRST_CODE = 6000


class ErrorCode(Enum):
    """Every failure the game reports, valued by its message."""

    BUMP_ERROR = "Bump error"
    OVERFLOW = "Overflow"
    MINIMUM_BET = "Minimum bet is 0.01 Sol"
    MAXIMUM_BET = "Maximum bet exceeded"
    MINIMUM_ROLL = "Minimum roll is 2"
    MAXIMUM_ROLL = "Maximum roll is 96"
    TIMEOUT_NOT_REACHED = "Timeout not yet reached"
    ED25519_HEADER = "Ed25519 Header Error"
    ED25519_PUBKEY = "Ed25519 Pubkey Error"
    ED25519_MESSAGE = "Ed25519 Message Error"
    ED25519_SIGNATURE = "Ed25519 Signature Error"
    ED25519_PROGRAM = "Ed25119 Program Error"
    ED25519_ACCOUNTS = "Ed25119 Accounts Error"
    ED25519_DATA_LENGTH = "Ed25119 Data Length Error"
    INSUFFICIENT_FUNDS = "Cannot place bet above user balance"

    @property
    def message(self) -> str:
        return self.value

    @property
    def number(self) -> int:
        """Numeric code, counted from 6000 in declaration order."""
        return _FIRST_CODE + list(type(self)).index(self)


class DiceError(Exception):
    """A rule of the game was broken."""

    def __init__(self, code):
        self.code = ErrorCode(code)
        super().__init__(self.code.message)