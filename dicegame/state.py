"""Persistent record of a placed bet."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar

_LAYOUT = struct.Struct("<32s16sQQBB")


def _check_uint(name: str, value: int, bits: int) -> None:
    if not isinstance(value, int) or not 0 <= value < (1 << bits):
        raise ValueError(f"{name} must be an unsigned {bits}-bit integer")


@dataclass(frozen=True)
class Bet:
    """A wager: who placed it, under which seed, when, how much and on what roll."""

    player: bytes
    seed: int
    slot: int
    amount: int
    roll: int
    bump: int

    SIZE: ClassVar[int] = _LAYOUT.size

    def __post_init__(self) -> None:
        player = bytes(self.player)
        if len(player) != 32:
            raise ValueError("player must be a 32-byte public key")
        object.__setattr__(self, "player", player)
        _check_uint("seed", self.seed, 128)
        _check_uint("slot", self.slot, 64)
        _check_uint("amount", self.amount, 64)
        _check_uint("roll", self.roll, 8)
        _check_uint("bump", self.bump, 8)

    def to_bytes(self) -> bytes:
        """The byte string the house signs to settle this bet."""
        return _LAYOUT.pack(
            self.player,
            self.seed.to_bytes(16, "little"),
            self.slot,
            self.amount,
            self.roll,
            self.bump,
        )

    @classmethod
    def from_bytes(cls, data) -> "Bet":
        data = bytes(data)
        if len(data) != cls.SIZE:
            raise ValueError(f"bet record must be {cls.SIZE} bytes, got {len(data)}")
        player, seed, slot, amount, roll, bump = _LAYOUT.unpack(data)
        return cls(player, int.from_bytes(seed, "little"), slot, amount, roll, bump)