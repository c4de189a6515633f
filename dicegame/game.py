"""The dice game ledger: a house vault, bets, signed resolution and refunds."""

from __future__ import annotations

import hashlib
import struct
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .errors import DiceError, ErrorCode
from .state import Bet

_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def _b58decode(text: str) -> bytes:
    number = 0
    for char in text:
        number = number * 58 + _B58_ALPHABET.index(char)
    leading = len(text) - len(text.lstrip("1"))
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\0" * leading + body


PROGRAM_ID = _b58decode("DZDRzKdTu4SweFFjDutMgPqu55Qt9TLbhWG1cMAikYVp")
ED25519_PROGRAM_ID = _b58decode("Ed25519SigVerify111111111111111111111111111")

HOUSE_EDGE = 150
REFUND_TIMEOUT_SLOTS = 5
DEFAULT_RENT_EXEMPT_MINIMUM = 890_880
BET_ACCOUNT_SPACE = 8 + Bet.SIZE

_U64_MAX = (1 << 64) - 1
_U128_MOD = 1 << 128
_ACCOUNT_OVERHEAD = 128
_CURRENT_INSTRUCTION = 0xFFFF
_OFFSETS = struct.Struct("<7H")

_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


def _is_on_curve(point: bytes) -> bool:
    y = (int.from_bytes(point, "little") & ((1 << 255) - 1)) % _P
    yy = y * y % _P
    u = (yy - 1) % _P
    v = (_D * yy + 1) % _P
    xx = u * pow(v, _P - 2, _P) % _P
    return xx == 0 or pow(xx, (_P - 1) // 2, _P) == 1


def _find_program_address(seeds: Sequence[bytes]) -> tuple[bytes, int]:
    joined = b"".join(seeds)
    for bump in range(255, 0, -1):
        candidate = hashlib.sha256(
            joined + bytes([bump]) + PROGRAM_ID + b"ProgramDerivedAddress"
        ).digest()
        if not _is_on_curve(candidate):
            return candidate, bump
    raise DiceError(ErrorCode.BUMP_ERROR)


def _check_key(name: str, key) -> bytes:
    key = bytes(key)
    if len(key) != 32:
        raise ValueError(f"{name} must be a 32-byte public key")
    return key


def _check_uint(name: str, value: int, bits: int) -> None:
    if not isinstance(value, int) or not 0 <= value < (1 << bits):
        raise ValueError(f"{name} must be an unsigned {bits}-bit integer")


def roll_from_signature(sig) -> int:
    """Derive the dice outcome, 1 to 100, from the house signature."""
    digest = hashlib.sha256(bytes(sig)).digest()
    lower = int.from_bytes(digest[:16], "little")
    upper = int.from_bytes(digest[16:], "little")
    return (lower + upper) % _U128_MOD % 100 + 1


def payout_for(amount: int) -> int:
    """Lamports paid to a winning bet of ``amount``, truncated to 64 bits."""
    _check_uint("amount", amount, 64)
    return amount * (10000 - HOUSE_EDGE) // 100 & _U64_MAX


@dataclass(frozen=True)
class SignatureInstruction:
    """The first instruction of the transaction, expected to be an Ed25519 check."""

    program_id: bytes = ED25519_PROGRAM_ID
    accounts: tuple = ()
    data: bytes = b""


@dataclass(frozen=True)
class _SignatureEntry:
    is_verifiable: bool
    public_key: Optional[bytes]
    signature: Optional[bytes]
    message: Optional[bytes]


def _slice(data: bytes, offset: int, size: int) -> bytes:
    if offset + size > len(data):
        raise ValueError("offset out of range")
    return data[offset : offset + size]


def _unpack_signatures(data: bytes) -> list[_SignatureEntry]:
    if len(data) < 2:
        raise ValueError("instruction data too short")
    count = data[0]
    header_end = 2 + count * _OFFSETS.size
    if len(data) < header_end:
        raise ValueError("instruction data too short for its offsets")
    entries = []
    for sig_off, sig_ix, pk_off, pk_ix, msg_off, msg_len, msg_ix in _OFFSETS.iter_unpack(
        data[2:header_end]
    ):
        if sig_ix == pk_ix == msg_ix == _CURRENT_INSTRUCTION:
            entries.append(
                _SignatureEntry(
                    True,
                    _slice(data, pk_off, 32),
                    _slice(data, sig_off, 64),
                    _slice(data, msg_off, msg_len),
                )
            )
        else:
            entries.append(_SignatureEntry(False, None, None, None))
    return entries


def _verify_precompile(entries: Sequence[_SignatureEntry]) -> None:
    for entry in entries:
        if not entry.is_verifiable:
            continue
        try:
            Ed25519PublicKey.from_public_bytes(entry.public_key).verify(
                entry.signature, entry.message
            )
        except (InvalidSignature, ValueError) as exc:
            raise DiceError(ErrorCode.ED25519_SIGNATURE) from exc


class DiceGame:
    """Lamport ledger holding house vaults and open bets at a current slot."""

    def __init__(self, rent_exempt_minimum=DEFAULT_RENT_EXEMPT_MINIMUM):
        _check_uint("rent_exempt_minimum", rent_exempt_minimum, 64)
        self.rent_exempt_minimum = rent_exempt_minimum
        self.slot = 0
        self._balances: dict[bytes, int] = {}
        self._bets: dict[bytes, Bet] = {}

    def fund(self, account, lamports: int) -> None:
        account = _check_key("account", account)
        _check_uint("lamports", lamports, 64)
        self._balances[account] = self.balance(account) + lamports

    def balance(self, account) -> int:
        return self._balances.get(bytes(account), 0)

    def advance_slot(self, slots: int = 1) -> int:
        if not isinstance(slots, int) or slots < 0:
            raise ValueError("slots must be a non-negative integer")
        self.slot += slots
        return self.slot

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        balances = dict(self._balances)
        bets = dict(self._bets)
        try:
            yield
        except BaseException:
            self._balances = balances
            self._bets = bets
            raise

    def _minimum_balance(self, space: int) -> int:
        return self.rent_exempt_minimum * (_ACCOUNT_OVERHEAD + space) // _ACCOUNT_OVERHEAD

    def _transfer(self, source: bytes, destination: bytes, lamports: int) -> None:
        available = self.balance(source)
        if lamports > available:
            raise ValueError(
                f"insufficient lamports: need {lamports}, have {available}"
            )
        self._balances[source] = available - lamports
        self._balances[destination] = self.balance(destination) + lamports

    def _close(self, address: bytes, destination: bytes) -> None:
        self._transfer(address, destination, self.balance(address))
        self._balances.pop(address, None)
        self._bets.pop(address, None)

    @staticmethod
    def _vault(house: bytes) -> bytes:
        return _find_program_address([b"vault", house])[0]

    @staticmethod
    def _bet_address(vault: bytes, seed: int) -> tuple[bytes, int]:
        return _find_program_address([b"bet", vault, seed.to_bytes(16, "little")])

    def _load_bet(self, house, seed: int) -> tuple[bytes, bytes, Bet]:
        house = _check_key("house", house)
        _check_uint("seed", seed, 128)
        vault = self._vault(house)
        address, _ = self._bet_address(vault, seed)
        try:
            return vault, address, self._bets[address]
        except KeyError:
            raise KeyError(f"no open bet with seed {seed}") from None

    def initialize(self, house, amount: int) -> bytes:
        """Move ``amount`` plus the rent-exempt minimum into the house vault."""
        house = _check_key("house", house)
        _check_uint("amount", amount, 64)
        total = amount + self._minimum_balance(0)
        if total > _U64_MAX:
            raise OverflowError("deposit exceeds 64 bits")
        vault = self._vault(house)
        with self._atomic():
            self._transfer(house, vault, total)
        return vault

    def place_bet(self, player, house, seed: int, roll: int, amount: int) -> Bet:
        """Record a bet that the roll comes under ``roll`` and stake ``amount``."""
        player = _check_key("player", player)
        house = _check_key("house", house)
        _check_uint("seed", seed, 128)
        _check_uint("roll", roll, 8)
        _check_uint("amount", amount, 64)
        vault = self._vault(house)
        address, bump = self._bet_address(vault, seed)
        with self._atomic():
            if address not in self._bets:
                shortfall = max(
                    0, self._minimum_balance(BET_ACCOUNT_SPACE) - self.balance(address)
                )
                self._transfer(player, address, shortfall)
            if roll <= 2:
                raise DiceError(ErrorCode.MINIMUM_ROLL)
            if roll >= 96:
                raise DiceError(ErrorCode.MAXIMUM_ROLL)
            if not float(amount) > 0.01:
                raise DiceError(ErrorCode.MINIMUM_BET)
            if amount >= self.balance(house):
                raise DiceError(ErrorCode.MAXIMUM_BET)
            bet = Bet(player, seed, self.slot, amount, roll, bump)
            self._bets[address] = bet
            if self.balance(player) < amount:
                raise DiceError(ErrorCode.INSUFFICIENT_FUNDS)
            self._transfer(player, vault, amount)
        return bet

    def _check_instruction(
        self, house: bytes, bet: Bet, instruction: Optional[SignatureInstruction], sig: bytes
    ) -> None:
        if instruction is None or bytes(instruction.program_id) != ED25519_PROGRAM_ID:
            raise DiceError(ErrorCode.ED25519_PROGRAM)
        if len(instruction.accounts) != 0:
            raise DiceError(ErrorCode.ED25519_ACCOUNTS)
        data = bytes(instruction.data)
        if not data:
            raise DiceError(ErrorCode.ED25519_DATA_LENGTH)
        try:
            entries = _unpack_signatures(data)
        except ValueError as exc:
            raise DiceError(ErrorCode.ED25519_SIGNATURE) from exc
        _verify_precompile(entries)
        if len(entries) != 1:
            raise DiceError(ErrorCode.ED25519_SIGNATURE)
        entry = entries[0]
        if not entry.is_verifiable:
            raise DiceError(ErrorCode.ED25519_HEADER)
        if entry.public_key is None or entry.public_key != house:
            raise DiceError(ErrorCode.ED25519_HEADER)
        if entry.signature is None or entry.signature != sig:
            raise DiceError(ErrorCode.ED25519_SIGNATURE)
        if entry.message is None:
            raise DiceError(ErrorCode.ED25519_SIGNATURE)
        if entry.message != bet.to_bytes():
            raise DiceError(ErrorCode.ED25519_MESSAGE)

    def verify_signature(self, house, seed: int, instruction, sig) -> None:
        """Check that ``instruction`` holds the house's signature ``sig`` over the bet."""
        _, _, bet = self._load_bet(house, seed)
        self._check_instruction(bytes(house), bet, instruction, bytes(sig))

    def resolve_bet(self, house, seed: int, instruction, sig) -> int:
        """Settle a bet with the house signature; return the roll it produced."""
        vault, address, bet = self._load_bet(house, seed)
        sig = bytes(sig)
        with self._atomic():
            self._check_instruction(bytes(house), bet, instruction, sig)
            roll = roll_from_signature(sig)
            if bet.roll > roll:
                self._transfer(vault, bet.player, payout_for(bet.amount))
            self._close(address, bet.player)
        return roll

    def refund_bet(self, player, house, seed: int) -> None:
        """Return an unresolved bet's stake once enough slots have passed."""
        player = _check_key("player", player)
        vault, address, bet = self._load_bet(house, seed)
        with self._atomic():
            if max(0, self.slot - bet.slot) <= REFUND_TIMEOUT_SLOTS:
                raise DiceError(ErrorCode.TIMEOUT_NOT_REACHED)
            self._transfer(vault, player, bet.amount)
            self._close(address, player)