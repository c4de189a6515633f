import struct

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from dicegame.errors import DiceError, ErrorCode
from dicegame.game import (
    ED25519_PROGRAM_ID,
    DiceGame,
    SignatureInstruction,
    payout_for,
    roll_from_signature,
)

RENT = 890_880
HOUSE_KEY = Ed25519PrivateKey.from_private_bytes(b"\x01" * 32)
OTHER_KEY = Ed25519PrivateKey.from_private_bytes(b"\x03" * 32)
PLAYER = b"\x02" * 32
HOUSE_FUNDS = 10_000_000_000
PLAYER_FUNDS = 5_000_000_000
SEED = 12345


def raw_public(key):
    return key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


HOUSE = raw_public(HOUSE_KEY)


def ed25519_data(public_key, signature, message, count=1, index=0xFFFF):
    start = 2 + 14 * count
    pk_off = start
    sig_off = pk_off + 32
    msg_off = sig_off + 64
    header = struct.pack("<7H", sig_off, index, pk_off, index, msg_off, len(message), index)
    return bytes([count, 0]) + header * count + public_key + signature + message


def signed(bet, key=HOUSE_KEY, message=None):
    message = bet.to_bytes() if message is None else message
    sig = key.sign(message)
    data = ed25519_data(raw_public(key), sig, message)
    return SignatureInstruction(data=data), sig


@pytest.fixture
def game():
    g = DiceGame(RENT)
    g.fund(HOUSE, HOUSE_FUNDS)
    g.fund(PLAYER, PLAYER_FUNDS)
    g.vault = g.initialize(HOUSE, 1_000_000_000)
    return g


def test_initialize_moves_amount_and_rent(game):
    assert game.balance(game.vault) == 1_000_000_000 + RENT
    assert game.balance(HOUSE) == HOUSE_FUNDS - 1_000_000_000 - RENT


def test_initialize_insufficient_leaves_balance():
    g = DiceGame(RENT)
    g.fund(HOUSE, 100)
    with pytest.raises(ValueError):
        g.initialize(HOUSE, 1000)
    assert g.balance(HOUSE) == 100


def test_place_bet_records_and_deposits(game):
    game.advance_slot(3)
    before = game.balance(game.vault)
    bet = game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    assert (bet.player, bet.seed, bet.roll, bet.amount) == (PLAYER, SEED, 50, 1_000_000)
    assert bet.slot == game.slot
    assert game.balance(game.vault) == before + 1_000_000
    assert game.balance(PLAYER) < PLAYER_FUNDS - 1_000_000


@pytest.mark.parametrize(
    "roll, amount, code",
    [
        (2, 1_000_000, ErrorCode.MINIMUM_ROLL),
        (96, 1_000_000, ErrorCode.MAXIMUM_ROLL),
        (50, 0, ErrorCode.MINIMUM_BET),
        (50, 9_500_000_000, ErrorCode.MAXIMUM_BET),
        (50, 6_000_000_000, ErrorCode.INSUFFICIENT_FUNDS),
    ],
)
def test_place_bet_rejections_roll_back(game, roll, amount, code):
    with pytest.raises(DiceError) as info:
        game.place_bet(PLAYER, HOUSE, SEED, roll, amount)
    assert info.value.code is code
    assert game.balance(PLAYER) == PLAYER_FUNDS


def test_refund_requires_timeout(game):
    game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    game.advance_slot(5)
    with pytest.raises(DiceError) as info:
        game.refund_bet(PLAYER, HOUSE, SEED)
    assert info.value.code is ErrorCode.TIMEOUT_NOT_REACHED


def test_refund_restores_player(game):
    game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    game.advance_slot(6)
    game.refund_bet(PLAYER, HOUSE, SEED)
    assert game.balance(PLAYER) == PLAYER_FUNDS
    with pytest.raises(KeyError):
        game.refund_bet(PLAYER, HOUSE, SEED)


def test_resolve_settles_and_closes(game):
    bet = game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    instruction, sig = signed(bet)
    roll = game.resolve_bet(HOUSE, SEED, instruction, sig)
    assert roll == roll_from_signature(sig)
    won = payout_for(bet.amount) if bet.roll > roll else 0
    assert game.balance(PLAYER) == PLAYER_FUNDS - bet.amount + won
    with pytest.raises(KeyError):
        game.resolve_bet(HOUSE, SEED, instruction, sig)


def test_resolve_unknown_bet(game):
    with pytest.raises(KeyError):
        game.resolve_bet(HOUSE, 999, SignatureInstruction(), b"")


def test_payout_applies_house_edge():
    assert payout_for(100) == 9850


def test_roll_range():
    rolls = {roll_from_signature(bytes([n]) * 64) for n in range(200)}
    assert min(rolls) >= 1
    assert max(rolls) <= 100


def test_verify_accepts_valid(game):
    bet = game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    instruction, sig = signed(bet)
    assert game.verify_signature(HOUSE, SEED, instruction, sig) is None
    assert game.balance(PLAYER) < PLAYER_FUNDS - bet.amount


def expect_code(game, instruction, sig, code):
    with pytest.raises(DiceError) as info:
        game.verify_signature(HOUSE, SEED, instruction, sig)
    assert info.value.code is code


def test_verify_missing_instruction(game):
    game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    expect_code(game, None, b"", ErrorCode.ED25519_PROGRAM)


def test_verify_wrong_program(game):
    bet = game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    instruction, sig = signed(bet)
    wrong = SignatureInstruction(program_id=PLAYER, data=instruction.data)
    expect_code(game, wrong, sig, ErrorCode.ED25519_PROGRAM)


def test_verify_accounts_present(game):
    bet = game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    instruction, sig = signed(bet)
    with_accounts = SignatureInstruction(ED25519_PROGRAM_ID, (PLAYER,), instruction.data)
    expect_code(game, with_accounts, sig, ErrorCode.ED25519_ACCOUNTS)


def test_verify_empty_data(game):
    game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    expect_code(game, SignatureInstruction(), b"", ErrorCode.ED25519_DATA_LENGTH)


def test_verify_garbage_data(game):
    game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    expect_code(game, SignatureInstruction(data=b"\x01"), b"", ErrorCode.ED25519_SIGNATURE)


def test_verify_two_signatures(game):
    bet = game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    message = bet.to_bytes()
    sig = HOUSE_KEY.sign(message)
    data = ed25519_data(HOUSE, sig, message, count=2)
    expect_code(game, SignatureInstruction(data=data), sig, ErrorCode.ED25519_SIGNATURE)


def test_verify_not_verifiable(game):
    bet = game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    message = bet.to_bytes()
    sig = HOUSE_KEY.sign(message)
    data = ed25519_data(HOUSE, sig, message, index=0)
    expect_code(game, SignatureInstruction(data=data), sig, ErrorCode.ED25519_HEADER)


def test_verify_other_signer(game):
    bet = game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    instruction, sig = signed(bet, key=OTHER_KEY)
    expect_code(game, instruction, sig, ErrorCode.ED25519_HEADER)


def test_verify_signature_argument_mismatch(game):
    bet = game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    instruction, _ = signed(bet)
    expect_code(game, instruction, bytes(64), ErrorCode.ED25519_SIGNATURE)


def test_verify_wrong_message(game):
    game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    instruction, sig = signed(None, message=b"something else")
    expect_code(game, instruction, sig, ErrorCode.ED25519_MESSAGE)


def test_failed_resolve_keeps_bet(game):
    bet = game.place_bet(PLAYER, HOUSE, SEED, 50, 1_000_000)
    instruction, _ = signed(bet)
    with pytest.raises(DiceError):
        game.resolve_bet(HOUSE, SEED, instruction, bytes(64))
    game.advance_slot(6)
    game.refund_bet(PLAYER, HOUSE, SEED)
    assert game.balance(PLAYER) == PLAYER_FUNDS


def test_advance_slot_rejects_negative(game):
    with pytest.raises(ValueError):
        game.advance_slot(-1)
    assert game.advance_slot(2) == 2