# dicegame

A small library that models a house-backed dice game as an in-memory
ledger. The house funds a vault, players place bets on a roll, and the house
resolves each bet by signing the bet's bytes with its Ed25519 key. The roll
comes from a SHA-256 hash of that signature, so a player can check that it
was not picked freely. If the house does not resolve a bet in time, the
player can take the stake back.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Modules

- `dicegame.game`: `DiceGame`, `SignatureInstruction`,
  `roll_from_signature(sig)`, `payout_for(amount)` and the constants
  `HOUSE_EDGE` (150), `REFUND_TIMEOUT_SLOTS` (5),
  `DEFAULT_RENT_EXEMPT_MINIMUM` (890 880), `BET_ACCOUNT_SPACE`,
  `PROGRAM_ID` and `ED25519_PROGRAM_ID`.
- `dicegame.state`: `Bet`, the record of one wager. `Bet.to_bytes()` gives
  the exact 74 bytes the house must sign (player key, seed as 16
  little-endian bytes, slot, amount, roll, bump); `Bet.from_bytes(data)`
  reads them back.
- `dicegame.errors`: `DiceError`, raised when a rule of the game is broken,
  and `ErrorCode`, the enum of those rules. Each code has a `message` and a
  `number` counted from 6000 in declaration order.

## The ledger

`DiceGame(rent_exempt_minimum=890_880)` keeps lamport balances keyed by
32-byte public keys, a current slot, and the open bets.

- `fund(account, lamports)` credits an account; `balance(account)` reads it.
- `advance_slot(slots=1)` moves the clock on and returns the new slot.
- `initialize(house, amount)` moves `amount` plus the rent-exempt minimum
  from the house into its vault and returns the vault address. The vault and
  bet addresses are derived from their seeds and `PROGRAM_ID`.
- `place_bet(player, house, seed, roll, amount)` records a `Bet` under the
  given 128-bit seed and moves the stake from the player to the vault. The
  first bet under a seed also charges the player the rent-exempt minimum for
  the bet account, which goes back to the player when the bet is closed.
- `verify_signature(house, seed, instruction, sig)` checks the signature
  instruction without changing anything.
- `resolve_bet(house, seed, instruction, sig)` checks the instruction,
  works out the roll, pays a winner, closes the bet and returns the roll.
- `refund_bet(player, house, seed)` returns the stake and closes the bet.

Every operation either completes or leaves the ledger as it was.

## Rules

- A roll must be greater than 2 and less than 96.
- A stake must be positive and smaller than the house's own balance, and the
  player must have enough lamports to cover it.
- `roll_from_signature(sig)` gives a number from 1 to 100. The player wins
  if the number they chose is greater than that roll, and is then paid
  `payout_for(amount)` from the vault: `amount * (10000 - HOUSE_EDGE) // 100`.
  Either way the bet is closed.
- `refund_bet` succeeds only once more than `REFUND_TIMEOUT_SLOTS` slots
  have passed since the bet was placed.

Broken rules raise `DiceError`. A transfer larger than the paying account's
balance raises `ValueError`, and a seed with no open bet raises `KeyError`.

## The signature instruction

`SignatureInstruction(program_id, accounts, data)` stands for the first
instruction of the transaction. `program_id` must be `ED25519_PROGRAM_ID`
(the default), `accounts` must be empty, and `data` must hold exactly one
signature entry: a count byte, a padding byte, then seven little-endian
16-bit fields (signature offset, signature instruction index, public key
offset, public key instruction index, message offset, message length,
message instruction index), with every instruction index set to `0xFFFF`.
The signature must verify, the public key must be the house's, the
signature must equal `sig`, and the message must equal `bet.to_bytes()`.

## Example

```python
import struct

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from dicegame.game import DiceGame, SignatureInstruction

house_key = Ed25519PrivateKey.generate()
house = house_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
player = bytes([1]) * 32

game = DiceGame()
game.fund(house, 100_000_000_000)
game.fund(player, 10_000_000_000)
game.initialize(house, 50_000_000_000)

bet = game.place_bet(player, house, seed=42, roll=50, amount=1_000_000_000)

message = bet.to_bytes()
sig = house_key.sign(message)
data = struct.pack("<BB7H", 1, 0, 48, 0xFFFF, 16, 0xFFFF, 112, len(message), 0xFFFF)
data += house + sig + message

roll = game.resolve_bet(house, 42, SignatureInstruction(data=data), sig)
print(roll, game.balance(player))
```

Had the house never resolved the bet, the player could instead call
`game.advance_slot(6)` and then `game.refund_bet(player, house, seed=42)`.

## What it does not do

The package is a library only: it has no command-line tool, sends nothing
over a network and keeps its ledger in memory, with no storage between runs.