"""Core chain primitives: errors, addresses, coins, events, stores and contexts."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Iterable, Iterator, Protocol

MODULE_NAME = "swingset"
STORE_KEY = MODULE_NAME
DATA_PREFIX = (STORE_KEY + "/data").encode()
KEYS_PREFIX = (STORE_KEY + "/keys").encode()
EGRESS_PREFIX = (STORE_KEY + "/egress").encode()

EVENT_TYPE_STORAGE = "storage"
ATTRIBUTE_KEY_PATH = "path"
ATTRIBUTE_KEY_VALUE = "value"
ATTRIBUTE_VALUE_CATEGORY = MODULE_NAME

BECH32_PREFIX = "agoric"


class SdkError(Exception):
    """Base class for errors reported by chain modules."""


class UnknownRequestError(SdkError):
    """The request is not recognised."""


class InvalidRequestError(SdkError):
    """The request is malformed."""


class InvalidAddressError(SdkError, ValueError):
    """An address is missing or malformed."""


class InsufficientFeeError(SdkError):
    """The account cannot pay what is required."""


class NotFoundError(SdkError):
    """The requested item does not exist."""


class OutOfGasError(SdkError):
    """Execution ran out of gas."""

    def __init__(self, descriptor: str) -> None:
        super().__init__(f"out of gas in location: {descriptor}")
        self.descriptor = descriptor


_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


def _polymod(values: Iterable[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for i, gen in enumerate(_GENERATOR):
            if (top >> i) & 1:
                chk ^= gen
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data: Iterable[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    out = []
    maxv = (1 << to_bits) - 1
    for value in data:
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            out.append((acc >> bits) & maxv)
    if pad:
        if bits:
            out.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or (acc << (to_bits - bits)) & maxv:
        raise InvalidAddressError("invalid padding in bech32 data")
    return out


@dataclass(frozen=True)
class AccAddress:
    """An account address, shown in bech32 form."""

    raw: bytes = b""

    @classmethod
    def from_bech32(cls, text: str) -> "AccAddress":
        if not text.strip():
            raise InvalidAddressError("empty address string is not allowed")
        if text.lower() != text and text.upper() != text:
            raise InvalidAddressError(f"mixed case in address {text!r}")
        text = text.lower()
        pos = text.rfind("1")
        if pos < 1 or pos + 7 > len(text):
            raise InvalidAddressError(f"invalid bech32 string {text!r}")
        hrp, data_part = text[:pos], text[pos + 1:]
        try:
            data = [_CHARSET.index(c) for c in data_part]
        except ValueError:
            raise InvalidAddressError(f"invalid character in {text!r}") from None
        if _polymod(_hrp_expand(hrp) + data) != 1:
            raise InvalidAddressError(f"invalid checksum in {text!r}")
        if hrp != BECH32_PREFIX:
            raise InvalidAddressError(
                f"invalid Bech32 prefix; expected {BECH32_PREFIX}, got {hrp}"
            )
        return cls(bytes(_convert_bits(data[:-6], 5, 8, False)))

    def is_empty(self) -> bool:
        return not self.raw

    def __str__(self) -> str:
        if not self.raw:
            return ""
        data = _convert_bits(self.raw, 8, 5, True)
        pm = _polymod(_hrp_expand(BECH32_PREFIX) + data + [0] * 6) ^ 1
        checksum = [(pm >> 5 * (5 - i)) & 31 for i in range(6)]
        return BECH32_PREFIX + "1" + "".join(_CHARSET[d] for d in data + checksum)


_DENOM_RE = re.compile(r"[a-zA-Z][a-zA-Z0-9/:._-]{2,127}")


def validate_denom(denom: str) -> None:
    """Raise ValueError if denom is not a valid coin denomination."""
    if not _DENOM_RE.fullmatch(denom):
        raise ValueError(f"invalid denom: {denom}")


@dataclass(frozen=True)
class Coin:
    denom: str
    amount: int = 0

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_lt(self, other: "Coin") -> bool:
        if self.denom != other.denom:
            raise ValueError(
                f"invalid coin denominations; {self.denom}, {other.denom}"
            )
        return self.amount < other.amount

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


class Coins:
    """A sorted set of positive coins, at most one per denomination."""

    __slots__ = ("_coins",)

    def __init__(self, coins: Iterable[Coin] = ()) -> None:
        seen: dict[str, Coin] = {}
        for coin in coins:
            if coin.denom in seen:
                raise ValueError(f"duplicate denomination {coin.denom}")
            if coin.amount < 0:
                raise ValueError(f"negative coin amount: {coin}")
            seen[coin.denom] = coin
        self._coins = tuple(
            sorted((c for c in seen.values() if c.amount), key=lambda c: c.denom)
        )

    @classmethod
    def _from_amounts(cls, amounts: dict[str, int]) -> "Coins":
        return cls(Coin(d, a) for d, a in amounts.items())

    def _amounts(self) -> dict[str, int]:
        return {c.denom: c.amount for c in self._coins}

    def add(self, other: Iterable[Coin]) -> "Coins":
        amounts = self._amounts()
        for coin in other:
            amounts[coin.denom] = amounts.get(coin.denom, 0) + coin.amount
        return Coins._from_amounts(amounts)

    def sub(self, other: Iterable[Coin]) -> "Coins":
        amounts = self._amounts()
        for coin in other:
            remaining = amounts.get(coin.denom, 0) - coin.amount
            if remaining < 0:
                raise ValueError("negative coin amount")
            amounts[coin.denom] = remaining
        return Coins._from_amounts(amounts)

    def is_zero(self) -> bool:
        return not self._coins

    def amount_of(self, denom: str) -> int:
        return self._amounts().get(denom, 0)

    def __iter__(self) -> Iterator[Coin]:
        return iter(self._coins)

    def __len__(self) -> int:
        return len(self._coins)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Coins) and self._coins == other._coins

    def __hash__(self) -> int:
        return hash(self._coins)

    def __repr__(self) -> str:
        return f"Coins({list(self._coins)!r})"

    def __str__(self) -> str:
        return ",".join(str(c) for c in self._coins)


@dataclass(frozen=True)
class Event:
    type: str
    attributes: tuple[tuple[str, str], ...] = ()


def new_storage_event(path: str, value: str) -> Event:
    """Build the event emitted when a storage path changes."""
    return Event(
        EVENT_TYPE_STORAGE,
        ((ATTRIBUTE_KEY_PATH, path), (ATTRIBUTE_KEY_VALUE, value)),
    )


class EventManager:
    """Collects events emitted during execution, plus the block's history."""

    def __init__(self, history: Iterable[Event] = ()) -> None:
        self.events: list[Event] = []
        self.history: list[Event] = list(history)

    def emit(self, event: Event) -> None:
        self.events.append(event)
        self.history.append(event)


class KVStore:
    """An ordered byte key-value store; prefixed views share the same data."""

    def __init__(self, data: dict[bytes, bytes] | None = None, prefix: bytes = b"") -> None:
        self._data = {} if data is None else data
        self._prefix = prefix

    def get(self, key: bytes) -> bytes | None:
        return self._data.get(self._prefix + key)

    def set(self, key: bytes, value: bytes) -> None:
        if not key:
            raise ValueError("key is nil")
        self._data[self._prefix + key] = bytes(value)

    def delete(self, key: bytes) -> None:
        self._data.pop(self._prefix + key, None)

    def has(self, key: bytes) -> bool:
        return self._prefix + key in self._data

    def prefixed(self, prefix: bytes) -> "KVStore":
        return KVStore(self._data, self._prefix + prefix)

    def iterate(self) -> Iterator[tuple[bytes, bytes]]:
        n = len(self._prefix)
        for key in sorted(k for k in self._data if k.startswith(self._prefix)):
            yield key[n:], self._data[key]


@dataclass
class Context:
    """Execution context for one block."""

    block_height: int = 0
    block_time: int = 0
    chain_id: str = ""
    event_manager: EventManager = field(default_factory=EventManager)
    stores: dict[str, KVStore] = field(default_factory=dict)
    gas_consumed: int = 0

    @property
    def block_time_nanos(self) -> int:
        return self.block_time * 1_000_000_000

    def kv_store(self, name: str) -> KVStore:
        return self.stores.setdefault(name, KVStore())

    def with_event_manager(self, event_manager: EventManager) -> "Context":
        return replace(self, event_manager=event_manager)


class BankKeeper(Protocol):
    def burn_coins(self, ctx: Context, module_name: str, amt: Coins) -> None: ...
    def get_all_balances(self, ctx: Context, addr: AccAddress) -> Coins: ...
    def get_balance(self, ctx: Context, addr: AccAddress, denom: str) -> Coin: ...
    def mint_coins(self, ctx: Context, module_name: str, amt: Coins) -> None: ...
    def send_coins_from_account_to_module(
        self, ctx: Context, sender: AccAddress, recipient_module: str, amt: Coins
    ) -> None: ...
    def send_coins_from_module_to_account(
        self, ctx: Context, sender_module: str, recipient: AccAddress, amt: Coins
    ) -> None: ...
    def send_coins_from_module_to_module(
        self, ctx: Context, sender_module: str, recipient_module: str, amt: Coins
    ) -> None: ...


class AccountKeeper(Protocol):
    def get_account(self, ctx: Context, addr: AccAddress) -> object | None: ...
    def new_account_with_address(self, ctx: Context, addr: AccAddress) -> object: ...
    def set_account(self, ctx: Context, account: object) -> None: ...