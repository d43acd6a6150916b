"""Virtual bank port: balance updates, reward distribution and controller requests."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from .chain import (
    AccAddress,
    Coin,
    Coins,
    Context,
    InvalidAddressError,
    SdkError,
    UnknownRequestError,
    validate_denom,
)
from .vbank_keeper import Keeper

BALANCE_UPDATE_TYPE = "VBANK_BALANCE_UPDATE"

_MAX_INT_BITS = 256
_INT_RE = re.compile(r"[+-]?[0-9]+")

_log = logging.getLogger(__name__)


def min_coins(a: Iterable[Coin], b: Iterable[Coin]) -> Coins:
    """Return the per-denomination minimum of two coin sets, dropping zeros."""
    b_amounts = {coin.denom: coin.amount for coin in b}
    return Coins(
        Coin(coin.denom, min(coin.amount, b_amounts[coin.denom]))
        for coin in a
        if coin.denom in b_amounts
    )


def reward_rate(pool: Iterable[Coin], blocks: int) -> Coins:
    """Smallest per-block rate that exhausts the pool within the given blocks."""
    if blocks <= 0:
        return Coins()
    return Coins(
        Coin(coin.denom, (coin.amount - 1) // blocks + 1)
        for coin in pool
        if coin.amount
    )


@dataclass(frozen=True, order=True)
class SingleBalanceUpdate:
    address: str
    denom: str
    amount: str

    def to_dict(self) -> dict:
        return {"address": self.address, "denom": self.denom, "amount": self.amount}


@dataclass
class BalanceUpdate:
    nonce: int
    type: str = BALANCE_UPDATE_TYPE
    updated: list[SingleBalanceUpdate] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "nonce": self.nonce,
            "type": self.type,
            "updated": [u.to_dict() for u in self.updated],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BalanceUpdate":
        return cls(
            nonce=int(data.get("nonce", 0)),
            type=data.get("type", ""),
            updated=[
                SingleBalanceUpdate(u["address"], u["denom"], u["amount"])
                for u in data.get("updated") or []
            ],
        )


def get_balance_update(
    ctx: Context, keeper: Keeper, address_to_balance: Mapping[str, Iterable[Coin]]
) -> BalanceUpdate | None:
    """Build a deterministically ordered balance update, or None if there is nothing."""
    if not address_to_balance:
        return None
    nonce = keeper.get_next_sequence(ctx)
    updated = sorted(
        SingleBalanceUpdate(address, coin.denom, str(coin.amount))
        for address, coins in address_to_balance.items()
        for coin in coins
    )
    return BalanceUpdate(nonce=nonce, updated=updated)


def marshal(event: BalanceUpdate | None) -> bytes | None:
    """Encode an event as compact JSON; None stays None."""
    if event is None:
        return None
    return json.dumps(event.to_dict(), separators=(",", ":")).encode()


def _string_field(msg: Mapping[str, Any], name: str) -> str:
    value = msg.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string")
    return value


def _parse_address(text: str) -> AccAddress:
    try:
        return AccAddress.from_bech32(text)
    except InvalidAddressError as exc:
        raise InvalidAddressError(f"cannot convert {text} to address: {exc}") from exc


def _parse_coins(denom: str, amount: str) -> Coins:
    if not _INT_RE.fullmatch(amount):
        raise ValueError(f"cannot convert {amount} to int")
    value = int(amount)
    if value.bit_length() > _MAX_INT_BITS:
        raise ValueError(f"cannot convert {amount} to int")
    validate_denom(denom)
    if value < 0:
        raise ValueError(f"negative coin amount: {value}{denom}")
    return Coins([Coin(denom, value)])


class PortHandler:
    """Answers vbank requests sent by the controller."""

    def __init__(self, am: "AppModule | None", keeper: Keeper) -> None:
        self.am = am
        self.keeper = keeper

    def _balance_reply(self, ctx: Context, address: str, addr: AccAddress, denom: str) -> str:
        balances = {address: Coins([self.keeper.get_balance(ctx, addr, denom)])}
        encoded = marshal(get_balance_update(ctx, self.keeper, balances))
        return "true" if encoded is None else encoded.decode()

    def receive(self, ctx: Context, text: str) -> str:
        msg = json.loads(text)
        if not isinstance(msg, dict):
            raise ValueError("vbank message must be a JSON object")
        kind = _string_field(msg, "type")
        denom = _string_field(msg, "denom")
        keeper = self.keeper

        if kind == "VBANK_GET_BALANCE":
            address = _string_field(msg, "address")
            addr = _parse_address(address)
            coin = keeper.get_balance(ctx, addr, denom)
            return json.dumps(str(coin.amount))

        if kind == "VBANK_GRAB":
            sender = _string_field(msg, "sender")
            addr = _parse_address(sender)
            coins = _parse_coins(denom, _string_field(msg, "amount"))
            try:
                keeper.grab_coins(ctx, addr, coins)
            except Exception as exc:
                raise SdkError(f"cannot grab {coins} coins: {exc}") from exc
            return self._balance_reply(ctx, sender, addr, denom)

        if kind == "VBANK_GIVE":
            recipient = _string_field(msg, "recipient")
            addr = _parse_address(recipient)
            coins = _parse_coins(denom, _string_field(msg, "amount"))
            try:
                keeper.send_coins(ctx, addr, coins)
            except Exception as exc:
                raise SdkError(f"cannot give {coins} coins: {exc}") from exc
            return self._balance_reply(ctx, recipient, addr, denom)

        if kind == "VBANK_GIVE_TO_FEE_COLLECTOR":
            coins = _parse_coins(denom, _string_field(msg, "amount"))
            try:
                keeper.store_fee_coins(ctx, coins)
            except Exception as exc:
                raise SdkError(f"cannot store fee {coins} coins: {exc}") from exc
            blocks = max(keeper.get_params(ctx).fee_epoch_duration_blocks, 1)
            state = keeper.get_state(ctx)
            state.reward_pool = state.reward_pool.add(coins)
            state.reward_rate = reward_rate(state.reward_pool, blocks)
            keeper.set_state(ctx, state)
            # The module balance is not reported; the controller should not know it.
            return "true"

        raise UnknownRequestError(f"unrecognized type {kind}")


class AppModule:
    """The vbank module's block hooks."""

    name = "vbank"
    consensus_version = 1

    def __init__(self, keeper: Keeper) -> None:
        self.keeper = keeper

    def push_action(self, ctx: Context, action: Any) -> None:
        self.keeper.push_action(ctx, action)

    def end_block(self, ctx: Context) -> list:
        """Report changed balances to the controller and distribute rewards."""
        address_to_balance: dict[str, Coins] = {}
        for event in ctx.event_manager.history:
            if event.type != "transfer":
                continue
            for key, address in event.attributes:
                if key not in ("recipient", "sender") or address in address_to_balance:
                    continue
                try:
                    account = AccAddress.from_bech32(address)
                except InvalidAddressError as exc:
                    _log.warning("Cannot ensure vbank balance for %s: %s", address, exc)
                    continue
                address_to_balance[address] = self.keeper.get_all_balances(ctx, account)

        action = get_balance_update(ctx, self.keeper, address_to_balance)
        if action is not None:
            self.push_action(ctx, action)

        state = self.keeper.get_state(ctx)
        xfer = min_coins(state.reward_rate, state.reward_pool)
        if not xfer.is_zero():
            try:
                self.keeper.send_coins_to_fee_collector(ctx, xfer)
            except Exception as exc:
                _log.warning("Cannot send rewards: %s", exc)
            state.reward_pool = state.reward_pool.sub(xfer)
            self.keeper.set_state(ctx, state)
        return []