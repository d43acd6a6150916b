"""Virtual bank keeper: parameters, reward state, bank access, genesis and queries."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable

from .chain import (
    AccAddress,
    BankKeeper,
    Coin,
    Coins,
    Context,
    KVStore,
    UnknownRequestError,
)

MODULE_NAME = "vbank"
STORE_KEY = MODULE_NAME
ROUTER_KEY = MODULE_NAME

QUERY_PARAMS = "params"
QUERY_STATE = "state"

_STATE_KEY = b"state"
_PARAMS_STORE = "params"
_PARAMS_KEY = b"params"

ActionPusher = Callable[[Context, Any], None]


def _validate_fee_epoch_duration_blocks(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"invalid parameter type: {type(value).__name__}")
    if value < 0:
        raise ValueError(f"fee epoch duration blocks must be nonnegative: {value}")


@dataclass
class Params:
    fee_epoch_duration_blocks: int = 0

    def validate_basic(self) -> None:
        _validate_fee_epoch_duration_blocks(self.fee_epoch_duration_blocks)

    def to_dict(self) -> dict:
        return {"fee_epoch_duration_blocks": str(self.fee_epoch_duration_blocks)}

    @classmethod
    def from_dict(cls, data: dict) -> "Params":
        return cls(int(data.get("fee_epoch_duration_blocks", 0)))


def default_params() -> Params:
    return Params(fee_epoch_duration_blocks=0)


def _coins_to_list(coins: Coins) -> list[dict]:
    return [{"denom": c.denom, "amount": str(c.amount)} for c in coins]


def _coins_from_list(items: list[dict] | None) -> Coins:
    return Coins(Coin(item["denom"], int(item["amount"])) for item in items or [])


@dataclass
class State:
    reward_pool: Coins = field(default_factory=Coins)
    reward_rate: Coins = field(default_factory=Coins)
    last_sequence: int = 0

    def to_dict(self) -> dict:
        return {
            "reward_pool": _coins_to_list(self.reward_pool),
            "reward_rate": _coins_to_list(self.reward_rate),
            "last_sequence": str(self.last_sequence),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "State":
        return cls(
            reward_pool=_coins_from_list(data.get("reward_pool")),
            reward_rate=_coins_from_list(data.get("reward_rate")),
            last_sequence=int(data.get("last_sequence", 0)),
        )


@dataclass
class GenesisState:
    params: Params = field(default_factory=Params)
    state: State = field(default_factory=State)


def _no_action_pusher(ctx: Context, action: Any) -> None:
    raise RuntimeError("no action pusher is attached")


class Keeper:
    """Holds the vbank reward state and mediates access to the bank."""

    def __init__(
        self,
        bank_keeper: BankKeeper,
        fee_collector_name: str = "fee_collector",
        push_action: ActionPusher | None = None,
        store_key: str = STORE_KEY,
    ) -> None:
        self.bank_keeper = bank_keeper
        self.fee_collector_name = fee_collector_name
        self.push_action: ActionPusher = push_action or _no_action_pusher
        self.store_key = store_key

    def _store(self, ctx: Context) -> KVStore:
        return ctx.kv_store(self.store_key)

    def _params_store(self, ctx: Context) -> KVStore:
        return ctx.kv_store(_PARAMS_STORE).prefixed((self.store_key + "/").encode())

    def get_balance(self, ctx: Context, addr: AccAddress, denom: str) -> Coin:
        return self.bank_keeper.get_balance(ctx, addr, denom)

    def get_all_balances(self, ctx: Context, addr: AccAddress) -> Coins:
        return self.bank_keeper.get_all_balances(ctx, addr)

    def store_fee_coins(self, ctx: Context, amt: Coins) -> None:
        self.bank_keeper.mint_coins(ctx, MODULE_NAME, amt)

    def send_coins_to_fee_collector(self, ctx: Context, amt: Coins) -> None:
        self.bank_keeper.send_coins_from_module_to_module(
            ctx, MODULE_NAME, self.fee_collector_name, amt
        )

    def send_coins(self, ctx: Context, addr: AccAddress, amt: Coins) -> None:
        """Mint coins into the module and send them to the account."""
        self.bank_keeper.mint_coins(ctx, MODULE_NAME, amt)
        self.bank_keeper.send_coins_from_module_to_account(ctx, MODULE_NAME, addr, amt)

    def grab_coins(self, ctx: Context, addr: AccAddress, amt: Coins) -> None:
        """Take coins from the account into the module and burn them."""
        self.bank_keeper.send_coins_from_account_to_module(ctx, addr, MODULE_NAME, amt)
        self.bank_keeper.burn_coins(ctx, MODULE_NAME, amt)

    def get_params(self, ctx: Context) -> Params:
        raw = self._params_store(ctx).get(_PARAMS_KEY)
        if raw is None:
            return Params()
        return Params.from_dict(json.loads(raw))

    def set_params(self, ctx: Context, params: Params) -> None:
        self._params_store(ctx).set(_PARAMS_KEY, json.dumps(params.to_dict()).encode())

    def get_state(self, ctx: Context) -> State:
        raw = self._store(ctx).get(_STATE_KEY)
        if raw is None:
            return State()
        return State.from_dict(json.loads(raw))

    def set_state(self, ctx: Context, state: State) -> None:
        self._store(ctx).set(_STATE_KEY, json.dumps(state.to_dict()).encode())

    def get_next_sequence(self, ctx: Context) -> int:
        """Advance and return the balance-update sequence number."""
        state = self.get_state(ctx)
        state.last_sequence += 1
        self.set_state(ctx, state)
        return state.last_sequence


def _indented(obj: Any) -> bytes:
    return json.dumps(obj, indent=2).encode()


def legacy_query(keeper: Keeper, ctx: Context, path: list[str]) -> bytes:
    """Answer a path-style query for params or state as indented JSON."""
    if not path:
        raise UnknownRequestError("unknown query path: ")
    endpoint = path[0]
    if endpoint == QUERY_PARAMS:
        return _indented(keeper.get_params(ctx).to_dict())
    if endpoint == QUERY_STATE:
        return _indented(keeper.get_state(ctx).to_dict())
    raise UnknownRequestError(f"unknown query path: {endpoint}")


def validate_genesis(data: GenesisState | None) -> None:
    if data is None:
        raise ValueError("vbank genesis data cannot be nil")
    data.params.validate_basic()


def default_genesis_state() -> GenesisState:
    return GenesisState(params=default_params(), state=State())


def init_genesis(ctx: Context, keeper: Keeper, data: GenesisState) -> list:
    keeper.set_params(ctx, data.params)
    keeper.set_state(ctx, data.state)
    return []


def export_genesis(ctx: Context, keeper: Keeper) -> GenesisState:
    return GenesisState(params=keeper.get_params(ctx), state=keeper.get_state(ctx))


def handle_message(keeper: Keeper, ctx: Context, msg: Any) -> None:
    """vbank accepts no transaction messages."""
    raise UnknownRequestError(f"Unrecognized vbank Msg type: {type(msg).__name__}")