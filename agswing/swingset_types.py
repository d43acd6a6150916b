"""SwingSet parameters, messages, proposals and stored records."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from .chain import (
    AccAddress,
    Coin,
    Coins,
    InvalidAddressError,
    InvalidRequestError,
    UnknownRequestError,
    validate_denom,
)

ROUTER_KEY = "swingset"

BEANS_PER_FEE_UNIT = "feeUnit"
BEANS_PER_INBOUND_TX = "inboundTx"
BEANS_PER_BLOCK_COMPUTE_LIMIT = "blockComputeLimit"
BEANS_PER_MESSAGE = "message"
BEANS_PER_MESSAGE_BYTE = "messageByte"
BEANS_PER_MIN_FEE_DEBIT = "minFeeDebit"
BEANS_PER_VAT_CREATION = "vatCreation"
BEANS_PER_XSNAP_COMPUTRON = "xsnapComputron"

DEFAULT_BEANS_PER_XSNAP_COMPUTRON = 100
DEFAULT_BEANS_PER_BLOCK_COMPUTE_LIMIT = 8000000 * DEFAULT_BEANS_PER_XSNAP_COMPUTRON
DEFAULT_BEANS_PER_VAT_CREATION = 300000 * DEFAULT_BEANS_PER_XSNAP_COMPUTRON
DEFAULT_FEE_UNIT_PRICE = Coins([Coin("urun", 1000000)])
DEFAULT_BEANS_PER_FEE_UNIT = 1000000000000
DEFAULT_BEANS_PER_INBOUND_TX = DEFAULT_BEANS_PER_FEE_UNIT // 100
DEFAULT_BEANS_PER_MESSAGE = DEFAULT_BEANS_PER_FEE_UNIT // 1000
DEFAULT_BEANS_PER_MESSAGE_BYTE = DEFAULT_BEANS_PER_FEE_UNIT // 50000
DEFAULT_BEANS_PER_MIN_FEE_DEBIT = DEFAULT_BEANS_PER_FEE_UNIT // 5
DEFAULT_BOOTSTRAP_VAT_CONFIG = "@agoric/vats/decentral-core-config.json"

EMPTY_MAILBOX_VALUE = '"{\\"outbox\\":[], \\"ack\\":0}"'

PROPOSAL_TYPE_CORE_EVAL = "CoreEval"
_MAX_TITLE_LENGTH = 140
_MAX_DESCRIPTION_LENGTH = 5000


@dataclass(frozen=True)
class StringBeans:
    key: str
    beans: int


DEFAULT_BEANS_PER_UNIT = (
    StringBeans(BEANS_PER_BLOCK_COMPUTE_LIMIT, DEFAULT_BEANS_PER_BLOCK_COMPUTE_LIMIT),
    StringBeans(BEANS_PER_FEE_UNIT, DEFAULT_BEANS_PER_FEE_UNIT),
    StringBeans(BEANS_PER_INBOUND_TX, DEFAULT_BEANS_PER_INBOUND_TX),
    StringBeans(BEANS_PER_MESSAGE, DEFAULT_BEANS_PER_MESSAGE),
    StringBeans(BEANS_PER_MESSAGE_BYTE, DEFAULT_BEANS_PER_MESSAGE_BYTE),
    StringBeans(BEANS_PER_MIN_FEE_DEBIT, DEFAULT_BEANS_PER_MIN_FEE_DEBIT),
    StringBeans(BEANS_PER_VAT_CREATION, DEFAULT_BEANS_PER_VAT_CREATION),
    StringBeans(BEANS_PER_XSNAP_COMPUTRON, DEFAULT_BEANS_PER_XSNAP_COMPUTRON),
)


def validate_beans_per_unit(value) -> None:
    if not isinstance(value, (list, tuple)) or not all(
        isinstance(sb, StringBeans) for sb in value
    ):
        raise ValueError(f"invalid parameter type: {type(value).__name__}")
    if any(sb.key == "" for sb in value):
        raise ValueError("key must not be empty")


def validate_fee_unit_price(value) -> None:
    if not isinstance(value, Coins):
        raise ValueError(f"invalid parameter type: {type(value).__name__}")
    for coin in value:
        try:
            validate_denom(coin.denom)
        except ValueError as exc:
            raise ValueError(
                f"fee unit price denom {coin.denom} must be valid: {exc}"
            ) from exc
        if coin.amount < 0:
            raise ValueError(
                f"fee unit price {coin.denom} must not be negative: {coin.amount}"
            )


def validate_bootstrap_vat_config(value) -> None:
    if not isinstance(value, str):
        raise ValueError(f"invalid parameter type: {type(value).__name__}")
    if value == "":
        raise ValueError("bootstrap vat config must not be empty")


@dataclass
class Params:
    beans_per_unit: tuple[StringBeans, ...] = ()
    bootstrap_vat_config: str = ""
    fee_unit_price: Coins = field(default_factory=Coins)

    def validate_basic(self) -> None:
        validate_beans_per_unit(self.beans_per_unit)
        validate_fee_unit_price(self.fee_unit_price)
        validate_bootstrap_vat_config(self.bootstrap_vat_config)


def default_params() -> Params:
    return Params(
        beans_per_unit=DEFAULT_BEANS_PER_UNIT,
        bootstrap_vat_config=DEFAULT_BOOTSTRAP_VAT_CONFIG,
        fee_unit_price=DEFAULT_FEE_UNIT_PRICE,
    )


@dataclass
class Egress:
    nickname: str = ""
    peer: AccAddress | None = None
    power_flags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        out: dict = {}
        if self.nickname:
            out["nickname"] = self.nickname
        out["peer"] = str(self.peer) if self.peer is not None else ""
        if self.power_flags:
            out["power_flags"] = list(self.power_flags)
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "Egress":
        peer_text = data.get("peer") or ""
        return cls(
            nickname=data.get("nickname", ""),
            peer=AccAddress.from_bech32(peer_text) if peer_text else None,
            power_flags=list(data.get("power_flags") or []),
        )


@dataclass
class Storage:
    value: str = ""


@dataclass
class Keys:
    keys: list[str] = field(default_factory=list)


@dataclass
class StorageEntry:
    key: str
    value: str


@dataclass
class GenesisState:
    params: Params = field(default_factory=Params)
    storage: list[StorageEntry] = field(default_factory=list)


def new_mailbox() -> Storage:
    """Return storage holding an empty mailbox."""
    return Storage(EMPTY_MAILBOX_VALUE)


def nat(num) -> int:
    """Return num as a natural number, or raise ValueError."""
    if isinstance(num, bool) or not isinstance(num, (int, float)):
        raise ValueError("Not a natural")
    if num < 0:
        raise ValueError("Not a natural")
    if num != num or num == float("inf") or int(num) != num:
        raise ValueError("Not a precise integer")
    return int(num)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class Messages:
    nums: list[int] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    ack: int = 0


def unmarshal_messages_json(text: str) -> Messages:
    """Parse `[[[num, body], ...], ack]` into Messages."""
    packet = json.loads(text)
    if not isinstance(packet, list) or len(packet) < 2:
        raise ValueError("Messages packet is not a pair")
    if not _is_number(packet[1]):
        raise ValueError("Ack is not an integer")
    ack = nat(packet[1])
    if not isinstance(packet[0], list):
        raise ValueError("Messages is not an array")
    result = Messages(ack=ack)
    for pair in packet[0]:
        if not isinstance(pair, list) or len(pair) != 2:
            raise ValueError("Message is not a pair")
        num, body = pair
        if not _is_number(num):
            raise ValueError("Message Num is not an integer")
        try:
            result.nums.append(nat(num))
        except ValueError:
            raise ValueError("Message num is not a Nat") from None
        if not isinstance(body, str):
            raise ValueError("Message is not a string")
        result.messages.append(body)
    return result


def _sorted_json(data: dict) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode()


def _addr_str(addr: AccAddress | None) -> str:
    return str(addr) if addr is not None else ""


def _is_empty(addr: AccAddress | None) -> bool:
    return addr is None or addr.is_empty()


@dataclass
class MsgDeliverInbound:
    messages: list[str] = field(default_factory=list)
    nums: list[int] = field(default_factory=list)
    ack: int = 0
    submitter: AccAddress | None = None

    route = ROUTER_KEY
    type = "eventualSend"

    @classmethod
    def from_messages(cls, messages: Messages, submitter: AccAddress) -> "MsgDeliverInbound":
        return cls(list(messages.messages), list(messages.nums), messages.ack, submitter)

    def check_admissibility(self, ctx, keeper) -> None:
        if not (hasattr(keeper, "get_beans_per_unit") and hasattr(keeper, "charge_beans")):
            raise InvalidRequestError(
                f"data must be a SwingSetKeeper, not a {type(keeper).__name__}"
            )
        per_unit = keeper.get_beans_per_unit(ctx)
        beans = per_unit.get(BEANS_PER_INBOUND_TX, 0)
        beans += per_unit.get(BEANS_PER_MESSAGE, 0) * len(self.messages)
        byte_cost = per_unit.get(BEANS_PER_MESSAGE_BYTE, 0)
        beans += sum(byte_cost * len(m.encode()) for m in self.messages)
        keeper.charge_beans(ctx, self.submitter, beans)

    def validate_basic(self) -> None:
        if _is_empty(self.submitter):
            raise InvalidAddressError("Submitter address cannot be empty")
        if len(self.messages) != len(self.nums):
            raise UnknownRequestError("Messages and Nums must be the same length")
        if any(len(m) == 0 for m in self.messages):
            raise UnknownRequestError("Messages cannot be empty")

    def get_sign_bytes(self) -> bytes:
        return _sorted_json({
            "messages": list(self.messages),
            "nums": [str(n) for n in self.nums],
            "ack": str(self.ack),
            "submitter": _addr_str(self.submitter),
        })

    def get_signers(self) -> list[AccAddress | None]:
        return [self.submitter]


@dataclass
class MsgWalletAction:
    owner: AccAddress | None = None
    action: str = ""

    def validate_basic(self) -> None:
        if _is_empty(self.owner):
            raise InvalidAddressError("Owner address cannot be empty")
        if not self.action.strip():
            raise UnknownRequestError("Action cannot be empty")

    def get_signers(self) -> list[AccAddress | None]:
        return [self.owner]


@dataclass
class MsgWalletSpendAction:
    owner: AccAddress | None = None
    spend_action: str = ""

    def validate_basic(self) -> None:
        if _is_empty(self.owner):
            raise InvalidAddressError("Owner address cannot be empty")
        if not self.spend_action.strip():
            raise UnknownRequestError("Spend action cannot be empty")

    def get_signers(self) -> list[AccAddress | None]:
        return [self.owner]


@dataclass
class MsgProvision:
    nickname: str = ""
    address: AccAddress | None = None
    power_flags: list[str] = field(default_factory=list)
    submitter: AccAddress | None = None

    route = ROUTER_KEY
    type = "provision"

    def validate_basic(self) -> None:
        if _is_empty(self.submitter):
            raise InvalidAddressError("Submitter address cannot be empty")
        if _is_empty(self.address):
            raise InvalidAddressError("Peer address cannot be empty")
        if not self.nickname:
            raise UnknownRequestError("Nickname cannot be empty")

    def get_sign_bytes(self) -> bytes:
        return _sorted_json({
            "nickname": self.nickname,
            "address": _addr_str(self.address),
            "power_flags": list(self.power_flags or []),
            "submitter": _addr_str(self.submitter),
        })

    def get_signers(self) -> list[AccAddress | None]:
        return [self.submitter]


@dataclass
class CoreEval:
    json_permits: str = ""
    js_code: str = ""

    def validate_basic(self) -> None:
        try:
            json.loads(self.json_permits)
        except ValueError as exc:
            raise InvalidRequestError(f"invalid permit.json: {exc}") from exc
        if not self.js_code.strip():
            raise InvalidRequestError("no code.js provided")


@dataclass
class CoreEvalProposal:
    title: str = ""
    description: str = ""
    evals: list[CoreEval] = field(default_factory=list)

    route = ROUTER_KEY
    proposal_type = PROPOSAL_TYPE_CORE_EVAL

    def validate_basic(self) -> None:
        if not self.title.strip():
            raise InvalidRequestError("proposal title cannot be blank")
        if len(self.title) > _MAX_TITLE_LENGTH:
            raise InvalidRequestError(
                f"proposal title is longer than max length of {_MAX_TITLE_LENGTH}"
            )
        if not self.description:
            raise InvalidRequestError("proposal description cannot be blank")
        if len(self.description) > _MAX_DESCRIPTION_LENGTH:
            raise InvalidRequestError(
                f"proposal description is longer than max length of {_MAX_DESCRIPTION_LENGTH}"
            )
        if not self.evals:
            raise InvalidRequestError("no core evals provided")
        for i, core_eval in enumerate(self.evals):
            try:
                core_eval.validate_basic()
            except InvalidRequestError as exc:
                raise InvalidRequestError(f"invalid core eval {i}: {exc}") from exc