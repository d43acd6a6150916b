"""IBC bridge keeper: channels, packets, capabilities and the send-packet message."""

from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Protocol

from .chain import (
    AccAddress,
    BankKeeper,
    Coin,
    Context,
    Event,
    InvalidAddressError,
    InvalidRequestError,
    NotFoundError,
)

MODULE_NAME = "vibc"
STORE_KEY = MODULE_NAME
ROUTER_KEY = MODULE_NAME

EVENT_TYPE_MESSAGE = "message"
ATTRIBUTE_KEY_MODULE = "module"
CHANNEL_ATTRIBUTE_VALUE_CATEGORY = "ibc_channel"

ActionPusher = Callable[[Context, Any], None]


class InvalidPortError(InvalidRequestError):
    """A port capability could not be found or the port is invalid."""


class CapabilityNotFoundError(NotFoundError):
    """A channel capability could not be found."""


class InvalidPacketError(InvalidRequestError):
    """A packet failed its stateless checks."""


class Order(IntEnum):
    NONE = 0
    UNORDERED = 1
    ORDERED = 2


@dataclass(frozen=True)
class Capability:
    index: int


@dataclass
class Counterparty:
    port_id: str = ""
    channel_id: str = ""

    def to_dict(self) -> dict:
        return {"port_id": self.port_id, "channel_id": self.channel_id}


@dataclass
class Channel:
    ordering: Order = Order.NONE
    counterparty: Counterparty = field(default_factory=Counterparty)
    connection_hops: list[str] = field(default_factory=list)
    version: str = ""


@dataclass(frozen=True)
class Height:
    revision_number: int = 0
    revision_height: int = 0

    def is_zero(self) -> bool:
        return self.revision_number == 0 and self.revision_height == 0


_ID_RE = re.compile(r"[a-zA-Z0-9._+\-#\[\]<>]+")


def _validate_identifier(ident: str, min_len: int, max_len: int, what: str) -> None:
    if not ident.strip():
        raise InvalidPacketError(f"invalid {what}: identifier cannot be blank")
    if not min_len <= len(ident) <= max_len:
        raise InvalidPacketError(
            f"invalid {what}: identifier {ident} has invalid length {len(ident)}, "
            f"must be between {min_len}-{max_len} characters"
        )
    if not _ID_RE.fullmatch(ident):
        raise InvalidPacketError(f"invalid {what}: identifier {ident} must contain only valid characters")


@dataclass
class Packet:
    sequence: int = 0
    source_port: str = ""
    source_channel: str = ""
    destination_port: str = ""
    destination_channel: str = ""
    data: bytes = b""
    timeout_height: Height = field(default_factory=Height)
    timeout_timestamp: int = 0

    def validate_basic(self) -> None:
        _validate_identifier(self.source_port, 2, 128, "source port ID")
        _validate_identifier(self.destination_port, 2, 128, "destination port ID")
        _validate_identifier(self.source_channel, 8, 64, "source channel ID")
        _validate_identifier(self.destination_channel, 8, 64, "destination channel ID")
        if self.sequence == 0:
            raise InvalidPacketError("packet sequence cannot be 0")
        if self.timeout_height.is_zero() and self.timeout_timestamp == 0:
            raise InvalidPacketError(
                "packet timeout height and packet timeout timestamp cannot both be 0"
            )
        if not self.data:
            raise InvalidPacketError("packet data bytes cannot be empty")

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "source_port": self.source_port,
            "source_channel": self.source_channel,
            "destination_port": self.destination_port,
            "destination_channel": self.destination_channel,
            "data": base64.b64encode(self.data).decode(),
            "timeout_height": {
                "revision_number": self.timeout_height.revision_number,
                "revision_height": self.timeout_height.revision_height,
            },
            "timeout_timestamp": self.timeout_timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Packet":
        height = data.get("timeout_height") or {}
        return cls(
            sequence=int(data.get("sequence", 0)),
            source_port=data.get("source_port", ""),
            source_channel=data.get("source_channel", ""),
            destination_port=data.get("destination_port", ""),
            destination_channel=data.get("destination_channel", ""),
            data=base64.b64decode(data.get("data") or ""),
            timeout_height=Height(
                int(height.get("revision_number", 0)),
                int(height.get("revision_height", 0)),
            ),
            timeout_timestamp=int(data.get("timeout_timestamp", 0)),
        )


@dataclass
class MsgSendPacket:
    packet: Packet = field(default_factory=Packet)
    sender: AccAddress | None = None

    route = ROUTER_KEY
    type = "sendpacket"

    def validate_basic(self) -> None:
        if self.sender is None or self.sender.is_empty():
            raise InvalidAddressError("invalid address")
        self.packet.validate_basic()

    def get_sign_bytes(self) -> bytes:
        return json.dumps(
            {
                "packet": self.packet.to_dict(),
                "sender": str(self.sender) if self.sender is not None else "",
            },
            sort_keys=True,
            separators=(",", ":"),
        ).encode()

    def get_signers(self) -> list[AccAddress | None]:
        return [self.sender]


class ChannelKeeper(Protocol):
    def get_channel(self, ctx: Context, src_port: str, src_chan: str) -> Channel | None: ...
    def get_next_sequence_send(self, ctx: Context, port_id: str, channel_id: str) -> int | None: ...
    def send_packet(self, ctx: Context, channel_cap: Capability, packet: Packet) -> None: ...
    def write_acknowledgement(
        self, ctx: Context, channel_cap: Capability, packet: Packet, acknowledgement: bytes
    ) -> None: ...
    def chan_open_init(
        self,
        ctx: Context,
        order: Order,
        connection_hops: list[str],
        port_id: str,
        port_cap: Capability,
        counterparty: Counterparty,
        version: str,
    ) -> tuple[str, Capability]: ...
    def chan_close_init(
        self, ctx: Context, port_id: str, channel_id: str, chan_cap: Capability
    ) -> None: ...
    def timeout_executed(self, ctx: Context, channel_cap: Capability, packet: Packet) -> None: ...


class PortKeeper(Protocol):
    def bind_port(self, ctx: Context, port_id: str) -> Capability: ...


class ScopedKeeper(Protocol):
    def claim_capability(self, ctx: Context, capability: Capability, name: str) -> None: ...
    def get_capability(self, ctx: Context, name: str) -> Capability | None: ...


def port_path(port_id: str) -> str:
    return f"ports/{port_id}"


def channel_capability_path(port_id: str, channel_id: str) -> str:
    return f"capabilities/ports/{port_id}/channels/{channel_id}"


def _no_action_pusher(ctx: Context, action: Any) -> None:
    raise RuntimeError("no action pusher is attached")


def _channel_event() -> Event:
    return Event(
        EVENT_TYPE_MESSAGE,
        ((ATTRIBUTE_KEY_MODULE, CHANNEL_ATTRIBUTE_VALUE_CATEGORY),),
    )


class Keeper:
    """Exposes IBC channel and port operations to the controller."""

    def __init__(
        self,
        channel_keeper: ChannelKeeper,
        port_keeper: PortKeeper,
        scoped_keeper: ScopedKeeper,
        bank_keeper: BankKeeper | None = None,
        push_action: ActionPusher | None = None,
        store_key: str = STORE_KEY,
    ) -> None:
        self.channel_keeper = channel_keeper
        self.port_keeper = port_keeper
        self.scoped_keeper = scoped_keeper
        self.bank_keeper = bank_keeper
        self.push_action: ActionPusher = push_action or _no_action_pusher
        self.store_key = store_key

    def get_balance(self, ctx: Context, addr: AccAddress, denom: str) -> Coin:
        return self.bank_keeper.get_balance(ctx, addr, denom)

    def get_next_sequence_send(self, ctx: Context, port_id: str, channel_id: str) -> int | None:
        return self.channel_keeper.get_next_sequence_send(ctx, port_id, channel_id)

    def get_channel(self, ctx: Context, port_id: str, channel_id: str) -> Channel | None:
        return self.channel_keeper.get_channel(ctx, port_id, channel_id)

    def _channel_cap(self, ctx: Context, port_id: str, channel_id: str) -> Capability:
        cap_name = channel_capability_path(port_id, channel_id)
        cap = self.get_capability(ctx, cap_name)
        if cap is None:
            raise CapabilityNotFoundError(
                f"could not retrieve channel capability at: {cap_name}"
            )
        return cap

    def chan_open_init(
        self,
        ctx: Context,
        order: Order,
        connection_hops: list[str],
        port_id: str,
        r_port_id: str,
        version: str,
    ) -> None:
        """Start opening a channel on a bound port and claim its capability."""
        cap_name = port_path(port_id)
        port_cap = self.get_capability(ctx, cap_name)
        if port_cap is None:
            raise InvalidPortError(f"could not retrieve port capability at: {cap_name}")
        counterparty = Counterparty(port_id=r_port_id)
        channel_id, chan_cap = self.channel_keeper.chan_open_init(
            ctx, order, connection_hops, port_id, port_cap, counterparty, version
        )
        self.claim_capability(ctx, chan_cap, channel_capability_path(port_id, channel_id))
        ctx.event_manager.emit(_channel_event())

    def send_packet(self, ctx: Context, packet: Packet) -> None:
        cap = self._channel_cap(ctx, packet.source_port, packet.source_channel)
        self.channel_keeper.send_packet(ctx, cap, packet)

    def write_acknowledgement(self, ctx: Context, packet: Packet, acknowledgement: bytes) -> None:
        cap = self._channel_cap(ctx, packet.destination_port, packet.destination_channel)
        self.channel_keeper.write_acknowledgement(ctx, cap, packet, acknowledgement)

    def chan_close_init(self, ctx: Context, port_id: str, channel_id: str) -> None:
        cap = self._channel_cap(ctx, port_id, channel_id)
        self.channel_keeper.chan_close_init(ctx, port_id, channel_id, cap)
        ctx.event_manager.emit(_channel_event())

    def bind_port(self, ctx: Context, port_id: str) -> None:
        cap = self.port_keeper.bind_port(ctx, port_id)
        self.claim_capability(ctx, cap, port_path(port_id))

    def timeout_executed(self, ctx: Context, packet: Packet) -> None:
        cap = self._channel_cap(ctx, packet.source_port, packet.source_channel)
        self.channel_keeper.timeout_executed(ctx, cap, packet)

    def claim_capability(self, ctx: Context, capability: Capability, name: str) -> None:
        self.scoped_keeper.claim_capability(ctx, capability, name)

    def get_capability(self, ctx: Context, name: str) -> Capability | None:
        return self.scoped_keeper.get_capability(ctx, name)