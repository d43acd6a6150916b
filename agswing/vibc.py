"""IBC bridge port: controller requests, IBC callbacks and the send-packet handler."""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any, Mapping

from .chain import (
    AccAddress,
    Coin,
    Context,
    Event,
    EventManager,
    InsufficientFeeError,
    InvalidRequestError,
    NotFoundError,
    UnknownRequestError,
)
from .vibc_keeper import (
    MODULE_NAME,
    Capability,
    CapabilityNotFoundError,
    Channel,
    Counterparty,
    Keeper,
    MsgSendPacket,
    Order,
    Packet,
    channel_capability_path,
)

SEND_PACKET_PASS_DENOM = "sendpacketpass"


class ChannelNotFoundError(NotFoundError):
    """The requested channel does not exist or may not be opened this way."""


def string_to_order(order: str) -> Order:
    """Map a controller order name to an Order; unknown names give NONE."""
    return {"ORDERED": Order.ORDERED, "UNORDERED": Order.UNORDERED}.get(order, Order.NONE)


def order_to_string(order: Order) -> str:
    """Map an Order to the name the controller uses."""
    return {Order.ORDERED: "ORDERED", Order.UNORDERED: "UNORDERED"}.get(order, "NONE")


@dataclass(frozen=True)
class ErrorAcknowledgement:
    """An acknowledgement reporting that a received packet failed."""

    error: str

    def success(self) -> bool:
        return False

    def acknowledgement(self) -> bytes:
        return json.dumps({"error": self.error}, sort_keys=True, separators=(",", ":")).encode()


def _string_field(msg: Mapping[str, Any], name: str) -> str:
    value = msg.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string")
    return value


def _relative_timeout(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError("relativeTimeoutNs must be a number")
    if isinstance(value, str):
        if not value.isdigit():
            raise ValueError(f"invalid relativeTimeoutNs: {value!r}")
        return int(value)
    if isinstance(value, int) and value >= 0:
        return value
    raise ValueError(f"invalid relativeTimeoutNs: {value!r}")


def _bytes_field(msg: Mapping[str, Any], name: str) -> bytes:
    value = msg.get(name)
    if value is None:
        return b""
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a base64 string")
    return base64.b64decode(value)


def _to_json(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"))


class PortHandler:
    """Answers IBC requests sent by the controller."""

    def __init__(self, ibc_module: "AppModule | None", keeper: Keeper) -> None:
        self.ibc_module = ibc_module
        self.keeper = keeper

    def receive(self, ctx: Context, text: str) -> str:
        msg = json.loads(text)
        if not isinstance(msg, dict):
            raise ValueError("IBC message must be a JSON object")
        if msg.get("type") != "IBC_METHOD":
            raise InvalidRequestError(
                'channel handler only accepts messages of "type": "IBC_METHOD"'
            )

        method = _string_field(msg, "method")
        packet = Packet.from_dict(msg.get("packet") or {})
        keeper = self.keeper

        if method == "sendPacket":
            seq = keeper.get_next_sequence_send(ctx, packet.source_port, packet.source_channel)
            if seq is None:
                raise NotFoundError("unknown sequence number")
            timeout_timestamp = packet.timeout_timestamp
            if packet.timeout_height.is_zero() and packet.timeout_timestamp == 0:
                # No absolute timeout given, so use the relative one.
                timeout_timestamp = ctx.block_time_nanos + _relative_timeout(
                    msg.get("relativeTimeoutNs")
                )
            outgoing = Packet(
                sequence=seq,
                source_port=packet.source_port,
                source_channel=packet.source_channel,
                destination_port=packet.destination_port,
                destination_channel=packet.destination_channel,
                data=packet.data,
                timeout_height=packet.timeout_height,
                timeout_timestamp=timeout_timestamp,
            )
            keeper.send_packet(ctx, outgoing)
            return _to_json(outgoing.to_dict())

        if method == "receiveExecuted":
            keeper.write_acknowledgement(ctx, packet, _bytes_field(msg, "ack"))
            return "true"

        if method == "startChannelOpenInit":
            hops = msg.get("hops") or []
            if not isinstance(hops, list) or not all(isinstance(h, str) for h in hops):
                raise ValueError("field 'hops' must be a list of strings")
            keeper.chan_open_init(
                ctx,
                string_to_order(_string_field(msg, "order")),
                list(hops),
                packet.source_port,
                packet.destination_port,
                _string_field(msg, "version"),
            )
            return "true"

        if method == "startChannelCloseInit":
            keeper.chan_close_init(ctx, packet.source_port, packet.source_channel)
            return "true"

        if method == "bindPort":
            keeper.bind_port(ctx, packet.source_port)
            return "true"

        if method == "timeoutExecuted":
            keeper.timeout_executed(ctx, packet)
            return "true"

        raise UnknownRequestError(f"unrecognized method {method}")


def _ibc_event(ctx: Context, event: str, **fields: Any) -> dict:
    return {
        "type": "IBC_EVENT",
        "event": event,
        **fields,
        "blockHeight": ctx.block_height,
        "blockTime": ctx.block_time,
    }


class AppModule:
    """The vibc module's IBC callbacks, each forwarded to the controller."""

    name = MODULE_NAME
    consensus_version = 1

    def __init__(self, keeper: Keeper) -> None:
        self.keeper = keeper

    def push_action(self, ctx: Context, action: Any) -> None:
        self.keeper.push_action(ctx, action)

    def negotiate_app_version(
        self,
        ctx: Context,
        order: Order,
        connection_id: str,
        port_id: str,
        counterparty: Counterparty,
        proposed_version: str,
    ) -> str:
        # The controller cannot answer synchronously, so accept the proposal.
        return proposed_version

    def on_chan_open_init(
        self,
        ctx: Context,
        order: Order,
        connection_hops: list[str],
        port_id: str,
        channel_id: str,
        channel_cap: Capability,
        counterparty: Counterparty,
        version: str,
    ) -> None:
        raise ChannelNotFoundError(
            f"vibc does not allow synthetic channelOpenInit for port {port_id}"
        )

    def on_chan_open_try(
        self,
        ctx: Context,
        order: Order,
        connection_hops: list[str],
        port_id: str,
        channel_id: str,
        channel_cap: Capability,
        counterparty: Counterparty,
        version: str,
        counterparty_version: str,
    ) -> None:
        self.push_action(ctx, _ibc_event(
            ctx,
            "channelOpenTry",
            order=order_to_string(order),
            connectionHops=list(connection_hops),
            portID=port_id,
            channelID=channel_id,
            counterparty=counterparty.to_dict(),
            version=version,
            counterpartyVersion=counterparty_version,
        ))
        try:
            self.keeper.claim_capability(
                ctx, channel_cap, channel_capability_path(port_id, channel_id)
            )
        except Exception as exc:
            raise CapabilityNotFoundError(str(exc)) from exc

    def on_chan_open_ack(
        self, ctx: Context, port_id: str, channel_id: str, counterparty_version: str
    ) -> None:
        # A missing channel is tolerated; an empty one is reported instead.
        channel = self.keeper.get_channel(ctx, port_id, channel_id) or Channel()
        self.push_action(ctx, _ibc_event(
            ctx,
            "channelOpenAck",
            portID=port_id,
            channelID=channel_id,
            counterpartyVersion=counterparty_version,
            counterparty=channel.counterparty.to_dict(),
            connectionHops=list(channel.connection_hops),
        ))

    def on_chan_open_confirm(self, ctx: Context, port_id: str, channel_id: str) -> None:
        self.push_action(ctx, _ibc_event(
            ctx, "channelOpenConfirm", portID=port_id, channelID=channel_id
        ))

    def on_chan_close_init(self, ctx: Context, port_id: str, channel_id: str) -> None:
        self.push_action(ctx, _ibc_event(
            ctx, "channelCloseInit", portID=port_id, channelID=channel_id
        ))

    def on_chan_close_confirm(self, ctx: Context, port_id: str, channel_id: str) -> None:
        self.push_action(ctx, _ibc_event(
            ctx, "channelCloseConfirm", portID=port_id, channelID=channel_id
        ))

    def on_recv_packet(
        self, ctx: Context, packet: Packet, relayer: AccAddress | None
    ) -> ErrorAcknowledgement | None:
        """Forward a received packet; the controller acknowledges it later."""
        try:
            self.push_action(ctx, _ibc_event(ctx, "receivePacket", packet=packet.to_dict()))
        except Exception as exc:
            return ErrorAcknowledgement(str(exc))
        return None

    def on_acknowledgement_packet(
        self,
        ctx: Context,
        packet: Packet,
        acknowledgement: bytes,
        relayer: AccAddress | None,
    ) -> None:
        self.push_action(ctx, _ibc_event(
            ctx,
            "acknowledgementPacket",
            packet=packet.to_dict(),
            acknowledgement=base64.b64encode(acknowledgement).decode(),
        ))

    def on_timeout_packet(
        self, ctx: Context, packet: Packet, relayer: AccAddress | None
    ) -> None:
        self.push_action(ctx, _ibc_event(ctx, "timeoutPacket", packet=packet.to_dict()))


def handle_message(keeper: Keeper, ctx: Context, msg: Any) -> list[Event]:
    """Run a vibc transaction message and return the events it emitted."""
    if not isinstance(msg, MsgSendPacket):
        raise UnknownRequestError(f"Unrecognized vibc Msg type: {type(msg).__name__}")

    one_pass = Coin(SEND_PACKET_PASS_DENOM, 1)
    sender = str(msg.sender) if msg.sender is not None else ""
    balance = keeper.get_balance(ctx, msg.sender, one_pass.denom)
    if balance.is_lt(one_pass):
        raise InsufficientFeeError(f"sender {sender} needs at least {one_pass}")

    keeper.push_action(ctx, {
        "packet": msg.packet.to_dict(),
        "sender": sender,
        "type": "IBC_EVENT",
        "event": "sendPacket",
        "blockHeight": ctx.block_height,
        "blockTime": ctx.block_time,
    })
    return list(ctx.event_manager.events)


__all__ = [
    "AppModule",
    "ChannelNotFoundError",
    "ErrorAcknowledgement",
    "EventManager",
    "PortHandler",
    "handle_message",
    "order_to_string",
    "string_to_order",
]