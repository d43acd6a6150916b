# agswing

Chain-side building blocks for a chain that drives a SwingSet controller. The
package has basic chain types (addresses, coins, events, an in-memory
key/value store and a block context). It has SwingSet parameters, messages and
core-eval proposals. It has a virtual bank that reports balance changes and
pays out fee rewards, and a virtual IBC port that passes channel and packet
operations between the controller and an IBC channel keeper.

It is a library only and installs no commands. It uses nothing beyond the
Python standard library and supports Python 3.10 and later.

## Modules

- `agswing.chain`
  - Error classes: `SdkError` and its subclasses `UnknownRequestError`,
    `InvalidRequestError`, `InvalidAddressError`, `InsufficientFeeError`,
    `NotFoundError` and `OutOfGasError`.
  - `AccAddress`: raw address bytes. `str()` gives the bech32 form with the
    `agoric` prefix. `AccAddress.from_bech32` parses that form and checks its
    checksum.
  - `Coin`, `Coins` (a sorted set of positive coins with `add`, `sub`,
    `is_zero` and `amount_of`) and `validate_denom`.
  - `Event`, `new_storage_event` and `EventManager`. `EventManager` keeps
    the events emitted during execution and the block's event history.
  - `KVStore`: an in-memory byte store with prefixed views.
  - `Context`: block height, time, chain id, event manager and named stores.
  - The `BankKeeper` and `AccountKeeper` protocols that callers implement.
- `agswing.swingset_types`
  - `Params`, `default_params()` and the validators
    `validate_beans_per_unit`, `validate_fee_unit_price` and
    `validate_bootstrap_vat_config`.
  - The stored records `Egress`, `Storage`, `Keys`, `StorageEntry` and
    `GenesisState`, plus `new_mailbox()`.
  - `nat` and `unmarshal_messages_json`. `unmarshal_messages_json` parses
    `[[[num, body], ...], ack]` into `Messages`.
  - The messages `MsgDeliverInbound`, `MsgProvision`, `MsgWalletAction` and
    `MsgWalletSpendAction`, each with `validate_basic` and `get_signers`.
    `MsgDeliverInbound.check_admissibility` charges beans through a keeper
    that you pass in. That keeper must have `get_beans_per_unit` and
    `charge_beans`.
  - `CoreEval` and `CoreEvalProposal`.
- `agswing.vbank_keeper`
  - `Keeper`: bank access, parameters, reward state and the
    balance-update sequence number. Parameters and state are stored as JSON
    in the context's stores.
  - `Params`, `State` and `GenesisState`.
  - `legacy_query` answers the `params` and `state` paths.
  - The genesis functions `validate_genesis`, `default_genesis_state`,
    `init_genesis` and `export_genesis`.
  - `handle_message`, which rejects every message: the virtual bank has no
    transactions.
- `agswing.vbank`
  - `min_coins` and `reward_rate`.
  - `SingleBalanceUpdate`, `BalanceUpdate`, `get_balance_update` and
    `marshal`. `get_balance_update` sorts its entries so the output is
    deterministic.
  - `PortHandler.receive` handles `VBANK_GET_BALANCE`, `VBANK_GRAB`,
    `VBANK_GIVE` and `VBANK_GIVE_TO_FEE_COLLECTOR`.
  - `AppModule.end_block` does two things. It pushes a
    `VBANK_BALANCE_UPDATE` for every sender and recipient found in the
    block's transfer events. It then moves the reward rate, capped at the
    reward pool, to the fee collector.
- `agswing.vibc_keeper`
  - `Order`, `Counterparty`, `Channel`, `Height`, `Packet` and
    `MsgSendPacket`.
  - The `ChannelKeeper`, `PortKeeper` and `ScopedKeeper` protocols, plus
    `port_path` and `channel_capability_path`.
  - `Keeper`, which looks up the port or channel capability before each
    channel operation.
- `agswing.vibc`
  - `string_to_order` and `order_to_string`.
  - `PortHandler.receive` handles the `IBC_METHOD` requests `sendPacket`,
    `receiveExecuted`, `startChannelOpenInit`, `startChannelCloseInit`,
    `bindPort` and `timeoutExecuted`.
  - `AppModule`: the IBC callbacks. Each callback pushes an `IBC_EVENT`
    action to the controller.
  - `handle_message` runs `MsgSendPacket`. The sender needs at least one
    `sendpacketpass` coin.

## Example

```python
from agswing.chain import Coin, Coins, Context
from agswing.vbank import AppModule, PortHandler
from agswing.vbank_keeper import Keeper


class Bank:
    """A minimal bank that records what it is asked to do."""

    def __init__(self):
        self.calls = []

    def mint_coins(self, ctx, module_name, amt):
        self.calls.append(f"mint {module_name} {amt}")

    def send_coins_from_module_to_module(self, ctx, sender, recipient, amt):
        self.calls.append(f"send {sender} {recipient} {amt}")


bank = Bank()
keeper = Keeper(bank, fee_collector_name="fee_collector")
ctx = Context()

handler = PortHandler(None, keeper)
handler.receive(ctx, '{"type": "VBANK_GIVE_TO_FEE_COLLECTOR", "amount": "1000", "denom": "urun"}')
# 'true'
keeper.get_state(ctx).reward_rate == Coins([Coin("urun", 1000)])   # True

AppModule(keeper).end_block(ctx)
bank.calls   # ['mint vbank 1000urun', 'send vbank fee_collector 1000urun']
```

## Errors

Failures raise exceptions:

- A request type or method that the handler does not know raises
  `UnknownRequestError`.
- A malformed address raises `InvalidAddressError`.
- A bad amount raises `ValueError`.
- A missing channel capability raises `CapabilityNotFoundError`.
- A missing port capability raises `InvalidPortError`.
- A sender without a `sendpacketpass` coin raises `InsufficientFeeError`.

If a keeper has no `push_action` callable and an action is pushed, it raises
`RuntimeError`.

## What this package does not do

- There is no SwingSet keeper. That means no storage with parent key lists,
  no action queue, no bean charging, and no egress or mailbox storage. There
  is also no handler for the controller's storage requests, no SwingSet
  genesis or block begin/end/commit handling, and no SwingSet message server
  or query endpoints. The SwingSet types and messages are here, but nothing
  in the package executes them.
- There is no real bank, account store or IBC stack. You supply objects that
  implement `BankKeeper`, `ChannelKeeper`, `PortKeeper` and `ScopedKeeper`.
- `KVStore` keeps data in memory only. Nothing is written to disk.
- There are no command-line tools and no network server.

## Tests

```
pip install -e .[test]
pytest
```