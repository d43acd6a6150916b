import json

import pytest

from agswing.chain import (
    AccAddress,
    Coin,
    Coins,
    Context,
    Event,
    EventManager,
    InvalidAddressError,
    UnknownRequestError,
)
from agswing.vbank import (
    AppModule,
    BalanceUpdate,
    PortHandler,
    SingleBalanceUpdate,
    get_balance_update,
    marshal,
    min_coins,
    reward_rate,
)
from agswing.vbank_keeper import Keeper, Params, State, default_params

ADDR1 = str(AccAddress(bytes([1]) * 20))
ADDR2 = str(AccAddress(bytes([2]) * 20))
ADDR3 = str(AccAddress(bytes([3]) * 20))
ADDR4 = str(AccAddress(bytes([4]) * 20))


class MockBank:
    def __init__(self, balance=None, all_balances=None):
        self.calls = []
        self.balance = balance or {}
        self.all_balances = all_balances or {}

    def burn_coins(self, ctx, module_name, amt):
        self.calls.append(f"BurnCoins {module_name} {amt}")

    def get_all_balances(self, ctx, addr):
        self.calls.append(f"GetAllBalances {addr}")
        return self.all_balances.get(str(addr), Coins())

    def get_balance(self, ctx, addr, denom):
        self.calls.append(f"GetBalance {addr} {denom}")
        return self.balance.get(str(addr), Coin(denom, 0))

    def mint_coins(self, ctx, module_name, amt):
        self.calls.append(f"MintCoins {module_name} {amt}")

    def send_coins_from_account_to_module(self, ctx, sender, recipient_module, amt):
        self.calls.append(f"SendCoinsFromAccountToModule {sender} {recipient_module} {amt}")

    def send_coins_from_module_to_account(self, ctx, sender_module, recipient, amt):
        self.calls.append(f"SendCoinsFromModuleToAccount {sender_module} {recipient} {amt}")

    def send_coins_from_module_to_module(self, ctx, sender_module, recipient_module, amt):
        self.calls.append(f"SendCoinsFromModuleToModule {sender_module} {recipient_module} {amt}")


def make_test_kit(bank):
    keeper = Keeper(bank, "feeCollectorName", push_action=lambda ctx, action: None)
    ctx = Context()
    keeper.set_params(ctx, default_params())
    keeper.set_state(ctx, State())
    return keeper, ctx


def decode_balances(encoded):
    if encoded is None:
        return None, 0
    update = BalanceUpdate.from_dict(json.loads(encoded))
    assert update.type == "VBANK_BALANCE_UPDATE"
    assert update.updated == sorted(update.updated)
    balances = {}
    for u in update.updated:
        balances.setdefault(u.address, {})[u.denom] = u.amount
    return balances, update.nonce


def test_marshal_balance_update():
    bank = MockBank(balance={ADDR1: Coin("moola", 392)})
    keeper, ctx = make_test_kit(bank)
    cases = [
        ({}, None),
        ({ADDR1: [Coin("foocoin", 123)]}, {ADDR1: {"foocoin": "123"}}),
        (
            {ADDR1: [Coin("foocoin", 123), Coin("barcoin", 456)]},
            {ADDR1: {"foocoin": "123", "barcoin": "456"}},
        ),
        (
            {ADDR1: [Coin("foocoin", 123)], ADDR2: [Coin("barcoin", 456)]},
            {ADDR1: {"foocoin": "123"}, ADDR2: {"barcoin": "456"}},
        ),
    ]
    for nonce, (address_to_balance, want) in enumerate(cases):
        encoded = marshal(get_balance_update(ctx, keeper, address_to_balance))
        got, got_nonce = decode_balances(encoded)
        assert got_nonce == nonce
        assert got == want


def test_marshal_none_and_compact():
    assert marshal(None) is None
    update = BalanceUpdate(nonce=3, updated=[SingleBalanceUpdate("a", "b", "1")])
    assert marshal(update) == (
        b'{"nonce":3,"type":"VBANK_BALANCE_UPDATE",'
        b'"updated":[{"address":"a","denom":"b","amount":"1"}]}'
    )


def test_receive_get_balance():
    bank = MockBank(balance={ADDR1: Coin("quatloos", 123)})
    keeper, ctx = make_test_kit(bank)
    handler = PortHandler(AppModule(keeper), keeper)
    ret = handler.receive(ctx, json.dumps({
        "type": "VBANK_GET_BALANCE", "address": ADDR1, "denom": "quatloos",
    }))
    assert ret == '"123"'
    assert bank.calls == [f"GetBalance {ADDR1} quatloos"]


def test_receive_give():
    bank = MockBank(balance={ADDR1: Coin("urun", 1000)})
    keeper, ctx = make_test_kit(bank)
    handler = PortHandler(AppModule(keeper), keeper)
    ret = handler.receive(ctx, json.dumps({
        "type": "VBANK_GIVE", "recipient": ADDR1, "amount": "1000", "denom": "urun",
    }))
    got, nonce = decode_balances(ret.encode())
    assert got == {ADDR1: {"urun": "1000"}}
    assert nonce == 1
    assert bank.calls == [
        "MintCoins vbank 1000urun",
        f"SendCoinsFromModuleToAccount vbank {ADDR1} 1000urun",
        f"GetBalance {ADDR1} urun",
    ]


@pytest.mark.parametrize(
    "duration, pool, fee_amount, fee_denom, want_mint, want_rate",
    [
        (0, Coins(), "1000", "urun", "1000urun", Coins([Coin("urun", 1000)])),
        (1, Coins(), "1000", "urun", "1000urun", Coins([Coin("urun", 1000)])),
        (10, Coins(), "91", "urun", "91urun", Coins([Coin("urun", 10)])),
        (100, Coins([Coin("urun", 1000)]), "2000", "urun", "2000urun", Coins([Coin("urun", 30)])),
        (
            100,
            Coins([Coin("stickers", 1)]),
            "99",
            "urun",
            "99urun",
            Coins([Coin("urun", 1), Coin("stickers", 1)]),
        ),
        (
            1000 * 1000,
            Coins(),
            "123456789123456789123456789",
            "yoctoquatloos",
            "123456789123456789123456789yoctoquatloos",
            Coins([Coin("yoctoquatloos", 123456789123456789 * 1000 + 124)]),
        ),
    ],
    ids=["durationUnconfigured", "one", "ten", "pool", "mixedDenom", "big"],
)
def test_receive_give_to_fee_collector(duration, pool, fee_amount, fee_denom, want_mint, want_rate):
    bank = MockBank()
    keeper, ctx = make_test_kit(bank)
    handler = PortHandler(AppModule(keeper), keeper)
    keeper.set_params(ctx, Params(fee_epoch_duration_blocks=duration))
    keeper.set_state(ctx, State(reward_pool=pool))
    ret = handler.receive(ctx, json.dumps({
        "type": "VBANK_GIVE_TO_FEE_COLLECTOR", "amount": fee_amount, "denom": fee_denom,
    }))
    assert ret == "true"
    assert bank.calls == ["MintCoins vbank " + want_mint]
    assert keeper.get_state(ctx).reward_rate == want_rate


def test_receive_grab():
    bank = MockBank(balance={ADDR1: Coin("ubld", 1000)})
    keeper, ctx = make_test_kit(bank)
    handler = PortHandler(AppModule(keeper), keeper)
    ret = handler.receive(ctx, json.dumps({
        "type": "VBANK_GRAB", "sender": ADDR1, "amount": "500", "denom": "ubld",
    }))
    got, nonce = decode_balances(ret.encode())
    assert got == {ADDR1: {"ubld": "1000"}}
    assert nonce == 1
    assert bank.calls == [
        f"SendCoinsFromAccountToModule {ADDR1} vbank 500ubld",
        "BurnCoins vbank 500ubld",
        f"GetBalance {ADDR1} ubld",
    ]


def test_receive_unrecognized_type():
    keeper, ctx = make_test_kit(MockBank())
    handler = PortHandler(None, keeper)
    with pytest.raises(UnknownRequestError, match="unrecognized type VBANK_BOGUS"):
        handler.receive(ctx, '{"type": "VBANK_BOGUS"}')


def test_receive_bad_address():
    bank = MockBank()
    keeper, ctx = make_test_kit(bank)
    handler = PortHandler(None, keeper)
    with pytest.raises(InvalidAddressError, match="cannot convert nonsense to address"):
        handler.receive(ctx, json.dumps({
            "type": "VBANK_GIVE", "recipient": "nonsense", "amount": "1", "denom": "urun",
        }))
    assert bank.calls == []


def test_receive_bad_amount():
    bank = MockBank()
    keeper, ctx = make_test_kit(bank)
    handler = PortHandler(None, keeper)
    with pytest.raises(ValueError, match="cannot convert 12abc to int"):
        handler.receive(ctx, json.dumps({
            "type": "VBANK_GIVE_TO_FEE_COLLECTOR", "amount": "12abc", "denom": "urun",
        }))
    assert bank.calls == []


def test_end_block_events():
    bank = MockBank(all_balances={
        ADDR1: Coins([Coin("ubld", 1000)]),
        ADDR2: Coins([Coin("urun", 4000), Coin("arcadeTokens", 7)]),
    })
    keeper, ctx = make_test_kit(bank)
    msgs_sent = []
    keeper.push_action = lambda c, action: msgs_sent.append(marshal(action))
    am = AppModule(keeper)

    events = [
        Event("transfer", (
            ("recipient", ADDR1),
            ("sender", ADDR2),
            ("amount", "quite a lot"),
            ("other", ADDR3),
        )),
        Event("not a transfer", (("sender", ADDR4),)),
    ]
    ctx = ctx.with_event_manager(EventManager(history=events))

    assert am.end_block(ctx) == []
    assert bank.calls == [f"GetAllBalances {ADDR1}", f"GetAllBalances {ADDR2}"]
    assert len(msgs_sent) == 1
    got, nonce = decode_balances(msgs_sent[0])
    assert nonce == 1
    assert got == {
        ADDR1: {"ubld": "1000"},
        ADDR2: {"urun": "4000", "arcadeTokens": "7"},
    }


@pytest.mark.parametrize(
    "pool, rate, want_pool, want_xfer",
    [
        (Coins(), Coins(), Coins(), ""),
        (Coins([Coin("urun", 20)]), Coins(), Coins([Coin("urun", 20)]), ""),
        (Coins(), Coins([Coin("urun", 5)]), Coins(), ""),
        (Coins([Coin("urun", 12)]), Coins([Coin("urun", 12)]), Coins(), "12urun"),
        (
            Coins([Coin("urun", 4580)]),
            Coins([Coin("urun", 25)]),
            Coins([Coin("urun", 4555)]),
            "25urun",
        ),
        (
            Coins([Coin("urun", 1000), Coin("stickers", 10), Coin("puppies", 1)]),
            Coins([Coin("urun", 100), Coin("stickers", 20), Coin("arcadeTokens", 3)]),
            Coins([Coin("urun", 900), Coin("puppies", 1)]),
            "10stickers,100urun",
        ),
    ],
    ids=["noNothing", "noRate", "noPool", "everything", "easy", "hard"],
)
def test_end_block_rewards(pool, rate, want_pool, want_xfer):
    bank = MockBank(all_balances={
        "vbank": Coins([Coin("urun", 1000), Coin("stickers", 10)]),
    })
    keeper, ctx = make_test_kit(bank)
    msgs_sent = []
    keeper.push_action = lambda c, action: msgs_sent.append(marshal(action))
    am = AppModule(keeper)
    keeper.set_state(ctx, State(reward_pool=pool, reward_rate=rate))

    assert am.end_block(ctx) == []
    assert msgs_sent == []
    assert keeper.get_state(ctx).reward_pool == want_pool
    if want_xfer:
        assert bank.calls == [
            "SendCoinsFromModuleToModule vbank feeCollectorName " + want_xfer
        ]
    else:
        assert bank.calls == []


def test_min_coins():
    a = Coins([Coin("aaa", 5), Coin("bbb", 3), Coin("ccc", 9)])
    b = Coins([Coin("bbb", 7), Coin("ccc", 2), Coin("ddd", 4)])
    assert min_coins(a, b) == Coins([Coin("bbb", 3), Coin("ccc", 2)])
    assert min_coins(a, Coins()) == Coins()


def test_reward_rate():
    pool = Coins([Coin("urun", 91), Coin("stickers", 1)])
    assert reward_rate(pool, 10) == Coins([Coin("urun", 10), Coin("stickers", 1)])
    assert reward_rate(pool, 0) == Coins()
    assert reward_rate(pool, -3) == Coins()