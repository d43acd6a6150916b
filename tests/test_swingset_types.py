import json

import pytest

from agswing.chain import (
    AccAddress,
    Coin,
    Coins,
    InvalidAddressError,
    InvalidRequestError,
    UnknownRequestError,
)
from agswing.swingset_types import (
    EMPTY_MAILBOX_VALUE,
    CoreEval,
    CoreEvalProposal,
    Egress,
    Messages,
    MsgDeliverInbound,
    MsgProvision,
    MsgWalletAction,
    MsgWalletSpendAction,
    Params,
    StringBeans,
    default_params,
    nat,
    new_mailbox,
    unmarshal_messages_json,
    validate_beans_per_unit,
    validate_bootstrap_vat_config,
)

ADDR = AccAddress(b"\x07" * 20)


def test_default_params_valid_and_values():
    params = default_params()
    params.validate_basic()
    beans = {sb.key: sb.beans for sb in params.beans_per_unit}
    assert beans["feeUnit"] == 1000000000000
    assert beans["blockComputeLimit"] == 8000000 * 100
    assert params.bootstrap_vat_config == "@agoric/vats/decentral-core-config.json"


def test_params_errors():
    with pytest.raises(ValueError):
        validate_beans_per_unit([StringBeans("", 1)])
    with pytest.raises(ValueError):
        validate_bootstrap_vat_config("")
    with pytest.raises(ValueError):
        Params(default_params().beans_per_unit, "x", Coins([Coin("1x", 1)])).validate_basic()


def test_mailbox():
    assert new_mailbox().value == EMPTY_MAILBOX_VALUE


def test_nat():
    assert nat(5.0) == 5
    with pytest.raises(ValueError, match="Not a natural"):
        nat(-1)
    with pytest.raises(ValueError, match="Not a precise integer"):
        nat(1.5)


def test_unmarshal_messages():
    msgs = unmarshal_messages_json('[[[1, "a"], [2, "bc"]], 7]')
    assert msgs == Messages(nums=[1, 2], messages=["a", "bc"], ack=7)


@pytest.mark.parametrize("text,err", [
    ('[[], "x"]', "Ack is not an integer"),
    ('[{}, 1]', "Messages is not an array"),
    ('[[[1]], 1]', "Message is not a pair"),
    ('[[["x", "a"]], 1]', "Message Num is not an integer"),
    ('[[[1, 2]], 1]', "Message is not a string"),
])
def test_unmarshal_errors(text, err):
    with pytest.raises(ValueError, match=err):
        unmarshal_messages_json(text)


def test_deliver_inbound_validate():
    msg = MsgDeliverInbound.from_messages(Messages([1], ["a"], 0), ADDR)
    msg.validate_basic()
    with pytest.raises(InvalidAddressError):
        MsgDeliverInbound(["a"], [1]).validate_basic()
    with pytest.raises(UnknownRequestError):
        MsgDeliverInbound(["a"], [], 0, ADDR).validate_basic()
    with pytest.raises(UnknownRequestError):
        MsgDeliverInbound([""], [1], 0, ADDR).validate_basic()


def test_deliver_inbound_sign_bytes_sorted():
    msg = MsgDeliverInbound(["a"], [3], 2, ADDR)
    raw = msg.get_sign_bytes()
    data = json.loads(raw)
    assert list(data) == sorted(data)
    assert data["nums"] == ["3"] and data["submitter"] == str(ADDR)
    assert msg.get_signers() == [ADDR]


def test_check_admissibility_charges():
    class FakeKeeper:
        charged = None

        def get_beans_per_unit(self, ctx):
            return {"inboundTx": 1, "message": 10, "messageByte": 100}

        def charge_beans(self, ctx, addr, beans):
            self.charged = (addr, beans)

    keeper = FakeKeeper()
    MsgDeliverInbound(["ab"], [1], 0, ADDR).check_admissibility(None, keeper)
    assert keeper.charged == (ADDR, 211)
    with pytest.raises(InvalidRequestError):
        MsgDeliverInbound(["ab"], [1], 0, ADDR).check_admissibility(None, object())


def test_wallet_actions():
    MsgWalletAction(ADDR, "go").validate_basic()
    with pytest.raises(UnknownRequestError):
        MsgWalletAction(ADDR, "  ").validate_basic()
    with pytest.raises(InvalidAddressError):
        MsgWalletSpendAction(None, "x").validate_basic()
    assert MsgWalletSpendAction(ADDR, "x").get_signers() == [ADDR]


def test_provision():
    msg = MsgProvision("nick", ADDR, None, ADDR)
    msg.validate_basic()
    assert json.loads(msg.get_sign_bytes())["power_flags"] == []
    with pytest.raises(UnknownRequestError):
        MsgProvision("", ADDR, [], ADDR).validate_basic()


def test_egress_round_trip():
    egress = Egress("n", ADDR, ["agoric.vattp"])
    assert Egress.from_dict(egress.to_dict()) == egress


def test_core_eval_proposal():
    ok = CoreEval("{}", "x")
    CoreEvalProposal("t", "d", [ok]).validate_basic()
    with pytest.raises(InvalidRequestError, match="no core evals"):
        CoreEvalProposal("t", "d", []).validate_basic()
    with pytest.raises(InvalidRequestError, match="invalid core eval 1"):
        CoreEvalProposal("t", "d", [ok, CoreEval("{", "x")]).validate_basic()
    with pytest.raises(InvalidRequestError, match="no code.js"):
        CoreEval("{}", " ").validate_basic()
    with pytest.raises(InvalidRequestError):
        CoreEvalProposal("", "d", [ok]).validate_basic()