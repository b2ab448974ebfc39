import asyncio

import pytest

from abi_registry import L2_PROXY_ADMIN, L2_STANDARD_BRIDGE, SEQUENCER_FEE_VAULT
from contract_catalog import PREDEPLOYS, find_contract
from contract_utils import ContractInteractor
from governance import (
    ActionError, build_action, describe_signer, generate_change_proxy_admin_calldata,
    generate_transfer_ownership_calldata, generate_upgrade_calldata, generate_withdraw_calldata, is_eoa,
    is_valid_address,
)

from conftest import FakeRpcClient

NEW_OWNER = "0xAbCdEf0000000000000000000000000000001234"
OWNER = "0x00000000000000000000000000000000000000aa"


@pytest.mark.parametrize("address, expected", [
    (NEW_OWNER, True),
    ("0x" + "0" * 40, True),
    ("0x" + "0" * 39, False),
    ("0x" + "g" * 40, False),
    ("AbCdEf0000000000000000000000000000001234", False),
    ("0x" + "0" * 41, False),
    (None, False),
])
def test_is_valid_address(address, expected):
    assert is_valid_address(address) is expected


def test_transfer_ownership_calldata():
    data = generate_transfer_ownership_calldata(NEW_OWNER)

    assert len(data) == 74
    assert data == "0xf2fde38b" + "0" * 24 + "AbCdEf0000000000000000000000000000001234"


def test_two_address_calldata():
    proxy = "0x" + "11" * 20
    data = generate_change_proxy_admin_calldata(proxy, NEW_OWNER)

    assert len(data) == 138
    assert data.startswith("0x7eff275e" + "0" * 24 + "11" * 20)
    assert data.endswith("AbCdEf0000000000000000000000000000001234")
    assert generate_upgrade_calldata(proxy, NEW_OWNER).startswith("0x99a88ec4")
    assert generate_withdraw_calldata() == "0x3ccfd60b"


def test_transfer_on_proxy_goes_through_proxy_admin():
    bridge = find_contract(PREDEPLOYS, L2_STANDARD_BRIDGE)
    action = build_action("transfer", bridge, L2_PROXY_ADMIN, NEW_OWNER)

    assert action["to"] == L2_PROXY_ADMIN
    assert action["data"] == generate_change_proxy_admin_calldata(L2_STANDARD_BRIDGE, NEW_OWNER)


def test_transfer_on_owner_based_contract():
    proxy_admin = find_contract(PREDEPLOYS, L2_PROXY_ADMIN)
    action = build_action("transfer", proxy_admin, L2_PROXY_ADMIN, NEW_OWNER)

    assert action == {"to": L2_PROXY_ADMIN, "data": generate_transfer_ownership_calldata(NEW_OWNER)}


def test_upgrade_and_withdraw():
    bridge = find_contract(PREDEPLOYS, L2_STANDARD_BRIDGE)
    vault = find_contract(PREDEPLOYS, SEQUENCER_FEE_VAULT)

    assert build_action("upgrade", bridge, L2_PROXY_ADMIN, NEW_OWNER)["data"].startswith("0x99a88ec4")
    assert build_action("withdraw", vault, L2_PROXY_ADMIN) == {"to": SEQUENCER_FEE_VAULT, "data": "0x3ccfd60b"}


@pytest.mark.parametrize("kind, address, new_address", [
    ("transfer", L2_STANDARD_BRIDGE, "0x1234"),
    ("upgrade", L2_PROXY_ADMIN, NEW_OWNER),
    ("withdraw", L2_STANDARD_BRIDGE, None),
    ("selfdestruct", L2_STANDARD_BRIDGE, NEW_OWNER),
])
def test_rejected_actions(kind, address, new_address):
    with pytest.raises(ActionError):
        build_action(kind, find_contract(PREDEPLOYS, address), L2_PROXY_ADMIN, new_address)


def test_proxy_route_requires_proxy_admin():
    with pytest.raises(ActionError):
        build_action("transfer", find_contract(PREDEPLOYS, L2_STANDARD_BRIDGE), None, NEW_OWNER)


def test_is_eoa():
    client = FakeRpcClient(codes={OWNER: b"", NEW_OWNER: b"\x60\x80"})

    assert asyncio.run(is_eoa(client, OWNER)) is True
    assert asyncio.run(is_eoa(client, NEW_OWNER)) is False
    assert asyncio.run(is_eoa(client, "0x" + "77" * 20)) is None


def test_describe_signer(registry):
    client = FakeRpcClient(calls={(L2_PROXY_ADMIN, "owner", ()): OWNER}, codes={OWNER: b""})
    action = {"to": L2_PROXY_ADMIN, "data": "0x"}
    described = asyncio.run(describe_signer(action, ContractInteractor(client, registry)))

    assert described == {"to": L2_PROXY_ADMIN, "data": "0x", "signer": OWNER, "signer_is_eoa": True}
