import asyncio

from abi_registry import L2_PROXY_ADMIN, L2_STANDARD_BRIDGE
from config_loader import ZERO_ADDRESS
from contract_utils import ContractInteractor

from conftest import FakeRpcClient, L1_STANDARD_BRIDGE, PROXY_ADMIN

OWNER = "0x00000000000000000000000000000000000000aa"
IMPL = "0x00000000000000000000000000000000000000bb"


def test_transparent_proxy_prefers_admin(registry):
    client = FakeRpcClient(calls={
        (L2_STANDARD_BRIDGE, "admin", ()): L2_PROXY_ADMIN,
        (L2_STANDARD_BRIDGE, "owner", ()): OWNER,
        (L2_STANDARD_BRIDGE, "implementation", ()): IMPL,
    }, balances={L2_STANDARD_BRIDGE: 7})
    info = asyncio.run(ContractInteractor(client, registry).get_contract_info(L2_STANDARD_BRIDGE))

    assert info.owner == L2_PROXY_ADMIN
    assert info.implementation == IMPL
    assert info.balance == 7
    assert info.error is None
    assert not any(fn == "owner" for _, fn, _, _ in client.call_log)


def test_admin_revert_falls_back_to_owner(registry):
    client = FakeRpcClient(calls={(L2_STANDARD_BRIDGE, "owner", ()): OWNER})
    owner = asyncio.run(ContractInteractor(client, registry).get_contract_owner(L2_STANDARD_BRIDGE))

    assert owner == OWNER


def test_proxy_admin_reads_owner_directly(registry):
    client = FakeRpcClient(calls={(PROXY_ADMIN, "owner", ()): OWNER, (PROXY_ADMIN, "admin", ()): IMPL})
    owner = asyncio.run(ContractInteractor(client, registry).get_contract_owner(PROXY_ADMIN))

    assert owner == OWNER
    assert [fn for _, fn, _, _ in client.call_log] == ["owner"]


def test_chugsplash_reads_with_zero_caller(registry):
    client = FakeRpcClient(calls={
        (L1_STANDARD_BRIDGE, "getOwner", ()): OWNER,
        (L1_STANDARD_BRIDGE, "getImplementation", ()): IMPL,
    })
    interactor = ContractInteractor(client, registry)

    assert asyncio.run(interactor.get_contract_owner(L1_STANDARD_BRIDGE)) == OWNER
    assert asyncio.run(interactor.get_implementation(L1_STANDARD_BRIDGE)) == IMPL
    assert all(caller == ZERO_ADDRESS for _, _, _, caller in client.call_log)


def test_nonexistent_contract_never_raises(registry):
    address = "0x" + "12" * 20
    info = asyncio.run(ContractInteractor(FakeRpcClient(), registry).get_contract_info(address))

    assert info.address == address
    assert info.owner is None
    assert info.balance is None
    assert info.implementation is None
    assert info.error is None


def test_unexpected_failure_lands_in_error(registry, monkeypatch):
    interactor = ContractInteractor(FakeRpcClient(), registry)

    async def broken(address):
        raise RuntimeError("boom")

    monkeypatch.setattr(interactor, "get_contract_owner", broken)
    info = asyncio.run(interactor.get_contract_info(L2_STANDARD_BRIDGE))

    assert info.error == "boom"
    assert info.to_dict()["balance"] is None


def test_balance_serialized_as_string(registry):
    client = FakeRpcClient(balances={L2_STANDARD_BRIDGE: 10 ** 30})
    info = asyncio.run(ContractInteractor(client, registry).get_contract_info(L2_STANDARD_BRIDGE))

    assert info.to_dict()["balance"] == str(10 ** 30)
