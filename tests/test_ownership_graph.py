import asyncio

from contract_catalog import Category, ContractDescriptor
from ownership_graph import build_ownership_graph

from conftest import FakeRpcClient

REGISTRY = "0x4200000000000000000000000000000000000018"
ROOT_OWNER = "0x00000000000000000000000000000000000000f1"
OTHER_ADMIN = "0x00000000000000000000000000000000000000a9"
SAFE = "0x00000000000000000000000000000000000000e5"


def descriptor(name, address, manageable=True, owner_based=False):
    return ContractDescriptor(name, address, "", Category.SYSTEM, manageable, is_owner_based=owner_based)


CONTRACTS = [
    descriptor("ProxyAdmin", REGISTRY, owner_based=True),
    descriptor("BridgeA", "0x00000000000000000000000000000000000000b1"),
    descriptor("BridgeB", "0x00000000000000000000000000000000000000b2"),
    descriptor("VaultC", "0x00000000000000000000000000000000000000b3"),
    descriptor("Registry", "0x00000000000000000000000000000000000000c1", owner_based=True),
    descriptor("Verifier", "0x00000000000000000000000000000000000000c2", owner_based=True),
    descriptor("Broken", "0x00000000000000000000000000000000000000c3", owner_based=True),
    descriptor("WETH9", "0x00000000000000000000000000000000000000d1", manageable=False),
]


def test_graph_partitions_contracts():
    client = FakeRpcClient(calls={
        (REGISTRY, "owner", ()): ROOT_OWNER,
        (REGISTRY, "getProxyAdmin", ("0x00000000000000000000000000000000000000b1",)): REGISTRY,
        (REGISTRY, "getProxyAdmin", ("0x00000000000000000000000000000000000000b2",)): OTHER_ADMIN,
        ("0x00000000000000000000000000000000000000c1", "owner", ()): SAFE.upper().replace("0X", "0x"),
        ("0x00000000000000000000000000000000000000c2", "owner", ()): SAFE,
    })
    graph = asyncio.run(build_ownership_graph(CONTRACTS, client))

    assert graph.error is None
    assert graph.root_owner == ROOT_OWNER

    # BridgeA routed explicitly, VaultC by failed lookup fallback
    assert [(n.name, n.address) for n in graph.tree] == [("ProxyAdmin", REGISTRY), ("Unknown Admin", OTHER_ADMIN)]
    assert [c.name for c in graph.tree[0].children] == ["BridgeA", "VaultC"]
    assert [c.name for c in graph.tree[1].children] == ["BridgeB"]

    assert list(graph.owner_groups) == [SAFE]
    assert [c.name for c in graph.owner_groups[SAFE]] == ["Registry", "Verifier"]
    assert [c.name for c in graph.unmanaged] == ["WETH9"]

    placed = [child.name for node in graph.tree for child in node.children]
    placed += [c.name for group in graph.owner_groups.values() for c in group]
    assert len(placed) == len(set(placed))
    assert "Broken" not in placed


def test_missing_registry_reports_error():
    contracts = [c for c in CONTRACTS if c.name != "ProxyAdmin"]
    graph = asyncio.run(build_ownership_graph(contracts, FakeRpcClient()))

    assert graph.error == "ProxyAdmin contract not found"
    assert graph.tree == []
    assert [c.name for c in graph.unmanaged] == ["WETH9"]


def test_root_owner_failure_is_none():
    graph = asyncio.run(build_ownership_graph(CONTRACTS[:2], FakeRpcClient()))

    assert graph.root_owner is None
    assert graph.tree[0].address == REGISTRY


def test_to_dict():
    graph = asyncio.run(build_ownership_graph(CONTRACTS[:2], FakeRpcClient(calls={(REGISTRY, "owner", ()): ROOT_OWNER})))
    data = graph.to_dict()

    assert data["root_owner"] == ROOT_OWNER
    assert data["tree"][0]["children"] == [
        {"name": "BridgeA", "address": "0x00000000000000000000000000000000000000b1", "children": []},
    ]
    assert data["owner_groups"] == {}
    assert data["error"] is None
