from abi_registry import (
    AbiRegistry, ReadStrategy, L2_PROXY_ADMIN, L2_STANDARD_BRIDGE, OPERATOR_FEE_VAULT, OWNABLE_ABI,
    FEE_VAULT_EXTENDED_ABI, PROXY_ADMIN_ABI, PROVER_REGISTRY_ABI, SYSTEM_CONFIG_ABI, find_entry, load_abi,
    merge_abis,
)
from config_loader import EnvironmentConfig
from contract_catalog import (
    Category, PREDEPLOYS, build_l1_contracts, build_l2_contracts, filter_contracts, find_contract,
)

from conftest import L1_STANDARD_BRIDGE, PROVER_REGISTRY, PROXY_ADMIN, SYSTEM_CONFIG


def names(abi):
    return {entry["name"] for entry in abi if entry.get("type") == "function"}


def test_vault_abi_is_union():
    assert {"owner", "withdraw", "recipient", "totalProcessed"} <= names(FEE_VAULT_EXTENDED_ABI)
    assert len(names(FEE_VAULT_EXTENDED_ABI)) == len([e for e in FEE_VAULT_EXTENDED_ABI if e["type"] == "function"])


def test_merge_first_definition_wins():
    first = [{"type": "function", "name": "owner", "outputs": [{"type": "address"}]}]
    second = [{"type": "function", "name": "owner", "outputs": [{"type": "bytes32"}]},
              {"type": "function", "name": "withdraw"}]
    merged = merge_abis(first, second)

    assert [e["name"] for e in merged] == ["owner", "withdraw"]
    assert merged[0]["outputs"][0]["type"] == "address"


def test_missing_abi_file_is_empty():
    assert load_abi("DoesNotExist.json") == []


def test_struct_outputs_are_described():
    resource_config = find_entry(SYSTEM_CONFIG_ABI, "resourceConfig")
    assert len(resource_config["outputs"][0]["components"]) == 6

    golden = find_entry(PROVER_REGISTRY_ABI, "goldenMeasurementRegistry")
    assert [o["name"] for o in golden["outputs"]] == ["cloudType", "teeType", "elType", "tag"]


def test_resolve_configured_then_well_known(registry):
    assert registry.resolve_abi(SYSTEM_CONFIG.upper().replace("0X", "0x")) is SYSTEM_CONFIG_ABI
    assert registry.resolve_abi(OPERATOR_FEE_VAULT.upper().replace("0X", "0x")) is FEE_VAULT_EXTENDED_ABI
    assert registry.resolve_abi(L2_PROXY_ADMIN) is PROXY_ADMIN_ABI
    assert registry.resolve_abi("0x" + "99" * 20) is None
    assert registry.resolve_abi("") is None


def test_unconfigured_addresses_are_not_registered():
    env = EnvironmentConfig(
        gatewayRpcURL="a", mainNodeRpcURL="b", teeNodeRpcURL="c", l1RpcURL="d", l2RpcURL="e",
    )
    registry = AbiRegistry(env)

    assert registry.resolve_abi(SYSTEM_CONFIG) is None
    assert not registry.is_role(PROVER_REGISTRY, "prover_registry")


def test_read_strategies(registry):
    assert registry.read_strategy(L1_STANDARD_BRIDGE) == ReadStrategy.CHUGSPLASH_PROXY
    assert registry.read_strategy(PROXY_ADMIN) == ReadStrategy.PROXY_ADMIN
    assert registry.read_strategy(L2_PROXY_ADMIN) == ReadStrategy.PROXY_ADMIN
    assert registry.read_strategy(L2_STANDARD_BRIDGE) == ReadStrategy.TRANSPARENT_PROXY


def test_roles_match_configured_addresses_only(registry):
    assert registry.is_role(PROVER_REGISTRY.upper().replace("0X", "0x"), "prover_registry")
    assert not registry.is_role(SYSTEM_CONFIG, "prover_registry")
    assert not registry.is_role(PROVER_REGISTRY, "dispute_game_factory")
    assert "owner" in names(OWNABLE_ABI)


def test_l2_catalog(env_config):
    contracts = build_l2_contracts(env_config)
    assert len(contracts) == len(PREDEPLOYS)
    assert find_contract(contracts, L2_PROXY_ADMIN).uses_owner
    assert not find_contract(contracts, "0x4200000000000000000000000000000000000006").is_manageable

    vaults = filter_contracts(contracts, "vault")
    assert {c.category for c in vaults} == {Category.VAULT}
    assert all(c.is_manageable for c in filter_contracts(contracts, "all", manageable_only=True))


def test_l1_catalog_skips_unconfigured(env_config):
    names_l1 = [c.name for c in build_l1_contracts(env_config)]
    assert "ProverRegistry" in names_l1
    assert "SystemConfig" in names_l1

    bare = EnvironmentConfig(gatewayRpcURL="a", mainNodeRpcURL="b", teeNodeRpcURL="c", l1RpcURL="d", l2RpcURL="e")
    assert build_l1_contracts(bare) == []
