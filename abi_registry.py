import json
import logging
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from config_loader import EnvironmentConfig

logger = logging.getLogger(__name__)

ABI_DIR = Path(__file__).resolve().parent / "abi"

# Well-known L2 predeploy addresses
L2_CROSS_DOMAIN_MESSENGER = "0x4200000000000000000000000000000000000007"
L2_STANDARD_BRIDGE = "0x4200000000000000000000000000000000000010"
L2_ERC721_BRIDGE = "0x4200000000000000000000000000000000000014"
SEQUENCER_FEE_VAULT = "0x4200000000000000000000000000000000000011"
BASE_FEE_VAULT = "0x4200000000000000000000000000000000000019"
L1_FEE_VAULT = "0x420000000000000000000000000000000000001a"
OPERATOR_FEE_VAULT = "0x420000000000000000000000000000000000001b"
UNIFI_FEE_VAULT = "0x420000000000000000000000000000000000002a"
WETH9 = "0x4200000000000000000000000000000000000006"
L1_BLOCK = "0x4200000000000000000000000000000000000015"
L2_PROXY_ADMIN = "0x4200000000000000000000000000000000000018"


def load_abi(filename: str) -> List[Dict]:
    """Load ABI from the local abi directory"""
    try:
        with open(ABI_DIR / filename, 'r') as f:
            abi_data = json.load(f)
            return abi_data if isinstance(abi_data, list) else abi_data.get('abi', [])
    except FileNotFoundError:
        logger.warning(f"ABI file {filename} not found")
        return []


def merge_abis(*abis: List[Dict]) -> List[Dict]:
    """Union of ABI fragments; the first definition of a name wins"""
    merged = []
    seen = set()
    for abi in abis:
        for entry in abi:
            key = (entry.get("type"), entry.get("name"))
            if key in seen:
                continue
            seen.add(key)
            merged.append(entry)
    return merged


def find_entry(abi: List[Dict], name: str, entry_type: str = "function") -> Optional[Dict]:
    for entry in abi:
        if entry.get("type") == entry_type and entry.get("name") == name:
            return entry
    return None


OWNABLE_ABI = load_abi("Ownable.json")
PROXY_ABI = load_abi("Proxy.json")
PROXY_ADMIN_ABI = load_abi("ProxyAdmin.json")
VAULT_ABI = merge_abis(OWNABLE_ABI, load_abi("VaultWithdraw.json"))
FEE_VAULT_EXTENDED_ABI = merge_abis(VAULT_ABI, load_abi("FeeVault.json"))
UNIFI_FEE_VAULT_ABI = merge_abis(VAULT_ABI, load_abi("UniFiFeeVault.json"))
L2_CROSS_DOMAIN_MESSENGER_ABI = load_abi("L2CrossDomainMessenger.json")
L2_STANDARD_BRIDGE_ABI = load_abi("L2StandardBridge.json")
L2_ERC721_BRIDGE_ABI = load_abi("L2ERC721Bridge.json")
WETH9_ABI = load_abi("WETH9.json")
L1_BLOCK_ABI = load_abi("L1Block.json")
SIGNAL_SERVICE_ABI = load_abi("SignalService.json")

ANCHOR_STATE_REGISTRY_ABI = load_abi("AnchorStateRegistry.json")
DISPUTE_GAME_FACTORY_ABI = load_abi("DisputeGameFactory.json")
L1_STANDARD_BRIDGE_ABI = load_abi("L1StandardBridge.json")
OPTIMISM_PORTAL_ABI = load_abi("OptimismPortal.json")
SYSTEM_CONFIG_ABI = load_abi("SystemConfig.json")
SUPERCHAIN_CONFIG_ABI = load_abi("SuperchainConfig.json")
PROVER_REGISTRY_ABI = load_abi("ProverRegistry.json")
WORKLOAD_VERIFIER_ABI = load_abi("WorkloadVerifier.json")

WELL_KNOWN_ABIS: Dict[str, List[Dict]] = {
    L2_CROSS_DOMAIN_MESSENGER: L2_CROSS_DOMAIN_MESSENGER_ABI,
    L2_STANDARD_BRIDGE: L2_STANDARD_BRIDGE_ABI,
    L2_ERC721_BRIDGE: L2_ERC721_BRIDGE_ABI,
    UNIFI_FEE_VAULT: UNIFI_FEE_VAULT_ABI,
    SEQUENCER_FEE_VAULT: FEE_VAULT_EXTENDED_ABI,
    BASE_FEE_VAULT: FEE_VAULT_EXTENDED_ABI,
    L1_FEE_VAULT: FEE_VAULT_EXTENDED_ABI,
    OPERATOR_FEE_VAULT: FEE_VAULT_EXTENDED_ABI,
    WETH9: WETH9_ABI,
    L1_BLOCK: L1_BLOCK_ABI,
    L2_PROXY_ADMIN: PROXY_ADMIN_ABI,
}

# config field -> ABI registered for the configured address
CONFIGURED_ABIS = (
    ("l1AnchorStateRegistryAddress", ANCHOR_STATE_REGISTRY_ABI),
    ("l1DisputeGameFactoryAddress", DISPUTE_GAME_FACTORY_ABI),
    ("l1StandardBridgeAddress", L1_STANDARD_BRIDGE_ABI),
    ("l1OptimismPortalAddress", OPTIMISM_PORTAL_ABI),
    ("l1ProxyAdminAddress", PROXY_ADMIN_ABI),
    ("l1SystemConfigAddress", SYSTEM_CONFIG_ABI),
    ("l1SuperchainConfigAddress", SUPERCHAIN_CONFIG_ABI),
    ("l1ProverRegistryAddress", PROVER_REGISTRY_ABI),
    ("l1WorkloadVerifierAddress", WORKLOAD_VERIFIER_ABI),
    ("l2SignalServiceAddress", SIGNAL_SERVICE_ABI),
)


class ReadStrategy(str, Enum):
    """How owner/admin and implementation are read for an address"""
    CHUGSPLASH_PROXY = "chugsplash-proxy"
    PROXY_ADMIN = "proxy-admin"
    TRANSPARENT_PROXY = "transparent-proxy"


class AbiRegistry:
    """Address-keyed ABI and read-strategy dispatch, built once from configuration"""

    def __init__(self, env_config: EnvironmentConfig):
        self.env_config = env_config
        self._configured: Dict[str, List[Dict]] = {}
        for field_name, abi in CONFIGURED_ABIS:
            address = getattr(env_config, field_name)
            if address:
                self._configured[address.lower()] = abi

        self._strategies: Dict[str, ReadStrategy] = {L2_PROXY_ADMIN: ReadStrategy.PROXY_ADMIN}
        if env_config.l1ProxyAdminAddress:
            self._strategies[env_config.l1ProxyAdminAddress.lower()] = ReadStrategy.PROXY_ADMIN
        if env_config.l1StandardBridgeAddress:
            self._strategies[env_config.l1StandardBridgeAddress.lower()] = ReadStrategy.CHUGSPLASH_PROXY

        self._special: Dict[str, str] = {}
        for role, field_name in (
            ("dispute_game_factory", "l1DisputeGameFactoryAddress"),
            ("prover_registry", "l1ProverRegistryAddress"),
            ("superchain_config", "l1SuperchainConfigAddress"),
        ):
            address = getattr(env_config, field_name)
            if address:
                self._special[role] = address.lower()

        logger.info(f"ABI registry ready: {len(self._configured)} configured, {len(WELL_KNOWN_ABIS)} well-known")

    def resolve_abi(self, address: str) -> Optional[List[Dict]]:
        if not address:
            return None
        key = address.lower()
        if key in self._configured:
            return self._configured[key]
        return WELL_KNOWN_ABIS.get(key)

    def read_strategy(self, address: str) -> ReadStrategy:
        return self._strategies.get(address.lower(), ReadStrategy.TRANSPARENT_PROXY)

    def is_role(self, address: str, role: str) -> bool:
        """True when address is the configured contract for role"""
        configured = self._special.get(role)
        return bool(configured) and address.lower() == configured
