from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, List, Optional, Tuple, Any

from abi_registry import (
    L2_CROSS_DOMAIN_MESSENGER, L2_STANDARD_BRIDGE, L2_ERC721_BRIDGE, SEQUENCER_FEE_VAULT,
    BASE_FEE_VAULT, L1_FEE_VAULT, OPERATOR_FEE_VAULT, UNIFI_FEE_VAULT, WETH9, L1_BLOCK,
    L2_PROXY_ADMIN,
)
from config_loader import EnvironmentConfig

PROXY_ADMIN_NAME = "ProxyAdmin"


class Category(str, Enum):
    BRIDGE = "bridge"
    VAULT = "vault"
    FACTORY = "factory"
    SYSTEM = "system"
    GOVERNANCE = "governance"
    TEE = "tee"


@dataclass(frozen=True)
class ViewFunction:
    name: str
    label: str


@dataclass(frozen=True)
class ContractDescriptor:
    name: str
    address: str
    description: str
    category: Category
    is_manageable: bool
    is_owner_based: bool = False
    view_functions: Tuple[ViewFunction, ...] = ()

    @property
    def view_function_names(self) -> List[str]:
        return [vf.name for vf in self.view_functions]

    @property
    def uses_owner(self) -> bool:
        """Owner-based contracts and the proxy admin expose owner() rather than a proxy admin"""
        return self.is_owner_based or self.name == PROXY_ADMIN_NAME

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        data["view_functions"] = [asdict(vf) for vf in self.view_functions]
        return data


def _views(*pairs: Tuple[str, str]) -> Tuple[ViewFunction, ...]:
    return tuple(ViewFunction(name, label) for name, label in pairs)


FEE_VAULT_VIEWS = _views(
    ("version", "Version"),
    ("minWithdrawalAmount", "Min Withdrawal Amount"),
    ("recipient", "Recipient"),
    ("totalProcessed", "Total Processed"),
    ("withdrawalNetwork", "Withdrawal Network"),
)

PREDEPLOYS: Tuple[ContractDescriptor, ...] = (
    ContractDescriptor(
        "L2CrossDomainMessenger", L2_CROSS_DOMAIN_MESSENGER,
        "Higher level API for sending cross domain messages between L1 and L2",
        Category.BRIDGE, True,
        view_functions=_views(("version", "Version"), ("otherMessenger", "Other Messenger")),
    ),
    ContractDescriptor(
        "L2StandardBridge", L2_STANDARD_BRIDGE,
        "Facilitates ETH and token transfers across domains",
        Category.BRIDGE, True,
        view_functions=_views(
            ("version", "Version"), ("otherBridge", "Other Bridge"),
            ("messenger", "Messenger"), ("signalService", "Signal Service"),
        ),
    ),
    ContractDescriptor(
        "L2ERC721Bridge", L2_ERC721_BRIDGE,
        "Manages NFT (ERC721) bridge transfers across domains",
        Category.BRIDGE, True,
        view_functions=_views(("messenger", "Messenger"), ("otherBridge", "Other Bridge")),
    ),
    ContractDescriptor(
        "SequencerFeeVault", SEQUENCER_FEE_VAULT,
        "Accumulates transaction priority fees from the sequencer",
        Category.VAULT, True, view_functions=FEE_VAULT_VIEWS,
    ),
    ContractDescriptor(
        "BaseFeeVault", BASE_FEE_VAULT, "Accumulates L2 base fees",
        Category.VAULT, True, view_functions=FEE_VAULT_VIEWS,
    ),
    ContractDescriptor(
        "L1FeeVault", L1_FEE_VAULT, "Accumulates L1 transaction fee portions",
        Category.VAULT, True, view_functions=FEE_VAULT_VIEWS,
    ),
    ContractDescriptor(
        "OperatorFeeVault", "0x420000000000000000000000000000000000001B",
        "Collects operator-specific fees",
        Category.VAULT, True, view_functions=FEE_VAULT_VIEWS,
    ),
    ContractDescriptor(
        "UniFiFeeVault", UNIFI_FEE_VAULT,
        "Distributes fees between L2 Owner and UniFi Reward Distributor",
        Category.VAULT, True,
        view_functions=_views(
            ("l2Owner", "L2 Owner"),
            ("withdrawalNetworkL2Owner", "Withdrawal Network L2 Owner"),
            ("percentageL2Owner", "Percentage L2 Owner"),
            ("l1UniFiRewardDistributorContract", "L1 UniFi Reward Distributor"),
            ("minWithdrawalAmount", "Min Withdrawal Amount"),
            ("totalProcessed", "Total Processed"),
        ),
    ),
    ContractDescriptor(
        "WETH9", WETH9, "Standard Wrapped Ether implementation",
        Category.SYSTEM, False, view_functions=_views(("totalSupply", "Total Supply")),
    ),
    ContractDescriptor(
        "L1Block", L1_BLOCK, "Maintains L1 context accessible on L2",
        Category.SYSTEM, True,
        view_functions=_views(
            ("version", "Version"), ("number", "Number"), ("timestamp", "Timestamp"),
            ("hash", "Hash"), ("sequenceNumber", "Sequence Number"),
            ("batcherHash", "Batcher Hash"), ("operatorFeeConstant", "Operator Fee Constant"),
            ("operatorFeeScalar", "Operator Fee Scalar"), ("DEPOSITOR_ACCOUNT", "Depositor Account"),
        ),
    ),
    ContractDescriptor(
        PROXY_ADMIN_NAME, L2_PROXY_ADMIN, "Owner of all predeploy proxies",
        Category.SYSTEM, True, is_owner_based=True,
    ),
)

RESOURCE_CONFIG_VIEWS = _views(
    ("resourceConfig_maxResourceLimit", "Resource Config: Max Resource Limit"),
    ("resourceConfig_elasticityMultiplier", "Resource Config: Elasticity Multiplier"),
    ("resourceConfig_baseFeeMaxChangeDenominator", "Resource Config: Base Fee Max Change Denominator"),
    ("resourceConfig_minimumBaseFee", "Resource Config: Minimum Base Fee"),
    ("resourceConfig_systemTxMaxGas", "Resource Config: System Tx Max Gas"),
    ("resourceConfig_maximumBaseFee", "Resource Config: Maximum Base Fee"),
)


def build_l2_contracts(env_config: EnvironmentConfig) -> List[ContractDescriptor]:
    """L2 predeploys plus the SignalService when its address is configured"""
    contracts = list(PREDEPLOYS)
    if env_config.l2SignalServiceAddress:
        contracts.append(ContractDescriptor(
            "SignalService", env_config.l2SignalServiceAddress,
            "Signal service for cross-chain communication",
            Category.SYSTEM, False,
            view_functions=_views(("L1_SIGNAL_SERVICE", "L1 Signal Service")),
        ))
    return contracts


def build_l1_contracts(env_config: EnvironmentConfig) -> List[ContractDescriptor]:
    """L1 system and governance contracts; unconfigured addresses are left out"""
    candidates = [
        ("l1ProxyAdminAddress", lambda address: ContractDescriptor(
            PROXY_ADMIN_NAME, address, "Admin of the L1 system contract proxies",
            Category.GOVERNANCE, True, is_owner_based=True,
        )),
        ("l1SuperchainConfigAddress", lambda address: ContractDescriptor(
            "SuperchainConfig", address, "Central pause authority and guardian registry",
            Category.GOVERNANCE, True,
            view_functions=_views(
                ("version", "Version"), ("guardian", "Guardian"), ("pauseExpiry", "Pause Expiry"),
                ("paused_global", "Paused (Global)"), ("expiration_global", "Pause Expiration (Global)"),
                ("paused_portal", "Paused (OptimismPortal)"),
                ("expiration_portal", "Pause Expiration (OptimismPortal)"),
            ),
        )),
        ("l1SystemConfigAddress", lambda address: ContractDescriptor(
            "SystemConfig", address, "Chain parameters and pause state router",
            Category.SYSTEM, True,
            view_functions=_views(
                ("version", "Version"), ("guardian", "Guardian"),
                ("superchainConfig", "Superchain Config"), ("batcherHash", "Batcher Hash"),
                ("gasLimit", "Gas Limit"), ("basefeeScalar", "Base Fee Scalar"),
                ("blobbasefeeScalar", "Blob Base Fee Scalar"),
                ("eip1559Denominator", "EIP-1559 Denominator"),
                ("eip1559Elasticity", "EIP-1559 Elasticity"),
                ("operatorFeeScalar", "Operator Fee Scalar"),
                ("operatorFeeConstant", "Operator Fee Constant"), ("l2ChainId", "L2 Chain ID"),
                ("unsafeBlockSigner", "Unsafe Block Signer"),
                ("l1CrossDomainMessenger", "L1 Cross Domain Messenger"),
                ("l1StandardBridge", "L1 Standard Bridge"),
                ("disputeGameFactory", "Dispute Game Factory"),
                ("optimismPortal", "Optimism Portal"), ("batchInbox", "Batch Inbox"),
                ("startBlock", "Start Block"), ("paused", "Paused"),
            ) + RESOURCE_CONFIG_VIEWS,
        )),
        ("l1OptimismPortalAddress", lambda address: ContractDescriptor(
            "OptimismPortal", address, "Entry point for deposits and withdrawal proofs",
            Category.BRIDGE, True,
            view_functions=_views(
                ("version", "Version"), ("proofMaturityDelaySeconds", "Proof Maturity Delay (s)"),
                ("systemConfig", "System Config"), ("anchorStateRegistry", "Anchor State Registry"),
                ("disputeGameFactory", "Dispute Game Factory"), ("paused", "Paused"),
            ),
        )),
        ("l1StandardBridgeAddress", lambda address: ContractDescriptor(
            "L1StandardBridge", address, "L1 side of the standard bridge (L1ChugSplashProxy)",
            Category.BRIDGE, True,
            view_functions=_views(
                ("version", "Version"), ("signalService", "Signal Service"),
                ("systemConfig", "System Config"), ("paused", "Paused"),
            ),
        )),
        ("l1DisputeGameFactoryAddress", lambda address: ContractDescriptor(
            "DisputeGameFactory", address, "Creates dispute games and records processed blocks",
            Category.FACTORY, True,
            view_functions=_views(
                ("version", "Version"), ("portalAddress", "Portal Address"),
                ("proverRegistryAddress", "Prover Registry Address"),
                ("getBlockNumber", "Block Number"), ("getCurrentOffset", "Current Offset"),
                ("gameCount", "Game Count"),
                ("gameImpls_Permissionless", "Game Impl (Permissionless)"),
                ("gameImpls_Permissioned", "Game Impl (Permissioned)"),
                ("gameImpls_OP_SUCCINCT", "Game Impl (OP_SUCCINCT)"),
                ("initBonds_Permissionless", "Init Bond (Permissionless)"),
                ("initBonds_Permissioned", "Init Bond (Permissioned)"),
                ("initBonds_OP_SUCCINCT", "Init Bond (OP_SUCCINCT)"),
            ),
        )),
        ("l1AnchorStateRegistryAddress", lambda address: ContractDescriptor(
            "AnchorStateRegistry", address, "Tracks the anchor root and respected game type",
            Category.FACTORY, True,
            view_functions=_views(
                ("version", "Version"),
                ("disputeGameFinalityDelaySeconds", "Finality Delay (s)"),
                ("systemConfig", "System Config"), ("disputeGameFactory", "Dispute Game Factory"),
                ("anchorGame", "Anchor Game"), ("respectedGameType", "Respected Game Type"),
                ("retirementTimestamp", "Retirement Timestamp"), ("paused", "Paused"),
                ("getAnchorRoot", "Anchor Root"),
            ),
        )),
        ("l1ProverRegistryAddress", lambda address: ContractDescriptor(
            "ProverRegistry", address, "Registry of attested TEE provers",
            Category.TEE, True, is_owner_based=True,
            view_functions=_views(
                ("version", "Version"), ("chainID", "Chain ID"), ("verifier", "Verifier"),
                ("requiredProverTypes", "Required Prover Types"),
                ("attestValiditySeconds", "Attest Validity (s)"),
                ("maxBlockNumberDiff", "Max Block Number Diff"),
                ("nextInstanceId", "Next Instance ID"),
            ),
        )),
        ("l1WorkloadVerifierAddress", lambda address: ContractDescriptor(
            "WorkloadVerifier", address, "Verifies TEE workload attestations",
            Category.TEE, True, is_owner_based=True,
            view_functions=_views(
                ("dcapAttestation", "DCAP Attestation"), ("snpAttestation", "SNP Attestation"),
                ("tpmAttestation", "TPM Attestation"),
            ),
        )),
    ]

    contracts = []
    for field_name, factory in candidates:
        address = getattr(env_config, field_name)
        if address:
            contracts.append(factory(address))
    return contracts


def filter_contracts(contracts: List[ContractDescriptor], category: Optional[str] = None,
                     manageable_only: bool = False) -> List[ContractDescriptor]:
    return [
        c for c in contracts
        if (not category or category == "all" or c.category.value == category)
        and (not manageable_only or c.is_manageable)
    ]


def find_contract(contracts: List[ContractDescriptor], address: str) -> Optional[ContractDescriptor]:
    for contract in contracts:
        if contract.address.lower() == address.lower():
            return contract
    return None
