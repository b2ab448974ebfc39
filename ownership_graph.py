import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from abi_registry import OWNABLE_ABI, PROXY_ADMIN_ABI
from contract_catalog import ContractDescriptor, PROXY_ADMIN_NAME
from rpc_client import RpcClient

logger = logging.getLogger(__name__)


@dataclass
class OwnershipNode:
    name: str
    address: str
    children: List["OwnershipNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class OwnershipGraph:
    tree: List[OwnershipNode] = field(default_factory=list)
    owner_groups: Dict[str, List[ContractDescriptor]] = field(default_factory=dict)
    unmanaged: List[ContractDescriptor] = field(default_factory=list)
    root_owner: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tree": [node.to_dict() for node in self.tree],
            "owner_groups": {
                owner: [{"name": c.name, "address": c.address} for c in contracts]
                for owner, contracts in self.owner_groups.items()
            },
            "unmanaged": [{"name": c.name, "address": c.address} for c in self.unmanaged],
            "root_owner": self.root_owner,
            "error": self.error,
        }


async def _root_owner(client: RpcClient, registry: ContractDescriptor) -> Optional[str]:
    try:
        return await client.call(registry.address, PROXY_ADMIN_ABI, "owner")
    except Exception as e:
        logger.warning(f"Failed to get {registry.name} owner: {e}")
        return None


async def _proxy_admin_of(client: RpcClient, registry: ContractDescriptor, contract: ContractDescriptor) -> str:
    """Admin recorded by the registry for a proxy; the registry itself when the lookup fails"""
    try:
        admin = await client.call(registry.address, PROXY_ADMIN_ABI, "getProxyAdmin", contract.address)
        return admin.lower()
    except Exception as e:
        logger.debug(f"getProxyAdmin({contract.address}) failed, assuming {registry.name}: {e}")
        return registry.address.lower()


async def _owner_of(client: RpcClient, contract: ContractDescriptor) -> Optional[str]:
    try:
        return await client.call(contract.address, OWNABLE_ABI, "owner")
    except Exception as e:
        logger.error(f"Failed to get owner for {contract.name}: {e}")
        return None


async def build_ownership_graph(contracts: List[ContractDescriptor], client: RpcClient,
                                proxy_admin_name: str = PROXY_ADMIN_NAME) -> OwnershipGraph:
    """Group manageable contracts under their proxy admin, or under their owner when owner-based"""
    registry = next((c for c in contracts if c.name == proxy_admin_name and c.address), None)
    if registry is None:
        return OwnershipGraph(
            unmanaged=[c for c in contracts if not c.is_manageable],
            error=f"{proxy_admin_name} contract not found",
        )

    try:
        routed = [
            c for c in contracts
            if c.is_manageable and not c.is_owner_based and c.name != proxy_admin_name and c.address
        ]
        owner_based = [
            c for c in contracts
            if c.is_manageable and c.is_owner_based and c.name != proxy_admin_name and c.address
        ]
        unmanaged = [c for c in contracts if not c.is_manageable and c.address]

        root_owner, admins, owners = await asyncio.gather(
            _root_owner(client, registry),
            asyncio.gather(*(_proxy_admin_of(client, registry, c) for c in routed)),
            asyncio.gather(*(_owner_of(client, c) for c in owner_based)),
        )

        by_admin: Dict[str, List[ContractDescriptor]] = {}
        for contract, admin in zip(routed, admins):
            by_admin.setdefault(admin, []).append(contract)

        tree = []
        for admin_address, children in by_admin.items():
            admin_contract = next((c for c in contracts if c.address.lower() == admin_address), None)
            tree.append(OwnershipNode(
                name=admin_contract.name if admin_contract else "Unknown Admin",
                address=admin_address,
                children=[OwnershipNode(c.name, c.address) for c in children],
            ))

        owner_groups: Dict[str, List[ContractDescriptor]] = {}
        for contract, owner in zip(owner_based, owners):
            if owner:
                owner_groups.setdefault(owner.lower(), []).append(contract)

        return OwnershipGraph(
            tree=tree, owner_groups=owner_groups, unmanaged=unmanaged, root_owner=root_owner,
        )
    except Exception as e:
        logger.error(f"Error fetching ownership data: {e}")
        return OwnershipGraph(error="Failed to fetch ownership data")
