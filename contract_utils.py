import asyncio
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from abi_registry import (
    AbiRegistry, ReadStrategy, L1_STANDARD_BRIDGE_ABI, OWNABLE_ABI, PROXY_ABI,
)
from config_loader import ZERO_ADDRESS
from rpc_client import RpcClient

logger = logging.getLogger(__name__)


@dataclass
class ContractInfo:
    address: str
    owner: Optional[str] = None
    balance: Optional[int] = None
    implementation: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # uint256 balances overflow JSON number precision on the client side
        data["balance"] = str(self.balance) if self.balance is not None else None
        return data


class ContractInteractor:
    """Resolves owner/admin, implementation and balance for any address on one chain"""

    def __init__(self, client: RpcClient, registry: AbiRegistry):
        self.client = client
        self.registry = registry

    async def _safe_call(self, address: str, abi, function_name: str, caller: Optional[str] = None) -> Optional[Any]:
        try:
            return await self.client.call(address, abi, function_name, caller=caller)
        except Exception as e:
            # a revert here means the accessor does not exist on this contract
            logger.debug(f"{function_name}() on {address} unavailable: {e}")
            return None

    async def get_contract_owner(self, address: str) -> Optional[str]:
        """Owner or proxy admin, dispatched on the address' read strategy"""
        strategy = self.registry.read_strategy(address)

        if strategy == ReadStrategy.CHUGSPLASH_PROXY:
            # L1ChugSplashProxy only answers getOwner() for the zero-address caller
            return await self._safe_call(address, L1_STANDARD_BRIDGE_ABI, "getOwner", caller=ZERO_ADDRESS)

        if strategy == ReadStrategy.PROXY_ADMIN:
            return await self._safe_call(address, OWNABLE_ABI, "owner")

        admin = await self._safe_call(address, PROXY_ABI, "admin")
        if admin is not None:
            return admin
        return await self._safe_call(address, OWNABLE_ABI, "owner")

    async def get_implementation(self, address: str) -> Optional[str]:
        if self.registry.read_strategy(address) == ReadStrategy.CHUGSPLASH_PROXY:
            return await self._safe_call(address, L1_STANDARD_BRIDGE_ABI, "getImplementation", caller=ZERO_ADDRESS)
        return await self._safe_call(address, PROXY_ABI, "implementation")

    async def get_balance(self, address: str) -> Optional[int]:
        try:
            return await self.client.get_balance(address)
        except Exception as e:
            logger.warning(f"Balance lookup for {address} failed: {e}")
            return None

    async def get_contract_info(self, address: str) -> ContractInfo:
        """Never raises; failures land in the nullable fields or in error"""
        result = ContractInfo(address=address)
        try:
            owner, balance, implementation = await asyncio.gather(
                self.get_contract_owner(address),
                self.get_balance(address),
                self.get_implementation(address),
            )
            result.owner = owner
            result.balance = balance
            result.implementation = implementation
        except Exception as e:
            logger.error(f"Error getting contract info for {address}: {e}")
            result.error = str(e) or "Unknown error"
        return result
