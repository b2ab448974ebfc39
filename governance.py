import logging
import re
from typing import Any, Dict, Optional

from contract_catalog import Category, ContractDescriptor
from contract_utils import ContractInteractor
from rpc_client import RpcClient

logger = logging.getLogger(__name__)

# Pre-computed keccak256 selectors
TRANSFER_OWNERSHIP_SELECTOR = "0xf2fde38b"  # transferOwnership(address)
CHANGE_PROXY_ADMIN_SELECTOR = "0x7eff275e"  # changeProxyAdmin(address,address)
UPGRADE_SELECTOR = "0x99a88ec4"  # upgrade(address,address)
WITHDRAW_SELECTOR = "0x3ccfd60b"  # withdraw()

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

ACTION_KINDS = ("transfer", "upgrade", "withdraw")


class ActionError(ValueError):
    """A governance action that cannot be encoded for the given contract or input"""


def is_valid_address(address: Any) -> bool:
    return isinstance(address, str) and bool(ADDRESS_RE.match(address))


def _pad_address(address: str) -> str:
    return address.replace("0x", "", 1).rjust(64, "0")


def generate_transfer_ownership_calldata(new_owner: str) -> str:
    return TRANSFER_OWNERSHIP_SELECTOR + _pad_address(new_owner)


def generate_change_proxy_admin_calldata(proxy_address: str, new_admin: str) -> str:
    return CHANGE_PROXY_ADMIN_SELECTOR + _pad_address(proxy_address) + _pad_address(new_admin)


def generate_upgrade_calldata(proxy_address: str, new_implementation: str) -> str:
    return UPGRADE_SELECTOR + _pad_address(proxy_address) + _pad_address(new_implementation)


def generate_withdraw_calldata() -> str:
    return WITHDRAW_SELECTOR


def build_action(kind: str, descriptor: ContractDescriptor, proxy_admin_address: Optional[str],
                 new_address: Optional[str] = None) -> Dict[str, str]:
    """Wallet hand-off {to, data} for a governance action on one contract.

    Proxy-routed contracts are administered through the proxy admin: ownership
    transfer becomes changeProxyAdmin and upgrades go through upgrade(). Owner-based
    contracts (and the proxy admin itself) take transferOwnership directly.
    Withdraw is sent to the vault.
    """
    if kind not in ACTION_KINDS:
        raise ActionError(f"Unknown action: {kind}")

    if kind == "withdraw":
        if descriptor.category != Category.VAULT:
            raise ActionError(f"{descriptor.name} is not a fee vault")
        return {"to": descriptor.address, "data": generate_withdraw_calldata()}

    if not is_valid_address(new_address):
        raise ActionError("Invalid Ethereum address")

    if kind == "transfer":
        if descriptor.uses_owner:
            return {"to": descriptor.address, "data": generate_transfer_ownership_calldata(new_address)}
        if not proxy_admin_address:
            raise ActionError("ProxyAdmin address not configured")
        return {
            "to": proxy_admin_address,
            "data": generate_change_proxy_admin_calldata(descriptor.address, new_address),
        }

    if descriptor.uses_owner:
        raise ActionError(f"{descriptor.name} is not managed by ProxyAdmin")
    if not proxy_admin_address:
        raise ActionError("ProxyAdmin address not configured")
    return {"to": proxy_admin_address, "data": generate_upgrade_calldata(descriptor.address, new_address)}


async def is_eoa(client: RpcClient, address: str) -> Optional[bool]:
    """True for accounts without bytecode; None when the code lookup fails"""
    try:
        code = await client.get_code(address)
    except Exception as e:
        logger.warning(f"Code lookup for {address} failed: {e}")
        return None
    return len(code or b"") == 0


async def describe_signer(action: Dict[str, str], interactor: ContractInteractor) -> Dict[str, Any]:
    """Who has to sign the action: owner of the target and whether it is an EOA or a multisig/contract"""
    signer = await interactor.get_contract_owner(action["to"])
    signer_is_eoa = await is_eoa(interactor.client, signer) if signer else None
    return {**action, "signer": signer, "signer_is_eoa": signer_is_eoa}
