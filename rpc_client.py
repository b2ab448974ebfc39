import asyncio
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider

logger = logging.getLogger(__name__)

# Plain-HTTP endpoints addressed by raw IP need the forwarding proxy
RAW_IP_URL = re.compile(r"^http://\d+\.\d+\.\d+\.\d+:\d+")
ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")


def resolve_rpc_url(rpc_url: str, proxy_url: Optional[str] = None) -> str:
    """Route raw-IP plain-HTTP endpoints through the forwarding proxy when one is configured"""
    if proxy_url and RAW_IP_URL.match(rpc_url):
        return f"{proxy_url}?url={quote(rpc_url, safe='')}"
    return rpc_url


def normalize_result(value: Any) -> Any:
    """Turn web3 return values into plain JSON-friendly python values"""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [normalize_result(item) for item in value]
    return value


def event_topic(event_abi: Dict) -> str:
    """topic0 for a non-anonymous event ABI entry"""
    signature = f"{event_abi['name']}({','.join(i['type'] for i in event_abi.get('inputs', []))})"
    return AsyncWeb3.to_hex(AsyncWeb3.keccak(text=signature))


def _checksum_arg(value: Any) -> Any:
    if isinstance(value, str) and ADDRESS_PATTERN.match(value):
        return AsyncWeb3.to_checksum_address(value)
    return value


class RpcClient:
    """Async JSON-RPC adapter around web3; every call is bounded by a timeout"""

    def __init__(self, rpc_url: str, timeout: float = 5.0, proxy_url: Optional[str] = None):
        self.rpc_url = rpc_url
        self.endpoint_url = resolve_rpc_url(rpc_url, proxy_url)
        self.timeout = timeout
        self.w3 = AsyncWeb3(AsyncHTTPProvider(self.endpoint_url))

    async def _bounded(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def call(self, address: str, abi: List[Dict], function_name: str, *args, caller: Optional[str] = None) -> Any:
        """eth_call a contract function; raises on revert, transport error or timeout"""
        contract = self.w3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=abi)
        function = getattr(contract.functions, function_name)(*[_checksum_arg(a) for a in args])
        if caller:
            return await self._bounded(function.call({"from": AsyncWeb3.to_checksum_address(caller)}))
        return await self._bounded(function.call())

    async def get_balance(self, address: str) -> int:
        return await self._bounded(self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(address)))

    async def get_code(self, address: str) -> bytes:
        return await self._bounded(self.w3.eth.get_code(AsyncWeb3.to_checksum_address(address)))

    async def get_block(self, block_identifier: Any, full_transactions: bool = False) -> Dict[str, Any]:
        return await self._bounded(self.w3.eth.get_block(block_identifier, full_transactions))

    async def get_block_number(self) -> int:
        return await self._bounded(self.w3.eth.get_block_number())

    async def get_chain_id(self) -> int:
        return await self._bounded(self.w3.eth.chain_id)

    async def get_logs(self, log_filter: Dict[str, Any]) -> List[Any]:
        return await self._bounded(self.w3.eth.get_logs(log_filter))

    def decode_log(self, abi: List[Dict], event_name: str, log: Any) -> Any:
        """Decode a raw log entry against the named event of abi"""
        contract = self.w3.eth.contract(abi=abi)
        return getattr(contract.events, event_name)().process_log(log)

    async def make_request(self, method: str, params: List[Any]) -> Dict[str, Any]:
        """Raw JSON-RPC request for methods web3 has no wrapper for"""
        return await self._bounded(self.w3.provider.make_request(method, params))

    async def is_connected(self) -> bool:
        try:
            block_number = await self.get_block_number()
            logger.info(f"Connection to {self.rpc_url} successful, latest block: {block_number}")
            return True
        except Exception as e:
            logger.warning(f"Connection to {self.rpc_url} failed: {e}")
            return False
