from typing import Any, Dict, List, Optional

import pytest

from abi_registry import AbiRegistry
from config_loader import EnvironmentConfig

PROXY_ADMIN = "0x1000000000000000000000000000000000000001"
SYSTEM_CONFIG = "0x1000000000000000000000000000000000000002"
SUPERCHAIN_CONFIG = "0x1000000000000000000000000000000000000003"
OPTIMISM_PORTAL = "0x1000000000000000000000000000000000000004"
L1_STANDARD_BRIDGE = "0x1000000000000000000000000000000000000005"
DISPUTE_GAME_FACTORY = "0x1000000000000000000000000000000000000006"
ANCHOR_STATE_REGISTRY = "0x1000000000000000000000000000000000000007"
PROVER_REGISTRY = "0x1000000000000000000000000000000000000008"
WORKLOAD_VERIFIER = "0x1000000000000000000000000000000000000009"
BATCHER = "0x200000000000000000000000000000000000000b"
PROPOSER = "0x200000000000000000000000000000000000000c"


class RevertError(Exception):
    pass


class FakeRpcClient:
    """In-memory stand-in for RpcClient.

    calls maps (lower-cased address, function name, args tuple) to a return value
    or an exception instance; anything unmapped reverts.
    """

    def __init__(self, calls: Optional[Dict] = None, balances: Optional[Dict[str, Any]] = None,
                 codes: Optional[Dict[str, bytes]] = None, blocks: Optional[Dict[Any, Any]] = None,
                 logs: Optional[List[Dict]] = None, responses: Optional[Dict[str, Any]] = None,
                 block_number: int = 0, chain_id: int = 1):
        self.calls = {(a.lower(), fn, args): v for (a, fn, args), v in (calls or {}).items()}
        self.balances = {a.lower(): v for a, v in (balances or {}).items()}
        self.codes = {a.lower(): v for a, v in (codes or {}).items()}
        self.blocks = blocks or {}
        self.logs = logs or []
        self.responses = responses or {}
        self.block_number = block_number
        self.chain_id = chain_id
        self.call_log: List[tuple] = []
        self.log_filters: List[Dict] = []

    @staticmethod
    def _resolve(value):
        if isinstance(value, Exception):
            raise value
        return value

    async def call(self, address, abi, function_name, *args, caller=None):
        self.call_log.append((address.lower(), function_name, args, caller))
        key = (address.lower(), function_name, args)
        if key not in self.calls:
            raise RevertError(f"execution reverted: {function_name}")
        return self._resolve(self.calls[key])

    async def get_balance(self, address):
        if address.lower() not in self.balances:
            raise ConnectionError("balance unavailable")
        return self._resolve(self.balances[address.lower()])

    async def get_code(self, address):
        if address.lower() not in self.codes:
            raise ConnectionError("code unavailable")
        return self.codes[address.lower()]

    async def get_block(self, block_identifier, full_transactions=False):
        if block_identifier not in self.blocks:
            raise ConnectionError(f"block {block_identifier} unavailable")
        return self._resolve(self.blocks[block_identifier])

    async def get_block_number(self):
        return self._resolve(self.block_number)

    async def get_chain_id(self):
        return self.chain_id

    async def get_logs(self, log_filter):
        self.log_filters.append(log_filter)
        return self.logs

    def decode_log(self, abi, event_name, log):
        return {"event": event_name, "args": log["args"]}

    async def make_request(self, method, params):
        return self._resolve(self.responses[method])

    async def is_connected(self):
        return True


@pytest.fixture
def env_config():
    return EnvironmentConfig(
        gatewayRpcURL="https://gateway.example.org",
        mainNodeRpcURL="http://10.0.0.1:8545",
        teeNodeRpcURL="http://10.0.0.2:8545",
        l1RpcURL="https://l1.example.org",
        l2RpcURL="https://l2.example.org",
        l1ProxyAdminAddress=PROXY_ADMIN,
        l1SystemConfigAddress=SYSTEM_CONFIG,
        l1SuperchainConfigAddress=SUPERCHAIN_CONFIG,
        l1OptimismPortalAddress=OPTIMISM_PORTAL,
        l1StandardBridgeAddress=L1_STANDARD_BRIDGE,
        l1DisputeGameFactoryAddress=DISPUTE_GAME_FACTORY,
        l1AnchorStateRegistryAddress=ANCHOR_STATE_REGISTRY,
        l1ProverRegistryAddress=PROVER_REGISTRY,
        l1WorkloadVerifierAddress=WORKLOAD_VERIFIER,
        batcherAddress=BATCHER,
        proposerAddress=PROPOSER,
    )


@pytest.fixture
def registry(env_config):
    return AbiRegistry(env_config)
