import asyncio
import logging
import time
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from web3 import AsyncWeb3

from abi_registry import DISPUTE_GAME_FACTORY_ABI, SUPERCHAIN_CONFIG_ABI, find_entry
from config_loader import EnvironmentConfig
from formatters import format_time_since
from rpc_client import RpcClient, event_topic, normalize_result
from rpc_proxy import forward_explorer

logger = logging.getLogger(__name__)

BLOCK_TAGS = ("latest", "safe", "finalized")

ACTIVITY_THRESHOLDS = (5, 30, 60, 240, 720, 1440)  # minutes
BALANCE_THRESHOLDS = (Decimal("5"), Decimal("2.5"), Decimal("1"), Decimal("0.5"), Decimal("0.25"))  # ETH
NO_ACTIVITY_LEVEL = 6

ROLE_SCAN_BLOCKS = 100
BLOCK_PROCESSED_LOOKBACK = 7200  # ~1 day of L1 blocks


def activity_warning(last_timestamp: Optional[int], thresholds: Sequence[int] = ACTIVITY_THRESHOLDS,
                     now: Optional[float] = None, subject: str = "transaction") -> Optional[Dict[str, Any]]:
    """Most severe threshold crossed since the last activity; level is threshold index + 1"""
    if not last_timestamp:
        return {"level": NO_ACTIVITY_LEVEL, "message": f"No recent {subject} found"}

    current = int(now if now is not None else time.time())
    minutes = (current - int(last_timestamp)) // 60
    for i in range(len(thresholds) - 1, -1, -1):
        if minutes >= thresholds[i]:
            return {
                "level": i + 1,
                "message": f"No {subject} for {minutes} minutes (threshold: {thresholds[i]}m)",
            }
    return None


def balance_warning(balance_eth: Optional[Decimal],
                    thresholds: Sequence[Decimal] = BALANCE_THRESHOLDS) -> Optional[Dict[str, Any]]:
    """Lowest threshold the balance sits below; level is threshold index + 1"""
    if balance_eth is None:
        return None

    level = None
    for i, threshold in enumerate(thresholds):
        if balance_eth < threshold:
            level = i + 1
    if level is None:
        return None
    return {
        "level": level,
        "message": f"Balance {balance_eth:.4f} ETH below threshold {thresholds[level - 1]} ETH",
    }


class ChainMonitor:
    """Block tags, role activity, TEE prover liveness and pause-flow lookups"""

    def __init__(self, env_config: EnvironmentConfig,
                 client_factory: Optional[Callable[[str], RpcClient]] = None):
        self.env_config = env_config
        self._client_factory = client_factory or (
            lambda url: RpcClient(url, timeout=env_config.rpcTimeoutSeconds, proxy_url=env_config.rpcProxyURL)
        )
        self._clients: Dict[str, RpcClient] = {}

    def client(self, url: str) -> RpcClient:
        if url not in self._clients:
            self._clients[url] = self._client_factory(url)
        return self._clients[url]

    @property
    def l1(self) -> RpcClient:
        return self.client(self.env_config.l1RpcURL)

    # Block tags

    async def get_block_by_tag(self, url: str, tag: str) -> Dict[str, Any]:
        block = await self.client(url).get_block(tag)
        return {
            "number": block["number"],
            "hash": normalize_result(block["hash"]),
            "timestamp": block["timestamp"],
        }

    async def fetch_block_data(self, url: str, tags: Sequence[str] = BLOCK_TAGS) -> Dict[str, Any]:
        """Every tag is fetched independently; a failing tag only fills its errors entry"""
        results = await asyncio.gather(*(self.get_block_by_tag(url, tag) for tag in tags), return_exceptions=True)
        blocks: Dict[str, Any] = {}
        errors: Dict[str, str] = {}
        for tag, result in zip(tags, results):
            if isinstance(result, Exception):
                logger.warning(f"{tag} block from {url} failed: {result}")
                blocks[tag] = None
                errors[tag] = str(result) or "Unknown error"
            else:
                blocks[tag] = result
        return {"url": url, "blocks": blocks, "errors": errors}

    async def test_rpc(self, url: str) -> Dict[str, Any]:
        url = (url or "").strip()
        if not url:
            raise ValueError("Please enter an RPC URL")
        # ad-hoc endpoints are not cached
        monitor = ChainMonitor(self.env_config, self._client_factory)
        return await monitor.fetch_block_data(url)

    async def endpoint_status(self) -> List[Dict[str, Any]]:
        names = list(self.env_config.rpc_endpoints().items())
        data = await asyncio.gather(*(self.fetch_block_data(url) for _, url in names))
        return [{"name": name, **entry} for (name, _), entry in zip(names, data)]

    # Role monitor

    async def _last_tx_from_explorer(self, address: str) -> Optional[Dict[str, Any]]:
        chain_id = await self.l1.get_chain_id()
        query = {"chainid": chain_id, "module": "account", "action": "txlist", "address": address}
        result = await asyncio.to_thread(
            forward_explorer, query, self.env_config.l1ExplorerApiURL, self.env_config.l1ExplorerApiKey,
        )
        body = result.body if isinstance(result.body, dict) else {}
        if result.status_code == 200 and body.get("status") == "1" and body.get("result"):
            latest = body["result"][0]
            return {"timestamp": int(latest["timeStamp"]), "hash": latest["hash"]}
        return None

    async def _last_tx_from_blocks(self, address: str) -> Optional[Dict[str, Any]]:
        current = await self.l1.get_block_number()
        for number in range(current, max(current - ROLE_SCAN_BLOCKS, 0) - 1, -1):
            try:
                block = await self.l1.get_block(number, full_transactions=True)
            except Exception as e:
                logger.debug(f"Skipping block {number}: {e}")
                continue
            for tx in block.get("transactions") or []:
                if isinstance(tx, Mapping) and str(tx.get("from", "")).lower() == address.lower():
                    return {"timestamp": block["timestamp"], "hash": normalize_result(tx["hash"])}
        return None

    async def get_last_transaction(self, role_name: str, address: str) -> Optional[Dict[str, Any]]:
        """Explorer txlist when configured, else a scan of the most recent blocks"""
        if self.env_config.l1ExplorerApiURL:
            try:
                last_tx = await self._last_tx_from_explorer(address)
                if last_tx:
                    return last_tx
            except Exception as e:
                logger.warning(f"Block explorer API failed for {role_name}, falling back to RPC: {e}")

        try:
            return await self._last_tx_from_blocks(address)
        except Exception as e:
            logger.warning(f"RPC fallback failed for {role_name}: {e}")
            return None

    async def get_role_status(self, role_name: str, address: str, now: Optional[float] = None) -> Dict[str, Any]:
        status: Dict[str, Any] = {"role": role_name, "address": address}
        try:
            balance_wei, last_tx = await asyncio.gather(
                self.l1.get_balance(address),
                self.get_last_transaction(role_name, address),
            )
        except Exception as e:
            logger.error(f"Error fetching {role_name} status: {e}")
            return {**status, "balance": None, "last_tx": None, "error": str(e) or "Unknown error"}

        balance_eth = AsyncWeb3.from_wei(balance_wei, "ether")
        last_timestamp = last_tx["timestamp"] if last_tx else None
        activity = activity_warning(last_timestamp, now=now)
        balance = balance_warning(Decimal(balance_eth))
        return {
            **status,
            "balance": str(balance_eth),
            "last_tx": last_tx,
            "time_since": format_time_since(last_timestamp, now=now),
            "explorer_url": f"{self.env_config.l1ExplorerBaseURL}/address/{address}",
            "activity_warning": activity,
            "balance_warning": balance,
            "error": None,
        }

    async def role_status(self) -> List[Dict[str, Any]]:
        roles = [
            (name, address) for name, address in (
                ("Batcher", self.env_config.batcherAddress),
                ("Proposer", self.env_config.proposerAddress),
            ) if address
        ]
        return list(await asyncio.gather(*(self.get_role_status(name, address) for name, address in roles)))

    async def chain_status(self) -> Dict[str, Any]:
        endpoints, roles = await asyncio.gather(self.endpoint_status(), self.role_status())
        return {"endpoints": endpoints, "roles": roles, "updated_at": int(time.time())}

    # TEE prover monitor

    async def get_block_processed_status(self) -> Dict[str, Any]:
        """Latest BlockProcessed event emitted by the DisputeGameFactory over the lookback window"""
        factory = self.env_config.l1DisputeGameFactoryAddress
        empty = {"timestamp": None, "blockNumber": None, "offset": None, "withdrawalCount": None, "txHash": None}
        try:
            event_abi = find_entry(DISPUTE_GAME_FACTORY_ABI, "BlockProcessed", "event")
            if event_abi is None:
                raise ValueError("BlockProcessed event not found in ABI")

            current = await self.l1.get_block_number()
            from_block = max(current - BLOCK_PROCESSED_LOOKBACK, 0)
            logs = await self.l1.get_logs({
                "fromBlock": from_block,
                "toBlock": "latest",
                "address": AsyncWeb3.to_checksum_address(factory),
                "topics": [event_topic(event_abi)],
            })
            if not logs:
                return {**empty, "error": f"No BlockProcessed events in last {BLOCK_PROCESSED_LOOKBACK} blocks"}

            latest = max(logs, key=lambda log: log["blockNumber"] or 0)
            event = self.l1.decode_log(DISPUTE_GAME_FACTORY_ABI, "BlockProcessed", latest)
            block = await self.l1.get_block(latest["blockNumber"])
            args = event["args"]
            return {
                "timestamp": block["timestamp"],
                "blockNumber": args.get("blockNumber", latest["blockNumber"]),
                "offset": args.get("offset"),
                "withdrawalCount": args.get("withdrawalCount"),
                "txHash": normalize_result(latest.get("transactionHash")),
                "error": None,
            }
        except Exception as e:
            logger.error(f"Error fetching BlockProcessed events: {e}")
            return {**empty, "error": str(e) or "Unknown error"}

    async def probe_tee_rpc(self) -> Dict[str, Any]:
        """tee_getExecutionProof liveness probe; a healthy node answers with proof, stateRoot and header"""
        try:
            response = await self.client(self.env_config.teeNodeRpcURL).make_request(
                "tee_getExecutionProof", ["0x1"],
            )
            if response.get("error"):
                error = response["error"]
                raise ValueError(error.get("message", "JSON-RPC error") if isinstance(error, dict) else str(error))
            result = response.get("result")
            if not (isinstance(result, Mapping) and result.get("proof") and result.get("stateRoot")
                    and result.get("header")):
                raise ValueError("Invalid response: missing required fields")
            return {"ok": True, "error": None}
        except Exception as e:
            logger.error(f"Error querying TEE RPC: {e}")
            return {"ok": False, "error": str(e) or "Unknown error"}

    async def tee_status(self, now: Optional[float] = None) -> Dict[str, Any]:
        if not self.env_config.l1DisputeGameFactoryAddress or not self.env_config.teeNodeRpcURL:
            return {"enabled": False}

        block_processed, rpc = await asyncio.gather(self.get_block_processed_status(), self.probe_tee_rpc())
        activity = activity_warning(block_processed["timestamp"], now=now, subject="BlockProcessed event")
        if activity and not block_processed["timestamp"] and block_processed["error"]:
            activity["message"] = block_processed["error"]
        return {
            "enabled": True,
            "block_processed": block_processed,
            "time_since": format_time_since(block_processed["timestamp"], now=now),
            "activity_warning": activity,
            "tee_rpc": rpc,
            "updated_at": int(time.time()),
        }

    # Pause flow

    async def get_guardian(self) -> Optional[str]:
        address = self.env_config.l1SuperchainConfigAddress
        if not address:
            return None
        try:
            return await self.l1.call(address, SUPERCHAIN_CONFIG_ABI, "guardian")
        except Exception as e:
            logger.error(f"Failed to fetch guardian address: {e}")
            return None

    async def pause_flow(self) -> Dict[str, Any]:
        """Guardian -> SuperchainConfig -> SystemConfig -> pause consumers"""
        env = self.env_config
        return {
            "guardian": await self.get_guardian(),
            "superchain_config": env.l1SuperchainConfigAddress,
            "system_config": env.l1SystemConfigAddress,
            "consumers": [
                {"name": "OptimismPortal", "address": env.l1OptimismPortalAddress,
                 "blocks": "Withdrawals", "allows": "Deposits"},
                {"name": "L1StandardBridge", "address": env.l1StandardBridgeAddress,
                 "blocks": "All Bridging", "allows": None},
            ],
        }


class SnapshotPoller:
    """Re-runs a fetch coroutine on an interval and keeps the last result.

    A refresh cancels the cycle still in flight, so at most one cycle runs at a time.
    """

    def __init__(self, name: str, fetch: Callable[[], Awaitable[Dict[str, Any]]], interval: float = 30.0):
        self.name = name
        self.fetch = fetch
        self.interval = interval
        self.updated_at: Optional[float] = None
        self.last_error: Optional[str] = None
        self._snapshot: Optional[Dict[str, Any]] = None
        self._inflight: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def snapshot(self) -> Optional[Mapping[str, Any]]:
        return MappingProxyType(self._snapshot) if self._snapshot is not None else None

    async def _cycle(self):
        try:
            self._snapshot = await self.fetch()
            self.updated_at = time.time()
            self.last_error = None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"{self.name} refresh failed: {e}")
            self.last_error = str(e)

    async def refresh(self) -> Optional[Mapping[str, Any]]:
        if self._inflight is not None and not self._inflight.done():
            logger.info(f"{self.name}: cancelling stale refresh")
            self._inflight.cancel()
        task = asyncio.ensure_future(self._cycle())
        self._inflight = task
        # asyncio.wait does not re-raise when a newer refresh cancels this cycle
        await asyncio.wait({task})
        return self.snapshot

    async def run(self):
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval)

    def start(self):
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.ensure_future(self.run())
            logger.info(f"{self.name} poller started (every {self.interval}s)")

    async def stop(self):
        for task in (self._loop_task, self._inflight):
            if task is not None and not task.done():
                task.cancel()
                await asyncio.wait({task})
        self._loop_task = None
        self._inflight = None
