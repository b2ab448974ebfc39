import json
import logging
import os
from typing import Dict, Any, Optional, Tuple
from dataclasses import dataclass

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

logger = logging.getLogger(__name__)

REQUIRED_URL_KEYS = ("gatewayRpcURL", "mainNodeRpcURL", "teeNodeRpcURL", "l1RpcURL", "l2RpcURL")

# camelCase config key -> environment variable that overrides it
ENV_OVERRIDES = {
    "gatewayRpcURL": "GATEWAY_RPC_URL",
    "mainNodeRpcURL": "MAIN_NODE_RPC_URL",
    "teeNodeRpcURL": "TEE_NODE_RPC_URL",
    "l1RpcURL": "L1_RPC_URL",
    "l2RpcURL": "L2_RPC_URL",
    "rpcProxyURL": "RPC_PROXY_URL",
    "l1StandardBridgeAddress": "L1_STANDARD_BRIDGE_ADDRESS",
    "l1ProxyAdminAddress": "L1_PROXY_ADMIN_ADDRESS",
    "l1SystemConfigAddress": "L1_SYSTEM_CONFIG_ADDRESS",
    "l1SuperchainConfigAddress": "L1_SUPERCHAIN_CONFIG_ADDRESS",
    "l1OptimismPortalAddress": "L1_OPTIMISM_PORTAL_ADDRESS",
    "l1DisputeGameFactoryAddress": "L1_DISPUTE_GAME_FACTORY_ADDRESS",
    "l1AnchorStateRegistryAddress": "L1_ANCHOR_STATE_REGISTRY_ADDRESS",
    "l1ProverRegistryAddress": "L1_PROVER_REGISTRY_ADDRESS",
    "l1WorkloadVerifierAddress": "L1_WORKLOAD_VERIFIER_ADDRESS",
    "l2SignalServiceAddress": "L2_SIGNAL_SERVICE_ADDRESS",
    "batcherAddress": "BATCHER_ADDRESS",
    "proposerAddress": "PROPOSER_ADDRESS",
    "l1ExplorerApiURL": "L1_EXPLORER_API_URL",
    "l1ExplorerApiKey": "L1_EXPLORER_API_KEY",
    "l1ExplorerBaseURL": "L1_EXPLORER_BASE_URL",
    "accessPassword": "ACCESS_PASSWORD",
    "rpcTimeoutSeconds": "RPC_TIMEOUT_SECONDS",
    "pollIntervalSeconds": "POLL_INTERVAL_SECONDS",
    "logFile": "LOG_FILE",
}


class ConfigError(Exception):
    """Raised when a required configuration value is missing or malformed"""


@dataclass(frozen=True)
class EnvironmentConfig:
    gatewayRpcURL: str
    mainNodeRpcURL: str
    teeNodeRpcURL: str
    l1RpcURL: str
    l2RpcURL: str
    rpcProxyURL: Optional[str] = None
    l1StandardBridgeAddress: Optional[str] = None
    l1ProxyAdminAddress: Optional[str] = None
    l1SystemConfigAddress: Optional[str] = None
    l1SuperchainConfigAddress: Optional[str] = None
    l1OptimismPortalAddress: Optional[str] = None
    l1DisputeGameFactoryAddress: Optional[str] = None
    l1AnchorStateRegistryAddress: Optional[str] = None
    l1ProverRegistryAddress: Optional[str] = None
    l1WorkloadVerifierAddress: Optional[str] = None
    l2SignalServiceAddress: Optional[str] = None
    batcherAddress: Optional[str] = None
    proposerAddress: Optional[str] = None
    l1ExplorerApiURL: Optional[str] = None
    l1ExplorerApiKey: Optional[str] = None
    l1ExplorerBaseURL: str = "https://etherscan.io"
    accessPassword: Optional[str] = None
    rpcTimeoutSeconds: float = 5.0
    pollIntervalSeconds: float = 30.0
    logFile: Optional[str] = None

    def rpc_allow_list(self) -> Tuple[str, ...]:
        """URLs the forwarding gateway may reach, matched by exact string"""
        urls = (self.gatewayRpcURL, self.mainNodeRpcURL, self.teeNodeRpcURL, self.l2RpcURL)
        return tuple(url for url in urls if url)

    def rpc_endpoints(self) -> Dict[str, str]:
        """Named endpoints shown on the chain status page"""
        return {
            "Gateway Endpoint": self.gatewayRpcURL,
            "Main Node Endpoint": self.mainNodeRpcURL,
            "TEE Node Endpoint": self.teeNodeRpcURL,
        }


class ConfigLoader:
    def __init__(self, config_path: Optional[str] = "config.json", environ: Optional[Dict[str, str]] = None):
        self.config_path = config_path
        self.environ = os.environ if environ is None else environ
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}
        if self.config_path:
            try:
                with open(self.config_path, 'r') as f:
                    config = json.load(f)
            except FileNotFoundError:
                raise ConfigError(f"Config file not found: {self.config_path}")
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in config file: {e}")

        for key, env_name in ENV_OVERRIDES.items():
            value = self.environ.get(env_name)
            if value:
                config[key] = value
        return config

    def get_environment(self) -> EnvironmentConfig:
        """Build the immutable environment configuration, failing fast on missing RPC URLs"""
        missing = [key for key in REQUIRED_URL_KEYS if not self.config.get(key)]
        if missing:
            raise ConfigError(f"Missing required configuration field(s): {', '.join(missing)}")

        known = set(EnvironmentConfig.__dataclass_fields__)
        values = {key: value for key, value in self.config.items() if key in known and value not in (None, "")}
        unknown = sorted(key for key in self.config if key not in known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration key(s): {', '.join(unknown)}")

        try:
            for key in ("rpcTimeoutSeconds", "pollIntervalSeconds"):
                if key in values:
                    values[key] = float(values[key])
        except ValueError as e:
            raise ConfigError(f"Invalid numeric configuration value: {e}")

        return EnvironmentConfig(**values)


def default_config_path() -> Optional[str]:
    """CONFIG_FILE if set, else ./config.json when present, else environment only"""
    if os.getenv("CONFIG_FILE"):
        return os.getenv("CONFIG_FILE")
    if os.path.exists("config.json"):
        return "config.json"
    return None
