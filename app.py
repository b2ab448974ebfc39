from contextlib import asynccontextmanager
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, Body
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import uvicorn

from abi_registry import AbiRegistry, L2_PROXY_ADMIN
from chain_monitor import ChainMonitor, SnapshotPoller
from config_loader import ConfigLoader, ConfigError, EnvironmentConfig, default_config_path
from contract_catalog import (
    ContractDescriptor, build_l1_contracts, build_l2_contracts, filter_contracts, find_contract,
)
from contract_utils import ContractInteractor
from formatters import format_balance, format_view_data, is_copyable_value
from governance import ActionError, build_action, describe_signer, is_valid_address
from ownership_graph import build_ownership_graph
from rpc_client import RpcClient
from rpc_proxy import check_password, cors_headers, forward_explorer, forward_rpc
from view_decoder import ViewDataDecoder, group_attested_provers, prover_field_label, visible_fields

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

LAYERS = ("l1", "l2")


def setup_file_logging(log_file: Optional[str]):
    if not log_file:
        return
    handler = logging.FileHandler(log_file)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)


class Dashboard:
    """Everything the routes need for one environment, wired once from configuration"""

    def __init__(self, env_config: EnvironmentConfig, client_factory: Optional[Callable[[str], RpcClient]] = None):
        self.env_config = env_config
        self.registry = AbiRegistry(env_config)
        factory = client_factory or (
            lambda url: RpcClient(url, timeout=env_config.rpcTimeoutSeconds, proxy_url=env_config.rpcProxyURL)
        )
        self.clients = {"l1": factory(env_config.l1RpcURL), "l2": factory(env_config.l2RpcURL)}
        self.interactors = {layer: ContractInteractor(client, self.registry) for layer, client in self.clients.items()}
        self.decoders = {
            layer: ViewDataDecoder(client, self.registry, env_config) for layer, client in self.clients.items()
        }
        self.contracts = {"l1": build_l1_contracts(env_config), "l2": build_l2_contracts(env_config)}
        self.monitor = ChainMonitor(env_config, factory)
        self.pollers = {
            "chain-status": SnapshotPoller("chain-status", self.monitor.chain_status, env_config.pollIntervalSeconds),
            "tee-status": SnapshotPoller("tee-status", self.monitor.tee_status, env_config.pollIntervalSeconds),
        }

    def proxy_admin_address(self, layer: str) -> Optional[str]:
        return L2_PROXY_ADMIN if layer == "l2" else self.env_config.l1ProxyAdminAddress

    async def contract_card(self, layer: str, descriptor: ContractDescriptor) -> Dict[str, Any]:
        """Contract info, decoded view data and display strings for one contract"""
        card = descriptor.to_dict()
        card["owner_label"] = "Owner" if descriptor.uses_owner else "Proxy Admin"
        try:
            info, record = await asyncio.gather(
                self.interactors[layer].get_contract_info(descriptor.address),
                self.decoders[layer].get_view_function_data(descriptor.address, descriptor.view_function_names),
            )
            card["info"] = info.to_dict()
            card["balance_display"] = format_balance(info.balance) if info.balance is not None else None
            card["fields"] = [
                {
                    "name": vf.name,
                    "label": vf.label,
                    "value": value,
                    "display": format_view_data(value, vf.name),
                    "copyable": is_copyable_value(vf.name, value),
                }
                for vf, value in visible_fields(descriptor, record)
            ]
            card["attested_provers"] = [
                {
                    "instance_id": instance_id,
                    "fields": [
                        {
                            "name": key,
                            "label": prover_field_label(key),
                            "value": value,
                            "display": format_view_data(value, key),
                            "copyable": is_copyable_value(key, value),
                        }
                        for key, value in fields.items()
                    ],
                }
                for instance_id, fields in group_attested_provers(record).items()
            ]
            card["error"] = None
        except Exception as e:
            logger.error(f"Error building card for {descriptor.name} ({descriptor.address}): {e}")
            card["error"] = str(e) or "Unknown error"
        return card


# Single dashboard for the single environment
dashboard: Optional[Dashboard] = None


def get_dashboard() -> Dashboard:
    """Get or create the dashboard"""
    global dashboard
    if dashboard is None:
        env_config = ConfigLoader(default_config_path()).get_environment()
        setup_file_logging(env_config.logFile)
        dashboard = Dashboard(env_config)
    return dashboard


def _require_layer(layer: str) -> str:
    if layer not in LAYERS:
        raise HTTPException(status_code=404, detail=f"Unknown layer: {layer}")
    return layer


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        current = get_dashboard()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        raise
    for poller in current.pollers.values():
        poller.start()
    yield
    for poller in current.pollers.values():
        await poller.stop()


app = FastAPI(
    title="OP Stack Dashboard",
    description="Contract, ownership and chain health dashboard for an OP Stack rollup",
    lifespan=lifespan,
)


class TestRpcRequest(BaseModel):
    url: str = ""


class ActionRequest(BaseModel):
    layer: str
    address: str
    new_address: Optional[str] = None


class AuthRequest(BaseModel):
    password: Optional[str] = None


@app.get("/api/contracts/{layer}")
async def list_contracts(layer: str, category: Optional[str] = None, manageable_only: bool = False):
    """All contract cards of a layer; a failing card carries its own error"""
    try:
        _require_layer(layer)
        current = get_dashboard()
        contracts = filter_contracts(current.contracts[layer], category, manageable_only)
        cards = await asyncio.gather(*(current.contract_card(layer, c) for c in contracts))
        return {"layer": layer, "contracts": list(cards)}
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/contracts/{layer}/{address}")
async def contract_detail(layer: str, address: str):
    try:
        _require_layer(layer)
        if not is_valid_address(address):
            raise HTTPException(status_code=400, detail="Invalid Ethereum address")
        current = get_dashboard()
        descriptor = find_contract(current.contracts[layer], address)
        if descriptor is None:
            raise HTTPException(status_code=404, detail=f"Contract {address} not found on {layer}")
        return await current.contract_card(layer, descriptor)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/ownership/{layer}")
async def ownership(layer: str):
    try:
        _require_layer(layer)
        current = get_dashboard()
        graph = await build_ownership_graph(current.contracts[layer], current.clients[layer])
        return graph.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


async def _poller_snapshot(name: str, refresh: bool) -> Dict[str, Any]:
    poller = get_dashboard().pollers[name]
    snapshot = poller.snapshot
    if refresh or snapshot is None:
        snapshot = await poller.refresh()
    if snapshot is None:
        raise HTTPException(status_code=503, detail=poller.last_error or f"{name} not available yet")
    return dict(snapshot)


@app.get("/api/chain-status")
async def chain_status(refresh: bool = False):
    try:
        return await _poller_snapshot("chain-status", refresh)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/test-rpc")
async def test_rpc(request: TestRpcRequest):
    if not request.url.strip():
        raise HTTPException(status_code=400, detail="Please enter an RPC URL")
    try:
        return await get_dashboard().monitor.test_rpc(request.url)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/tee-status")
async def tee_status(refresh: bool = False):
    try:
        return await _poller_snapshot("tee-status", refresh)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/pause-flow")
async def pause_flow():
    try:
        return await get_dashboard().monitor.pause_flow()
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/actions/{kind}")
async def governance_action(kind: str, request: ActionRequest):
    """Calldata for the connected wallet; signing happens client-side"""
    try:
        _require_layer(request.layer)
        current = get_dashboard()
        descriptor = find_contract(current.contracts[request.layer], request.address)
        if descriptor is None:
            raise HTTPException(status_code=404, detail=f"Contract {request.address} not found on {request.layer}")
        action = build_action(kind, descriptor, current.proxy_admin_address(request.layer), request.new_address)
        return await describe_signer(action, current.interactors[request.layer])
    except ActionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


# Forwarding gateway. Handlers are sync so blocking requests calls run in the threadpool.

RPC_PROXY_CORS = cors_headers("POST, OPTIONS")
EXPLORER_PROXY_CORS = cors_headers("GET, POST, OPTIONS")
AUTH_CORS = cors_headers("POST, OPTIONS")


def _method_not_allowed(headers: Dict[str, str]) -> JSONResponse:
    return JSONResponse({"error": "Method not allowed"}, status_code=405, headers=headers)


@app.post("/rpc-proxy")
def rpc_proxy(url: Optional[str] = None, payload: Any = Body(default=None)):
    result = forward_rpc(url, payload, get_dashboard().env_config.rpc_allow_list())
    return JSONResponse(result.body, status_code=result.status_code, headers=RPC_PROXY_CORS)


@app.options("/rpc-proxy")
def rpc_proxy_preflight():
    return JSONResponse({}, headers=RPC_PROXY_CORS)


@app.api_route("/rpc-proxy", methods=["GET", "PUT", "PATCH", "DELETE"])
def rpc_proxy_other():
    return _method_not_allowed(RPC_PROXY_CORS)


@app.get("/explorer-proxy")
def explorer_proxy(request: Request):
    env_config = get_dashboard().env_config
    result = forward_explorer(dict(request.query_params), env_config.l1ExplorerApiURL, env_config.l1ExplorerApiKey)
    return JSONResponse(result.body, status_code=result.status_code, headers=EXPLORER_PROXY_CORS)


@app.options("/explorer-proxy")
def explorer_proxy_preflight():
    return JSONResponse({}, headers=EXPLORER_PROXY_CORS)


@app.api_route("/explorer-proxy", methods=["POST", "PUT", "PATCH", "DELETE"])
def explorer_proxy_other():
    return _method_not_allowed(EXPLORER_PROXY_CORS)


@app.post("/auth")
def auth(request: AuthRequest):
    result = check_password(request.password, get_dashboard().env_config.accessPassword)
    return JSONResponse(result.body, status_code=result.status_code, headers=AUTH_CORS)


@app.options("/auth")
def auth_preflight():
    return JSONResponse({}, headers=AUTH_CORS)


@app.api_route("/auth", methods=["GET", "PUT", "PATCH", "DELETE"])
def auth_other():
    return _method_not_allowed(AUTH_CORS)


async def _check_connections() -> List[bool]:
    current = get_dashboard()
    return list(await asyncio.gather(current.clients["l1"].is_connected(), current.clients["l2"].is_connected()))


@app.get("/health")
async def health():
    try:
        l1_ok, l2_ok = await _check_connections()
        return {"status": "ok" if l1_ok and l2_ok else "degraded", "l1": l1_ok, "l2": l2_ok}
    except ConfigError as e:
        raise HTTPException(status_code=500, detail=str(e))


if __name__ == "__main__":
    print("🚀 Starting FastAPI application...")
    try:
        # Test configuration before starting server
        print("🧪 Testing configuration...")
        if all(asyncio.run(_check_connections())):
            print("✅ RPC connection test successful")
        else:
            print("⚠️  RPC connection test failed - server will start anyway")

        print("🌐 Starting uvicorn server...")
        uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=False)
    except Exception as e:
        print(f"❌ Failed to start application: {e}")
        import traceback
        traceback.print_exc()
        exit(1)
