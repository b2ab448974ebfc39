import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from abi_registry import AbiRegistry
from config_loader import EnvironmentConfig, ZERO_ADDRESS
from contract_catalog import ContractDescriptor, ViewFunction
from rpc_client import RpcClient, normalize_result

logger = logging.getLogger(__name__)

RESOURCE_CONFIG_PREFIX = "resourceConfig_"
RESOURCE_CONFIG_FIELDS = (
    "maxResourceLimit",
    "elasticityMultiplier",
    "baseFeeMaxChangeDenominator",
    "minimumBaseFee",
    "systemTxMaxGas",
    "maximumBaseFee",
)

# DisputeGameFactory game type tags scanned through gameImpls/initBonds
GAME_TYPES = ((0, "Permissionless"), (1, "Permissioned"), (6, "OP_SUCCINCT"))

PROVER_PREFIX = "attestedProvers_"
# upper bound on registry instances scanned per read
MAX_ATTESTED_PROVERS = 256
PROVER_FIELD_LABELS = {
    "addr": "Address",
    "validUntil": "Valid Until",
    "teeType": "TEE Type",
    "elType": "EL Type",
    "goldenMeasurement_cloudType": "Golden Measurement Cloud Type",
    "goldenMeasurement_teeType": "Golden Measurement TEE Type",
    "goldenMeasurement_elType": "Golden Measurement EL Type",
    "goldenMeasurement_tag": "Golden Measurement Tag",
    "goldenMeasurement_hash": "Golden Measurement Hash",
}

# SuperchainConfig identifiers: suffix -> config field holding the identifier (None = global)
PAUSE_IDENTIFIERS = (("global", None), ("portal", "l1OptimismPortalAddress"))

# Keys filled by the expansion steps, never read as plain functions
COMPOSITE_PREFIXES = (
    RESOURCE_CONFIG_PREFIX, "paused_", "expiration_", "gameImpls_", "initBonds_", PROVER_PREFIX,
)

# expiry rows are only meaningful while the matching pause flag is set
DEPENDENT_FIELDS = {
    "expiration_global": "paused_global",
    "expiration_portal": "paused_portal",
}


def _is_zero_address(value: Any) -> bool:
    return not value or str(value).lower() == ZERO_ADDRESS


class ViewDataDecoder:
    """Batched view-function reads with struct expansion and registry scans"""

    def __init__(self, client: RpcClient, registry: AbiRegistry, env_config: EnvironmentConfig,
                 max_concurrency: int = 10):
        self.client = client
        self.registry = registry
        self.env_config = env_config
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def _read(self, address: str, abi: List[Dict], function_name: str, *args) -> Any:
        async with self._semaphore:
            return await self.client.call(address, abi, function_name, *args)

    async def _safe_read(self, address: str, abi: List[Dict], function_name: str, *args) -> Any:
        try:
            return normalize_result(await self._read(address, abi, function_name, *args))
        except Exception as e:
            logger.debug(f"{function_name}{args} on {address} failed: {e}")
            return None

    async def get_view_function_data(self, address: str, field_names: List[str]) -> Dict[str, Any]:
        abi = self.registry.resolve_abi(address)
        if not abi:
            return {}

        results: Dict[str, Any] = {}

        if any(name.startswith(RESOURCE_CONFIG_PREFIX) for name in field_names):
            results.update(await self._expand_resource_config(address, abi))

        plain_fields = [name for name in field_names if not name.startswith(COMPOSITE_PREFIXES)]
        results.update(await self._read_plain_fields(address, abi, plain_fields))

        if self.registry.is_role(address, "dispute_game_factory"):
            results.update(await self._scan_game_types(address, abi))

        if self.registry.is_role(address, "prover_registry"):
            results.update(await self._scan_attested_provers(address, abi, results))

        if self.registry.is_role(address, "superchain_config"):
            results.update(await self._read_pause_state(address, abi, field_names))

        return results

    async def _expand_resource_config(self, address: str, abi: List[Dict]) -> Dict[str, Any]:
        keys = [RESOURCE_CONFIG_PREFIX + name for name in RESOURCE_CONFIG_FIELDS]
        try:
            config = await self._read(address, abi, "resourceConfig")
            values = list(config)
            if len(values) != len(RESOURCE_CONFIG_FIELDS):
                raise ValueError(f"unexpected resourceConfig shape: {config!r}")
            return dict(zip(keys, values))
        except Exception as e:
            logger.debug(f"resourceConfig on {address} failed: {e}")
            return {key: None for key in keys}

    async def _read_plain_fields(self, address: str, abi: List[Dict], field_names: List[str]) -> Dict[str, Any]:
        values = await asyncio.gather(*(self._safe_read(address, abi, name) for name in field_names))
        return dict(zip(field_names, values))

    async def _scan_game_types(self, address: str, abi: List[Dict]) -> Dict[str, Any]:
        """gameImpls/initBonds per game type; unset slots are left out entirely"""

        async def scan(game_type: int, name: str) -> Dict[str, Any]:
            found = {}
            impl, bond = await asyncio.gather(
                self._safe_read(address, abi, "gameImpls", game_type),
                self._safe_read(address, abi, "initBonds", game_type),
            )
            if not _is_zero_address(impl):
                found[f"gameImpls_{name}"] = impl
            if bond:
                found[f"initBonds_{name}"] = bond
            return found

        results: Dict[str, Any] = {}
        for found in await asyncio.gather(*(scan(value, name) for value, name in GAME_TYPES)):
            results.update(found)
        return results

    async def _scan_attested_provers(self, address: str, abi: List[Dict], results: Dict[str, Any]) -> Dict[str, Any]:
        if "nextInstanceId" in results:
            count = results["nextInstanceId"]
        else:
            count = await self._safe_read(address, abi, "nextInstanceId")

        if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
            return {}
        if count > MAX_ATTESTED_PROVERS:
            logger.warning(f"nextInstanceId {count} on {address} above cap, scanning {MAX_ATTESTED_PROVERS} instances")
            count = MAX_ATTESTED_PROVERS

        expanded = await asyncio.gather(
            *(self._expand_prover(address, abi, instance_id) for instance_id in range(1, count + 1))
        )
        provers: Dict[str, Any] = {}
        for record in expanded:
            if record is not None:
                provers.update(record)
        return provers

    async def _expand_prover(self, address: str, abi: List[Dict], instance_id: int) -> Optional[Dict[str, Any]]:
        """One registry instance: primary struct, then its golden measurement; None means skip"""
        try:
            prover = await self._read(address, abi, "attestedProvers", instance_id)
            prover_addr, valid_until, prover_type, measurement_hash = prover
        except Exception as e:
            logger.debug(f"attestedProvers({instance_id}) on {address} failed: {e}")
            return None

        if _is_zero_address(prover_addr):
            return None

        try:
            measurement = await self._read(address, abi, "goldenMeasurementRegistry", measurement_hash)
            cloud_type, gm_tee_type, gm_el_type, tag = list(measurement)[:4]
        except Exception as e:
            logger.debug(f"goldenMeasurementRegistry for prover {instance_id} failed: {e}")
            return None

        # EL type 0 marks a deregistered golden measurement
        if int(gm_el_type) == 0:
            return None

        prefix = f"{PROVER_PREFIX}{instance_id}_"
        record = {
            prefix + "addr": prover_addr,
            prefix + "validUntil": valid_until,
        }
        if isinstance(prover_type, (list, tuple)) and len(prover_type) >= 2:
            record[prefix + "teeType"] = prover_type[0]
            record[prefix + "elType"] = prover_type[1]
        record.update({
            prefix + "goldenMeasurement_cloudType": cloud_type,
            prefix + "goldenMeasurement_teeType": gm_tee_type,
            prefix + "goldenMeasurement_elType": gm_el_type,
            prefix + "goldenMeasurement_tag": tag,
            prefix + "goldenMeasurement_hash": normalize_result(measurement_hash),
        })
        return record

    async def _read_pause_state(self, address: str, abi: List[Dict], field_names: List[str]) -> Dict[str, Any]:
        requests: List[Tuple[str, str, str]] = []
        for suffix, config_field in PAUSE_IDENTIFIERS:
            identifier = getattr(self.env_config, config_field) if config_field else ZERO_ADDRESS
            if not identifier:
                continue
            for function_name in ("paused", "expiration"):
                key = f"{function_name}_{suffix}"
                if key in field_names:
                    requests.append((key, function_name, identifier))

        values = await asyncio.gather(
            *(self._safe_read(address, abi, function_name, identifier) for _, function_name, identifier in requests)
        )
        return {key: value for (key, _, _), value in zip(requests, values)}


def visible_fields(descriptor: ContractDescriptor, record: Dict[str, Any]) -> List[Tuple[ViewFunction, Any]]:
    """View functions to display, dropping expiry rows whose pause flag is not set"""
    rows = []
    for view_function in descriptor.view_functions:
        # unset game type slots are never written to the record
        if view_function.name.startswith(("gameImpls_", "initBonds_")) and view_function.name not in record:
            continue
        gate = DEPENDENT_FIELDS.get(view_function.name)
        if gate and not record.get(gate):
            continue
        rows.append((view_function, record.get(view_function.name)))
    return rows


def group_attested_provers(record: Dict[str, Any]) -> Dict[int, Dict[str, Any]]:
    """attestedProvers_<id>_* keys grouped by instance id, ids ascending"""
    groups: Dict[int, Dict[str, Any]] = {}
    for key, value in record.items():
        if not key.startswith(PROVER_PREFIX):
            continue
        instance_id = int(key.split("_")[1])
        groups.setdefault(instance_id, {})[key] = value
    return {instance_id: dict(sorted(groups[instance_id].items())) for instance_id in sorted(groups)}


def prover_field_label(key: str) -> str:
    field = key.split("_", 2)[2]
    return PROVER_FIELD_LABELS.get(field, field)
