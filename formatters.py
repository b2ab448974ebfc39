import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Any, Optional

logger = logging.getLogger(__name__)

WEI_PER_ETH = Decimal(10) ** 18

TEE_TYPES = {0: "Unknown", 1: "IntelTDX", 2: "AmdSevSnp"}
EL_TYPES = {0: "Unset", 1: "Geth", 2: "Reth"}
CLOUD_TYPES = {0: "Unset", 1: "GCP", 2: "Azure"}
GAME_TYPE_LABELS = {0: "Permissionless", 1: "Permissioned", 6: "OP_SUCCINCT"}

MONETARY_FIELDS = ("minWithdrawalAmount", "totalProcessed", "totalSupply")
HASH_FIELDS = ("hash", "batcherHash")
COPYABLE_FIELDS = (
    "hash", "batcherHash", "recipient", "otherMessenger", "otherBridge", "messenger", "signalService",
)
COPYABLE_FRAGMENTS = ("address", "account", "config", "factory", "game", "registry")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def truncate_address(address: str, length: int = 10) -> str:
    if not address or len(address) <= length:
        return address
    return f"{address[:length]}...{address[-4:]}"


def truncate_hash(value: str, length: int = 16) -> str:
    if not value or len(value) <= length:
        return value
    return f"{value[:length]}...{value[-4:]}"


def format_balance(wei: int) -> str:
    """Wei to ETH with exactly 4 decimals, e.g. 1500000000000000000 -> '1.5000 ETH'"""
    with localcontext() as ctx:
        # uint256 balances need more than the default 28 significant digits
        ctx.prec = 100
        eth = (Decimal(wei) / WEI_PER_ETH).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    return f"{eth} ETH"


def format_utc(timestamp: int) -> str:
    """RFC 1123 style UTC string, e.g. 'Thu, 01 Jan 2026 00:00:00 GMT'; 'Invalid Date' when out of range"""
    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%a, %d %b %Y %H:%M:%S GMT")
    except (OverflowError, OSError, ValueError) as e:
        logger.debug(f"Timestamp {timestamp} not representable: {e}")
        return "Invalid Date"


def _format_epoch(timestamp: int, zero_label: str) -> str:
    if timestamp == 0:
        return f"0 ({zero_label})"
    return f"{timestamp} ({format_utc(timestamp)})"


def _format_enum(value: Any, labels: dict) -> str:
    label = labels.get(value, "Unknown") if _is_int(value) else "Unknown"
    return f"{label} ({value})"


def format_time_since(timestamp: Optional[int], now: Optional[float] = None) -> str:
    """Compact age used by the monitors: '2d 3h ago', '4h 12m ago', '7m ago', '42s ago'"""
    if not timestamp:
        return "Unknown"
    current = int(now if now is not None else datetime.now(timezone.utc).timestamp())
    seconds = current - int(timestamp)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h ago"
    if hours > 0:
        return f"{hours}h {minutes % 60}m ago"
    if minutes > 0:
        return f"{minutes}m ago"
    return f"{seconds}s ago"


def _format_attested_prover(value: Any, field_key: str) -> Optional[str]:
    parts = field_key.split("_")
    field_name = parts[2] if len(parts) > 2 else ""
    sub_field = parts[3] if len(parts) > 3 else ""

    if field_name == "addr" and isinstance(value, str):
        return truncate_address(value, 6)
    if field_name == "validUntil" and _is_int(value):
        return _format_epoch(value, "Not set")
    if field_name == "teeType":
        return _format_enum(value, TEE_TYPES)
    if field_name == "elType":
        return _format_enum(value, EL_TYPES)

    if field_name == "goldenMeasurement":
        if sub_field == "cloudType":
            return _format_enum(value, CLOUD_TYPES)
        if sub_field == "teeType":
            return _format_enum(value, TEE_TYPES)
        if sub_field == "elType":
            return _format_enum(value, EL_TYPES)
        if sub_field == "tag" and isinstance(value, str):
            return value
        if sub_field == "hash" and isinstance(value, str):
            return truncate_hash(value)
    return None


def format_view_data(value: Any, field_key: Optional[str] = None) -> str:
    """Render one view-function value for display; never raises"""
    field_key = field_key or ""

    if field_key.startswith("attestedProvers_"):
        rendered = _format_attested_prover(value, field_key)
        if rendered is not None:
            return rendered

    if field_key == "getAnchorRoot" and isinstance(value, (list, tuple)) and len(value) == 2:
        root, l2_sequence_number = value
        root_str = truncate_hash(root) if isinstance(root, str) else str(root)
        return f"Root: {root_str}, L2 Seq: {l2_sequence_number}"

    if field_key == "respectedGameType":
        return _format_enum(value, GAME_TYPE_LABELS)

    if field_key in ("withdrawalNetwork", "withdrawalNetworkL2Owner"):
        return "L1" if value == 0 else "L2"

    if (field_key in MONETARY_FIELDS or field_key.startswith("initBonds_")) and _is_int(value):
        return format_balance(value)

    if field_key in HASH_FIELDS and isinstance(value, str):
        return truncate_hash(value)

    if field_key == "retirementTimestamp" and _is_int(value):
        return _format_epoch(value, "Not retired")

    if isinstance(value, str):
        if value.startswith("0x") and len(value) == 42:
            return truncate_address(value)
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_int(value):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)


def is_copyable_value(field_key: Optional[str], value: Any = None) -> bool:
    """Whether the UI should offer copy-to-clipboard for this field"""
    if not field_key:
        return False

    if isinstance(value, str) and value.startswith("0x") and len(value) in (42, 66):
        return True

    if field_key.startswith("attestedProvers_"):
        parts = field_key.split("_")
        field_name = parts[2] if len(parts) > 2 else ""
        if field_name == "addr":
            return True
        if field_name == "goldenMeasurement":
            return len(parts) > 3 and parts[3] == "hash"
        return False

    lowered = field_key.lower()
    return field_key in COPYABLE_FIELDS or any(fragment in lowered for fragment in COPYABLE_FRAGMENTS)
