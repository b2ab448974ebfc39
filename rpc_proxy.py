import logging
import secrets
from typing import Any, Dict, NamedTuple, Optional, Sequence
from urllib.parse import unquote

import requests

logger = logging.getLogger(__name__)

UPSTREAM_TIMEOUT = 10

EXPLORER_REQUIRED_PARAMS = ("chainid", "module", "action", "address")
EXPLORER_DEFAULTS = {
    "startblock": "0",
    "endblock": "99999999",
    "page": "1",
    "offset": "1",
    "sort": "desc",
}


def cors_headers(methods: str) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": "Content-Type",
    }


class ProxyResult(NamedTuple):
    status_code: int
    body: Any


def forward_rpc(url: Optional[str], payload: Any, allowed_urls: Sequence[str],
                timeout: float = UPSTREAM_TIMEOUT) -> ProxyResult:
    """Relay a JSON-RPC body to an allow-listed endpoint.

    The target must match one of the configured node URLs exactly; anything else
    is refused with 403 before any upstream connection is attempted.
    """
    if not url:
        logger.error("Missing url query parameter")
        return ProxyResult(400, {"error": "Missing url query parameter"})

    target = unquote(url)
    allowed = [u for u in allowed_urls if u]
    if target not in allowed:
        logger.error(f"URL not allowed: {target}")
        return ProxyResult(403, {"error": "URL not allowed", "provided": target, "allowed": allowed})

    try:
        response = requests.post(
            target,
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        if not response.ok:
            logger.error(f"RPC endpoint error: {response.status_code} {response.text}")
            return ProxyResult(response.status_code, {
                "error": "RPC endpoint error",
                "status": response.status_code,
                "message": response.text,
            })
        # JSON-RPC errors travel inside a 200 body
        return ProxyResult(200, response.json())
    except (requests.RequestException, ValueError) as e:
        logger.error(f"RPC Proxy Error: {e}")
        return ProxyResult(500, {"error": "Failed to proxy RPC request", "message": str(e)})


def forward_explorer(query: Dict[str, Any], api_url: Optional[str], api_key: Optional[str] = None,
                     timeout: float = UPSTREAM_TIMEOUT) -> ProxyResult:
    """Relay an explorer API query, attaching the API key server-side"""
    if any(not query.get(name) for name in EXPLORER_REQUIRED_PARAMS):
        return ProxyResult(400, {"error": "Missing required parameters"})

    if not api_url:
        return ProxyResult(500, {"error": "Explorer API URL not configured"})

    params = {name: str(query[name]) for name in EXPLORER_REQUIRED_PARAMS}
    for name, default in EXPLORER_DEFAULTS.items():
        params[name] = str(query.get(name) or default)
    if api_key:
        params["apikey"] = api_key

    try:
        response = requests.get(api_url, params=params, timeout=timeout)
        if not response.ok:
            logger.error(f"Explorer API error: {response.status_code} {response.text}")
            return ProxyResult(response.status_code, {
                "error": "Explorer API error",
                "status": response.status_code,
                "message": response.text,
            })
        return ProxyResult(200, response.json())
    except (requests.RequestException, ValueError) as e:
        logger.error(f"Explorer Proxy Error: {e}")
        return ProxyResult(500, {"error": "Failed to proxy explorer API request", "message": str(e)})


def check_password(password: Optional[str], access_password: Optional[str]) -> ProxyResult:
    if not password:
        return ProxyResult(400, {"error": "Password is required"})

    if not access_password:
        return ProxyResult(200, {"authenticated": True, "message": "Password protection not configured"})

    if secrets.compare_digest(password, access_password):
        return ProxyResult(200, {"authenticated": True, "token": secrets.token_urlsafe(24)})
    return ProxyResult(401, {"authenticated": False, "error": "Incorrect password"})
