import logging
import time
from typing import Optional

import httpx

from vacuum.schemas.reports import KoraNodeStatus

logger = logging.getLogger(__name__)


async def get_node_status(
    node_url: Optional[str], *, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None
) -> KoraNodeStatus:
    """Probe a Kora node with a plain ``getVersion`` JSON-RPC call.

    A node that answers with a JSON-RPC error is reachable and reported
    healthy; transport failures and non-2xx replies are not.
    """
    if not node_url:
        return KoraNodeStatus(
            healthy=False, version="N/A", url="Not Configured", error="KORA_NODE_URL not set"
        )

    body = {"jsonrpc": "2.0", "id": 1, "method": "getVersion", "params": []}
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=timeout)
    start = time.monotonic()
    try:
        resp = await client.post(node_url, json=body)
        latency_ms = int((time.monotonic() - start) * 1000)
        if resp.status_code >= 400:
            return KoraNodeStatus(
                healthy=False,
                version=f"HTTP {resp.status_code}",
                url=node_url,
                latency_ms=latency_ms,
                error=f"HTTP Error {resp.status_code}: {resp.reason_phrase}",
            )
        payload = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Failed to connect to Kora node %s: %s", node_url, exc)
        return KoraNodeStatus(
            healthy=False,
            version="Unreachable",
            url=node_url,
            latency_ms=int((time.monotonic() - start) * 1000),
            error=str(exc),
        )
    finally:
        if owns_client:
            await client.aclose()

    error = payload.get("error")
    if error:
        message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
        logger.warning("Kora node returned RPC error: %s", message)
        return KoraNodeStatus(
            healthy=True, version="Active (RPC Error)", url=node_url, latency_ms=latency_ms, error=message
        )
    version = (payload.get("result") or {}).get("solana-core") or "Active"
    return KoraNodeStatus(healthy=True, version=f"v{version}", url=node_url, latency_ms=latency_ms)
