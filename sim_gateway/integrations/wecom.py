"""WeCom (WeChat Work) group robot webhook."""
import logging
from typing import Any

import httpx

from sim_gateway.errors import NotificationError

logger = logging.getLogger(__name__)


async def send(client: httpx.AsyncClient, config: dict[str, Any], message: dict[str, str]) -> bool:
    """
    POST a markdown message to the configured robot webhook.
    Returns False when no webhook is configured; raises NotificationError on failure.
    """
    webhook = config.get("webhook")
    if not webhook:
        return False
    payload = {"msgtype": "markdown", "markdown": {"content": message["markdown"]}}
    try:
        r = await client.post(webhook, json=payload)
        r.raise_for_status()
        result = r.json()
    except (httpx.HTTPError, ValueError) as e:
        raise NotificationError("wecom", str(e)) from e
    if result.get("errcode") != 0:
        raise NotificationError("wecom", f"errcode={result.get('errcode')} errmsg={result.get('errmsg')}")
    logger.info("WeCom notification delivered")
    return True
