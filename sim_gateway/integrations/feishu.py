"""Feishu (Lark) custom bot webhook."""
import logging
from typing import Any

import httpx

from sim_gateway.errors import NotificationError

logger = logging.getLogger(__name__)


def build_card(message: dict[str, str]) -> dict[str, Any]:
    return {
        "msg_type": "interactive",
        "card": {
            "header": {
                "title": {"tag": "plain_text", "content": message["title"]},
                "template": "blue",
            },
            "elements": [
                {"tag": "div", "text": {"tag": "lark_md", "content": message["markdown"]}},
            ],
        },
    }


async def send(client: httpx.AsyncClient, config: dict[str, Any], message: dict[str, str]) -> bool:
    webhook = config.get("webhook")
    if not webhook:
        return False
    try:
        r = await client.post(webhook, json=build_card(message))
        r.raise_for_status()
        result = r.json()
    except (httpx.HTTPError, ValueError) as e:
        raise NotificationError("feishu", str(e)) from e
    if result.get("code") != 0:
        raise NotificationError("feishu", f"code={result.get('code')} msg={result.get('msg')}")
    logger.info("Feishu notification delivered")
    return True
