"""Bot token helpers.

A bot token looks like ``123456789:AAE...``; the part before the colon is the
bot's numeric id.
"""

import re

from tg_bot_api_client.errors import ClientConfigError

TOKEN_IN_URL_RE = re.compile(r"/bot(\d+):[\w-]+")


def parse_bot_id(bot_token: str) -> int:
    head, sep, _ = bot_token.partition(":")
    if not sep or not head.isdigit():
        raise ClientConfigError("Failed to parse an ID from the bot auth token")
    return int(head)


def mask_bot_token(bot_token: str, mask: str = "...") -> str:
    return f"{parse_bot_id(bot_token)}:{mask}"


def mask_url(url: str) -> str:
    """Hide the secret part of a bot token embedded in a Bot API URL."""
    return TOKEN_IN_URL_RE.sub(r"/bot\1:...", url)
