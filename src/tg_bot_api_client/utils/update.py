"""Accessors for incoming ``Update`` objects.

An update carries its ``update_id`` and exactly one optional field naming
its kind (``message``, ``callback_query``, ...). Updates are plain dicts as
decoded from JSON.
"""

from typing import Any, Iterable

from tg_bot_api_client.errors import ClientConfigError
from tg_bot_api_client.parser.base import ApiSpec, TypeRef

UPDATE_ID = "update_id"

# not delivered unless asked for explicitly
OPT_IN_UPDATE_TYPES = frozenset({"chat_member", "message_reaction", "message_reaction_count"})


def collect_update_types(spec: ApiSpec, message: bool = False, edited: bool = False) -> list[str]:
    """List the update kinds documented by the ``Update`` type, in page order.

    With ``message`` only the kinds carrying a ``Message`` are kept, with
    ``edited`` only those for edited content.
    """
    update = spec.get_type("update")
    if update is None or not update.fields:
        raise ClientConfigError("The spec does not describe the 'Update' type")

    names = []
    for field in update.fields:
        if field.name == UPDATE_ID:
            continue
        if message and field.type != TypeRef(id="message"):
            continue
        if edited and not field.name.startswith("edited"):
            continue
        names.append(field.name)
    return names


def build_allowed_update_types(spec: ApiSpec, mode: str = "default",
                               adding: Iterable[str] = (), excluding: Iterable[str] = ()) -> list[str]:
    """Build the ``allowed_updates`` param of ``getUpdates``/``setWebhook``.

    ``mode`` is ``"all"`` for every documented kind or ``"default"`` for the
    ones Telegram sends when the param is omitted.
    """
    names = collect_update_types(spec)
    if mode == "default":
        names = [name for name in names if name not in OPT_IN_UPDATE_TYPES]
    elif mode != "all":
        raise ClientConfigError(f"Unknown allowed updates mode '{mode}'")

    names += [name for name in adding if name not in names]
    excluded = set(excluding)
    return [name for name in names if name not in excluded]


def get_update_id(update: dict) -> int | None:
    return update.get(UPDATE_ID)


def get_update_type(update: dict) -> str | None:
    return next((key for key in update if key != UPDATE_ID), None)


def _payload(update: dict) -> Any:
    update_type = get_update_type(update)
    return update.get(update_type) if update_type else None


def get_update_message(update: dict) -> dict | None:
    """Return the message of a message-like update, or the one a callback query came from.

    The latter may be an inaccessible message carrying only its chat, id and date.
    """
    payload = _payload(update)
    if not isinstance(payload, dict):
        return None
    if "message_id" in payload:
        return payload
    return payload.get("message")


def get_update_chat(update: dict) -> dict | None:
    payload = _payload(update)
    if not isinstance(payload, dict):
        return None
    if "chat" in payload:
        return payload["chat"]
    return (payload.get("message") or {}).get("chat")


def get_update_chat_type(update: dict) -> str | None:
    chat = get_update_chat(update)
    if chat is not None:
        return chat.get("type")
    return (update.get("inline_query") or {}).get("chat_type")


def get_bot_commands(message: dict) -> list[dict]:
    return [e for e in message.get("entities") or [] if e.get("type") == "bot_command"]


def bot_command_name(message: dict, entity: dict) -> str:
    """The command without its leading '/' and '@botname' suffix."""
    start = entity["offset"] + 1
    command = message.get("text", "")[start:entity["offset"] + entity["length"]]
    return command.split("@", 1)[0]


def get_update_commands(update: dict) -> list[str] | None:
    """Names of the bot commands in the update's message, if there are any."""
    message = get_update_message(update)
    if message is None:
        return None
    commands = get_bot_commands(message)
    if not commands:
        return None
    return [bot_command_name(message, entity) for entity in commands]


def is_update_for_edited(update: dict) -> bool:
    update_type = get_update_type(update)
    return bool(update_type) and update_type.startswith("edited")
