"""Checks on chats and chat members, and builders of reply markups.

Builders return plain dicts ready to be passed as the ``reply_markup`` param.
"""

from typing import Callable, Iterable

from tg_bot_api_client.errors import ClientConfigError

PLACEHOLDER_MAX_LENGTH = 64

# Chats

# "sender" is the private chat with the sender of an inline query
PRIVATE_CHAT_TYPES = frozenset({"private", "sender"})


def is_private(chat_type: str | None) -> bool:
    return chat_type in PRIVATE_CHAT_TYPES


def is_group(chat_type: str | None) -> bool:
    return chat_type == "group"


def is_supergroup(chat_type: str | None) -> bool:
    return chat_type == "supergroup"


def is_channel(chat_type: str | None) -> bool:
    return chat_type == "channel"


# Chat members

ACTIVE_MEMBER_STATUSES = frozenset({"member", "administrator", "creator", "restricted"})
INACTIVE_MEMBER_STATUSES = frozenset({"left", "kicked"})
ADMINISTRATOR_STATUSES = frozenset({"administrator", "creator"})


def _statuses(chat_member_updated: dict) -> tuple:
    old = (chat_member_updated.get("old_chat_member") or {}).get("status")
    new = (chat_member_updated.get("new_chat_member") or {}).get("status")
    return old, new


def has_joined(chat_member_updated: dict) -> bool:
    old, new = _statuses(chat_member_updated)
    return old in INACTIVE_MEMBER_STATUSES and new in ACTIVE_MEMBER_STATUSES


def has_left(chat_member_updated: dict) -> bool:
    old, new = _statuses(chat_member_updated)
    return old in ACTIVE_MEMBER_STATUSES and new in INACTIVE_MEMBER_STATUSES


def is_administrator(chat_member: dict | None) -> bool:
    return (chat_member or {}).get("status") in ADMINISTRATOR_STATUSES


def is_promoted_administrator(chat_member_updated: dict) -> bool:
    return (not is_administrator(chat_member_updated.get("old_chat_member"))
            and is_administrator(chat_member_updated.get("new_chat_member")))


def is_demoted_administrator(chat_member_updated: dict) -> bool:
    return (is_administrator(chat_member_updated.get("old_chat_member"))
            and not is_administrator(chat_member_updated.get("new_chat_member")))


# Reply markups

INLINE_BUTTON_KINDS = frozenset({
    "url", "login_url", "callback_data", "switch_inline_query",
    "switch_inline_query_current_chat", "callback_game", "pay",
})


def _placeholder(value: str | None) -> str | None:
    if value is None or len(value) < 2:
        return None
    return value[:PLACEHOLDER_MAX_LENGTH]


def build_reply_keyboard(button_rows: Iterable[list] = (), persistent: bool = False,
                         one_time: bool = False, placeholder: str | None = None,
                         selective: bool = False) -> dict:
    """A ``ReplyKeyboardMarkup``; keyboards are always resized to fit."""
    markup = {"keyboard": [list(row) for row in button_rows], "resize_keyboard": True}
    if persistent:
        markup["is_persistent"] = True
    if one_time:
        markup["one_time_keyboard"] = True
    placeholder = _placeholder(placeholder)
    if placeholder:
        markup["input_field_placeholder"] = placeholder
    if selective:
        markup["selective"] = True
    return markup


def build_remove_keyboard(selective: bool = False) -> dict:
    markup = {"remove_keyboard": True}
    if selective:
        markup["selective"] = True
    return markup


def build_inline_button(text: str, kind: str, value) -> dict:
    """An ``InlineKeyboardButton`` of the given kind, e.g. ``callback_data``."""
    kind = kind.replace("-", "_")
    if kind not in INLINE_BUTTON_KINDS:
        raise ClientConfigError(f"Unknown inline keyboard button kind '{kind}'")
    return {"text": text, kind: value}


def build_inline_keyboard(button_rows: Iterable[list] = ()) -> dict:
    return {"inline_keyboard": [list(row) for row in button_rows]}


def build_force_reply(placeholder: str | None = None, selective: bool = False) -> dict:
    markup = {"force_reply": True}
    placeholder = _placeholder(placeholder)
    if placeholder:
        markup["input_field_placeholder"] = placeholder
    if selective:
        markup["selective"] = True
    return markup


REPLY_MARKUP_BUILDERS: dict[str, Callable[..., dict]] = {
    "custom_keyboard": build_reply_keyboard,
    "remove_keyboard": build_remove_keyboard,
    "inline_keyboard": build_inline_keyboard,
    "force_reply": build_force_reply,
}


def build_reply_markup(kind: str, *args, **kwargs) -> dict:
    """Build a reply markup of any kind from ``REPLY_MARKUP_BUILDERS``.

        build_reply_markup("inline_keyboard", [[build_inline_button("Go", "callback_data", "go")]])
        build_reply_markup("remove_keyboard", selective=True)
    """
    builder = REPLY_MARKUP_BUILDERS.get(kind.replace("-", "_"))
    if builder is None:
        raise ClientConfigError(f"Unknown reply markup kind '{kind}'")
    return builder(*args, **kwargs)
