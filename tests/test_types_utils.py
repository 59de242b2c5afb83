from pathlib import Path

import pytest

from tg_bot_api_client.compiler.schema import SchemaCompiler
from tg_bot_api_client.compiler.spec import compile_documentation
from tg_bot_api_client.errors import ClientConfigError
from tg_bot_api_client.utils.types import (
    build_force_reply,
    build_inline_button,
    build_inline_keyboard,
    build_remove_keyboard,
    build_reply_keyboard,
    build_reply_markup,
    has_joined,
    has_left,
    is_administrator,
    is_channel,
    is_demoted_administrator,
    is_group,
    is_private,
    is_promoted_administrator,
    is_supergroup,
)

FIXTURES = Path(__file__).parent / "fixtures"


def _member_update(old, new):
    return {"old_chat_member": {"status": old}, "new_chat_member": {"status": new}}


class TestChatTypes:
    @pytest.mark.parametrize("chat_type, expected", [
        ("private", True), ("sender", True), ("group", False), (None, False),
    ])
    def test_is_private(self, chat_type, expected):
        assert is_private(chat_type) is expected

    def test_group_kinds_are_distinct(self):
        assert is_group("group")
        assert not is_group("supergroup")
        assert is_supergroup("supergroup")
        assert is_channel("channel")
        assert not is_channel("group")


class TestChatMembers:
    @pytest.mark.parametrize("old, new, expected", [
        ("left", "member", True),
        ("kicked", "restricted", True),
        ("member", "administrator", False),
        ("left", "kicked", False),
    ])
    def test_has_joined(self, old, new, expected):
        assert has_joined(_member_update(old, new)) is expected

    def test_has_left(self):
        assert has_left(_member_update("member", "left"))
        assert not has_left(_member_update("left", "member"))

    def test_is_administrator(self):
        assert is_administrator({"status": "creator"})
        assert is_administrator({"status": "administrator"})
        assert not is_administrator({"status": "member"})
        assert not is_administrator(None)

    def test_promotion_and_demotion(self):
        promoted = _member_update("member", "administrator")
        assert is_promoted_administrator(promoted)
        assert not is_demoted_administrator(promoted)
        assert is_demoted_administrator(_member_update("creator", "left"))


class TestReplyMarkups:
    def test_reply_keyboard_defaults(self):
        assert build_reply_keyboard() == {"keyboard": [], "resize_keyboard": True}

    def test_reply_keyboard_options(self):
        markup = build_reply_keyboard(
            [["Yes", "No"]], persistent=True, one_time=True, placeholder="x" * 80, selective=True,
        )
        assert markup["keyboard"] == [["Yes", "No"]]
        assert markup["is_persistent"] is True
        assert markup["one_time_keyboard"] is True
        assert markup["input_field_placeholder"] == "x" * 64
        assert markup["selective"] is True

    def test_single_character_placeholder_is_dropped(self):
        assert "input_field_placeholder" not in build_force_reply(placeholder="x")

    def test_remove_keyboard(self):
        assert build_remove_keyboard() == {"remove_keyboard": True}
        assert build_remove_keyboard(selective=True) == {"remove_keyboard": True, "selective": True}

    def test_force_reply(self):
        assert build_force_reply() == {"force_reply": True}
        assert build_force_reply(placeholder="Your name", selective=True) == {
            "force_reply": True, "input_field_placeholder": "Your name", "selective": True,
        }

    def test_inline_button_kinds(self):
        assert build_inline_button("Go", "callback-data", "go") == {"text": "Go", "callback_data": "go"}
        with pytest.raises(ClientConfigError, match="button kind"):
            build_inline_button("Go", "web_page", "x")

    def test_build_reply_markup_dispatches_on_kind(self):
        rows = [[build_inline_button("Site", "url", "https://example.com")]]
        assert build_reply_markup("inline_keyboard", rows) == build_inline_keyboard(rows)
        assert build_reply_markup("remove-keyboard", selective=True) == build_remove_keyboard(selective=True)
        assert build_reply_markup("custom_keyboard", [["A"]]) == build_reply_keyboard([["A"]])
        with pytest.raises(ClientConfigError, match="reply markup kind"):
            build_reply_markup("carousel")

    def test_inline_keyboard_is_valid_message_param(self):
        spec = compile_documentation((FIXTURES / "bot-api.html").read_text(encoding="utf-8"))
        compiler = SchemaCompiler(spec)
        markup = build_inline_keyboard([[build_inline_button("Go", "callback_data", "go")]])
        params = compiler.validate_params(
            spec.get_method("sendMessage"), {"chat_id": 42, "text": "hi", "reply_markup": markup},
        )
        assert params["reply_markup"] == markup
