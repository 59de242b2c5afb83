from pathlib import Path

import pytest

from tg_bot_api_client.errors import CompileError
from tg_bot_api_client.parser.base import ArrayType, BasicType, TypeRef, UnionType
from tg_bot_api_client.parser.html import classify_subsection, parse_documentation

FIXTURES = Path(__file__).parent / "fixtures"

FIELD_HEADER = "<thead><tr><th>Field</th><th>Type</th><th>Description</th></tr></thead>"
PARAM_HEADER = (
    "<thead><tr><th>Parameter</th><th>Type</th><th>Required</th><th>Description</th></tr></thead>"
)


def _page(body: str) -> str:
    return (
        '<html><body><div id="dev_page_content">'
        '<h3><a class="anchor" href="#getting-updates"></a>Getting updates</h3>'
        f"{body}</div></body></html>"
    )


def _h4(anchor: str, name: str) -> str:
    return f'<h4><a class="anchor" name="{anchor}" href="#{anchor}"><i class="anchor-icon"></i></a>{name}</h4>'


def _elements():
    return {e.name: e for e in parse_documentation((FIXTURES / "bot-api.html").read_text(encoding="utf-8"))}


class TestClassifySubsection:
    @pytest.mark.parametrize("heading, kind", [
        ("Message", "type"),
        ("InputFile", "type"),
        ("sendMessage", "method"),
        ("getMe", "method"),
        (" getMe \n", "method"),
        ("Formatting options", "notes"),
        ("Making requests", "notes"),
        ("June 1, 2024", "notes"),
    ])
    def test_pinned_headings(self, heading, kind):
        assert classify_subsection(heading) == kind


class TestParseDocumentation:
    def test_element_names_in_document_order(self):
        assert list(_elements()) == [
            "setWebhook",
            "User", "Chat", "Message", "InputFile", "BotCommand",
            "BotCommandScope", "BotCommandScopeDefault",
            "BotCommandScopeAllPrivateChats", "BotCommandScopeChat",
            "ReactionType", "ReactionTypeEmoji", "ReactionTypeCustomEmoji",
            "InlineKeyboardMarkup", "InlineKeyboardButton",
            "getMe", "sendMessage", "sendDocument", "getChat",
            "setMyCommands", "setMessageReaction", "editMessageText",
        ]

    def test_subsections_before_first_section_are_skipped(self):
        assert "oldMethod" not in _elements()

    def test_type_fields(self):
        user = _elements()["User"]
        assert user.kind == "type"
        assert user.id == "user"
        assert [f.name for f in user.fields] == ["id", "is_bot", "first_name", "username"]
        assert [f.required for f in user.fields] == [True, True, True, False]
        assert user.fields[0].type == BasicType(name="Integer")

    def test_method_params(self):
        webhook = _elements()["setWebhook"]
        assert webhook.kind == "method"
        assert [p.name for p in webhook.params] == ["url", "certificate", "max_connections", "allowed_updates"]
        assert [p.required for p in webhook.params] == [True, False, False, False]
        assert webhook.params[1].type == TypeRef(id="inputfile")
        assert webhook.params[3].type == ArrayType(item=BasicType(name="String"))
        assert webhook.params[3].json_serialized is True
        assert webhook.params[0].json_serialized is False

    def test_description_and_notes(self):
        webhook = _elements()["setWebhook"]
        assert webhook.description.startswith("<p>Use this method")
        assert "<em>True</em>" in webhook.description
        assert "getUpdates" in webhook.notes

    def test_subtype_list(self):
        scope = _elements()["BotCommandScope"]
        assert scope.kind == "type"
        assert scope.subtypes == [
            "botcommandscopedefault", "botcommandscopeallprivatechats", "botcommandscopechat",
        ]
        assert "algorithm" in scope.notes

    def test_discriminant_values(self):
        elements = _elements()
        assert elements["BotCommandScopeDefault"].fields[0].value == "default"
        assert elements["BotCommandScopeAllPrivateChats"].fields[0].value == "all_private_chats"
        assert elements["ReactionTypeCustomEmoji"].fields[0].value == "custom_emoji"
        assert elements["Chat"].fields[1].value is None

    def test_union_param(self):
        document = _elements()["sendDocument"].params[1]
        assert document.type == UnionType(options=[TypeRef(id="inputfile"), BasicType(name="String")])

    def test_entities_without_table(self):
        elements = _elements()
        assert elements["InputFile"].kind == "type"
        assert elements["InputFile"].fields == []
        assert elements["getMe"].kind == "method"
        assert elements["getMe"].params == []

    def test_notes_subsections_are_skipped(self):
        names = _elements()
        assert "Formatting options" not in names
        assert "Determining list of commands" not in names

    def test_table_decides_kind_over_heading(self):
        html = _page(
            _h4("oddname", "OddName")
            + f"<table>{PARAM_HEADER}<tbody><tr><td>x</td><td>String</td><td>Yes</td><td>X</td></tr></tbody></table>"
        )
        [element] = parse_documentation(html)
        assert element.kind == "method"
        assert element.params[0].required is True

    def test_duplicate_ids_keep_the_last(self):
        html = _page(
            _h4("getme", "getMe") + "<p>first</p>"
            + _h4("getme", "getMe") + "<p>second</p>"
        )
        [element] = parse_documentation(html)
        assert "second" in element.description


class TestParseErrors:
    def test_missing_content_root(self):
        with pytest.raises(CompileError, match="dev_page_content"):
            parse_documentation("<html><body><p>nothing</p></body></html>")

    def test_missing_first_section(self):
        html = '<div id="dev_page_content"><h3><a href="#other"></a>Other</h3></div>'
        with pytest.raises(CompileError, match="Getting updates"):
            parse_documentation(html)

    def test_heading_without_anchor(self):
        with pytest.raises(CompileError, match="no anchor"):
            parse_documentation(_page("<h4>getMe</h4><p>Hi</p>"))

    def test_unknown_column(self):
        html = _page(
            _h4("user", "User")
            + "<table><thead><tr><th>Field</th><th>Kind</th></tr></thead>"
            "<tbody><tr><td>id</td><td>Integer</td></tr></tbody></table>"
        )
        with pytest.raises(CompileError, match="Failed to parse API element 'User'"):
            parse_documentation(html)

    def test_table_without_header(self):
        html = _page(_h4("user", "User") + "<table><tbody><tr><td>id</td></tr></tbody></table>")
        with pytest.raises(CompileError, match="header"):
            parse_documentation(html)

    def test_row_cell_count_mismatch(self):
        html = _page(
            _h4("user", "User")
            + f"<table>{FIELD_HEADER}<tbody><tr><td>id</td><td>Integer</td></tr></tbody></table>"
        )
        with pytest.raises(CompileError, match="cells"):
            parse_documentation(html)

    def test_subtype_list_without_anchors(self):
        html = _page(_h4("scope", "Scope") + "<ul><li>plain text</li></ul>")
        with pytest.raises(CompileError, match="Subtype list"):
            parse_documentation(html)

    def test_empty_type_cell(self):
        html = _page(
            _h4("user", "User")
            + f"<table>{FIELD_HEADER}<tbody><tr><td>id</td><td></td><td>Id</td></tr></tbody></table>"
        )
        with pytest.raises(CompileError):
            parse_documentation(html)
