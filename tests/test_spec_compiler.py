import json
from pathlib import Path

import pytest

from tg_bot_api_client.compiler.spec import (
    compile_documentation,
    compile_spec,
    describe_type,
    dump_spec,
    load_spec,
    spec_fingerprint,
)
from tg_bot_api_client.errors import CompileError
from tg_bot_api_client.parser.base import ApiElement, ArrayType, BasicType, Param, TypeRef, UnionType

FIXTURES = Path(__file__).parent / "fixtures"


def _spec():
    return compile_documentation((FIXTURES / "bot-api.html").read_text(encoding="utf-8"))


class TestCompileSpec:
    def test_methods_in_document_order(self):
        assert [m.name for m in _spec().methods] == [
            "setWebhook", "getMe", "sendMessage", "sendDocument", "getChat",
            "setMyCommands", "setMessageReaction", "editMessageText",
        ]

    def test_types_in_discovery_order(self):
        assert [t.id for t in _spec().types] == [
            "inputfile",
            "inlinekeyboardmarkup", "inlinekeyboardbutton",
            "botcommand", "botcommandscope",
            "botcommandscopedefault", "botcommandscopeallprivatechats", "botcommandscopechat",
            "reactiontype", "reactiontypeemoji", "reactiontypecustomemoji",
        ]

    def test_unreferenced_types_are_dropped(self):
        spec = _spec()
        for type_id in ("user", "chat", "message"):
            assert spec.get_type(type_id) is None

    def test_uploads_file(self):
        spec = _spec()
        uploading = {m.name for m in spec.methods if m.uploads_file}
        assert uploading == {"setWebhook", "sendDocument"}

    def test_json_serialized_params(self):
        spec = _spec()
        assert spec.get_method("setMyCommands").json_serialized_params == ["commands", "scope"]
        assert spec.get_method("sendMessage").json_serialized_params == ["reply_markup"]
        assert spec.get_method("getMe").json_serialized_params == []

    def test_supertype_keeps_subtypes(self):
        scope = _spec().get_type("botcommandscope")
        assert scope.is_supertype
        assert scope.fields is None
        assert len(scope.subtypes) == 3

    def test_unresolved_reference(self):
        elements = [
            ApiElement(
                id="dosomething", name="doSomething", kind="method",
                params=[Param(name="x", type=TypeRef(id="missing"), required=True)],
            )
        ]
        with pytest.raises(CompileError, match="missing"):
            compile_spec(elements)

    def test_unresolved_subtype(self):
        elements = [
            ApiElement(
                id="dosomething", name="doSomething", kind="method",
                params=[Param(name="x", type=TypeRef(id="scope"), required=True)],
            ),
            ApiElement(id="scope", name="Scope", kind="type", subtypes=["gone"]),
        ]
        with pytest.raises(CompileError, match="'gone' in 'Scope'"):
            compile_spec(elements)

    def test_input_file_by_basic_name(self):
        elements = [
            ApiElement(
                id="upload", name="upload", kind="method",
                params=[Param(name="f", type=ArrayType(item=BasicType(name="InputFile")), required=True)],
            )
        ]
        assert compile_spec(elements).methods[0].uploads_file is True


class TestDescribeType:
    def test_renders_like_the_documentation(self):
        spec = _spec()
        expr = ArrayType(item=UnionType(options=[TypeRef(id="inputfile"), BasicType(name="String")]))
        assert describe_type(expr, spec) == "Array of InputFile or String"

    def test_unknown_ref_falls_back_to_id(self):
        assert describe_type(TypeRef(id="photosize")) == "photosize"


class TestSpecArtifact:
    def test_dump_and_load(self, tmp_path):
        spec = _spec()
        path = tmp_path / "out" / "spec.json"
        dump_spec(spec, path)

        data = json.loads(path.read_text(encoding="utf-8"))
        assert set(data) == {"methods", "types"}
        loaded = load_spec(path)
        assert loaded == spec
        assert spec_fingerprint(loaded) == spec_fingerprint(spec)

    def test_fingerprint_is_stable(self):
        assert spec_fingerprint(_spec()) == spec_fingerprint(_spec())

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "spec.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(CompileError, match="Failed to load"):
            load_spec(path)

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(CompileError):
            load_spec(tmp_path / "nope.json")

    def test_load_dangling_reference(self, tmp_path):
        path = tmp_path / "spec.json"
        path.write_text(json.dumps({
            "methods": [{
                "id": "m", "name": "m",
                "params": [{"name": "x", "type": {"kind": "ref", "id": "nope"}, "required": True}],
            }],
            "types": [],
        }), encoding="utf-8")
        with pytest.raises(CompileError, match="nope"):
            load_spec(path)
