"""API spec compiler.

Resolves the cross-references between parsed API elements into a catalog
of methods and of the types those methods actually use, and persists the
catalog as a JSON artifact.
"""

import hashlib
import logging
from pathlib import Path

from pydantic import ValidationError

from tg_bot_api_client.errors import CompileError
from tg_bot_api_client.parser.base import (
    INPUT_FILE_TYPE_NAME,
    ApiElement,
    ApiMethod,
    ApiSpec,
    ApiType,
    ArrayType,
    TypeExpr,
    TypeRef,
    UnionType,
    iter_leaves,
    iter_type_refs,
)
from tg_bot_api_client.parser.html import parse_documentation

logger = logging.getLogger(__name__)


def _type_deps(api_type: ApiType) -> list[str]:
    if api_type.subtypes is not None:
        return list(api_type.subtypes)
    return [ref for f in api_type.fields for ref in iter_type_refs(f.type)]


def _as_api_type(element: ApiElement) -> ApiType:
    if element.subtypes is not None:
        return ApiType(id=element.id, name=element.name,
                       description=element.description, subtypes=element.subtypes)
    return ApiType(id=element.id, name=element.name,
                   description=element.description, fields=element.fields or [])


def _uploads_file(expr: TypeExpr, used: dict[str, ApiType]) -> bool:
    for leaf in iter_leaves(expr):
        if isinstance(leaf, TypeRef):
            if used[leaf.id].name == INPUT_FILE_TYPE_NAME:
                return True
        elif leaf.name == INPUT_FILE_TYPE_NAME:
            return True
    return False


def compile_spec(elements: list[ApiElement]) -> ApiSpec:
    """Build the catalog of methods and the types reachable from their params.

    Types enter the catalog in discovery order; unreferenced types are left out.
    """
    type_elements = {e.id: e for e in elements if e.kind == "type"}
    used: dict[str, ApiType] = {}

    def resolve(type_id: str, referrer: str) -> None:
        if type_id in used:
            return
        element = type_elements.get(type_id)
        if element is None:
            raise CompileError(f"Unresolved type reference '{type_id}' in '{referrer}'")
        api_type = used[type_id] = _as_api_type(element)
        for dep in _type_deps(api_type):
            resolve(dep, api_type.name)

    methods = []
    for element in elements:
        if element.kind != "method":
            continue
        params = element.params or []
        for param in params:
            for ref in iter_type_refs(param.type):
                resolve(ref, element.name)
        methods.append(
            ApiMethod(
                id=element.id,
                name=element.name,
                description=element.description,
                params=params,
                uploads_file=any(_uploads_file(p.type, used) for p in params),
                json_serialized_params=[p.name for p in params if p.json_serialized],
            )
        )

    skipped = len(type_elements) - len(used)
    logger.debug("Compiled %d methods and %d types (%d unused types skipped)",
                 len(methods), len(used), skipped)
    return ApiSpec(methods=methods, types=list(used.values()))


def describe_type(expr: TypeExpr, spec: ApiSpec | None = None) -> str:
    """Render a type expression the way the documentation spells it."""
    if isinstance(expr, ArrayType):
        return f"Array of {describe_type(expr.item, spec)}"
    if isinstance(expr, UnionType):
        return " or ".join(describe_type(option, spec) for option in expr.options)
    if isinstance(expr, TypeRef):
        api_type = spec.get_type(expr.id) if spec is not None else None
        return api_type.name if api_type is not None else expr.id
    return expr.name


def compile_documentation(html: str) -> ApiSpec:
    return compile_spec(parse_documentation(html))


def check_references(spec: ApiSpec) -> None:
    """Raise CompileError if any type reference in the catalog does not resolve."""
    for api_type in spec.types:
        for dep in _type_deps(api_type):
            if spec.get_type(dep) is None:
                raise CompileError(f"Unresolved type reference '{dep}' in '{api_type.name}'")
    for method in spec.methods:
        for param in method.params:
            for ref in iter_type_refs(param.type):
                if spec.get_type(ref) is None:
                    raise CompileError(f"Unresolved type reference '{ref}' in '{method.name}'")


# Artifact


def spec_to_json(spec: ApiSpec) -> str:
    return spec.model_dump_json(indent=2, exclude_none=True)


def spec_fingerprint(spec: ApiSpec) -> str:
    return hashlib.sha256(spec_to_json(spec).encode("utf-8")).hexdigest()


def dump_spec(spec: ApiSpec, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(spec_to_json(spec) + "\n", encoding="utf-8")


def load_spec(path: Path) -> ApiSpec:
    """Load a compiled spec artifact; any defect aborts loading entirely."""
    try:
        spec = ApiSpec.model_validate_json(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        raise CompileError(f"Failed to load spec file '{path}': {e}") from e
    check_references(spec)
    return spec
