"""Type expression parser.

Turns documentation type descriptions such as ``Array of PhotoSize`` or
``InputFile or String`` into ``TypeExpr`` trees. Constraints embedded in the
free text (``1-64 characters``) are not modelled.
"""

from bs4 import NavigableString, Tag
from bs4.element import Comment

from tg_bot_api_client.errors import CompileError
from tg_bot_api_client.parser.base import ArrayType, BasicType, TypeExpr, TypeRef, UnionType

ARRAY_PREFIXES = {"Array"}
FILLER_TOKENS = {"of", ","}
UNION_SEPARATORS = {"or", "and"}

Token = str | TypeRef


def anchor_id(node: Tag) -> str:
    """Return the fragment an in-page anchor points at, without the '#'."""
    return node["href"][1:]


def is_id_anchor(node) -> bool:
    return (
        isinstance(node, Tag)
        and node.name == "a"
        and node.get("href", "").startswith("#")
    )


def tokenize(text: str) -> list[str]:
    return [word.strip(",") or "," for word in text.split()]


def parse_type_text(text: str) -> TypeExpr:
    """Parse a plain-text type description, e.g. ``Array of Integer``."""
    return parse_type_tokens(tokenize(text))


def parse_type_cell(cell: Tag) -> TypeExpr:
    """Parse the content of a documentation table's type column."""
    return parse_type_tokens(_cell_tokens(cell))


def _cell_tokens(node) -> list[Token]:
    tokens: list[Token] = []
    for child in node.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, NavigableString):
            tokens.extend(tokenize(str(child)))
        elif is_id_anchor(child):
            tokens.append(TypeRef(id=anchor_id(child)))
        elif isinstance(child, Tag):
            tokens.extend(_cell_tokens(child))
    return tokens


def parse_type_tokens(tokens: list[Token]) -> TypeExpr:
    tokens = [t for t in tokens if not (isinstance(t, str) and (not t or t in FILLER_TOKENS))]

    depth = 0
    while depth < len(tokens) and isinstance(tokens[depth], str) and tokens[depth] in ARRAY_PREFIXES:
        depth += 1

    leaves = [
        _leaf(t) for t in tokens[depth:]
        if not (isinstance(t, str) and t in UNION_SEPARATORS)
    ]
    if not leaves:
        raise CompileError(f"Empty type expression: {tokens!r}")

    expr: TypeExpr = leaves[0] if len(leaves) == 1 else UnionType(options=leaves)
    for _ in range(depth):
        expr = ArrayType(item=expr)
    return expr


def _leaf(token: Token) -> TypeExpr:
    if isinstance(token, TypeRef):
        return token
    return BasicType(name=token)
