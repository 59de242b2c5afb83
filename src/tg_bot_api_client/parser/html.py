"""Bot API documentation page parser.

Splits the rendered documentation into sections (``h3``) and subsections
(``h4``) and turns every entity subsection into an ``ApiElement``. The page
layout is a versioned contract: any structural surprise is a ``CompileError``
and no partial result is returned.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Literal

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment
from pydantic import ValidationError

from tg_bot_api_client.errors import CompileError
from tg_bot_api_client.parser.base import ApiElement, BasicType, Param
from tg_bot_api_client.parser.types import anchor_id, is_id_anchor, parse_type_cell

logger = logging.getLogger(__name__)

CONTENT_ID = "dev_page_content"
FIRST_SECTION_TITLE = "Getting updates"
KIND_SPECIFIC_TAGS = {"table", "ul"}

COLUMN_ATTRS = {
    "Field": "name",
    "Parameter": "name",
    "Type": "type",
    "Required": "required",
    "Description": "description",
}

DISCRIMINANT_VALUE_RE = re.compile(r"(?:always|must be)\s+[“\"]?(\w+)[”\"]?\.?\s*$")

SubsectionKind = Literal["notes", "type", "method"]


@dataclass(frozen=True)
class Subsection:
    heading: Tag
    description: list = field(default_factory=list)
    kind_node: Tag | None = None
    notes: list = field(default_factory=list)


def text(node) -> str:
    if isinstance(node, Tag):
        return node.get_text()
    return str(node)


def render(nodes: Iterable) -> str:
    return "".join(str(node) for node in nodes)


def classify_subsection(heading_text: str) -> SubsectionKind:
    """Classify a subsection by its heading text.

    Multi-word headings are prose ("notes"), single words name entities:
    ``Message`` is a type, ``sendMessage`` is a method.
    """
    name = heading_text.strip()
    if re.search(r"\s", name):
        return "notes"
    return "type" if name[:1].isupper() else "method"


def content_nodes(soup: BeautifulSoup) -> list:
    root = soup.find(id=CONTENT_ID)
    if root is None:
        raise CompileError(f"No '#{CONTENT_ID}' element in the documentation page")
    return [
        child for child in root.children
        if isinstance(child, Tag)
        or (not isinstance(child, Comment) and isinstance(child, NavigableString) and child.strip())
    ]


def _partition_at(is_start: Callable, nodes: list) -> Iterator[list]:
    run: list = []
    for node in nodes:
        if is_start(node) and run:
            yield run
            run = []
        run.append(node)
    if run:
        yield run


def _has_tag(name: str) -> Callable:
    return lambda node: isinstance(node, Tag) and node.name == name


def iter_sections(nodes: list) -> Iterator[list]:
    start = next(
        (i for i, n in enumerate(nodes)
         if _has_tag("h3")(n) and text(n).strip() == FIRST_SECTION_TITLE),
        None,
    )
    if start is None:
        raise CompileError(f"Section '{FIRST_SECTION_TITLE}' not found")
    yield from _partition_at(_has_tag("h3"), nodes[start:])


def iter_subsections(nodes: list) -> Iterator[Subsection]:
    for section in iter_sections(nodes):
        is_h4 = _has_tag("h4")
        first = next((i for i, n in enumerate(section) if is_h4(n)), None)
        if first is None:
            continue
        for heading, *rest in _partition_at(is_h4, section[first:]):
            split = next(
                (i for i, n in enumerate(rest)
                 if isinstance(n, Tag) and n.name in KIND_SPECIFIC_TAGS),
                len(rest),
            )
            yield Subsection(
                heading=heading,
                description=rest[:split],
                kind_node=rest[split] if split < len(rest) else None,
                notes=rest[split + 1:],
            )


# Tables


def _column_attrs(table: Tag) -> list[str]:
    header = [th.get_text(strip=True) for th in table.select("thead > tr > th")]
    if not header:
        raise CompileError("Table without a header row")
    unknown = [col for col in header if col not in COLUMN_ATTRS]
    if unknown:
        raise CompileError(f"Unknown table columns: {unknown}")
    return header


def _table_rows(table: Tag, columns: list[str]) -> Iterator[dict[str, Tag]]:
    for tr in table.select("tbody > tr"):
        cells = tr.find_all("td", recursive=False)
        if len(cells) != len(columns):
            raise CompileError(
                f"Row has {len(cells)} cells, expected {len(columns)}: {tr.get_text(' ', strip=True)!r}"
            )
        yield {COLUMN_ATTRS[col]: cell for col, cell in zip(columns, cells)}


def _is_optional(description: str) -> bool:
    words = description.split()
    return bool(words) and words[0].strip(".,") == "Optional"


def _discriminant_value(param_type, description: str) -> str | None:
    if param_type != BasicType(name="String"):
        return None
    match = DISCRIMINANT_VALUE_RE.search(description)
    return match.group(1) if match else None


def _param(row: dict[str, Tag], required: bool) -> Param:
    if "name" not in row or "type" not in row:
        raise CompileError("Table lacks a name or type column")
    description_cell = row.get("description")
    description_text = description_cell.get_text() if description_cell else ""
    param_type = parse_type_cell(row["type"])
    return Param(
        name=row["name"].get_text(strip=True),
        type=param_type,
        required=required,
        description=description_cell.decode_contents() if description_cell else "",
        value=_discriminant_value(param_type, description_text),
        json_serialized="JSON-serialized" in description_text,
    )


def parse_table(table: Tag) -> tuple[str, dict]:
    """Parse a field or parameter table into element attributes."""
    columns = _column_attrs(table)
    rows = list(_table_rows(table, columns))

    if columns[0] == "Field":
        fields = [
            _param(row, not _is_optional(row["description"].get_text() if "description" in row else ""))
            for row in rows
        ]
        return "type", {"fields": fields}

    if columns[0] == "Parameter":
        params = [
            _param(row, "required" in row and row["required"].get_text(strip=True) == "Yes")
            for row in rows
        ]
        return "method", {"params": params}

    raise CompileError(f"Table must start with 'Field' or 'Parameter', got '{columns[0]}'")


def parse_subtype_list(ul: Tag) -> list[str]:
    subtypes: list[str] = []
    for a in ul.select("li > a"):
        if is_id_anchor(a) and anchor_id(a) not in subtypes:
            subtypes.append(anchor_id(a))
    if not subtypes:
        raise CompileError("Subtype list without any type anchors")
    return subtypes


# Elements


def to_api_element(subsection: Subsection) -> ApiElement:
    heading = subsection.heading
    name = text(heading).strip()
    anchor = heading.find(is_id_anchor, recursive=False)
    if anchor is None:
        raise CompileError(f"Heading '{name}' has no anchor")

    kind = classify_subsection(name)
    attrs: dict = {"fields": []} if kind == "type" else {"params": []}

    try:
        node = subsection.kind_node
        if node is not None and node.name == "table":
            node_kind, attrs = parse_table(node)
        elif node is not None:
            node_kind, attrs = "type", {"subtypes": parse_subtype_list(node)}
        else:
            node_kind = kind

        if node_kind != kind:
            logger.warning("'%s' looks like a %s but is documented as a %s", name, kind, node_kind)

        return ApiElement(
            id=anchor_id(anchor),
            name=name,
            kind=node_kind,
            description=render(subsection.description),
            notes=render(subsection.notes) or None,
            **attrs,
        )
    except (CompileError, ValidationError) as e:
        raise CompileError(f"Failed to parse API element '{name}': {e}") from e


def parse_documentation(html: str) -> list[ApiElement]:
    """Parse the documentation page into ordered API elements, keyed by id."""
    soup = BeautifulSoup(html, "html.parser")
    elements: dict[str, ApiElement] = {}

    for subsection in iter_subsections(content_nodes(soup)):
        if classify_subsection(text(subsection.heading)) == "notes":
            continue
        element = to_api_element(subsection)
        if element.id in elements:
            logger.warning("Duplicate API element id '%s', keeping the last one", element.id)
        elements[element.id] = element

    logger.debug("Parsed %d API elements", len(elements))
    return list(elements.values())
