"""Data models for the compiled Bot API documentation.

The document parser produces ``ApiElement`` records, the spec
compiler turns them into an ``ApiSpec`` catalog of ``ApiMethod`` and
``ApiType`` entries. All models are immutable and shared read-only.
"""

from typing import Annotated, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

INPUT_FILE_TYPE_NAME = "InputFile"


class BasicType(BaseModel):
    """A leaf type spelled out as text, e.g. ``Integer`` or ``String``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["basic"] = "basic"
    name: str


class TypeRef(BaseModel):
    """A leaf type referring to a documented type by its anchor id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["ref"] = "ref"
    id: str


class ArrayType(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["array"] = "array"
    item: "TypeExpr"


class UnionType(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["union"] = "union"
    options: list["TypeExpr"]

    @field_validator("options")
    @classmethod
    def _non_empty_ordered_set(cls, options: list) -> list:
        if not options:
            raise ValueError("a union needs at least one option")
        unique = []
        for option in options:
            if option not in unique:
                unique.append(option)
        return unique


TypeExpr = Annotated[
    Union[BasicType, TypeRef, ArrayType, UnionType],
    Field(discriminator="kind"),
]

ArrayType.model_rebuild()
UnionType.model_rebuild()


def iter_leaves(expr: TypeExpr) -> Iterator[BasicType | TypeRef]:
    """Yield the leaves of a type expression, looking through arrays and unions."""
    if isinstance(expr, ArrayType):
        yield from iter_leaves(expr.item)
    elif isinstance(expr, UnionType):
        for option in expr.options:
            yield from iter_leaves(option)
    else:
        yield expr


def iter_type_refs(expr: TypeExpr) -> Iterator[str]:
    """Yield every referenced type id inside a type expression, in order."""
    for leaf in iter_leaves(expr):
        if isinstance(leaf, TypeRef):
            yield leaf.id


class Param(BaseModel):
    """A single type field or method parameter."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: TypeExpr
    required: bool
    description: str = ""
    value: str | None = None  # literal a discriminant field always carries
    json_serialized: bool = False


class ApiElement(BaseModel):
    """A raw documented entity, before cross-references are resolved."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    kind: Literal["type", "method"]
    description: str = ""
    fields: list[Param] | None = None
    params: list[Param] | None = None
    subtypes: list[str] | None = None
    notes: str | None = None


class ApiType(BaseModel):
    """A documented type: either a record of fields or a supertype of subtypes.

    A type with an empty field list holds no information (e.g. ``InputFile``).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    fields: list[Param] | None = None
    subtypes: list[str] | None = None

    @model_validator(mode="after")
    def _fields_xor_subtypes(self) -> "ApiType":
        if (self.fields is None) == (self.subtypes is None):
            raise ValueError(f"type '{self.name}' needs exactly one of fields/subtypes")
        return self

    @property
    def is_supertype(self) -> bool:
        return self.subtypes is not None

    def get_field(self, name: str) -> Param | None:
        return next((f for f in self.fields or [] if f.name == name), None)


class ApiMethod(BaseModel):
    """A documented method with its ordered parameters."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    params: list[Param] = []
    uploads_file: bool = False
    json_serialized_params: list[str] = []


class ApiSpec(BaseModel):
    """The compiled catalog; indexed by id and by name for lookups."""

    model_config = ConfigDict(frozen=True)

    methods: list[ApiMethod]
    types: list[ApiType]

    _types_by_id: dict[str, ApiType] = PrivateAttr(default_factory=dict)
    _methods_by_name: dict[str, ApiMethod] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context) -> None:
        self._types_by_id.update((t.id, t) for t in self.types)
        self._methods_by_name.update((m.name, m) for m in self.methods)

    def get_type(self, type_id: str) -> ApiType | None:
        return self._types_by_id.get(type_id)

    def get_method(self, name: str) -> ApiMethod | None:
        return self._methods_by_name.get(name)

    def find_type_by_name(self, name: str) -> ApiType | None:
        return next((t for t in self.types if t.name == name), None)
