"""Schema compiler.

Compiles catalog types into pydantic validators: concrete types become
models, supertypes become (discriminated) unions of their subtype models.
Schemas are memoized per type id. A type that is still being compiled is
referenced through a ``ForwardRef`` to its name, so self-referential type
graphs terminate; the generated names live in a per-compiler module that
pydantic resolves those references against.
"""

import itertools
import keyword
import logging
import os
import sys
import threading
import types
from typing import Annotated, Any, ForwardRef, Literal, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, TypeAdapter, create_model
from pydantic.errors import PydanticUndefinedAnnotation

from tg_bot_api_client.errors import CompileError
from tg_bot_api_client.parser.base import (
    INPUT_FILE_TYPE_NAME,
    ApiMethod,
    ApiSpec,
    ApiType,
    ArrayType,
    BasicType,
    Param,
    TypeExpr,
    TypeRef,
    UnionType,
)

logger = logging.getLogger(__name__)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

Int64 = Annotated[int, Field(ge=INT64_MIN, le=INT64_MAX)]


def is_input_file(value: Any) -> bool:
    """Check whether a value can be uploaded as a file.

    Plain strings are not files here: the Bot API treats them as file ids or URLs.
    """
    if isinstance(value, (bytes, bytearray, os.PathLike)):
        return True
    return callable(getattr(value, "read", None))


def _check_input_file(value: Any) -> Any:
    if not is_input_file(value):
        raise ValueError("expected a file to upload: bytes, a path or a binary stream")
    return value


InputFileValue = Annotated[Any, AfterValidator(_check_input_file)]

BASIC_TYPES = {
    "Boolean": bool,
    "True": Literal[True],
    "String": str,
    "Integer": Int64,
    "Float": float,
    INPUT_FILE_TYPE_NAME: InputFileValue,
}


def basic_type_schema(name: str) -> Any:
    return BASIC_TYPES.get(name, Any)


class ApiObject(BaseModel):
    """Base of all generated models; unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, protected_namespaces=())


def attr_name(name: str) -> str:
    if keyword.iskeyword(name) or hasattr(BaseModel, name):
        return f"{name}_"
    return name


def _pascal(name: str) -> str:
    return name[:1].upper() + name[1:]


def _field_definition(annotation: Any, param: Param) -> tuple:
    if param.required:
        return annotation, Field(alias=param.name)
    return Union[annotation, None], Field(default=None, alias=param.name)


_module_ids = itertools.count()


class SchemaCompiler:
    """Compiles and memoizes validators for the types and methods of a spec."""

    def __init__(self, spec: ApiSpec):
        self.spec = spec
        self._lock = threading.RLock()
        self._schemas: dict[str, Any] = {}
        # complete schemas only, safe to read without the lock
        self._ready: dict[str, Any] = {}
        self._params_models: dict[str, type[BaseModel]] = {}
        self._in_flight: set[str] = set()
        self._pending_models: list[type[BaseModel]] = []
        self._deferred_supertypes: set[str] = set()

        self._namespace = types.ModuleType(f"{__name__}.generated_{next(_module_ids)}")
        sys.modules[self._namespace.__name__] = self._namespace

        self._supertype_discriminants: dict[str, str] = {}
        self._discriminant_fields: set[tuple[str, str]] = set()
        self._find_discriminants()

    # Discriminants

    def _find_discriminants(self) -> None:
        for api_type in self.spec.types:
            field_name = self.discriminant_of(api_type)
            if field_name is not None:
                self._supertype_discriminants[api_type.id] = field_name
                self._discriminant_fields.update((sub, field_name) for sub in api_type.subtypes)

    def discriminant_of(self, api_type: ApiType) -> str | None:
        """Return the discriminant field name of a supertype, if it has one.

        The candidate is the first field of the first subtype. Every subtype
        must declare it as required with the same type, and each must carry
        its own literal value.
        """
        if not api_type.is_supertype or len(api_type.subtypes) < 2:
            return None
        subtypes = [self.spec.get_type(sub) for sub in api_type.subtypes]
        if any(sub is None or sub.is_supertype or not sub.fields for sub in subtypes):
            return None

        first = subtypes[0].fields[0]
        candidates = [sub.get_field(first.name) for sub in subtypes]
        if any(c is None or not c.required or c.type != first.type or c.value is None
               for c in candidates):
            return None
        values = [c.value for c in candidates]
        if len(set(values)) != len(values):
            return None
        return first.name

    # Types

    def schema_for(self, type_id: str) -> Any:
        """Return the memoized schema of a catalog type, compiling it on first use."""
        schema = self._ready.get(type_id)
        if schema is not None:
            return schema

        with self._lock:
            if type_id in self._schemas:
                return self._schemas[type_id]
            api_type = self.spec.get_type(type_id)
            if api_type is None:
                raise CompileError(f"Unknown type id '{type_id}'")
            if type_id in self._in_flight:
                return ForwardRef(api_type.name)

            self._in_flight.add(type_id)
            try:
                schema = self._compile_type(api_type)
            finally:
                self._in_flight.discard(type_id)

            self._schemas[type_id] = schema
            setattr(self._namespace, api_type.name, schema)
            if not self._in_flight:
                self._complete()
            return self._schemas[type_id]

    def _compile_type(self, api_type: ApiType) -> Any:
        if api_type.name == INPUT_FILE_TYPE_NAME:
            return InputFileValue
        if api_type.is_supertype:
            return self._supertype_schema(api_type)
        if not api_type.fields:
            return Any

        fields = {
            attr_name(f.name): _field_definition(self._field_annotation(api_type, f), f)
            for f in api_type.fields
        }
        model = create_model(
            api_type.name,
            __base__=ApiObject,
            __module__=self._namespace.__name__,
            **fields,
        )
        if not model.__pydantic_complete__:
            self._pending_models.append(model)
        return model

    def _field_annotation(self, api_type: ApiType, param: Param) -> Any:
        if (api_type.id, param.name) in self._discriminant_fields:
            return Literal[param.value]
        return self.annotation(param.type)

    def _supertype_schema(self, api_type: ApiType) -> Any:
        members = tuple(self.schema_for(sub) for sub in api_type.subtypes)
        if any(isinstance(m, ForwardRef) for m in members):
            self._deferred_supertypes.add(api_type.id)
        if len(members) == 1:
            return members[0]

        discriminant = self._supertype_discriminants.get(api_type.id)
        if discriminant is not None:
            return Annotated[Union[members], Field(discriminator=attr_name(discriminant))]
        # first matching subtype wins
        return Annotated[Union[members], Field(union_mode="left_to_right")]

    def _complete(self) -> None:
        for type_id in sorted(self._deferred_supertypes):
            api_type = self.spec.get_type(type_id)
            self._schemas[type_id] = schema = self._supertype_schema(api_type)
            setattr(self._namespace, api_type.name, schema)
        self._deferred_supertypes.clear()

        pending, self._pending_models = self._pending_models, []
        for model in pending:
            if model.__pydantic_complete__:
                continue
            try:
                model.model_rebuild()
            except PydanticUndefinedAnnotation as e:
                raise CompileError(f"Cannot complete schema '{model.__name__}': {e}") from e
        self._ready.update(self._schemas)

    def annotation(self, expr: TypeExpr) -> Any:
        """Translate a type expression into a pydantic-compatible annotation."""
        if isinstance(expr, BasicType):
            return basic_type_schema(expr.name)
        if isinstance(expr, TypeRef):
            return self.schema_for(expr.id)
        if isinstance(expr, ArrayType):
            return list[self.annotation(expr.item)]
        if isinstance(expr, UnionType):
            return Union[tuple(self.annotation(option) for option in expr.options)]
        raise CompileError(f"Unsupported type expression: {expr!r}")

    # Methods

    def params_model(self, method: ApiMethod) -> type[BaseModel]:
        model = self._params_models.get(method.id)
        if model is not None:
            return model

        with self._lock:
            if method.id in self._params_models:
                return self._params_models[method.id]
            fields = {
                attr_name(p.name): _field_definition(self.annotation(p.type), p)
                for p in method.params
            }
            model = create_model(
                f"{_pascal(method.name)}Params",
                __base__=ApiObject,
                __module__=self._namespace.__name__,
                **fields,
            )
            self._params_models[method.id] = model
            return model

    def validate_params(self, method: ApiMethod, params: dict | None) -> dict:
        """Validate and coerce call params; returns them keyed by wire names.

        Raises pydantic.ValidationError when the params do not fit the method.
        Files to upload are passed through untouched.
        """
        instance = self.params_model(method).model_validate(params or {})
        fields = type(instance).model_fields
        files = {
            attr for attr in instance.model_fields_set
            if is_input_file(getattr(instance, attr))
        }
        dumped = instance.model_dump(by_alias=True, exclude_unset=True, exclude=files)
        for attr in files:
            dumped[fields[attr].alias or attr] = getattr(instance, attr)
        return dumped

    # Adapters

    def adapter(self, expr: TypeExpr) -> TypeAdapter:
        return TypeAdapter(self.annotation(expr))

    def type_adapter(self, type_id: str) -> TypeAdapter:
        return TypeAdapter(self.schema_for(type_id))

    def compile_all(self) -> "SchemaCompiler":
        """Compile every catalog type and method up front."""
        for api_type in self.spec.types:
            self.schema_for(api_type.id)
        for method in self.spec.methods:
            self.params_model(method)
        logger.debug("Compiled schemas for %d types and %d methods",
                     len(self._schemas), len(self._params_models))
        return self


_compilers: dict[int, SchemaCompiler] = {}
_compilers_lock = threading.Lock()


def get_schema_compiler(spec: ApiSpec) -> SchemaCompiler:
    """Return the process-wide compiler of ``spec``, creating it on first use."""
    compiler = _compilers.get(id(spec))
    if compiler is None:
        with _compilers_lock:
            compiler = _compilers.get(id(spec))
            if compiler is None:
                compiler = _compilers[id(spec)] = SchemaCompiler(spec)
    return compiler
