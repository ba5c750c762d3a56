"""Unified data models for parsed API schema units.

The TypeScript unit parser and the shared-type library loader both convert
their input into these models for the registry, validator and emitter.
"""

from enum import Enum
from typing import Annotated, Iterator, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# -- type expressions -------------------------------------------------------


class NamedType(_Frozen):
    """A reference by name to a type held in the registry."""

    kind: Literal["named"] = "named"
    name: str
    args: list["TypeExpr"] = []

    def names(self) -> Iterator[str]:
        yield self.name
        for arg in self.args:
            yield from arg.names()


class ArrayOf(_Frozen):
    kind: Literal["array"] = "array"
    item: "TypeExpr"

    def names(self) -> Iterator[str]:
        yield from self.item.names()


class MapOf(_Frozen):
    kind: Literal["map"] = "map"
    key: "TypeExpr"
    value: "TypeExpr"

    def names(self) -> Iterator[str]:
        yield from self.key.names()
        yield from self.value.names()


class UnionOf(_Frozen):
    kind: Literal["union"] = "union"
    items: list["TypeExpr"]

    def names(self) -> Iterator[str]:
        for item in self.items:
            yield from item.names()


class LiteralType(_Frozen):
    """A literal value type such as ``'completion'`` or ``42``."""

    kind: Literal["literal"] = "literal"
    value: Union[str, int, float]

    def names(self) -> Iterator[str]:
        return iter(())


TypeExpr = Annotated[
    Union[NamedType, ArrayOf, MapOf, UnionOf, LiteralType],
    Field(discriminator="kind"),
]

NamedType.model_rebuild()
ArrayOf.model_rebuild()
MapOf.model_rebuild()
UnionOf.model_rebuild()


def render_type(expr: TypeExpr) -> str:
    """Render a type expression back to its schema notation."""
    if isinstance(expr, NamedType):
        if expr.args:
            return f"{expr.name}<{', '.join(render_type(a) for a in expr.args)}>"
        return expr.name
    if isinstance(expr, ArrayOf):
        inner = render_type(expr.item)
        return f"({inner})[]" if isinstance(expr.item, UnionOf) else f"{inner}[]"
    if isinstance(expr, MapOf):
        return f"map<{render_type(expr.key)}, {render_type(expr.value)}>"
    if isinstance(expr, UnionOf):
        return " | ".join(render_type(i) for i in expr.items)
    return repr(expr.value)


# -- fields and type definitions ----------------------------------------------


class FieldSpec(_Frozen):
    """One member of a body, parameter block or settings object."""

    name: str
    type: TypeExpr
    required: bool = True
    description: str = ""
    annotations: dict[str, str] = {}  # server_default, doc_id, ext_doc_id, codegen_name, ...

    @property
    def server_default(self) -> Optional[str]:
        return self.annotations.get("server_default")

    @property
    def has_server_default(self) -> bool:
        return "server_default" in self.annotations


class PrimitiveDef(_Frozen):
    kind: Literal["primitive"] = "primitive"
    name: str
    python: str  # str / int / float / bool / Any / None


class AliasDef(_Frozen):
    kind: Literal["alias"] = "alias"
    name: str
    target: TypeExpr
    description: str = ""


class EnumMember(_Frozen):
    name: str
    value: str
    description: str = ""


class EnumDef(_Frozen):
    """A closed set of string-like variants."""

    kind: Literal["enum"] = "enum"
    name: str
    members: list[EnumMember] = []
    description: str = ""
    annotations: dict[str, str] = {}


class ClassDef(_Frozen):
    """A composite type: an ``interface`` or ``class`` declaration."""

    kind: Literal["class"] = "class"
    name: str
    fields: list[FieldSpec] = []
    bases: list[str] = []
    description: str = ""
    annotations: dict[str, str] = {}


TypeDefinition = Annotated[
    Union[PrimitiveDef, AliasDef, EnumDef, ClassDef],
    Field(discriminator="kind"),
]


# -- operations ---------------------------------------------------------------


class UrlTemplate(_Frozen):
    path: str  # /_connector/{connector_id}/_pipeline
    methods: list[str]


class Availability(_Frozen):
    """Availability of an operation on one deployment target."""

    target: str  # stack / serverless
    stability: Optional[str] = None
    visibility: Optional[str] = None
    since: Optional[str] = None


class Body(_Frozen):
    """Request body: either a property list or a single typed value."""

    kind: Literal["properties", "value"]
    fields: list[FieldSpec] = []
    value: Optional[TypeExpr] = None
    required: bool = True
    codegen_name: Optional[str] = None
    description: str = ""


class Operation(_Frozen):
    """A single API operation with all its metadata."""

    rest_name: str  # connector.update_pipeline
    urls: list[UrlTemplate]
    path_parts: list[FieldSpec] = []
    query_parameters: list[FieldSpec] = []
    body: Optional[Body] = None
    availability: list[Availability] = []
    cluster_privileges: list[str] = []
    index_privileges: list[str] = []
    doc_id: Optional[str] = None
    description: str = ""
    bases: list[str] = []
    annotations: dict[str, str] = {}
    inline_types: list[str] = []
    source: str = ""

    def members(self) -> Iterator[tuple[str, FieldSpec]]:
        """Yield (section, field) for every path, query and body property."""
        for f in self.path_parts:
            yield "path_parts", f
        for f in self.query_parameters:
            yield "query_parameters", f
        if self.body is not None and self.body.kind == "properties":
            for f in self.body.fields:
                yield "body", f

    def type_roots(self) -> Iterator[tuple[str, TypeExpr]]:
        """Yield (field path, type expression) for every type the operation mentions."""
        for section, f in self.members():
            yield f"{section}.{f.name}", f.type
        if self.body is not None and self.body.kind == "value" and self.body.value is not None:
            yield "body", self.body.value
        for base in self.bases:
            yield "extends", NamedType(name=base)


class SchemaUnit(_Frozen):
    """Everything declared by one schema file."""

    source: str
    operation: Optional[Operation] = None
    types: list[TypeDefinition] = []


# -- validation results ---------------------------------------------------------


class ViolationKind(str, Enum):
    DUPLICATE_TYPE = "DuplicateType"
    UNRESOLVED_TYPE = "UnresolvedType"
    CYCLIC_TYPE = "CyclicType"
    MALFORMED_SCHEMA = "MalformedSchema"
    INVALID_FIELD_CONTRACT = "InvalidFieldContract"


class Violation(_Frozen):
    operation: str
    path: str
    kind: ViolationKind
    message: str
