"""Binding emitter — renders request bindings for certified operations.

Emission is a pure function of the operation and the closed registry:
the same input always renders byte-identical output.
"""

import keyword
import re
from typing import Optional

import yaml

from api_spec_gen.parser.base import (
    AliasDef,
    ArrayOf,
    ClassDef,
    EnumDef,
    FieldSpec,
    MapOf,
    NamedType,
    Operation,
    PrimitiveDef,
    TypeDefinition,
    TypeExpr,
    UnionOf,
    render_type,
)
from api_spec_gen.registry import TypeRegistry
from api_spec_gen.runtime import ParamSpec, RequestSpec, Route

TARGETS = ("python", "yaml")

HEADER = "# Code generated by api-spec-gen. DO NOT EDIT."

IMPORTS = """from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from api_spec_gen.runtime import ParamSpec, PreparedRequest, RequestSpec, Route, build_request
"""

MODULE_NAMES = {
    "annotations", "Enum", "Any", "Literal", "Optional", "Union", "BaseModel", "ConfigDict",
    "Field", "ParamSpec", "PreparedRequest", "RequestSpec", "Route", "build_request", "REQUEST_SPEC",
}

# BaseModel attributes a field must not shadow
RESERVED_FIELDS = {
    "model_config", "model_fields", "model_dump", "model_validate", "model_copy", "schema",
    "json", "dict", "copy", "validate", "construct", "parse_obj", "parse_raw", "from_orm",
}


def python_identifier(name: str) -> str:
    """A keyword-safe Python identifier for a schema member name."""
    ident = re.sub(r"\W", "_", name).lstrip("_")
    if not ident or ident[0].isdigit():
        ident = f"f_{ident}"
    if keyword.iskeyword(ident) or ident in RESERVED_FIELDS:
        ident = f"{ident}_"
    return ident


def class_name(name: str) -> str:
    """PascalCase class name for a (possibly qualified) type name."""
    local = name.rsplit(":", 1)[-1]
    if local[:1].islower() or "_" in local:
        local = "".join(p[:1].upper() + p[1:] for p in re.split(r"[\W_]+", local) if p)
    ident = re.sub(r"\W", "_", local)
    if not ident or ident[0].isdigit() or keyword.iskeyword(ident):
        ident = f"T{ident}"
    return ident


def operation_class_prefix(rest_name: str) -> str:
    return "".join(p[:1].upper() + p[1:] for p in re.split(r"[\W_]+", rest_name) if p)


def builder_name(rest_name: str) -> str:
    return "build_" + re.sub(r"\W", "_", rest_name)


def binding_path(rest_name: str, suffix: str) -> str:
    """``inference.put_anthropic`` -> ``inference/put_anthropic.py``."""
    parts = [re.sub(r"\W", "_", p) for p in rest_name.split(".")]
    if len(parts) == 1:
        parts.insert(0, "_global")
    return "/".join(parts) + suffix


def _docstring(text: str) -> Optional[str]:
    first = text.strip().splitlines()[0].strip() if text.strip() else ""
    if not first:
        return None
    return first.replace("\\", "\\\\").replace('"', '\\"')


def request_spec(op: Operation) -> RequestSpec:
    """Runtime description of an operation's request members."""
    params = []
    for section, field in op.members():
        location = {"path_parts": "path", "query_parameters": "query", "body": "body"}[section]
        params.append(
            ParamSpec(
                name=python_identifier(field.name),
                wire_name=field.name,
                location=location,
                required=field.required,
            )
        )
    if op.body is not None and op.body.kind == "value":
        name = op.body.codegen_name or "body"
        params.append(
            ParamSpec(name=python_identifier(name), wire_name=name, location="body", required=op.body.required)
        )
    return RequestSpec(
        rest_name=op.rest_name,
        routes=tuple(Route(path=u.path, methods=tuple(u.methods)) for u in op.urls),
        params=tuple(params),
        body_kind=op.body.kind if op.body is not None else None,
        body_required=op.body.required if op.body is not None else False,
    )


class BindingEmitter:
    """Renders one binding artifact per certified operation."""

    def __init__(self, registry: TypeRegistry, target: str = "python"):
        if target not in TARGETS:
            raise ValueError(f"unknown binding target '{target}' (expected one of {', '.join(TARGETS)})")
        self.registry = registry
        self.target = target

    def emit(self, op: Operation) -> dict[str, str]:
        """Return {relative_path: content} for one operation."""
        if self.target == "yaml":
            return {binding_path(op.rest_name, ".yaml"): self._render_yaml(op)}
        return {binding_path(op.rest_name, ".py"): self._render_python(op)}

    # -- shared helpers ---------------------------------------------------------

    def _types(self, op: Operation) -> dict[str, TypeDefinition]:
        """Enum and class definitions the request shape depends on."""
        roots = [(p, e) for p, e in op.type_roots() if p != "extends"]
        return {
            name: d
            for name, d in self.registry.reachable(roots).items()
            if isinstance(d, (EnumDef, ClassDef))
        }

    def _names(self, op: Operation, types: dict[str, TypeDefinition]) -> dict[str, str]:
        prefix = operation_class_prefix(op.rest_name)
        taken = set(MODULE_NAMES) | {f"{prefix}Request", f"{prefix}Response"}
        order = [n for n in op.inline_types if n in types]
        order += sorted(n for n in types if n not in order)
        names = {}
        for qualified in order:
            candidate = base = class_name(qualified)
            counter = 2
            while candidate in taken:
                candidate = f"{base}{counter}"
                counter += 1
            taken.add(candidate)
            names[qualified] = candidate
        return names

    def _annotation(self, expr: TypeExpr, names: dict[str, str], aliases: tuple[str, ...] = ()) -> str:
        if isinstance(expr, NamedType):
            definition = self.registry.get(expr.name)
            if isinstance(definition, PrimitiveDef):
                return definition.python
            if isinstance(definition, AliasDef):
                if expr.name in aliases:
                    return "Any"
                return self._annotation(definition.target, names, aliases + (expr.name,))
            return names.get(expr.name, "Any")
        if isinstance(expr, ArrayOf):
            return f"list[{self._annotation(expr.item, names, aliases)}]"
        if isinstance(expr, MapOf):
            key = self._annotation(expr.key, names, aliases)
            return f"dict[{key}, {self._annotation(expr.value, names, aliases)}]"
        if isinstance(expr, UnionOf):
            items = list(dict.fromkeys(self._annotation(i, names, aliases) for i in expr.items))
            if "Any" in items:
                return "Any"
            return items[0] if len(items) == 1 else f"Union[{', '.join(items)}]"
        return f"Literal[{expr.value!r}]"

    # -- python target ------------------------------------------------------------

    def _render_python(self, op: Operation) -> str:
        types = self._types(op)
        names = self._names(op, types)
        prefix = operation_class_prefix(op.rest_name)
        spec = request_spec(op)

        lines = [f'"""Bindings for ``{op.rest_name}``.']
        summary = _docstring(op.description)
        if summary:
            lines += ["", summary]
        lines += ['"""', HEADER, "", IMPORTS]

        enums = sorted((n for n, d in types.items() if isinstance(d, EnumDef)), key=names.get)
        for name in enums:
            lines += ["", *self._render_enum(types[name], names[name]), ""]

        models = []
        for name in self._class_order(types, names):
            lines += ["", *self._render_class(types[name], names), ""]
            models.append(names[name])

        request_fields = [field for _, field in op.members()]
        if op.body is not None and op.body.kind == "value":
            request_fields.append(
                FieldSpec(name=op.body.codegen_name or "body", type=op.body.value, required=op.body.required)
            )
        lines += ["", f"class {prefix}Request(BaseModel):", f'    """Request shape for ``{op.rest_name}``."""', ""]
        lines += self._render_fields(request_fields, names)
        lines += ["", "", f"class {prefix}Response(BaseModel):",
                  f'    """Response placeholder for ``{op.rest_name}``."""', "",
                  '    model_config = ConfigDict(extra="allow")', "", ""]
        models += [f"{prefix}Request", f"{prefix}Response"]

        lines += self._render_spec(spec)
        lines += ["", ""]
        lines += self._render_builder(op, spec, request_fields, names)
        lines += ["", ""]
        lines += [f"{model}.model_rebuild()" for model in models]
        return "\n".join(lines) + "\n"

    def _class_order(self, types: dict[str, TypeDefinition], names: dict[str, str]) -> list[str]:
        """Classes sorted by name, each after the classes it extends."""
        ordered: list[str] = []
        visiting: set[str] = set()

        def visit(name: str) -> None:
            if name in ordered or name in visiting:
                return
            visiting.add(name)
            for base in types[name].bases:
                if isinstance(types.get(base), ClassDef):
                    visit(base)
            ordered.append(name)

        for name in sorted((n for n, d in types.items() if isinstance(d, ClassDef)), key=names.get):
            visit(name)
        return ordered

    def _render_enum(self, definition: EnumDef, name: str) -> list[str]:
        lines = [f"class {name}(str, Enum):"]
        doc = _docstring(definition.description)
        if doc:
            lines += [f'    """{doc}"""', ""]
        taken: set[str] = set()
        for member in definition.members:
            ident = re.sub(r"\W", "_", member.name).strip("_").upper() or "VALUE"
            if ident[0].isdigit():
                ident = f"V_{ident}"
            candidate, counter = ident, 2
            while candidate in taken:
                candidate = f"{ident}_{counter}"
                counter += 1
            taken.add(candidate)
            lines.append(f"    {candidate} = {member.value!r}")
        if not definition.members:
            lines.append("    pass")
        return lines

    def _render_class(self, definition: ClassDef, names: dict[str, str]) -> list[str]:
        bases = [names[b] for b in definition.bases if b in names and b != definition.name]
        lines = [f"class {names[definition.name]}({', '.join(bases) or 'BaseModel'}):"]
        doc = _docstring(definition.description)
        if doc:
            lines += [f'    """{doc}"""', ""]
        lines += self._render_fields(definition.fields, names)
        return lines

    def _render_fields(self, fields: list[FieldSpec], names: dict[str, str]) -> list[str]:
        lines = ["    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())"]
        if fields:
            lines.append("")
        for field in fields:
            ident = python_identifier(field.name)
            annotation = self._annotation(field.type, names)
            alias = f"alias={field.name!r}" if ident != field.name else None
            if field.required:
                default = f" = Field({alias})" if alias else ""
                lines.append(f"    {ident}: {annotation}{default}")
            else:
                default = f" = Field(default=None, {alias})" if alias else " = None"
                lines.append(f"    {ident}: Optional[{annotation}]{default}")
        return lines

    def _render_spec(self, spec: RequestSpec) -> list[str]:
        lines = ["REQUEST_SPEC = RequestSpec(", f"    rest_name={spec.rest_name!r},", "    routes=("]
        for route in spec.routes:
            lines.append(f"        Route(path={route.path!r}, methods={route.methods!r}),")
        lines.append("    ),")
        lines.append("    params=(")
        for p in spec.params:
            lines.append(
                f"        ParamSpec(name={p.name!r}, wire_name={p.wire_name!r}, "
                f"location={p.location!r}, required={p.required!r}),"
            )
        lines.append("    ),")
        lines.append(f"    body_kind={spec.body_kind!r},")
        lines.append(f"    body_required={spec.body_required!r},")
        lines.append(")")
        return lines

    def _render_builder(
        self, op: Operation, spec: RequestSpec, fields: list[FieldSpec], names: dict[str, str]
    ) -> list[str]:
        func = builder_name(op.rest_name)
        route = op.urls[0] if op.urls else None
        summary = f"{'/'.join(route.methods)} {route.path}" if route else op.rest_name
        if not spec.params:
            return [
                f"def {func}() -> PreparedRequest:",
                f'    """Build a ``{summary}`` request."""',
                "    return build_request(REQUEST_SPEC, {})",
            ]
        lines = [f"def {func}(", "    *,"]
        for param, field in zip(spec.params, fields):
            lines.append(f"    {param.name}: Optional[{self._annotation(field.type, names)}] = None,")
        lines += [
            ") -> PreparedRequest:",
            f'    """Build a ``{summary}`` request."""',
            "    return build_request(",
            "        REQUEST_SPEC,",
            "        {",
        ]
        lines += [f"            {p.name!r}: {p.name}," for p in spec.params]
        lines += ["        },", "    )"]
        return lines

    # -- yaml target ----------------------------------------------------------------

    def _render_yaml(self, op: Operation) -> str:
        types = self._types(op)
        spec = request_spec(op)
        manifest = {
            "rest_name": op.rest_name,
            "description": (op.description.strip().splitlines() or [""])[0],
            "doc_id": op.doc_id,
            "availability": [a.model_dump(exclude_none=True) for a in op.availability],
            "privileges": {"cluster": op.cluster_privileges, "index": op.index_privileges},
            "routes": [{"path": r.path, "methods": list(r.methods)} for r in spec.routes],
            "params": [],
            "types": {},
        }
        for param, (_, field) in zip(spec.params, op.members()):
            manifest["params"].append(self._yaml_field(field, location=param.location))
        if op.body is not None and op.body.kind == "value":
            manifest["body"] = {
                "name": op.body.codegen_name or "body",
                "type": render_type(op.body.value),
                "required": op.body.required,
            }
        for name in sorted(types):
            definition = types[name]
            if isinstance(definition, EnumDef):
                manifest["types"][name] = {"kind": "enum", "members": [m.value for m in definition.members]}
            else:
                manifest["types"][name] = {
                    "kind": "class",
                    "bases": definition.bases,
                    "fields": [self._yaml_field(f) for f in definition.fields],
                }
        return HEADER + "\n" + yaml.safe_dump(manifest, sort_keys=False, default_flow_style=False)

    def _yaml_field(self, field: FieldSpec, location: Optional[str] = None) -> dict:
        entry = {"name": field.name}
        if location is not None:
            entry["location"] = location
        entry["type"] = render_type(field.type)
        entry["required"] = field.required
        if field.has_server_default:
            entry["server_default"] = field.server_default
        return entry
