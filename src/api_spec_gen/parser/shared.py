"""Shared-type library loader.

Shared types (primitives, common aliases, reusable settings objects) are
described in YAML and pre-seeded into the registry before a corpus run::

    types:
      Id:
        alias: string
      RateLimitSetting:
        fields:
          requests_per_minute?: integer
      TaskType:
        enum: [completion, rerank]

A field key ending in ``?`` is optional. A field may also be a mapping with
``type``, ``required``, ``server_default`` and ``description`` keys.
"""

import csv
from pathlib import Path

import yaml

from api_spec_gen.errors import InvalidFieldContract, MalformedSchema
from .base import AliasDef, ClassDef, EnumDef, EnumMember, FieldSpec, PrimitiveDef, TypeDefinition
from .typescript import parse_type_expr

BUILTIN_LIBRARY: dict[str, dict] = {
    "string": {"primitive": "str"},
    "boolean": {"primitive": "bool"},
    "byte": {"primitive": "int"},
    "short": {"primitive": "int"},
    "integer": {"primitive": "int"},
    "long": {"primitive": "int"},
    "uint": {"primitive": "int"},
    "ulong": {"primitive": "int"},
    "float": {"primitive": "float"},
    "double": {"primitive": "float"},
    "null": {"primitive": "None"},
    "object": {"primitive": "dict[str, Any]"},
    "any": {"primitive": "Any"},
    "UserDefinedValue": {"primitive": "Any"},
    "Id": {"alias": "string"},
    "Ids": {"alias": "Id | Id[]"},
    "Name": {"alias": "string"},
    "Names": {"alias": "Name | Name[]"},
    "IndexName": {"alias": "string"},
    "Indices": {"alias": "IndexName | IndexName[]"},
    "Field": {"alias": "string"},
    "Fields": {"alias": "Field | Field[]"},
    "Routing": {"alias": "string"},
    "VersionString": {"alias": "string"},
    "VersionNumber": {"alias": "long"},
    "Duration": {"alias": "string | -1 | 0"},
    "ByteSize": {"alias": "long | string"},
    "DateTime": {"alias": "string | long"},
    "Percentage": {"alias": "string | float"},
    "Metadata": {"alias": "Dictionary<string, UserDefinedValue>"},
    "RequestBase": {"fields": {}},
}


def builtin_types() -> list[TypeDefinition]:
    """Definitions seeded into every registry."""
    return definitions_from_mapping(BUILTIN_LIBRARY, "<builtin>")


def load_shared_types(file_path: Path) -> list[TypeDefinition]:
    """Load a shared-type YAML library."""
    doc = yaml.safe_load(file_path.read_text(encoding="utf-8")) or {}
    types = doc.get("types") if isinstance(doc, dict) else None
    if not isinstance(types, dict):
        raise MalformedSchema(str(file_path), [("", "shared library must have a 'types' mapping")])
    return definitions_from_mapping(types, str(file_path))


def definitions_from_mapping(types: dict, source: str) -> list[TypeDefinition]:
    result = []
    for name, spec in types.items():
        if not isinstance(spec, dict):
            raise MalformedSchema(source, [(name, "type definition must be a mapping")])
        result.append(_definition(str(name), spec, source))
    return result


def _definition(name: str, spec: dict, source: str) -> TypeDefinition:
    description = spec.get("description", "")
    if "primitive" in spec:
        return PrimitiveDef(name=name, python=spec["primitive"])
    if "alias" in spec:
        return AliasDef(name=name, target=parse_type_expr(str(spec["alias"])), description=description)
    if "enum" in spec:
        members = spec["enum"]
        if isinstance(members, dict):
            items = [EnumMember(name=str(k), value=str(v)) for k, v in members.items()]
        else:
            items = [EnumMember(name=str(m), value=str(m)) for m in members or []]
        return EnumDef(name=name, members=items, description=description)
    if "fields" in spec or "extends" in spec:
        fields = [_field(name, key, value) for key, value in (spec.get("fields") or {}).items()]
        return ClassDef(
            name=name,
            fields=fields,
            bases=list(spec.get("extends") or []),
            description=description,
        )
    raise MalformedSchema(source, [(name, "expected one of 'primitive', 'alias', 'enum', 'fields'")])


def _field(owner: str, key: str, value) -> FieldSpec:
    name = key[:-1] if key.endswith("?") else key
    if isinstance(value, dict):
        if "type" not in value:
            raise MalformedSchema(owner, [(name, f"field '{name}' has no declared type")])
        required = bool(value.get("required", not key.endswith("?")))
        annotations = {}
        if "server_default" in value:
            annotations["server_default"] = _default_text(value["server_default"])
            if required:
                raise InvalidFieldContract(owner, name, "required field cannot carry a server default")
        return FieldSpec(
            name=name,
            type=parse_type_expr(str(value["type"])),
            required=required,
            description=value.get("description", ""),
            annotations=annotations,
        )
    return FieldSpec(name=name, type=parse_type_expr(str(value)), required=not key.endswith("?"))


def _default_text(value) -> str:
    # yaml turns `true` into True; keep the schema spelling
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def load_doc_ids(file_path: Path) -> set[str]:
    """Load the table of known documentation ids (YAML list/mapping or CSV)."""
    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix == ".csv":
        rows = csv.reader(text.splitlines())
        return {row[0].strip() for row in rows if row and row[0].strip() and row[0].strip() != "doc_id"}
    data = yaml.safe_load(text) or []
    if isinstance(data, dict):
        return {str(k) for k in data}
    return {str(item) for item in data}
