"""Validates parsed operations for internal consistency.

Each check returns a list of violations; ``validate`` runs them all in order
and never stops at the first failure, so a generator gets full diagnostics
in one pass. Nothing here repairs a schema.
"""

import re
from typing import Optional

from api_spec_gen.parser.base import (
    AliasDef,
    ClassDef,
    EnumDef,
    FieldSpec,
    NamedType,
    Operation,
    PrimitiveDef,
    TypeDefinition,
    TypeExpr,
    Violation,
    ViolationKind,
)
from api_spec_gen.generator.binding import python_identifier
from api_spec_gen.registry import TypeRegistry
from api_spec_gen.runtime import placeholders

VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")
TARGETS = ("stack", "serverless")
STABILITIES = ("experimental", "beta", "stable")
VISIBILITIES = ("public", "feature_flag", "private")


def _violation(op: Operation, path: str, kind: ViolationKind, message: str) -> Violation:
    return Violation(operation=op.rest_name, path=path, kind=kind, message=message)


def check_path_parts(op: Operation) -> list[Violation]:
    """Every URL placeholder is declared and every declared path part is used."""
    errors = []
    declared = [f.name for f in op.path_parts]
    for name in sorted({n for n in declared if declared.count(n) > 1}):
        errors.append(_violation(op, f"path_parts.{name}", ViolationKind.MALFORMED_SCHEMA,
                                 f"path part '{name}' is declared more than once"))

    used: set[str] = set()
    for i, url in enumerate(op.urls):
        names = placeholders(url.path)
        for name in sorted({n for n in names if names.count(n) > 1}):
            errors.append(_violation(op, f"urls[{i}]", ViolationKind.MALFORMED_SCHEMA,
                                     f"placeholder '{{{name}}}' appears more than once in '{url.path}'"))
        for name in dict.fromkeys(names):
            used.add(name)
            if name not in declared:
                errors.append(_violation(op, f"urls[{i}]", ViolationKind.MALFORMED_SCHEMA,
                                         f"placeholder '{{{name}}}' in '{url.path}' has no path part declaration"))

    for name in dict.fromkeys(declared):
        if name not in used:
            errors.append(_violation(op, f"path_parts.{name}", ViolationKind.MALFORMED_SCHEMA,
                                     f"path part '{name}' is not used by any URL template"))
    return errors


def check_references(op: Operation, registry: TypeRegistry) -> list[Violation]:
    """Every reachable type reference resolves and none sits on a containment cycle."""
    errors = []
    reached: dict[str, str] = {}
    for path, name, definition in registry.walk(op.type_roots()):
        if definition is None:
            errors.append(_violation(op, path, ViolationKind.UNRESOLVED_TYPE,
                                     f"type '{name}' is not defined"))
        else:
            reached[name] = path

    for cycle in registry.cycles():
        hit = next((name for name in cycle if name in reached), None)
        if hit is not None:
            chain = " -> ".join(cycle + cycle[:1])
            errors.append(_violation(op, reached[hit], ViolationKind.CYCLIC_TYPE,
                                     f"type '{hit}' contains itself by value: {chain}"))
    return errors


def _concrete(expr: TypeExpr, registry: TypeRegistry) -> Optional[TypeDefinition]:
    """Follow aliases from a named type to a primitive or enum definition."""
    seen: set[str] = set()
    while isinstance(expr, NamedType) and expr.name not in seen:
        seen.add(expr.name)
        definition = registry.get(expr.name)
        if isinstance(definition, AliasDef):
            expr = definition.target
            continue
        return definition
    return None


def _default_fits(value: str, definition: Optional[TypeDefinition]) -> bool:
    if isinstance(definition, EnumDef):
        return any(value in (m.name, m.value) for m in definition.members)
    if not isinstance(definition, PrimitiveDef):
        return True
    try:
        if definition.python == "bool":
            return value in ("true", "false")
        if definition.python == "int":
            int(value)
        elif definition.python == "float":
            float(value)
    except ValueError:
        return False
    return True


def _field_contract(op: Operation, path: str, field: FieldSpec, registry: TypeRegistry) -> list[Violation]:
    if not field.has_server_default:
        return []
    errors = []
    if field.required:
        errors.append(_violation(op, path, ViolationKind.INVALID_FIELD_CONTRACT,
                                 f"'{field.name}' is required but declares @server_default {field.server_default}"))
    if not _default_fits(field.server_default, _concrete(field.type, registry)):
        errors.append(_violation(op, path, ViolationKind.INVALID_FIELD_CONTRACT,
                                 f"@server_default {field.server_default!r} does not fit the type of '{field.name}'"))
    return errors


def check_field_contracts(op: Operation, registry: TypeRegistry) -> list[Violation]:
    """No required+defaulted fields, well-typed defaults, no member name clashes."""
    errors = []
    for section, field in op.members():
        path = f"{section}.{field.name}"
        if section == "path_parts" and field.has_server_default:
            errors.append(_violation(op, path, ViolationKind.INVALID_FIELD_CONTRACT,
                                     f"path part '{field.name}' cannot declare a server default"))
        errors.extend(_field_contract(op, path, field, registry))

    for name, definition in sorted(registry.operation_types(op).items()):
        if isinstance(definition, ClassDef):
            for field in definition.fields:
                errors.extend(_field_contract(op, f"{name}.{field.name}", field, registry))

    sections: dict[str, list[str]] = {}
    for section, field in op.members():
        sections.setdefault(field.name, []).append(section)
    if op.body is not None and op.body.kind == "value":
        sections.setdefault(op.body.codegen_name or "body", []).append("body")
    for name, where in sections.items():
        if len(where) > 1:
            errors.append(_violation(op, f"{where[1]}.{name}", ViolationKind.INVALID_FIELD_CONTRACT,
                                     f"'{name}' is declared in more than one of {', '.join(where)}"))

    members = [(section, field.name) for section, field in op.members()]
    if op.body is not None and op.body.kind == "value":
        members.append(("body", op.body.codegen_name or "body"))
    errors.extend(_identifier_clashes(op, members))
    for name, definition in sorted(registry.operation_types(op).items()):
        if isinstance(definition, ClassDef):
            errors.extend(_identifier_clashes(op, [(name, f.name) for f in definition.fields]))
    return errors


def _identifier_clashes(op: Operation, members: list[tuple[str, str]]) -> list[Violation]:
    # distinct wire names that bind to the same Python keyword
    by_ident: dict[str, list[tuple[str, str]]] = {}
    for owner, name in members:
        wire = by_ident.setdefault(python_identifier(name), [])
        if name not in [n for _, n in wire]:
            wire.append((owner, name))
    errors = []
    for ident, clash in by_ident.items():
        if len(clash) > 1:
            owner, name = clash[1]
            names = ", ".join(repr(n) for _, n in clash)
            errors.append(_violation(op, f"{owner}.{name}", ViolationKind.INVALID_FIELD_CONTRACT,
                                     f"{names} bind to the same Python name '{ident}'"))
    return errors


def check_enums(op: Operation, registry: TypeRegistry) -> list[Violation]:
    """Reachable and inline enums have at least one member and unique member names."""
    errors = []
    enums = registry.operation_types(op)
    for name in op.inline_types:
        definition = registry.get(name)
        if definition is not None:
            enums.setdefault(name, definition)
    for name, definition in sorted(enums.items()):
        if not isinstance(definition, EnumDef):
            continue
        if not definition.members:
            errors.append(_violation(op, name, ViolationKind.MALFORMED_SCHEMA,
                                     f"enum '{name}' has no members"))
        members = [m.name for m in definition.members]
        for member in sorted({m for m in members if members.count(m) > 1}):
            errors.append(_violation(op, f"{name}.{member}", ViolationKind.MALFORMED_SCHEMA,
                                     f"enum '{name}' declares '{member}' more than once"))
    return errors


def check_availability(op: Operation) -> list[Violation]:
    """Availability targets, stability, visibility and versions are well formed."""
    errors = []
    seen: set[str] = set()
    for entry in op.availability:
        path = f"availability.{entry.target}"
        if entry.target not in TARGETS:
            errors.append(_violation(op, path, ViolationKind.MALFORMED_SCHEMA,
                                     f"unknown deployment target '{entry.target}'"))
        if entry.target in seen:
            errors.append(_violation(op, path, ViolationKind.MALFORMED_SCHEMA,
                                     f"availability for '{entry.target}' is declared more than once"))
        seen.add(entry.target)
        if entry.stability is not None and entry.stability not in STABILITIES:
            errors.append(_violation(op, path, ViolationKind.MALFORMED_SCHEMA,
                                     f"stability '{entry.stability}' is not one of {', '.join(STABILITIES)}"))
        if entry.visibility is not None and entry.visibility not in VISIBILITIES:
            errors.append(_violation(op, path, ViolationKind.MALFORMED_SCHEMA,
                                     f"visibility '{entry.visibility}' is not one of {', '.join(VISIBILITIES)}"))
        if entry.since is not None and not VERSION_RE.match(entry.since):
            errors.append(_violation(op, path, ViolationKind.MALFORMED_SCHEMA,
                                     f"version '{entry.since}' is not major.minor.patch"))
    return errors


def validate(op: Operation, registry: TypeRegistry) -> list[Violation]:
    """Run every check on one operation.

    Returns the accumulated violations; an empty list means the operation is
    certified for emission.
    """
    violations = []
    violations.extend(check_path_parts(op))
    violations.extend(check_references(op, registry))
    violations.extend(check_field_contracts(op, registry))
    violations.extend(check_enums(op, registry))
    violations.extend(check_availability(op))
    return violations
