"""Type registry — canonical owner of every named type definition.

The registry has two partitions: a shared partition seeded before a corpus
run (builtins plus shared-type libraries) and a corpus partition populated
while schema units are parsed. Registration is serialized by a lock; once
``close()`` is called the registry is read-only and safe to query from any
number of threads.
"""

import logging
import threading
from collections import deque
from enum import Enum
from typing import Iterable, Iterator, Optional

from api_spec_gen.errors import CyclicType, DuplicateType, RegistryClosed, UnresolvedType
from api_spec_gen.parser.base import (
    AliasDef,
    ClassDef,
    NamedType,
    Operation,
    TypeDefinition,
    TypeExpr,
    UnionOf,
)
from api_spec_gen.parser.shared import builtin_types

logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    CYCLIC = "cyclic"


def _structure(value):
    """Definition dump without documentation, for structural comparison."""
    if isinstance(value, dict):
        return {k: _structure(v) for k, v in value.items() if k != "description"}
    if isinstance(value, list):
        return [_structure(v) for v in value]
    return value


def same_structure(a: TypeDefinition, b: TypeDefinition) -> bool:
    return _structure(a.model_dump()) == _structure(b.model_dump())


def _by_value_names(expr: TypeExpr) -> set[str]:
    # arrays, maps and generic arguments break containment cycles
    if isinstance(expr, NamedType):
        return {expr.name}
    if isinstance(expr, UnionOf):
        names: set[str] = set()
        for item in expr.items:
            names |= _by_value_names(item)
        return names
    return set()


def references(definition: TypeDefinition) -> list[tuple[str, TypeExpr]]:
    """(member path, type expression) pairs a definition refers to."""
    if isinstance(definition, ClassDef):
        refs = [(f.name, f.type) for f in definition.fields]
        refs.extend(("extends", NamedType(name=b)) for b in definition.bases)
        return refs
    if isinstance(definition, AliasDef):
        return [("alias", definition.target)]
    return []


class TypeRegistry:
    """Resolves type names into definitions and analyses containment cycles."""

    def __init__(self, shared: Iterable[TypeDefinition] = (), builtins: bool = True):
        self._shared: dict[str, TypeDefinition] = {}
        self._corpus: dict[str, TypeDefinition] = {}
        self._lock = threading.Lock()
        self._closed = False
        self._cycles: Optional[list[tuple[str, ...]]] = None
        if builtins:
            for definition in builtin_types():
                self.seed(definition)
        for definition in shared:
            self.seed(definition)

    # -- registration ----------------------------------------------------------

    def seed(self, definition: TypeDefinition) -> None:
        """Add a definition to the read-only shared partition."""
        with self._lock:
            self._check_open()
            existing = self._shared.get(definition.name)
            if existing is not None:
                if same_structure(existing, definition):
                    return
                raise DuplicateType(definition.name, "conflicts with a shared type")
            self._shared[definition.name] = definition

    def register(self, name: str, definition: TypeDefinition) -> None:
        """Add a corpus definition.

        Re-registering a structurally identical definition is a no-op.
        """
        with self._lock:
            self._check_open()
            existing = self._shared.get(name) or self._corpus.get(name)
            if existing is not None:
                if same_structure(existing, definition):
                    logger.debug("Type %s already registered with the same structure", name)
                    return
                where = "a shared type" if name in self._shared else "a corpus type"
                raise DuplicateType(name, f"conflicts with {where}")
            self._corpus[name] = definition
            self._cycles = None

    def close(self) -> None:
        """End the registration phase."""
        with self._lock:
            self._closed = True
        logger.info(
            "Type registry closed: %d shared, %d corpus type(s)", len(self._shared), len(self._corpus)
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise RegistryClosed("type registry is closed for registration")

    # -- lookup ----------------------------------------------------------------

    def get(self, name: str) -> Optional[TypeDefinition]:
        return self._shared.get(name) or self._corpus.get(name)

    def resolve(self, name: str) -> TypeDefinition:
        definition = self.get(name)
        if definition is None:
            raise UnresolvedType([name])
        return definition

    def __contains__(self, name: str) -> bool:
        return name in self._shared or name in self._corpus

    def __len__(self) -> int:
        return len(self._shared) + len(self._corpus)

    def names(self) -> list[str]:
        return sorted(set(self._shared) | set(self._corpus))

    def is_shared(self, name: str) -> bool:
        return name in self._shared

    def state(self, name: str) -> ResolutionState:
        if name not in self:
            return ResolutionState.UNRESOLVED
        if any(name in cycle for cycle in self.cycles()):
            return ResolutionState.CYCLIC
        return ResolutionState.RESOLVED

    # -- traversal --------------------------------------------------------------

    def walk(self, roots: Iterable[tuple[str, TypeExpr]]) -> Iterator[tuple[str, str, Optional[TypeDefinition]]]:
        """Yield (path, name, definition or None) for every reachable reference.

        Each name is yielded once, with the path of its first occurrence.
        """
        queue = deque(roots)
        seen: set[str] = set()
        while queue:
            path, expr = queue.popleft()
            for name in expr.names():
                if name in seen:
                    continue
                seen.add(name)
                definition = self.get(name)
                yield path, name, definition
                if definition is not None:
                    for member, sub in references(definition):
                        queue.append((f"{name}.{member}", sub))

    def reachable(self, roots: Iterable[tuple[str, TypeExpr]]) -> dict[str, TypeDefinition]:
        return {name: d for _, name, d in self.walk(roots) if d is not None}

    def operation_types(self, operation: Operation) -> dict[str, TypeDefinition]:
        """Every resolved definition an operation depends on."""
        return self.reachable(operation.type_roots())

    def resolve_all(self, operations: Iterable[Operation]) -> dict[str, TypeDefinition]:
        """Resolve every reference reachable from the given operations.

        Raises UnresolvedType naming every dangling reference, or CyclicType
        for the first by-value containment cycle that an operation reaches.
        """
        resolved: dict[str, TypeDefinition] = {}
        missing: list[str] = []
        for operation in operations:
            for _, name, definition in self.walk(operation.type_roots()):
                if definition is None:
                    missing.append(name)
                else:
                    resolved[name] = definition
        if missing:
            raise UnresolvedType(missing)
        for cycle in self.cycles():
            if any(name in resolved for name in cycle):
                raise CyclicType(cycle)
        return resolved

    # -- cycle analysis ----------------------------------------------------------

    def _edges(self) -> dict[str, list[str]]:
        edges = {}
        for name in self.names():
            definition = self.get(name)
            targets: set[str] = set()
            if isinstance(definition, ClassDef):
                targets.update(definition.bases)
                for f in definition.fields:
                    if f.required:
                        targets |= _by_value_names(f.type)
            elif isinstance(definition, AliasDef):
                targets |= _by_value_names(definition.target)
            edges[name] = sorted(t for t in targets if t in self)
        return edges

    def cycles(self) -> list[tuple[str, ...]]:
        """Every by-value containment cycle, one representative path per component."""
        if self._cycles is not None:
            return self._cycles
        edges = self._edges()
        cycles = []
        for component in _strongly_connected(edges):
            start = min(component)
            if len(component) > 1 or start in edges[start]:
                cycles.append(_cycle_path(start, component, edges))
        cycles.sort()
        if self._closed:
            self._cycles = cycles
        return cycles


def _strongly_connected(edges: dict[str, list[str]]) -> list[set[str]]:
    """Tarjan's algorithm."""
    index: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    stack: list[str] = []
    on_stack: set[str] = set()
    components: list[set[str]] = []

    def visit(node: str) -> None:
        index[node] = lowlink[node] = len(index)
        stack.append(node)
        on_stack.add(node)
        for succ in edges[node]:
            if succ not in index:
                visit(succ)
                lowlink[node] = min(lowlink[node], lowlink[succ])
            elif succ in on_stack:
                lowlink[node] = min(lowlink[node], index[succ])
        if lowlink[node] == index[node]:
            component = set()
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.add(member)
                if member == node:
                    break
            components.append(component)

    for node in edges:
        if node not in index:
            visit(node)
    return components


def _cycle_path(start: str, component: set[str], edges: dict[str, list[str]]) -> tuple[str, ...]:
    """Shortest path from start back to itself inside one component."""
    parent: dict[str, str] = {}
    queue = deque([start])
    seen = {start}
    while queue:
        node = queue.popleft()
        for succ in edges[node]:
            if succ not in component:
                continue
            if succ == start:
                path = [node]
                while path[-1] != start:
                    path.append(parent[path[-1]])
                return tuple(reversed(path))
            if succ not in seen:
                seen.add(succ)
                parent[succ] = node
                queue.append(succ)
    return (start,)
