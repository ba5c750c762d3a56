"""Corpus compiler — parse, validate and emit phases over a schema corpus.

Phase 1 parses files concurrently and registers their types one unit at a
time, in sorted file order. Phase 2 closes the registry and validates every
operation concurrently. Phase 3 emits bindings for certified operations.
A failure in one unit is recorded as a violation and never stops the rest.
"""

import fnmatch
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, Optional, Union

from pydantic import BaseModel

from api_spec_gen.config import Settings
from api_spec_gen.errors import CyclicType, DuplicateType, MalformedSchema, UnresolvedType
from api_spec_gen.generator.binding import BindingEmitter
from api_spec_gen.generator.check import check_files
from api_spec_gen.generator.validator import validate
from api_spec_gen.parser.base import Operation, SchemaUnit, Violation, ViolationKind
from api_spec_gen.parser.detect import collect_schema_files
from api_spec_gen.parser.shared import load_doc_ids, load_shared_types
from api_spec_gen.parser.typescript import parse_typescript
from api_spec_gen.registry import TypeRegistry

logger = logging.getLogger(__name__)


class CorpusResult(BaseModel):
    """Outcome of one corpus run."""

    operations: dict[str, Operation] = {}
    violations: list[Violation] = []
    bindings: dict[str, dict[str, str]] = {}
    emit_errors: dict[str, str] = {}

    @property
    def certified(self) -> list[str]:
        failed = {v.operation for v in self.violations}
        return sorted(name for name in self.operations if name not in failed)

    @property
    def ok(self) -> bool:
        return not self.violations and not self.emit_errors

    def files(self) -> dict[str, str]:
        """Every emitted file, plus package ``__init__.py`` files for Python bindings."""
        files: dict[str, str] = {}
        for name in sorted(self.bindings):
            for path, content in self.bindings[name].items():
                if path not in self.emit_errors:
                    files[path] = content
        for path in list(files):
            if path.endswith(".py") and "/" in path:
                files.setdefault(f"{path.rsplit('/', 1)[0]}/__init__.py", "")
        return dict(sorted(files.items()))


def build_registry(settings: Settings) -> TypeRegistry:
    """A registry seeded with the builtins and every configured shared library."""
    shared = []
    for path in settings.shared_types:
        shared.extend(load_shared_types(path))
        logger.info("Loaded shared types from %s", path)
    return TypeRegistry(shared)


class CorpusCompiler:
    """Runs the three phases of a generation run over a set of schema files."""

    def __init__(self, registry: TypeRegistry, settings: Optional[Settings] = None):
        self.registry = registry
        self.settings = settings or Settings()
        self.doc_ids = load_doc_ids(self.settings.doc_ids) if self.settings.doc_ids else None

    def compile(self, paths: Iterable[Path], emit: bool = True) -> CorpusResult:
        files = collect_schema_files(list(paths))
        logger.info("Compiling %d schema file(s)", len(files))
        result = CorpusResult()

        units = self._parse(files, result)
        self._register(units, result)
        self.registry.close()

        self._resolve(result)
        self._validate(result)
        if emit:
            self._emit(result)

        logger.info(
            "%d operation(s), %d certified, %d violation(s)",
            len(result.operations),
            len(result.certified),
            len(result.violations),
        )
        return result

    def _selected(self, rest_name: str) -> bool:
        if not self.settings.only:
            return True
        return any(fnmatch.fnmatch(rest_name, pattern) for pattern in self.settings.only)

    # -- phase 1 ---------------------------------------------------------------

    def _parse_one(self, path: Path) -> Union[SchemaUnit, MalformedSchema]:
        try:
            return parse_typescript(path, self.doc_ids)
        except MalformedSchema as e:
            return e
        except (OSError, UnicodeDecodeError) as e:
            return MalformedSchema(str(path), [("", f"cannot read schema file: {e}")])

    def _parse(self, files: list[Path], result: CorpusResult) -> list[SchemaUnit]:
        with ThreadPoolExecutor(max_workers=self.settings.workers) as pool:
            outcomes = list(pool.map(self._parse_one, files))

        units = []
        for outcome in outcomes:
            if isinstance(outcome, SchemaUnit):
                units.append(outcome)
                continue
            if outcome.operation is not None and not self._selected(outcome.operation):
                continue
            logger.warning("Malformed schema unit %s", outcome.source)
            owner = outcome.operation or outcome.source
            for path, message in outcome.issues:
                result.violations.append(
                    Violation(operation=owner, path=path, kind=ViolationKind.MALFORMED_SCHEMA, message=message)
                )
        return units

    def _register(self, units: list[SchemaUnit], result: CorpusResult) -> None:
        sources: dict[str, str] = {}
        for unit in units:
            op = unit.operation
            owner = op.rest_name if op is not None else unit.source
            for definition in unit.types:
                try:
                    self.registry.register(definition.name, definition)
                except DuplicateType as e:
                    result.violations.append(
                        Violation(operation=owner, path=definition.name, kind=ViolationKind.DUPLICATE_TYPE,
                                  message=str(e))
                    )
            if op is None or not self._selected(op.rest_name):
                continue
            if op.rest_name in result.operations:
                result.violations.append(
                    Violation(operation=op.rest_name, path="", kind=ViolationKind.MALFORMED_SCHEMA,
                              message=f"rest name is already declared by {sources[op.rest_name]} ({unit.source})")
                )
                continue
            result.operations[op.rest_name] = op
            sources[op.rest_name] = unit.source

    # -- phase 2 ---------------------------------------------------------------

    def _resolve(self, result: CorpusResult) -> None:
        try:
            self.registry.resolve_all(result.operations.values())
        except (UnresolvedType, CyclicType) as e:
            logger.warning("Corpus does not fully resolve: %s", e)

    def _validate(self, result: CorpusResult) -> None:
        ops = [result.operations[name] for name in sorted(result.operations)]
        with ThreadPoolExecutor(max_workers=self.settings.workers) as pool:
            for violations in pool.map(lambda op: validate(op, self.registry), ops):
                result.violations.extend(violations)

    # -- phase 3 ---------------------------------------------------------------

    def _emit(self, result: CorpusResult) -> None:
        emitter = BindingEmitter(self.registry, self.settings.target)
        certified = [result.operations[name] for name in result.certified]
        with ThreadPoolExecutor(max_workers=self.settings.workers) as pool:
            for op, files in zip(certified, pool.map(emitter.emit, certified)):
                result.bindings[op.rest_name] = files
                errors = check_files(files, op.rest_name)
                for filename, error in errors.items():
                    logger.error("Emitted %s for %s is invalid: %s", filename, op.rest_name, error)
                result.emit_errors.update(errors)
