from pathlib import Path

import pytest

from api_spec_gen.errors import CyclicType, DuplicateType, RegistryClosed, UnresolvedType
from api_spec_gen.parser.base import (
    AliasDef,
    ArrayOf,
    Body,
    ClassDef,
    EnumDef,
    EnumMember,
    FieldSpec,
    MapOf,
    NamedType,
    Operation,
    UnionOf,
    UrlTemplate,
)
from api_spec_gen.parser.shared import load_shared_types
from api_spec_gen.registry import ResolutionState, TypeRegistry, same_structure

FIXTURES = Path(__file__).parent / "fixtures"


def _field(name: str, type_name: str, required: bool = True) -> FieldSpec:
    return FieldSpec(name=name, type=NamedType(name=type_name), required=required)


def _op(*fields: FieldSpec) -> Operation:
    return Operation(
        rest_name="test.op",
        urls=[UrlTemplate(path="/_test", methods=["POST"])],
        body=Body(kind="properties", fields=list(fields)),
    )


class TestRegistration:
    def test_builtins_are_seeded(self):
        registry = TypeRegistry()
        assert "string" in registry
        assert registry.is_shared("Id")
        assert isinstance(registry.resolve("RequestBase"), ClassDef)

    def test_without_builtins(self):
        assert len(TypeRegistry(builtins=False)) == 0

    def test_register_and_resolve(self):
        registry = TypeRegistry()
        defn = ClassDef(name="Pipeline", fields=[_field("name", "string")])
        registry.register("Pipeline", defn)
        assert registry.resolve("Pipeline") == defn
        assert not registry.is_shared("Pipeline")

    def test_identical_registration_is_idempotent(self):
        registry = TypeRegistry()
        registry.register("Level", EnumDef(name="Level", members=[EnumMember(name="low", value="low")]))
        registry.register(
            "Level",
            EnumDef(name="Level", members=[EnumMember(name="low", value="low")], description="Reworded docs."),
        )
        assert registry.get("Level").description == ""

    def test_conflicting_registration(self):
        registry = TypeRegistry()
        registry.register("Level", EnumDef(name="Level", members=[EnumMember(name="low", value="low")]))
        with pytest.raises(DuplicateType) as exc:
            registry.register("Level", EnumDef(name="Level", members=[EnumMember(name="high", value="high")]))
        assert exc.value.name == "Level"

    def test_corpus_cannot_redefine_shared_type(self):
        registry = TypeRegistry()
        with pytest.raises(DuplicateType) as exc:
            registry.register("Id", ClassDef(name="Id"))
        assert "shared type" in str(exc.value)

    def test_closed_registry(self):
        registry = TypeRegistry()
        registry.close()
        assert registry.closed
        with pytest.raises(RegistryClosed):
            registry.register("Late", ClassDef(name="Late"))

    def test_seed_shared_library(self):
        registry = TypeRegistry(load_shared_types(FIXTURES / "shared_types.yaml"))
        assert registry.is_shared("RateLimitSetting")
        assert registry.state("RateLimitSetting") == ResolutionState.RESOLVED

    def test_same_structure_ignores_descriptions(self):
        a = ClassDef(name="A", fields=[FieldSpec(name="x", type=NamedType(name="string"), description="one")])
        b = ClassDef(name="A", fields=[FieldSpec(name="x", type=NamedType(name="string"), description="two")])
        assert same_structure(a, b)


class TestResolution:
    def test_unresolved_state(self):
        assert TypeRegistry().state("Missing") == ResolutionState.UNRESOLVED

    def test_resolve_missing(self):
        with pytest.raises(UnresolvedType) as exc:
            TypeRegistry().resolve("Missing")
        assert exc.value.names == ["Missing"]

    def test_resolve_all_reports_every_missing_name(self):
        registry = TypeRegistry()
        registry.register("Outer", ClassDef(name="Outer", fields=[_field("inner", "Inner")]))
        registry.close()
        op = _op(_field("outer", "Outer"), _field("other", "Other"))
        with pytest.raises(UnresolvedType) as exc:
            registry.resolve_all([op])
        assert exc.value.names == ["Inner", "Other"]

    def test_resolve_all(self):
        registry = TypeRegistry(load_shared_types(FIXTURES / "shared_types.yaml"))
        registry.close()
        resolved = registry.resolve_all([_op(_field("pipeline", "IngestPipelineParams"))])
        assert set(resolved) == {"IngestPipelineParams", "boolean", "string"}

    def test_walk_paths(self):
        registry = TypeRegistry()
        registry.register("Outer", ClassDef(name="Outer", fields=[_field("inner", "Inner")]))
        walked = {name: path for path, name, _ in registry.walk(_op(_field("outer", "Outer")).type_roots())}
        assert walked == {"Outer": "body.outer", "Inner": "Outer.inner"}

    def test_aliases_are_followed(self):
        registry = TypeRegistry()
        types = registry.reachable([("body.ids", NamedType(name="Ids"))])
        assert set(types) == {"Ids", "Id", "string"}


class TestCycles:
    def test_required_mutual_containment(self):
        registry = TypeRegistry()
        registry.register("A", ClassDef(name="A", fields=[_field("b", "B")]))
        registry.register("B", ClassDef(name="B", fields=[_field("a", "A")]))
        registry.close()
        assert registry.cycles() == [("A", "B")]
        assert registry.state("A") == ResolutionState.CYCLIC
        with pytest.raises(CyclicType) as exc:
            registry.resolve_all([_op(_field("a", "A"))])
        assert exc.value.cycle == ("A", "B")

    def test_self_reference(self):
        registry = TypeRegistry()
        registry.register("Node", ClassDef(name="Node", fields=[_field("next", "Node")]))
        assert registry.cycles() == [("Node",)]

    def test_optional_field_breaks_cycle(self):
        registry = TypeRegistry()
        registry.register("Node", ClassDef(name="Node", fields=[_field("next", "Node", required=False)]))
        assert registry.cycles() == []
        assert registry.state("Node") == ResolutionState.RESOLVED

    def test_array_breaks_cycle(self):
        registry = TypeRegistry()
        registry.register(
            "Node",
            ClassDef(name="Node", fields=[FieldSpec(name="children", type=ArrayOf(item=NamedType(name="Node")))]),
        )
        assert registry.cycles() == []

    def test_map_breaks_cycle(self):
        registry = TypeRegistry()
        registry.register(
            "Node",
            ClassDef(name="Node", fields=[
                FieldSpec(name="children", type=MapOf(key=NamedType(name="string"), value=NamedType(name="Node"))),
            ]),
        )
        assert registry.cycles() == []

    def test_union_is_by_value(self):
        registry = TypeRegistry()
        registry.register(
            "Query",
            ClassDef(name="Query", fields=[
                FieldSpec(name="inner", type=UnionOf(items=[NamedType(name="string"), NamedType(name="Query")])),
            ]),
        )
        assert registry.cycles() == [("Query",)]

    def test_alias_cycle(self):
        registry = TypeRegistry()
        registry.register("X", AliasDef(name="X", target=NamedType(name="Y")))
        registry.register("Y", AliasDef(name="Y", target=NamedType(name="X")))
        assert registry.cycles() == [("X", "Y")]

    def test_cycle_not_reached_by_operation(self):
        registry = TypeRegistry()
        registry.register("Node", ClassDef(name="Node", fields=[_field("next", "Node")]))
        registry.close()
        resolved = registry.resolve_all([_op(_field("name", "string"))])
        assert "Node" not in resolved
