from pathlib import Path

import pytest

from api_spec_gen.errors import MalformedSchema
from api_spec_gen.parser.base import ArrayOf, ClassDef, EnumDef, LiteralType, MapOf, NamedType, UnionOf
from api_spec_gen.parser.typescript import parse_type_expr, parse_typescript, parse_unit, qualified_name

FIXTURES = Path(__file__).parent / "fixtures"
SPECIFICATION = FIXTURES / "specification"


def _request(body: str, doc: str = "@rest_spec_name test.op") -> str:
    return f"/**\n * Test operation.\n * {doc}\n */\nexport interface Request extends RequestBase {{\n{body}\n}}\n"


class TestParseConnectorUpdatePipeline:
    def setup_method(self):
        path = SPECIFICATION / "connector" / "update_pipeline" / "ConnectorUpdatePipelineRequest.ts"
        self.unit = parse_typescript(path)
        self.op = self.unit.operation

    def test_operation_metadata(self):
        assert self.op.rest_name == "connector.update_pipeline"
        assert self.op.description.startswith("Update the connector pipeline.")
        assert self.op.doc_id == "connector-update-pipeline"
        assert self.op.bases == ["RequestBase"]

    def test_urls(self):
        assert len(self.op.urls) == 1
        assert self.op.urls[0].path == "/_connector/{connector_id}/_pipeline"
        assert self.op.urls[0].methods == ["PUT"]

    def test_path_parts(self):
        assert len(self.op.path_parts) == 1
        part = self.op.path_parts[0]
        assert part.name == "connector_id"
        assert part.type == NamedType(name="Id")
        assert part.required
        assert part.description == "The unique identifier of the connector to be updated"

    def test_body(self):
        body = self.op.body
        assert body.kind == "properties"
        assert body.codegen_name == "pipeline"
        assert body.description == "The connector pipeline object"
        assert [f.name for f in body.fields] == ["pipeline"]
        assert body.fields[0].type == NamedType(name="IngestPipelineParams")

    def test_availability(self):
        stack, serverless = self.op.availability
        assert (stack.target, stack.since, stack.stability, stack.visibility) == ("stack", "8.12.0", "beta", None)
        assert (serverless.target, serverless.stability, serverless.visibility) == ("serverless", "beta", "public")

    def test_no_inline_types(self):
        assert self.unit.types == []
        assert self.op.inline_types == []


class TestParsePutAnthropic:
    def setup_method(self):
        path = SPECIFICATION / "inference" / "put_anthropic" / "PutAnthropicRequest.ts"
        self.unit = parse_typescript(path)
        self.op = self.unit.operation

    def test_inline_types_are_qualified(self):
        names = [t.name for t in self.unit.types]
        assert names == [
            "inference.put_anthropic:AnthropicTaskType",
            "inference.put_anthropic:ServiceType",
            "inference.put_anthropic:AnthropicServiceSettings",
            "inference.put_anthropic:AnthropicTaskSettings",
        ]
        assert self.op.inline_types == names

    def test_references_are_qualified(self):
        fields = {f.name: f for f in self.op.body.fields}
        assert fields["service"].type == NamedType(name=qualified_name("inference.put_anthropic", "ServiceType"))
        assert fields["chunking_settings"].type == NamedType(name="InferenceChunkingSettings")
        assert not fields["chunking_settings"].required
        assert self.op.path_parts[0].type == NamedType(name="inference.put_anthropic:AnthropicTaskType")

    def test_field_annotations(self):
        fields = {f.name: f for f in self.op.body.fields}
        assert fields["chunking_settings"].annotations == {"ext_doc_id": "inference-chunking"}

    def test_enum_members(self):
        enum = self.unit.types[0]
        assert isinstance(enum, EnumDef)
        assert [m.name for m in enum.members] == ["completion"]

    def test_task_settings(self):
        settings = self.unit.types[3]
        assert isinstance(settings, ClassDef)
        fields = {f.name: f for f in settings.fields}
        assert fields["max_tokens"].required
        assert not fields["temperature"].required
        assert not fields["top_p"].required
        assert fields["temperature"].type == NamedType(name="float")

    def test_privileges(self):
        assert self.op.cluster_privileges == ["manage_inference"]
        assert self.op.index_privileges == []


class TestParsePutElasticsearch:
    def test_server_default_annotation(self):
        path = SPECIFICATION / "inference" / "put_elasticsearch" / "PutElasticsearchRequest.ts"
        unit = parse_typescript(path)
        settings = next(t for t in unit.types if t.name.endswith(":ElasticsearchTaskSettings"))
        field = settings.fields[0]
        assert field.name == "return_documents"
        assert not field.required
        assert field.server_default == "true"

    def test_enum_with_several_members(self):
        path = SPECIFICATION / "inference" / "put_elasticsearch" / "PutElasticsearchRequest.ts"
        unit = parse_typescript(path)
        task_type = unit.types[0]
        assert [m.name for m in task_type.members] == ["rerank", "sparse_embedding", "text_embedding"]


class TestParseLegacyUnits:
    def test_memory_stats(self):
        unit = parse_typescript(FIXTURES / "legacy" / "memory_stats.ts")
        assert unit.operation is None
        (cls,) = unit.types
        assert cls.name == "memory_stats"
        assert cls.annotations == {"namespace": "Cluster.NodesStats"}
        pools = cls.fields[-1]
        assert pools.name == "pools"
        assert pools.type == ArrayOf(item=MapOf(key=NamedType(name="string"), value=NamedType(name="j_v_m_pool")))

    def test_tokenizer_extends(self):
        unit = parse_typescript(FIXTURES / "legacy" / "edge_n_gram_tokenizer.ts")
        (cls,) = unit.types
        assert cls.bases == ["tokenizer_base"]
        assert cls.fields[2].type == ArrayOf(item=NamedType(name="TokenChar"))

    def test_legacy_request_is_a_plain_class(self):
        unit = parse_typescript(FIXTURES / "legacy" / "document_exists_request.ts")
        assert unit.operation is None
        (cls,) = unit.types
        assert [f.name for f in cls.fields][:2] == ["Parent", "Preference"]


class TestParseMalformed:
    def test_missing_methods(self):
        text = _request("urls: [{ path: '/_test' }]")
        with pytest.raises(MalformedSchema) as exc:
            parse_unit(text, "test.ts")
        assert exc.value.operation == "test.op"
        assert any("missing a method list" in msg for _, msg in exc.value.issues)

    def test_untyped_field(self):
        text = _request("urls: [{ path: '/_test', methods: ['GET'] }]\nbody: {\n  name\n  size: integer\n}")
        with pytest.raises(MalformedSchema) as exc:
            parse_unit(text, "test.ts")
        assert exc.value.issues == [("body.name", "field 'name' has no declared type")]

    def test_bad_doc_id(self):
        text = _request("urls: [{ path: '/_test', methods: ['GET'] }]", doc="@doc_id Not A Doc Id")
        with pytest.raises(MalformedSchema) as exc:
            parse_unit(text, "test.ts")
        assert exc.value.issues[0][0] == "doc_id"

    def test_doc_id_not_in_table(self):
        text = _request("urls: [{ path: '/_test', methods: ['GET'] }]", doc="@doc_id unknown-page")
        with pytest.raises(MalformedSchema) as exc:
            parse_unit(text, "test.ts", doc_ids={"known-page"})
        assert "doc id table" in exc.value.issues[0][1]

    def test_doc_id_in_table(self):
        text = _request("urls: [{ path: '/_test', methods: ['GET'] }]", doc="@doc_id known-page")
        unit = parse_unit(text, "test.ts", doc_ids={"known-page"})
        assert unit.operation.doc_id == "known-page"

    def test_missing_urls(self):
        with pytest.raises(MalformedSchema) as exc:
            parse_unit(_request("body: { a: string }"), "test.ts")
        assert ("urls", "request declares no URL templates") in exc.value.issues

    def test_every_issue_reported(self):
        text = _request("urls: [{ path: '/_test' }]\nquery_parameters: {\n  a\n  b\n}")
        with pytest.raises(MalformedSchema) as exc:
            parse_unit(text, "test.ts")
        assert len(exc.value.issues) == 3

    def test_syntax_error(self):
        with pytest.raises(MalformedSchema) as exc:
            parse_unit("export interface Broken {\n  a: string\n", "broken.ts")
        assert exc.value.source == "broken.ts"
        assert exc.value.operation is None

    def test_empty_enum_parses(self):
        unit = parse_unit("export enum Nothing {}\n", "nothing.ts")
        assert unit.types[0].members == []

    def test_duplicate_local_type(self):
        with pytest.raises(MalformedSchema) as exc:
            parse_unit("enum A { x }\nenum A { y }\n", "dup.ts")
        assert exc.value.issues == [("A", "type 'A' is declared more than once")]


class TestParseTypeExpr:
    def test_union_with_array(self):
        assert parse_type_expr("Id | Id[]") == UnionOf(items=[NamedType(name="Id"), ArrayOf(item=NamedType(name="Id"))])

    def test_dictionary(self):
        assert parse_type_expr("Dictionary<string, UserDefinedValue>") == MapOf(
            key=NamedType(name="string"), value=NamedType(name="UserDefinedValue")
        )

    def test_literals(self):
        expr = parse_type_expr("string | -1 | 0")
        assert expr.items[1:] == [LiteralType(value=-1), LiteralType(value=0)]

    def test_generic_named_type(self):
        assert parse_type_expr("Wrapper<Inner>") == NamedType(name="Wrapper", args=[NamedType(name="Inner")])

    def test_trailing_garbage(self):
        with pytest.raises(MalformedSchema):
            parse_type_expr("string string")
