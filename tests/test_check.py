from api_spec_gen.generator.check import check_binding, check_files, check_python, check_yaml

BINDING = """from __future__ import annotations

from api_spec_gen.runtime import RequestSpec, build_request

REQUEST_SPEC = RequestSpec(rest_name='a.b', routes=())


def build_a_b(*, name=None):
    return build_request(REQUEST_SPEC, {'name': name})
"""


class TestCheckPython:
    def test_valid_code(self):
        errors = check_python({"connector/update_pipeline.py": "from __future__ import annotations\nx = 1\n"})
        assert errors == {}

    def test_syntax_error(self):
        errors = check_python({"bad.py": "class Broken(\n"})
        assert "bad.py" in errors
        assert "SyntaxError" in errors["bad.py"]

    def test_duplicate_argument(self):
        errors = check_python({"a/b.py": "def build_a_b(*, name=None, name=None):\n    pass\n"})
        assert "duplicate argument" in errors["a/b.py"]

    def test_late_future_import(self):
        errors = check_python({"a/b.py": "x = 1\nfrom __future__ import annotations\n"})
        assert "a/b.py" in errors

    def test_skips_non_python(self):
        errors = check_python({"op.yaml": "key: value", "ok.py": "x = 1"})
        assert errors == {}

    def test_skips_empty_init(self):
        errors = check_python({"connector/__init__.py": ""})
        assert errors == {}


class TestCheckYaml:
    def test_valid_yaml(self):
        errors = check_yaml({"op.yaml": "rest_name: a.b\nroutes: []\n"})
        assert errors == {}

    def test_invalid_yaml(self):
        errors = check_yaml({"bad.yaml": "key: [invalid\n"})
        assert "bad.yaml" in errors

    def test_manifest_must_be_mapping(self):
        errors = check_yaml({"op.yaml": "- a\n- b\n"})
        assert errors == {"op.yaml": "manifest must be a mapping, got list"}


class TestCheckBinding:
    def test_complete_module(self):
        assert check_binding("a/b.py", BINDING, "a.b") is None

    def test_missing_builder(self):
        error = check_binding("a/b.py", BINDING, "a.c")
        assert error == "binding for 'a.c' does not define build_a_c"

    def test_missing_request_spec(self):
        content = BINDING.replace("REQUEST_SPEC = ", "SPEC = ")
        assert "REQUEST_SPEC" in check_binding("a/b.py", content, "a.b")

    def test_manifest_rest_name(self):
        assert check_binding("a/b.yaml", "rest_name: a.b\n", "a.b") is None
        assert "expected 'a.c'" in check_binding("a/b.yaml", "rest_name: a.b\n", "a.c")


class TestCheckFiles:
    def test_combines_checks(self):
        errors = check_files({"bad.py": "def (\n", "bad.yaml": "a: [b\n", "ok.py": "x = 1\n"})
        assert set(errors) == {"bad.py", "bad.yaml"}

    def test_binding_checks_with_rest_name(self):
        files = {"a/__init__.py": "", "a/b.py": BINDING, "a/c.py": "x = 1\n"}
        errors = check_files(files, "a.b")
        assert set(errors) == {"a/c.py"}

    def test_duplicate_argument_in_binding(self):
        content = BINDING.replace("name=None", "name=None, name=None", 1)
        errors = check_files({"a/b.py": content}, "a.b")
        assert errors["a/b.py"].startswith("SyntaxError: duplicate argument")
