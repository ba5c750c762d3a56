"""TypeScript schema unit parser.

Parses one schema file (a ``Request`` interface plus any inline
``enum``/``class``/``interface``/``type`` declarations) into a SchemaUnit.
Types declared inline by an operation unit are qualified with the owning
rest name (``inference.put_anthropic:ServiceType``) so that units declaring
the same local name never collide in the registry.
"""

import logging
import re
from pathlib import Path
from typing import Optional, Union

from api_spec_gen.errors import MalformedSchema
from .base import (
    AliasDef,
    ArrayOf,
    Availability,
    Body,
    ClassDef,
    EnumDef,
    EnumMember,
    FieldSpec,
    LiteralType,
    MapOf,
    NamedType,
    Operation,
    SchemaUnit,
    TypeDefinition,
    TypeExpr,
    UnionOf,
    UrlTemplate,
)
from .lexer import DocComment, LexError, Token, parse_doc, tokenize

logger = logging.getLogger(__name__)

DOC_ID_RE = re.compile(r"^[a-z0-9][a-z0-9_.\-]*$")
DOC_ID_TAGS = ("doc_id", "ext_doc_id")
MAP_GENERICS = {"map", "Dictionary", "Record", "AdditionalProperties", "SingleKeyDictionary"}
ARRAY_GENERICS = {"Array"}
OPERATION_TAGS = {"rest_spec_name", "availability", "cluster_privileges", "index_privileges", "doc_id"}
MODIFIERS = ("export", "declare", "abstract", "default")


class _SyntaxError(Exception):
    def __init__(self, token: Token, message: str):
        super().__init__(f"line {token.line}: {message}")


class _UnitParser:
    """Recursive-descent parser over the token stream of one unit."""

    def __init__(self, text: str, source: str, doc_ids: Optional[set[str]] = None):
        self.text = text
        self.source = source
        self.doc_ids = doc_ids
        self.tokens: list[Token] = []
        self.pos = 0
        self.issues: list[tuple[str, str]] = []

    # -- token helpers ----------------------------------------------------------

    def peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def next(self) -> Token:
        tok = self.peek()
        if tok.kind != "eof":
            self.pos += 1
        return tok

    def at(self, value: str) -> bool:
        tok = self.peek()
        return tok.kind in ("punct", "ident") and tok.value == value

    def accept(self, value: str) -> bool:
        if self.at(value):
            self.pos += 1
            return True
        return False

    def expect(self, value: str) -> Token:
        tok = self.peek()
        if not self.accept(value):
            raise _SyntaxError(tok, f"expected {value!r}, found {tok.value or 'end of file'!r}")
        return tok

    def expect_ident(self) -> str:
        tok = self.next()
        if tok.kind != "ident":
            raise _SyntaxError(tok, f"expected identifier, found {tok.value or 'end of file'!r}")
        return tok.value

    def skip_separators(self) -> None:
        while self.accept(";") or self.accept(","):
            pass

    def take_docs(self) -> Optional[DocComment]:
        doc = None
        while self.peek().kind == "doc":
            parsed = parse_doc(self.next().value)
            doc = parsed if doc is None else doc.merge(parsed)
        return doc

    # -- declarations ----------------------------------------------------------

    def parse(self) -> list[Union[Operation, TypeDefinition]]:
        self.tokens = tokenize(self.text)
        decls: list[Union[Operation, TypeDefinition]] = []
        while True:
            doc = self.take_docs()
            if self.peek().kind == "eof":
                break
            if self.accept("import"):
                self._skip_import()
                continue
            while any(self.accept(m) for m in MODIFIERS):
                pass
            if self.accept(";"):
                continue
            if self.accept("interface") or self.accept("class"):
                decls.append(self._composite(doc))
            elif self.accept("enum"):
                decls.append(self._enum(doc))
            elif self.accept("type"):
                decls.append(self._alias(doc))
            else:
                tok = self.peek()
                raise _SyntaxError(tok, f"unexpected {tok.value!r}")
        return decls

    def _skip_import(self) -> None:
        while self.peek().kind not in ("string", "eof"):
            self.next()
        self.next()
        self.accept(";")

    def _skip_type_params(self) -> None:
        if not self.accept("<"):
            return
        depth = 1
        while depth:
            tok = self.next()
            if tok.kind == "eof":
                raise _SyntaxError(tok, "unterminated type parameter list")
            if tok.value == "<":
                depth += 1
            elif tok.value == ">":
                depth -= 1

    def _base_list(self) -> list[str]:
        bases = []
        while True:
            expr = self._type_expr()
            if isinstance(expr, NamedType):
                bases.append(expr.name)
            if not self.accept(","):
                return bases

    def _composite(self, doc: Optional[DocComment]) -> Union[Operation, ClassDef]:
        name = self.expect_ident()
        self._skip_type_params()
        bases: list[str] = []
        if self.accept("extends"):
            bases = self._base_list()
        if self.accept("implements"):
            self._base_list()
        doc = doc or DocComment()
        if name == "Request" or doc.get("rest_spec_name") is not None:
            return self._request(doc, bases)
        fields = self._fields_block(name)
        return ClassDef(
            name=name,
            fields=fields,
            bases=bases,
            description=doc.description,
            annotations=self._annotations(doc, name),
        )

    def _enum(self, doc: Optional[DocComment]) -> EnumDef:
        name = self.expect_ident()
        self.expect("{")
        members = []
        while True:
            member_doc = self.take_docs()
            if self.accept("}"):
                break
            tok = self.next()
            if tok.kind not in ("ident", "string"):
                raise _SyntaxError(tok, f"expected enum member in '{name}', found {tok.value!r}")
            value = tok.value
            if self.accept("="):
                value = self.next().value
            self.skip_separators()
            members.append(
                EnumMember(
                    name=tok.value,
                    value=value,
                    description=member_doc.description if member_doc else "",
                )
            )
        doc = doc or DocComment()
        return EnumDef(
            name=name,
            members=members,
            description=doc.description,
            annotations=self._annotations(doc, name),
        )

    def _alias(self, doc: Optional[DocComment]) -> AliasDef:
        name = self.expect_ident()
        self._skip_type_params()
        self.expect("=")
        target = self._type_expr()
        self.skip_separators()
        return AliasDef(name=name, target=target, description=doc.description if doc else "")

    # -- fields ------------------------------------------------------------------

    def _fields_block(self, owner: str) -> list[FieldSpec]:
        self.expect("{")
        fields = []
        while True:
            doc = self.take_docs()
            if self.accept("}"):
                return fields
            field = self._field(owner, doc)
            if field is not None:
                fields.append(field)

    def _field(self, owner: str, doc: Optional[DocComment]) -> Optional[FieldSpec]:
        tok = self.next()
        if tok.kind not in ("ident", "string"):
            raise _SyntaxError(tok, f"expected field name in '{owner}', found {tok.value or 'end of file'!r}")
        name = tok.value
        optional = self.accept("?")
        if not self.accept(":"):
            self.issues.append((f"{owner}.{name}", f"field '{name}' has no declared type"))
            self.skip_separators()
            return None
        type_ = self._type_expr()
        self.skip_separators()
        doc = doc or DocComment()
        return FieldSpec(
            name=name,
            type=type_,
            required=not optional,
            description=doc.description,
            annotations=self._annotations(doc, f"{owner}.{name}"),
        )

    def _annotations(self, doc: DocComment, path: str, skip: set[str] = frozenset()) -> dict[str, str]:
        annotations: dict[str, str] = {}
        for tag, value in doc.tags:
            if tag in skip:
                continue
            if tag in DOC_ID_TAGS:
                self._check_doc_id(path, tag, value)
            if tag in annotations:
                annotations[tag] = f"{annotations[tag]}\n{value}"
            else:
                annotations[tag] = value
        return annotations

    def _check_doc_id(self, path: str, tag: str, value: str) -> None:
        if not DOC_ID_RE.match(value):
            self.issues.append((path, f"@{tag} '{value}' is not a valid doc id"))
        elif self.doc_ids is not None and value not in self.doc_ids:
            self.issues.append((path, f"@{tag} '{value}' is not defined in the doc id table"))

    # -- request interface --------------------------------------------------------

    def _request(self, doc: DocComment, bases: list[str]) -> Operation:
        rest_name = doc.get("rest_spec_name")
        if not rest_name:
            self.issues.append(("", "request is missing @rest_spec_name"))
            rest_name = Path(self.source).stem
        urls: list[UrlTemplate] = []
        has_urls = False
        path_parts: list[FieldSpec] = []
        query: list[FieldSpec] = []
        body = None

        self.expect("{")
        while True:
            member_doc = self.take_docs()
            if self.accept("}"):
                break
            key = self.expect_ident()
            optional = self.accept("?")
            self.expect(":")
            if key == "urls":
                has_urls = True
                urls = self._urls(self._literal())
            elif key == "path_parts":
                path_parts = self._fields_block("path_parts")
            elif key == "query_parameters":
                query = self._fields_block("query_parameters")
            elif key == "body":
                body = self._body(member_doc or DocComment(), optional)
            else:
                self.issues.append((key, f"unknown request member '{key}'"))
                if self.at("{"):
                    self._fields_block(key)
                else:
                    self._type_expr()
            self.skip_separators()

        if not has_urls:
            self.issues.append(("urls", "request declares no URL templates"))
        return Operation(
            rest_name=rest_name,
            urls=urls,
            path_parts=path_parts,
            query_parameters=query,
            body=body,
            availability=self._availability(doc.get_all("availability")),
            cluster_privileges=_split_list(doc.get("cluster_privileges")),
            index_privileges=_split_list(doc.get("index_privileges")),
            doc_id=self._operation_doc_id(doc),
            description=doc.description,
            bases=bases,
            annotations=self._annotations(doc, "", skip=OPERATION_TAGS),
            source=self.source,
        )

    def _operation_doc_id(self, doc: DocComment) -> Optional[str]:
        doc_id = doc.get("doc_id")
        if doc_id is not None:
            self._check_doc_id("doc_id", "doc_id", doc_id)
        return doc_id

    def _literal(self):
        """Parse a JS object/array/scalar literal (used for ``urls``)."""
        tok = self.next()
        if tok.kind == "punct" and tok.value == "{":
            obj = {}
            while True:
                self.take_docs()
                if self.accept("}"):
                    return obj
                key = self.next()
                if key.kind not in ("ident", "string"):
                    raise _SyntaxError(key, f"expected object key, found {key.value or 'end of file'!r}")
                self.expect(":")
                obj[key.value] = self._literal()
                self.skip_separators()
        if tok.kind == "punct" and tok.value == "[":
            items = []
            while True:
                self.take_docs()
                if self.accept("]"):
                    return items
                items.append(self._literal())
                self.skip_separators()
        if tok.kind in ("string", "number", "ident"):
            return tok.value
        raise _SyntaxError(tok, f"unexpected {tok.value or 'end of file'!r} in literal")

    def _urls(self, value) -> list[UrlTemplate]:
        if not isinstance(value, list) or not value:
            self.issues.append(("urls", "at least one URL template is required"))
            return []
        urls = []
        for i, entry in enumerate(value):
            path = entry.get("path") if isinstance(entry, dict) else None
            if not isinstance(path, str) or not path:
                self.issues.append((f"urls[{i}]", "URL template has no path"))
                continue
            methods = entry.get("methods")
            if not isinstance(methods, list) or not methods:
                self.issues.append((f"urls[{i}]", f"URL template '{path}' is missing a method list"))
                continue
            urls.append(UrlTemplate(path=path, methods=[str(m).upper() for m in methods]))
        return urls

    def _body(self, doc: DocComment, optional: bool) -> Body:
        codegen_name = doc.get("codegen_name")
        if self.at("{"):
            return Body(
                kind="properties",
                fields=self._fields_block("body"),
                required=not optional,
                codegen_name=codegen_name,
                description=doc.description,
            )
        return Body(
            kind="value",
            value=self._type_expr(),
            required=not optional,
            codegen_name=codegen_name,
            description=doc.description,
        )

    def _availability(self, entries: list[str]) -> list[Availability]:
        result = []
        for entry in entries:
            parts = entry.split()
            if not parts or "=" in parts[0]:
                self.issues.append(("availability", f"availability entry '{entry}' names no deployment target"))
                continue
            target, values = parts[0], {}
            for part in parts[1:]:
                key, sep, value = part.partition("=")
                if not sep or not value:
                    self.issues.append((f"availability.{target}", f"malformed availability entry '{part}'"))
                    continue
                values[key] = value
            result.append(
                Availability(
                    target=target,
                    stability=values.get("stability"),
                    visibility=values.get("visibility"),
                    since=values.get("since"),
                )
            )
        return result

    # -- type expressions ---------------------------------------------------------

    def _type_expr(self) -> TypeExpr:
        self.accept("|")
        items = [self._postfix()]
        while self.accept("|"):
            items.append(self._postfix())
        return items[0] if len(items) == 1 else UnionOf(items=items)

    def _postfix(self) -> TypeExpr:
        expr = self._primary()
        while self.at("[") and self.peek(1).value == "]":
            self.pos += 2
            expr = ArrayOf(item=expr)
        return expr

    def _primary(self) -> TypeExpr:
        tok = self.next()
        if tok.kind == "string":
            return LiteralType(value=tok.value)
        if tok.kind == "number":
            return LiteralType(value=float(tok.value) if "." in tok.value else int(tok.value))
        if tok.kind == "punct" and tok.value == "(":
            expr = self._type_expr()
            self.expect(")")
            return expr
        if tok.kind != "ident":
            raise _SyntaxError(tok, f"expected a type, found {tok.value or 'end of file'!r}")
        name = tok.value
        while self.accept("."):
            name = f"{name}.{self.expect_ident()}"
        args: list[TypeExpr] = []
        if self.accept("<"):
            args.append(self._type_expr())
            while self.accept(","):
                args.append(self._type_expr())
            self.expect(">")
        if name in MAP_GENERICS and len(args) == 2:
            return MapOf(key=args[0], value=args[1])
        if name in ARRAY_GENERICS and len(args) == 1:
            return ArrayOf(item=args[0])
        return NamedType(name=name, args=args)


def _split_list(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


# -- qualification -----------------------------------------------------------------


def _qualify_expr(expr: TypeExpr, mapping: dict[str, str]) -> TypeExpr:
    if isinstance(expr, NamedType):
        return NamedType(
            name=mapping.get(expr.name, expr.name),
            args=[_qualify_expr(a, mapping) for a in expr.args],
        )
    if isinstance(expr, ArrayOf):
        return ArrayOf(item=_qualify_expr(expr.item, mapping))
    if isinstance(expr, MapOf):
        return MapOf(key=_qualify_expr(expr.key, mapping), value=_qualify_expr(expr.value, mapping))
    if isinstance(expr, UnionOf):
        return UnionOf(items=[_qualify_expr(i, mapping) for i in expr.items])
    return expr


def _qualify_fields(fields: list[FieldSpec], mapping: dict[str, str]) -> list[FieldSpec]:
    return [f.model_copy(update={"type": _qualify_expr(f.type, mapping)}) for f in fields]


def _qualify_definition(defn: TypeDefinition, mapping: dict[str, str]) -> TypeDefinition:
    name = mapping.get(defn.name, defn.name)
    if isinstance(defn, ClassDef):
        return defn.model_copy(
            update={
                "name": name,
                "fields": _qualify_fields(defn.fields, mapping),
                "bases": [mapping.get(b, b) for b in defn.bases],
            }
        )
    if isinstance(defn, AliasDef):
        return defn.model_copy(update={"name": name, "target": _qualify_expr(defn.target, mapping)})
    return defn.model_copy(update={"name": name})


def _qualify_operation(op: Operation, mapping: dict[str, str], inline: list[str]) -> Operation:
    body = op.body
    if body is not None:
        body = body.model_copy(
            update={
                "fields": _qualify_fields(body.fields, mapping),
                "value": _qualify_expr(body.value, mapping) if body.value is not None else None,
            }
        )
    return op.model_copy(
        update={
            "path_parts": _qualify_fields(op.path_parts, mapping),
            "query_parameters": _qualify_fields(op.query_parameters, mapping),
            "body": body,
            "bases": [mapping.get(b, b) for b in op.bases],
            "inline_types": inline,
        }
    )


def qualified_name(rest_name: str, local_name: str) -> str:
    """Registry name of a type declared inline by an operation."""
    return f"{rest_name}:{local_name}"


# -- public API ----------------------------------------------------------------------


def parse_unit(text: str, source: str = "<string>", doc_ids: Optional[set[str]] = None) -> SchemaUnit:
    """Parse the text of one schema unit.

    Raises MalformedSchema listing every issue found in the unit.
    """
    parser = _UnitParser(text, source, doc_ids)
    try:
        decls = parser.parse()
    except (LexError, _SyntaxError) as e:
        raise MalformedSchema(source, parser.issues + [("", str(e))]) from e

    operations = [d for d in decls if isinstance(d, Operation)]
    types = [d for d in decls if not isinstance(d, Operation)]
    if len(operations) > 1:
        parser.issues.append(("", "unit declares more than one request"))

    seen: set[str] = set()
    for defn in types:
        if defn.name in seen:
            parser.issues.append((defn.name, f"type '{defn.name}' is declared more than once"))
        seen.add(defn.name)

    operation = operations[0] if operations else None
    if operation is not None:
        mapping = {t.name: qualified_name(operation.rest_name, t.name) for t in types}
        types = [_qualify_definition(t, mapping) for t in types]
        operation = _qualify_operation(operation, mapping, [t.name for t in types])

    if parser.issues:
        raise MalformedSchema(
            source,
            parser.issues,
            operation=operation.rest_name if operation else None,
        )

    logger.debug(
        "Parsed %s: operation=%s, %d type(s)",
        source,
        operation.rest_name if operation else None,
        len(types),
    )
    return SchemaUnit(source=source, operation=operation, types=types)


def parse_typescript(file_path: Path, doc_ids: Optional[set[str]] = None) -> SchemaUnit:
    """Parse a TypeScript schema file into a SchemaUnit."""
    text = file_path.read_text(encoding="utf-8")
    return parse_unit(text, str(file_path), doc_ids)


def parse_type_expr(text: str) -> TypeExpr:
    """Parse a standalone type expression such as ``map<string, Foo>[]``."""
    parser = _UnitParser(text, "<type>")
    try:
        parser.tokens = tokenize(text)
        expr = parser._type_expr()
        tok = parser.peek()
        if tok.kind != "eof":
            raise _SyntaxError(tok, f"unexpected {tok.value!r} after type")
    except (LexError, _SyntaxError) as e:
        raise MalformedSchema("<type>", [("", f"invalid type expression '{text}': {e}")]) from e
    return expr
