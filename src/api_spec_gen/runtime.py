"""Request runtime shared by generated bindings.

Generated modules carry a ``RequestSpec`` literal and delegate to
``build_request``, which checks that every required member is present,
picks the URL template and method, and serializes parameters.
"""

import re
from enum import Enum
from typing import Any, Literal, Mapping, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict

from api_spec_gen.errors import MissingRequiredField

PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")


def placeholders(path: str) -> list[str]:
    """Placeholder names in a URL template, in order of appearance."""
    return PLACEHOLDER_RE.findall(path)


class Route(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    methods: tuple[str, ...]


class ParamSpec(BaseModel):
    """One request member: ``name`` is the Python keyword, ``wire_name`` the schema name."""

    model_config = ConfigDict(frozen=True)

    name: str
    wire_name: str
    location: Literal["path", "query", "body"]
    required: bool = False


class RequestSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    rest_name: str
    routes: tuple[Route, ...]
    params: tuple[ParamSpec, ...] = ()
    body_kind: Optional[Literal["properties", "value"]] = None
    body_required: bool = False


class PreparedRequest(BaseModel):
    method: str
    path: str
    query: dict[str, str] = {}
    body: Any = None


def missing_fields(spec: RequestSpec, values: Mapping[str, Any]) -> list[str]:
    """Required members that are absent from ``values`` (None counts as absent).

    Required body members only count once the body is sent: it is required
    or at least one body member was given.
    """
    body_sent = spec.body_required or any(
        values.get(p.name) is not None for p in spec.params if p.location == "body"
    )
    return [
        p.name
        for p in spec.params
        if p.required and values.get(p.name) is None and (p.location != "body" or body_sent)
    ]


def build_request(spec: RequestSpec, values: Mapping[str, Any]) -> PreparedRequest:
    """Build a request from keyword values.

    Raises MissingRequiredField naming every missing required member.
    """
    params = {p.name: p for p in spec.params}
    unknown = sorted(set(values) - set(params))
    if unknown:
        raise TypeError(f"{spec.rest_name}() got unexpected parameter(s): {', '.join(unknown)}")

    supplied = {name: value for name, value in values.items() if value is not None}
    missing = missing_fields(spec, supplied)
    if missing:
        raise MissingRequiredField(spec.rest_name, missing)

    path_values = {
        params[name].wire_name: _text(value)
        for name, value in supplied.items()
        if params[name].location == "path"
    }
    route = _select_route(spec, path_values)
    path = PLACEHOLDER_RE.sub(lambda m: quote(path_values[m.group(1)], safe=",*"), route.path)

    query = {
        p.wire_name: _text(supplied[p.name])
        for p in spec.params
        if p.location == "query" and p.name in supplied
    }

    body = None
    body_params = [p for p in spec.params if p.location == "body"]
    if spec.body_kind == "properties":
        props = {p.wire_name: _serialize(supplied[p.name]) for p in body_params if p.name in supplied}
        if props or spec.body_required:
            body = props
    elif spec.body_kind == "value":
        for p in body_params:
            if p.name in supplied:
                body = _serialize(supplied[p.name])

    return PreparedRequest(
        method=_select_method(route, body is not None),
        path=path,
        query=query,
        body=body,
    )


def _select_route(spec: RequestSpec, path_values: Mapping[str, str]) -> Route:
    """The route using the most placeholders that are all supplied."""
    best = None
    for route in spec.routes:
        names = placeholders(route.path)
        if all(n in path_values for n in names):
            if best is None or len(names) > len(placeholders(best.path)):
                best = route
    if best is not None:
        return best

    by_wire = {p.wire_name: p.name for p in spec.params if p.location == "path"}
    shortfalls = [
        [by_wire.get(n, n) for n in placeholders(route.path) if n not in path_values]
        for route in spec.routes
    ]
    raise MissingRequiredField(spec.rest_name, min(shortfalls, key=len) if shortfalls else [])


def _select_method(route: Route, has_body: bool) -> str:
    methods = route.methods
    if not has_body and "GET" in methods:
        return "GET"
    if has_body and "GET" in methods and "POST" in methods:
        return "POST"
    return methods[0]


def _serialize(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


def _text(value: Any) -> str:
    """Path and query values: lists are comma-joined, booleans lowercase."""
    value = _serialize(value)
    if isinstance(value, list):
        return ",".join(_text(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
