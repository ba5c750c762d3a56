"""Tokenizer and JSDoc comment parsing for TypeScript schema units."""

import re
from dataclasses import dataclass, field

TOKEN_RE = re.compile(
    r"""
      (?P<doc>/\*\*(?!/).*?\*/)
    | (?P<comment>/\*.*?\*/|//[^\n]*)
    | (?P<string>'(?:[^'\\\n]|\\.)*'|"(?:[^"\\\n]|\\.)*")
    | (?P<number>-?\d+(?:\.\d+)?)
    | (?P<ident>[A-Za-z_$][\w$]*)
    | (?P<punct>[{}\[\]()<>:;,?|=.&*])
    | (?P<ws>\s+)
    """,
    re.VERBOSE | re.DOTALL,
)

# Legacy single-line tags such as /**namespace:Cluster.NodesStats */
LEGACY_TAG_RE = re.compile(r"^([a-z_]+):(\S+)$")


@dataclass(frozen=True)
class Token:
    kind: str  # doc / string / number / ident / punct / eof
    value: str
    line: int


class LexError(ValueError):
    def __init__(self, message: str, line: int):
        self.line = line
        super().__init__(f"line {line}: {message}")


def tokenize(text: str) -> list[Token]:
    """Split schema text into tokens, dropping plain comments and whitespace."""
    tokens: list[Token] = []
    pos = 0
    line = 1
    while pos < len(text):
        match = TOKEN_RE.match(text, pos)
        if match is None:
            raise LexError(f"unexpected character {text[pos]!r}", line)
        kind = match.lastgroup
        value = match.group()
        if kind not in ("ws", "comment"):
            if kind == "string":
                value = _unquote(value)
            tokens.append(Token(kind, value, line))
        line += match.group().count("\n")
        pos = match.end()
    tokens.append(Token("eof", "", line))
    return tokens


def _unquote(literal: str) -> str:
    return re.sub(r"\\(.)", r"\1", literal[1:-1])


@dataclass
class DocComment:
    """Description text plus ``@tag value`` pairs from one or more JSDoc blocks."""

    description: str = ""
    tags: list[tuple[str, str]] = field(default_factory=list)

    def merge(self, other: "DocComment") -> "DocComment":
        parts = [p for p in (self.description, other.description) if p]
        return DocComment("\n".join(parts), self.tags + other.tags)

    def get(self, name: str) -> str | None:
        for tag, value in self.tags:
            if tag == name:
                return value
        return None

    def get_all(self, name: str) -> list[str]:
        return [value for tag, value in self.tags if tag == name]


def parse_doc(raw: str) -> DocComment:
    """Parse a ``/** ... */`` block.

    Lines starting with ``@`` become tags, everything else is description.
    """
    body = raw[3:-2]
    description: list[str] = []
    tags: list[tuple[str, str]] = []
    for line in body.splitlines():
        text = re.sub(r"^\s*\*?\s?", "", line).rstrip()
        stripped = text.strip()
        if not stripped:
            if description and description[-1] != "":
                description.append("")
            continue
        if stripped.startswith("@"):
            name, _, value = stripped[1:].partition(" ")
            tags.append((name, value.strip()))
            continue
        legacy = LEGACY_TAG_RE.match(stripped)
        if legacy:
            tags.append((legacy.group(1), legacy.group(2)))
            continue
        description.append(stripped)
    return DocComment("\n".join(description).strip(), tags)
