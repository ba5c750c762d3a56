"""Error kinds raised while loading, validating and using API schemas."""


class SchemaError(Exception):
    """Base class for all schema errors."""


class DuplicateType(SchemaError):
    """A type name was registered twice with conflicting definitions."""

    def __init__(self, name: str, reason: str = "conflicting definition"):
        self.name = name
        super().__init__(f"type '{name}' is already registered ({reason})")


class UnresolvedType(SchemaError):
    """One or more type references do not name a registered type."""

    def __init__(self, names: list[str]):
        self.names = sorted(set(names))
        super().__init__(f"unresolved type(s): {', '.join(self.names)}")


class CyclicType(SchemaError):
    """A composite type contains itself by value."""

    def __init__(self, cycle: tuple[str, ...]):
        self.cycle = cycle
        chain = " -> ".join(cycle + cycle[:1])
        super().__init__(f"by-value containment cycle: {chain}")


class MalformedSchema(SchemaError):
    """A schema unit is structurally invalid.

    Carries every issue found in the unit so callers can report them
    together rather than one at a time.
    """

    def __init__(self, source: str, issues: list[tuple[str, str]], operation: str | None = None):
        self.source = source
        self.issues = issues
        self.operation = operation
        details = "; ".join(f"{path}: {msg}" if path else msg for path, msg in issues)
        super().__init__(f"{source}: {details}")


class InvalidFieldContract(SchemaError):
    """A field carries mutually exclusive annotations (e.g. required + server default)."""

    def __init__(self, owner: str, field: str, reason: str):
        self.owner = owner
        self.field = field
        super().__init__(f"{owner}.{field}: {reason}")


class MissingRequiredField(SchemaError):
    """A request was built without one or more required members."""

    def __init__(self, operation: str, fields: list[str]):
        self.operation = operation
        self.fields = fields
        super().__init__(f"{operation}: missing required field(s): {', '.join(fields)}")


class RegistryClosed(SchemaError):
    """The type registry no longer accepts registrations."""
