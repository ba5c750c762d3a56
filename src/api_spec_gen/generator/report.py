"""Plain-text violation reports, grouped by operation."""

from api_spec_gen.parser.base import Violation


def group_by_operation(violations: list[Violation]) -> dict[str, list[Violation]]:
    groups: dict[str, list[Violation]] = {}
    for violation in violations:
        groups.setdefault(violation.operation, []).append(violation)
    return {name: groups[name] for name in sorted(groups)}


def format_violations(violations: list[Violation]) -> str:
    """Render every violation under a header for its operation."""
    lines = []
    for operation, items in group_by_operation(violations).items():
        lines.append(f"{operation} ({len(items)} violation{'s' if len(items) != 1 else ''})")
        for v in items:
            lines.append(f"  [{v.kind.value}] {v.path or '-'}: {v.message}")
    return "\n".join(lines)


def summarize(operations: int, certified: int, violations: int) -> str:
    return f"{operations} operation(s), {certified} certified, {violations} violation(s)"
