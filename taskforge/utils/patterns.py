"""
Refactoring opportunity detection.

Detection sits behind the ``CodePatternDetector`` protocol so the regex
heuristics below can be swapped for an AST-based analyzer without touching
the refactoring service. Detected opportunities are grouped into categories
that correspond to refactoring types:

- extract_method: long functions
- simplify_conditionals: deep nesting
- remove_duplication: repeated blocks of lines
- cleanup: trailing whitespace, debug statements, TODO markers, long lines,
  magic numbers

Only trailing whitespace and JavaScript ``console.log``/``console.debug``
lines are mechanically fixable; everything else is reported.
"""

import hashlib
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

LONG_FUNCTION_LINES = 50
MAX_NESTING_DEPTH = 4
MAX_LINE_LENGTH = 120
DUPLICATE_WINDOW = 4

JS_SUFFIXES = frozenset({".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".vue", ".svelte"})

PY_FUNCTION = re.compile(r"^(\s*)(?:async\s+)?def\s+(\w+)\s*\(")
JS_FUNCTION = re.compile(
    r"^\s*(?:export\s+)?(?:async\s+)?(?:function\s+(\w+)\s*\(|(?:const|let|var)\s+(\w+)\s*=\s*(?:async\s*)?\([^)]*\)\s*=>)"
)
JS_DEBUG = re.compile(r"^\s*console\.(?:log|debug)\(.*\)\s*;?\s*$")
PY_DEBUG = re.compile(r"^\s*print\(")
TODO_MARKER = re.compile(r"(?:#|//|/\*)\s*(TODO|FIXME|HACK|XXX)\b")
MAGIC_NUMBER = re.compile(r"(?<![\w.\"'])(\d{3,})(?![\w.\"'])")

CATEGORY_BY_TYPE = {
    "long_function": "extract_method",
    "deep_nesting": "simplify_conditionals",
    "duplicate_code": "remove_duplication",
    "trailing_whitespace": "cleanup",
    "debug_statement": "cleanup",
    "todo_comment": "cleanup",
    "long_line": "cleanup",
    "magic_number": "cleanup",
}


@dataclass
class RefactoringOpportunity:
    """A single place where refactoring could help."""

    type: str
    file_path: str
    line: int
    description: str
    confidence: float
    auto_applicable: bool = False

    @property
    def category(self) -> str:
        return CATEGORY_BY_TYPE.get(self.type, "cleanup")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type,
            "category": self.category,
            "file_path": self.file_path,
            "line": self.line,
            "description": self.description,
            "confidence": self.confidence,
            "auto_applicable": self.auto_applicable,
        }


@dataclass
class RefactoringPlan:
    """Opportunities selected for one refactoring run, grouped by file."""

    refactoring_type: str
    min_confidence: float
    opportunities: list[RefactoringOpportunity] = field(default_factory=list)

    @property
    def files(self) -> dict[str, list[RefactoringOpportunity]]:
        grouped: dict[str, list[RefactoringOpportunity]] = {}
        for opportunity in self.opportunities:
            grouped.setdefault(opportunity.file_path, []).append(opportunity)
        return grouped

    @property
    def auto_applicable(self) -> list[RefactoringOpportunity]:
        return [o for o in self.opportunities if o.auto_applicable]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "refactoring_type": self.refactoring_type,
            "min_confidence": self.min_confidence,
            "total": len(self.opportunities),
            "files": sorted(self.files),
            "opportunities": [o.to_dict() for o in self.opportunities],
        }


def create_plan(
    opportunities: list[RefactoringOpportunity],
    refactoring_type: str = "general",
    min_confidence: float = 0.6,
) -> RefactoringPlan:
    """Filter opportunities by category and confidence, highest confidence first."""
    selected = [
        o
        for o in opportunities
        if o.confidence >= min_confidence
        and (refactoring_type == "general" or o.category == refactoring_type)
    ]
    selected.sort(key=lambda o: (-o.confidence, o.file_path, o.line))
    return RefactoringPlan(
        refactoring_type=refactoring_type,
        min_confidence=min_confidence,
        opportunities=selected,
    )


class CodePatternDetector(Protocol):
    """Finds refactoring opportunities in one file's content."""

    def detect(self, file_path: str, content: str) -> list[RefactoringOpportunity]: ...


class RegexPatternDetector:
    """
    Line-based heuristics over source text.

    Example:
        >>> detector = RegexPatternDetector()
        >>> found = detector.detect("app.js", "console.log('x');  \\n")
        >>> sorted(o.type for o in found)
        ['debug_statement', 'trailing_whitespace']
    """

    def __init__(
        self,
        long_function_lines: int = LONG_FUNCTION_LINES,
        max_nesting_depth: int = MAX_NESTING_DEPTH,
        max_line_length: int = MAX_LINE_LENGTH,
    ):
        self.long_function_lines = long_function_lines
        self.max_nesting_depth = max_nesting_depth
        self.max_line_length = max_line_length

    def detect(self, file_path: str, content: str) -> list[RefactoringOpportunity]:
        lines = content.splitlines()
        is_js = Path(file_path).suffix.lower() in JS_SUFFIXES

        found: list[RefactoringOpportunity] = []
        found.extend(self._line_patterns(file_path, lines, is_js))
        found.extend(self._long_functions(file_path, lines, is_js))
        found.extend(self._deep_nesting(file_path, lines))
        found.extend(self._duplicates(file_path, lines))
        return found

    def _line_patterns(
        self, file_path: str, lines: list[str], is_js: bool
    ) -> list[RefactoringOpportunity]:
        found = []
        for number, line in enumerate(lines, start=1):
            if line != line.rstrip():
                found.append(
                    RefactoringOpportunity(
                        type="trailing_whitespace",
                        file_path=file_path,
                        line=number,
                        description="Trailing whitespace",
                        confidence=0.95,
                        auto_applicable=True,
                    )
                )

            if is_js and JS_DEBUG.match(line):
                found.append(
                    RefactoringOpportunity(
                        type="debug_statement",
                        file_path=file_path,
                        line=number,
                        description="Leftover console debug statement",
                        confidence=0.9,
                        auto_applicable=True,
                    )
                )
            elif not is_js and PY_DEBUG.match(line):
                found.append(
                    RefactoringOpportunity(
                        type="debug_statement",
                        file_path=file_path,
                        line=number,
                        description="print() call, consider logging",
                        confidence=0.5,
                    )
                )

            marker = TODO_MARKER.search(line)
            if marker:
                found.append(
                    RefactoringOpportunity(
                        type="todo_comment",
                        file_path=file_path,
                        line=number,
                        description=f"{marker.group(1)} marker left in code",
                        confidence=0.7,
                    )
                )

            if len(line) > self.max_line_length:
                found.append(
                    RefactoringOpportunity(
                        type="long_line",
                        file_path=file_path,
                        line=number,
                        description=f"Line is {len(line)} characters long",
                        confidence=0.5,
                    )
                )

            stripped = line.strip()
            if (
                stripped
                and not stripped.startswith(("#", "//", "*", "/*"))
                and MAGIC_NUMBER.search(stripped)
                and not re.match(r"^[A-Z_][A-Z0-9_]*\s*=", stripped)
            ):
                found.append(
                    RefactoringOpportunity(
                        type="magic_number",
                        file_path=file_path,
                        line=number,
                        description="Numeric literal could be a named constant",
                        confidence=0.4,
                    )
                )
        return found

    def _long_functions(
        self, file_path: str, lines: list[str], is_js: bool
    ) -> list[RefactoringOpportunity]:
        found = []
        for start, name, length in self._function_spans(lines, is_js):
            if length > self.long_function_lines:
                found.append(
                    RefactoringOpportunity(
                        type="long_function",
                        file_path=file_path,
                        line=start,
                        description=f"Function '{name}' spans {length} lines",
                        confidence=0.75,
                    )
                )
        return found

    def _function_spans(self, lines: list[str], is_js: bool) -> list[tuple[int, str, int]]:
        spans = []
        for index, line in enumerate(lines):
            if is_js:
                match = JS_FUNCTION.match(line)
                if not match:
                    continue
                name = match.group(1) or match.group(2)
                length = self._brace_span(lines, index)
            else:
                match = PY_FUNCTION.match(line)
                if not match:
                    continue
                name = match.group(2)
                length = self._indent_span(lines, index, len(match.group(1)))
            spans.append((index + 1, name, length))
        return spans

    @staticmethod
    def _indent_span(lines: list[str], start: int, indent: int) -> int:
        end = start + 1
        while end < len(lines):
            line = lines[end]
            if line.strip() and len(line) - len(line.lstrip()) <= indent:
                break
            end += 1
        return end - start

    @staticmethod
    def _brace_span(lines: list[str], start: int) -> int:
        depth = 0
        opened = False
        for index in range(start, len(lines)):
            depth += lines[index].count("{") - lines[index].count("}")
            if "{" in lines[index]:
                opened = True
            if opened and depth <= 0:
                return index - start + 1
        return len(lines) - start

    def _deep_nesting(self, file_path: str, lines: list[str]) -> list[RefactoringOpportunity]:
        deepest_line = 0
        deepest = 0
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            expanded = line.replace("\t", "    ")
            depth = (len(expanded) - len(expanded.lstrip())) // 4
            if depth > deepest:
                deepest, deepest_line = depth, number

        if deepest <= self.max_nesting_depth:
            return []
        return [
            RefactoringOpportunity(
                type="deep_nesting",
                file_path=file_path,
                line=deepest_line,
                description=f"Code nested {deepest} levels deep",
                confidence=0.65,
            )
        ]

    def _duplicates(self, file_path: str, lines: list[str]) -> list[RefactoringOpportunity]:
        normalized = [line.strip() for line in lines]
        seen: dict[str, int] = {}
        found = []
        index = 0
        while index + DUPLICATE_WINDOW <= len(normalized):
            window = normalized[index : index + DUPLICATE_WINDOW]
            # Blocks of braces/blank lines repeat everywhere
            if sum(1 for line in window if len(line) > 3) < DUPLICATE_WINDOW:
                index += 1
                continue
            digest = hashlib.sha1("\n".join(window).encode()).hexdigest()
            if digest in seen:
                found.append(
                    RefactoringOpportunity(
                        type="duplicate_code",
                        file_path=file_path,
                        line=index + 1,
                        description=f"Block duplicates lines starting at {seen[digest]}",
                        confidence=0.7,
                    )
                )
                index += DUPLICATE_WINDOW
                continue
            seen[digest] = index + 1
            index += 1
        return found


def apply_mechanical_fixes(
    content: str, opportunities: list[RefactoringOpportunity]
) -> tuple[str, list[RefactoringOpportunity]]:
    """
    Apply the auto-applicable opportunities to ``content``.

    Returns:
        The rewritten content and the opportunities that were applied.
    """
    targets = {(o.line, o.type): o for o in opportunities if o.auto_applicable}
    if not targets:
        return content, []

    applied: list[RefactoringOpportunity] = []
    output: list[str] = []
    for number, line in enumerate(content.splitlines(keepends=True), start=1):
        ending = "\n" if line.endswith("\n") else ""
        body = line[: -1] if ending else line

        debug = targets.get((number, "debug_statement"))
        if debug is not None:
            applied.append(debug)
            whitespace = targets.get((number, "trailing_whitespace"))
            if whitespace is not None:
                applied.append(whitespace)
            continue

        whitespace = targets.get((number, "trailing_whitespace"))
        if whitespace is not None:
            body = body.rstrip()
            applied.append(whitespace)

        output.append(body + ending)

    return "".join(output), applied
