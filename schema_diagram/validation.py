"""
Schema text validation - positioned diagnostics for the editor.

Runs a fixed battery of independent checks over the raw text and reports
what it finds as diagnostics with line/column spans. No semantic model is
built; every check works on line-indexed text:
- Duplicate table names - ERROR
- Unbalanced braces - ERROR
- Missing table name - ERROR
- Invalid field syntax inside a table body - ERROR
- Invalid reference syntax - WARNING
- Misspelled keywords - WARNING
- Unknown data types - WARNING
- Unrecognized constraints inside [...] - WARNING

Checks never short-circuit each other and `validate` never raises: a check
that blows up is logged and reported as a single diagnostic at line 1.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional

from .lexing import ENDPOINT, REF_OPERATOR, mask_quotes, normalize_name, split_lines, strip_comment
from .models import Severity

logger = logging.getLogger(__name__)

SOURCE = "validation"


@dataclass(frozen=True)
class Diagnostic:
    """A single problem found in the schema text. Lines and columns are 1-based."""
    line: int
    column: int
    end_line: int
    end_column: int
    severity: Severity
    message: str
    code: str = ""
    source: str = SOURCE

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "line": self.line,
            "column": self.column,
            "end_line": self.end_line,
            "end_column": self.end_column,
            "severity": self.severity.value,
            "message": self.message,
            "code": self.code,
            "source": self.source,
        }


@dataclass(frozen=True)
class ValidationResult:
    diagnostics: tuple[Diagnostic, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


# --- Lookup tables ---

KNOWN_TYPES = frozenset({
    "int", "integer", "bigint", "smallint", "tinyint", "mediumint",
    "serial", "bigserial", "smallserial",
    "float", "double", "real", "decimal", "numeric", "money", "number",
    "bool", "boolean", "bit",
    "char", "varchar", "nchar", "nvarchar", "varchar2", "nvarchar2", "character",
    "text", "tinytext", "mediumtext", "longtext", "string", "citext", "clob",
    "date", "time", "timetz", "datetime", "datetime2", "datetimeoffset",
    "timestamp", "timestamptz", "interval", "year",
    "json", "jsonb", "xml", "uuid", "uniqueidentifier",
    "blob", "tinyblob", "mediumblob", "longblob", "binary", "varbinary", "bytea",
    "enum", "inet", "cidr", "macaddr", "point", "geometry", "geography",
})

TYPE_TYPOS = {
    "itn": "int",
    "nit": "int",
    "integr": "integer",
    "interger": "integer",
    "intger": "integer",
    "integar": "integer",
    "bigitn": "bigint",
    "bgint": "bigint",
    "varhcar": "varchar",
    "varchr": "varchar",
    "vachar": "varchar",
    "varchat": "varchar",
    "archar": "varchar",
    "strng": "string",
    "sting": "string",
    "tex": "text",
    "txt": "text",
    "boolen": "boolean",
    "bolean": "boolean",
    "booleen": "boolean",
    "boolan": "boolean",
    "flaot": "float",
    "flot": "float",
    "decimel": "decimal",
    "dcimal": "decimal",
    "timestmp": "timestamp",
    "timstamp": "timestamp",
    "timestap": "timestamp",
    "timestamps": "timestamp",
    "datetiem": "datetime",
    "datetim": "datetime",
    "dateime": "datetime",
    "dat": "date",
    "jsn": "json",
    "josn": "json",
    "uiid": "uuid",
    "uudi": "uuid",
}

KEYWORD_TYPOS = {
    "tabel": "Table",
    "tabe": "Table",
    "tabl": "Table",
    "tble": "Table",
    "talbe": "Table",
    "teble": "Table",
    "tabble": "Table",
    "rfe": "Ref",
    "reff": "Ref",
    "refs": "Ref",
    "refrence": "Ref",
    "reference": "Ref",
    "enun": "enum",
    "enmu": "enum",
    "eunm": "enum",
    "indexs": "indexes",
    "indexe": "indexes",
    "indices": "indexes",
    "noet": "Note",
    "ntoe": "Note",
    "tablegroups": "TableGroup",
    "tablegrop": "TableGroup",
    "projet": "Project",
    "porject": "Project",
    "projcet": "Project",
}


CONSTRAINT_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"pk",
        r"primary\s+key",
        r"null",
        r"not\s+null",
        r"unique",
        r"(?:auto_)?increment",
        r"default\s*:\s*\S.*",
        r"note\s*:\s*\S.*",
        r"name\s*:\s*\S.*",
        rf"ref\s*:\s*{REF_OPERATOR}\s*{ENDPOINT}",
        r"(?:delete|update)\s*:\s*(?:cascade|restrict|set\s+null|set\s+default|no\s+action)",
    )
)

# Checked in order; specific typos first, bare keywords missing a colon last.
CONSTRAINT_TYPOS = (
    ("primay key", "primary key"),
    ("primery key", "primary key"),
    ("prmary key", "primary key"),
    ("primarykey", "primary key"),
    ("primary_key", "primary key"),
    ("pkey", "pk"),
    ("notnull", "not null"),
    ("not_null", "not null"),
    ("nto null", "not null"),
    ("not nul", "not null"),
    ("nut null", "not null"),
    ("uniqe", "unique"),
    ("unqiue", "unique"),
    ("uniq", "unique"),
    ("autoincrement", "increment"),
    ("auto increment", "increment"),
    ("incremnt", "increment"),
    ("increament", "increment"),
    ("defualt", "default:"),
    ("deafult", "default:"),
    ("cascde", "cascade"),
    ("casade", "cascade"),
    ("restirct", "restrict"),
    ("primary", "primary key"),
    ("default", "default:"),
    ("note", "note:"),
    ("ref", "ref: > table.field"),
    ("delete", "delete: cascade"),
    ("update", "update: cascade"),
)

ACCEPTED_CONSTRAINTS = (
    "pk, primary key, not null, null, unique, increment, default:, note:, "
    "ref:, delete: or update:"
)

TABLE_HEADER_RE = re.compile(r"^\s*table\b", re.IGNORECASE)
TABLE_DECL_RE = re.compile(
    r"(?<![\w.])table\s+"
    r"(\"[^\"]*\"|`[^`]*`|'[^']*'|[\w.]+)"
    r"(?:\s+as\s+\S+)?\s*(?:\[[^\]]*\])?\s*\{",
    re.IGNORECASE,
)
MISSING_NAME_RE = re.compile(r"(?<![\w.])table\s*\{", re.IGNORECASE)
ENUM_DECL_RE = re.compile(r"^\s*enum\s+(\"[^\"]*\"|[\w.]+)\s*\{", re.IGNORECASE)
FIELD_RE = re.compile(
    r"^(?P<name>\"[^\"]*\"|`[^`]*`|[A-Za-z_]\w*)"
    r"\s+(?P<type>\"[^\"]*\"|[A-Za-z_][\w.]*(?:\s*\([^)]*\))?(?:\[\])?)"
    r"(?P<rest>\s*\[.*|\s+.*)?$"
)
SKIPPED_STATEMENT_RE = re.compile(r"^(?:note\s*:|note$|indexes$)", re.IGNORECASE)
REF_START_RE = re.compile(r"^\s*ref\b", re.IGNORECASE)
REF_BLOCK_RE = re.compile(r"^\s*ref\b[^:{]*\{", re.IGNORECASE)
REF_LINE_RE = re.compile(
    rf"^\s*ref(?:\s+(?:\"[^\"]*\"|\w+))?\s*:\s*{ENDPOINT}\s*{REF_OPERATOR}\s*{ENDPOINT}"
    r"\s*(?P<settings>\[[^\]]*\])?\s*$",
    re.IGNORECASE,
)
LEADING_WORD_RE = re.compile(r"^\s*([A-Za-z_]+)")
BRACKET_RE = re.compile(r"\[([^\]]*)\]")


# --- Line preparation (one forward pass, cached per text) ---

@dataclass(frozen=True)
class _Statement:
    """One statement inside a table body, confined to a single line."""
    line: int
    start: int
    masked: str
    raw: str


@dataclass(frozen=True)
class _Source:
    lines: tuple[str, ...]
    masked: tuple[str, ...]
    depths: tuple[int, ...]
    table_statements: tuple[_Statement, ...]
    enums: frozenset[str]


@lru_cache(maxsize=16)
def _prepare(text: str) -> _Source:
    lines = tuple(strip_comment(line) for line in split_lines(text))
    masked = tuple(mask_quotes(line) for line in lines)

    depths: list[int] = []
    statements: list[_Statement] = []
    enums: set[str] = set()
    depth = 0
    in_table = False
    previous_header = ""

    for number, line in enumerate(masked, start=1):
        depths.append(depth)
        header_chars: list[str] = []
        segment_start: Optional[int] = None

        def flush(end: int) -> None:
            if segment_start is None:
                return
            body = line[segment_start:end].rstrip()
            if body:
                raw = lines[number - 1][segment_start:segment_start + len(body)]
                statements.append(_Statement(number, segment_start, body, raw))

        for index, char in enumerate(line):
            if char == "{":
                if depth == 0:
                    header = "".join(header_chars)
                    if not header.strip():
                        header = previous_header
                    in_table = bool(TABLE_HEADER_RE.match(header))
                    header_chars = []
                    previous_header = ""
                elif depth == 1 and in_table:
                    # Text before a nested block names the block (indexes, Note)
                    segment_start = None
                depth += 1
            elif char == "}":
                if depth == 0:
                    header_chars = []
                    continue
                if depth == 1 and in_table:
                    flush(index)
                    segment_start = None
                    in_table = False
                depth -= 1
            elif depth == 0:
                header_chars.append(char)
            elif depth == 1 and in_table and segment_start is None and not char.isspace():
                segment_start = index

        if depth == 1 and in_table:
            flush(len(line))
        if depth == 0 and "".join(header_chars).strip():
            previous_header = "".join(header_chars)

        match = ENUM_DECL_RE.match(lines[number - 1])
        if match:
            name = normalize_name(match.group(1)).lower()
            enums.add(name)
            enums.add(name.rsplit(".", 1)[-1])

    return _Source(
        lines=lines,
        masked=masked,
        depths=tuple(depths),
        table_statements=tuple(statements),
        enums=frozenset(enums),
    )


def _diagnostic(
    line: int,
    start: int,
    end: int,
    severity: Severity,
    message: str,
    code: str,
) -> Diagnostic:
    """Build a diagnostic from a 0-based [start, end) character span on one line."""
    end = max(end, start + 1)
    return Diagnostic(
        line=line,
        column=start + 1,
        end_line=line,
        end_column=end + 1,
        severity=severity,
        message=message,
        code=code,
    )


# --- Checks ---

def check_duplicate_tables(text: str) -> list[Diagnostic]:
    """One summary plus one marker per occurrence for every repeated table name."""
    source = _prepare(text)
    occurrences: dict[str, list[tuple[int, int, int]]] = {}

    for number, line in enumerate(source.lines, start=1):
        masked = source.masked[number - 1]
        for match in TABLE_DECL_RE.finditer(line):
            # Skip matches that start inside a quoted string
            if masked[match.start():match.start() + 5].lower() != "table":
                continue
            name = normalize_name(match.group(1))
            occurrences.setdefault(name, []).append(
                (number, match.start(1), match.end(1))
            )

    diagnostics: list[Diagnostic] = []
    for name, spans in occurrences.items():
        if len(spans) < 2:
            continue
        line_list = ", ".join(str(span[0]) for span in spans)
        first_line, first_start, first_end = spans[0]
        diagnostics.append(_diagnostic(
            first_line, first_start, first_end, Severity.ERROR,
            f"Duplicate table name '{name}' is declared {len(spans)} times (lines {line_list})",
            "DUPLICATE_TABLE_NAME_SUMMARY",
        ))
        for position, (number, start, end) in enumerate(spans, start=1):
            diagnostics.append(_diagnostic(
                number, start, end, Severity.ERROR,
                f"Duplicate table name '{name}' (occurrence {position} of {len(spans)})",
                "DUPLICATE_TABLE_NAME",
            ))
    return diagnostics


def check_braces(text: str) -> list[Diagnostic]:
    """Report stray closing braces and unclosed blocks."""
    source = _prepare(text)
    diagnostics: list[Diagnostic] = []
    depth = 0

    for number, line in enumerate(source.masked, start=1):
        for index, char in enumerate(line):
            if char == "{":
                depth += 1
            elif char == "}":
                if depth == 0:
                    # Depth stays at 0 so one stray brace doesn't cascade
                    diagnostics.append(_diagnostic(
                        number, index, index + 1, Severity.ERROR,
                        "Unexpected closing brace '}'",
                        "UNEXPECTED_CLOSING_BRACE",
                    ))
                else:
                    depth -= 1

    if depth > 0:
        last_line = len(source.masked)
        column = len(source.lines[-1].rstrip())
        plural = "s" if depth > 1 else ""
        diagnostics.append(_diagnostic(
            last_line, max(column - 1, 0), column, Severity.ERROR,
            f"Missing {depth} closing brace{plural} '}}'",
            "MISSING_CLOSING_BRACE",
        ))
    return diagnostics


def check_missing_table_name(text: str) -> list[Diagnostic]:
    source = _prepare(text)
    diagnostics: list[Diagnostic] = []
    for number, line in enumerate(source.masked, start=1):
        for match in MISSING_NAME_RE.finditer(line):
            diagnostics.append(_diagnostic(
                number, match.start(), match.start() + 5, Severity.ERROR,
                "Table declaration is missing a table name",
                "MISSING_TABLE_NAME",
            ))
    return diagnostics


def _field_statements(source: _Source) -> Iterable[tuple[_Statement, Optional[re.Match]]]:
    for statement in source.table_statements:
        if SKIPPED_STATEMENT_RE.match(statement.masked):
            continue
        yield statement, FIELD_RE.match(statement.masked)


def check_field_syntax(text: str) -> list[Diagnostic]:
    """Every statement in a table body must read `<name> <type> [settings]`."""
    source = _prepare(text)
    diagnostics: list[Diagnostic] = []
    for statement, match in _field_statements(source):
        if match:
            continue
        diagnostics.append(_diagnostic(
            statement.line,
            statement.start,
            statement.start + len(statement.masked),
            Severity.ERROR,
            f"Invalid field syntax '{statement.raw}'. Expected '<name> <type> [settings]'",
            "INVALID_FIELD_SYNTAX",
        ))
    return diagnostics


def check_reference_syntax(text: str) -> list[Diagnostic]:
    """Top-level `Ref:` lines must read `<table>.<field> <op> <table>.<field>`."""
    source = _prepare(text)
    diagnostics: list[Diagnostic] = []
    for number, line in enumerate(source.masked, start=1):
        if source.depths[number - 1] != 0 or not REF_START_RE.match(line):
            continue
        if REF_BLOCK_RE.match(line) or REF_LINE_RE.match(line):
            continue
        stripped = line.strip()
        start = line.index(stripped)
        diagnostics.append(_diagnostic(
            number, start, start + len(stripped), Severity.WARNING,
            "Invalid reference syntax. Expected 'Ref: <table>.<field> <op> <table>.<field>'",
            "INVALID_REFERENCE_SYNTAX",
        ))
    return diagnostics


def check_keyword_spelling(text: str) -> list[Diagnostic]:
    source = _prepare(text)
    diagnostics: list[Diagnostic] = []
    for number, line in enumerate(source.masked, start=1):
        match = LEADING_WORD_RE.match(line)
        if not match:
            continue
        word = match.group(1)
        suggestion = KEYWORD_TYPOS.get(word.lower())
        if suggestion is None:
            continue
        rest = line[match.end():].lstrip()
        if source.depths[number - 1] != 0 and not rest.startswith(("{", ":")):
            continue
        diagnostics.append(_diagnostic(
            number, match.start(1), match.end(1), Severity.WARNING,
            f"Unknown keyword '{word}'. Did you mean '{suggestion}'?",
            "MISSPELLED_KEYWORD",
        ))
    return diagnostics


def check_data_types(text: str) -> list[Diagnostic]:
    source = _prepare(text)
    diagnostics: list[Diagnostic] = []
    for statement, match in _field_statements(source):
        if not match or match.group("type").startswith('"'):
            continue
        type_token = match.group("type")
        base = re.sub(r"\s*\(.*$", "", type_token).removesuffix("[]").lower()
        if base in KNOWN_TYPES or base in source.enums:
            continue
        if base.rsplit(".", 1)[-1] in source.enums:
            continue
        start = statement.start + match.start("type")
        end = statement.start + match.end("type")
        suggestion = TYPE_TYPOS.get(base)
        if suggestion:
            message = f"Unknown data type '{type_token}'. Did you mean '{suggestion}'?"
        else:
            message = f"Unknown data type '{type_token}'"
        diagnostics.append(_diagnostic(
            statement.line, start, end, Severity.WARNING, message, "UNKNOWN_DATA_TYPE",
        ))
    return diagnostics


def _constraint_groups(source: _Source) -> Iterable[tuple[int, int, str]]:
    """Yield (line, absolute start, masked content) for each settings bracket."""
    for statement, match in _field_statements(source):
        if not match or not match.group("rest"):
            continue
        offset = statement.start + match.start("rest")
        for bracket in BRACKET_RE.finditer(match.group("rest")):
            yield statement.line, offset + bracket.start(1), bracket.group(1)

    for number, line in enumerate(source.masked, start=1):
        if source.depths[number - 1] != 0:
            continue
        match = REF_LINE_RE.match(line)
        if match and match.group("settings"):
            yield number, match.start("settings") + 1, match.group("settings")[1:-1]


def _constraint_suggestion(item: str) -> Optional[str]:
    lowered = item.lower()
    for typo, fix in CONSTRAINT_TYPOS:
        if typo in lowered:
            return fix
    return None


def check_constraints(text: str) -> list[Diagnostic]:
    """Each comma-separated item inside `[...]` must be an accepted setting."""
    source = _prepare(text)
    diagnostics: list[Diagnostic] = []
    for number, start, content in _constraint_groups(source):
        raw_line = source.lines[number - 1]
        position = 0
        for item in content.split(","):
            item_start = start + position
            position += len(item) + 1
            stripped = item.strip()
            if not stripped:
                continue
            if any(pattern.fullmatch(stripped) for pattern in CONSTRAINT_PATTERNS):
                continue
            begin = item_start + item.index(stripped)
            end = begin + len(stripped)
            shown = raw_line[begin:end]
            suggestion = _constraint_suggestion(stripped)
            if suggestion:
                message = f"Unrecognized constraint '{shown}'. Did you mean '{suggestion}'?"
            else:
                message = f"Unrecognized constraint '{shown}'. Expected {ACCEPTED_CONSTRAINTS}"
            diagnostics.append(_diagnostic(
                number, begin, end, Severity.WARNING, message, "UNKNOWN_CONSTRAINT",
            ))
    return diagnostics


CHECKS = (
    check_duplicate_tables,
    check_braces,
    check_missing_table_name,
    check_field_syntax,
    check_reference_syntax,
    check_keyword_spelling,
    check_data_types,
    check_constraints,
)


def internal_error_diagnostic(exc: BaseException, what: str = "validation") -> Diagnostic:
    return Diagnostic(
        line=1,
        column=1,
        end_line=1,
        end_column=2,
        severity=Severity.ERROR,
        message=f"Internal {what} error: {exc}",
        code="INTERNAL_ERROR",
    )


def validate(text: str) -> ValidationResult:
    """
    Validate schema text and return every diagnostic found.

    Deterministic: the same text always yields the same diagnostics in the
    same order (check order, then position within each check).

    Args:
        text: Raw schema text

    Returns:
        ValidationResult with `is_valid` (no errors) and the diagnostics
    """
    text = text or ""
    try:
        _prepare(text)
    except Exception as exc:
        logger.exception("Validation failed while scanning the text")
        return ValidationResult(diagnostics=(internal_error_diagnostic(exc),))

    diagnostics: list[Diagnostic] = []
    for check in CHECKS:
        try:
            diagnostics.extend(check(text))
        except Exception as exc:
            logger.exception("Validation check %s failed", check.__name__)
            diagnostics.append(internal_error_diagnostic(exc))
    logger.debug("Validated %d lines: %d diagnostics", text.count("\n") + 1, len(diagnostics))
    return ValidationResult(diagnostics=tuple(diagnostics))


def first_problem(diagnostics: Iterable[Diagnostic]) -> Optional[Diagnostic]:
    """The diagnostic a status indicator jumps to: first error, else first warning."""
    diagnostics = list(diagnostics)
    for severity in (Severity.ERROR, Severity.WARNING):
        matching = [d for d in diagnostics if d.severity == severity]
        if matching:
            return min(matching, key=lambda d: (d.line, d.column))
    return None


def validation_summary(diagnostics: Iterable[Diagnostic]) -> dict:
    """
    Create a summary of diagnostics for a status indicator.

    Args:
        diagnostics: Diagnostics from `validate`

    Returns:
        Dictionary with counts by severity and the jump target
    """
    diagnostics = list(diagnostics)
    errors = len([d for d in diagnostics if d.severity == Severity.ERROR])
    warnings = len([d for d in diagnostics if d.severity == Severity.WARNING])
    target = first_problem(diagnostics)
    return {
        "total": len(diagnostics),
        "errors": errors,
        "warnings": warnings,
        "valid": errors == 0,
        "jump_to": target.to_dict() if target else None,
    }
