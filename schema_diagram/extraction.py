"""
Schema extraction - turn schema text into tables and relationships.

The extractor is tolerant: it never fails on text the validator would
reject, it just keeps what it recognizes and skips the rest. It runs a
handful of linear regex scans over comment-stripped, quote-masked text
(no backtracking grammar), so it is cheap enough to run on every keystroke.

Recognized:
- `Table name [as alias] [settings] { ... }` blocks, nested blocks skipped
- Field lines `name type [settings]` with pk/unique/not null/increment,
  default, note and inline `ref:` settings
- Standalone `Ref: a.x > b.y`, `Ref name: ...` and `Ref { ... }` statements

Tables come back at position (0, 0); placement belongs to the layout engine.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .lexing import (
    ENDPOINT,
    REF_OPERATOR,
    mask_quotes,
    normalize_name,
    split_endpoint,
    split_lines,
    strip_comment,
)
from .models import Endpoint, Relationship, RelationshipKind, Table, TableField
from .validation import Diagnostic, internal_error_diagnostic

logger = logging.getLogger(__name__)

TABLE_HEADER_RE = re.compile(
    r"(?<![\w.])table\s+(?P<name>\"[^\"]*\"|`[^`]*`|[\w.]+)"
    r"(?:\s+as\s+(?P<alias>\"[^\"]*\"|\w+))?"
    r"\s*(?:\[(?P<settings>[^\]]*)\])?\s*\{",
    re.IGNORECASE,
)
FIELD_RE = re.compile(
    r"^(?P<name>\"[^\"]*\"|`[^`]*`|\w+)"
    r"\s+(?P<type>\"[^\"]*\"|[^\s\[(\"]+(?:\s*\([^)]*\))?(?:\[\])?)"
    r"(?P<rest>.*)$"
)
TABLE_NOTE_RE = re.compile(r"^note\s*:\s*", re.IGNORECASE)
SKIPPED_LINE_RE = re.compile(r"^(?:note|indexes)\b", re.IGNORECASE)
STRING_RE = re.compile(r"(['\"`])(.*?)(?<!\\)\1")
HEADER_COLOR_RE = re.compile(r"headercolor\s*:\s*(#[0-9a-fA-F]{3,8})", re.IGNORECASE)

PK_RE = re.compile(r"\bpk\b|primary\s+key", re.IGNORECASE)
UNIQUE_RE = re.compile(r"\bunique\b", re.IGNORECASE)
NOT_NULL_RE = re.compile(r"\bnot\s+null\b", re.IGNORECASE)
INCREMENT_RE = re.compile(r"\b(?:auto_)?increment\b", re.IGNORECASE)
NOTE_SETTING_RE = re.compile(r"\bnote\s*:\s*", re.IGNORECASE)
DEFAULT_SETTING_RE = re.compile(r"\bdefault\s*:\s*", re.IGNORECASE)
INLINE_REF_RE = re.compile(
    rf"\bref\s*:\s*(?P<op>{REF_OPERATOR})\s*(?P<endpoint>{ENDPOINT})",
    re.IGNORECASE,
)
REF_SHORT_RE = re.compile(
    rf"(?<![\w.])ref(?:\s+(?:\"[^\"]*\"|\w+))?\s*:\s*"
    rf"(?P<from>{ENDPOINT})\s*(?P<op>{REF_OPERATOR})\s*(?P<to>{ENDPOINT})",
    re.IGNORECASE,
)
REF_BLOCK_RE = re.compile(
    r"(?<![\w.])ref(?:\s+(?:\"[^\"]*\"|\w+))?\s*\{(?P<body>[^{}]*)\}",
    re.IGNORECASE,
)
REF_PAIR_RE = re.compile(
    rf"(?P<from>{ENDPOINT})\s*(?P<op>{REF_OPERATOR})\s*(?P<to>{ENDPOINT})"
)


@dataclass(frozen=True)
class ExtractionResult:
    """Tables and relationships recognized in the text, in declaration order."""
    tables: list[Table] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def table_names(self) -> list[str]:
        return [table.name for table in self.tables]

    def to_dict(self) -> dict:
        return {
            "tables": [table.model_dump() for table in self.tables],
            "relationships": [rel.to_json_dict() for rel in self.relationships],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


@dataclass(frozen=True)
class _Block:
    header: re.Match
    body_start: int
    body_end: int


def _matching_brace(masked: str, start: int) -> Optional[int]:
    """Index of the `}` closing a block whose body starts at `start`."""
    depth = 1
    for index in range(start, len(masked)):
        char = masked[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return None


def _table_blocks(masked: str) -> Iterator[_Block]:
    headers = list(TABLE_HEADER_RE.finditer(masked))
    cursor = 0
    for index, header in enumerate(headers):
        if header.start() < cursor:
            continue
        body_start = header.end()
        body_end = _matching_brace(masked, body_start)
        if body_end is None:
            # Unterminated body: stop at the next table so it still extracts
            following = [h.start() for h in headers[index + 1:]]
            body_end = following[0] if following else len(masked)
            cursor = body_end
        else:
            cursor = body_end + 1
        yield _Block(header, body_start, body_end)


def _span(code: str, match: re.Match, group: str) -> Optional[str]:
    if match.group(group) is None:
        return None
    return code[match.start(group):match.end(group)]


def _string_value(raw: str) -> Optional[str]:
    match = STRING_RE.match(raw)
    if not match:
        return None
    return match.group(2).replace(f"\\{match.group(1)}", match.group(1))


def _default_value(raw_rest: str, masked_rest: str, start: int) -> str:
    end = start
    while end < len(masked_rest) and masked_rest[end] not in ",]":
        end += 1
    return raw_rest[start:end].strip()


def _relationship(from_: str, op: str, to: str) -> Relationship:
    from_table, from_field = split_endpoint(from_)
    to_table, to_field = split_endpoint(to)
    return Relationship(
        from_=Endpoint(table=from_table, field=from_field),
        to=Endpoint(table=to_table, field=to_field),
        kind=RelationshipKind(op),
    )


def parse_field(raw: str, masked: str, table_name: str) -> tuple[Optional[TableField], list[Relationship]]:
    """
    Parse one stripped body line into a field and its inline relationships.

    `raw` and `masked` must be the same line before and after quote masking.
    Returns (None, []) for lines that are not fields.
    """
    match = FIELD_RE.match(masked)
    if not match:
        return None, []

    name = normalize_name(_span(raw, match, "name"))
    type_name = _span(raw, match, "type").strip('"')
    raw_rest = _span(raw, match, "rest") or ""
    masked_rest = match.group("rest") or ""

    note = None
    note_match = NOTE_SETTING_RE.search(masked_rest)
    if note_match:
        note = _string_value(raw_rest[note_match.end():])

    default = None
    default_match = DEFAULT_SETTING_RE.search(masked_rest)
    if default_match:
        default = _default_value(raw_rest, masked_rest, default_match.end()) or None

    table_field = TableField(
        name=name,
        type=type_name,
        is_primary_key=bool(PK_RE.search(masked_rest)),
        note=note,
        unique=bool(UNIQUE_RE.search(masked_rest)),
        not_null=bool(NOT_NULL_RE.search(masked_rest)),
        increment=bool(INCREMENT_RE.search(masked_rest)),
        default=default,
    )

    relationships = []
    for ref in INLINE_REF_RE.finditer(masked_rest):
        target = raw_rest[ref.start("endpoint"):ref.end("endpoint")]
        to_table, to_field = split_endpoint(target)
        relationships.append(Relationship(
            from_=Endpoint(table=table_name, field=name),
            to=Endpoint(table=to_table, field=to_field),
            kind=RelationshipKind(ref.group("op")),
        ))
    return table_field, relationships


def parse_table(code: str, masked: str, block: _Block) -> tuple[Table, list[Relationship]]:
    """Build a table (and its inline relationships) from one table block."""
    header = block.header
    name = normalize_name(_span(code, header, "name"))
    alias = _span(code, header, "alias")
    settings = _span(code, header, "settings") or ""
    color_match = HEADER_COLOR_RE.search(settings)

    fields: list[TableField] = []
    relationships: list[Relationship] = []
    note = None
    depth = 0

    body_code = code[block.body_start:block.body_end].split("\n")
    body_masked = masked[block.body_start:block.body_end].split("\n")
    for raw_line, masked_line in zip(body_code, body_masked):
        opens = masked_line.count("{")
        closes = masked_line.count("}")
        if depth > 0 or opens:
            # Nested blocks (indexes, multi-line Note) hold no fields
            depth = max(depth + opens - closes, 0)
            continue

        raw = raw_line.strip()
        if not raw:
            continue
        lead = len(raw_line) - len(raw_line.lstrip())
        masked_statement = masked_line[lead:lead + len(raw)]

        note_match = TABLE_NOTE_RE.match(masked_statement)
        if note_match:
            note = _string_value(raw[note_match.end():])
            continue
        if SKIPPED_LINE_RE.match(masked_statement):
            continue

        table_field, inline = parse_field(raw, masked_statement, name)
        if table_field is not None:
            fields.append(table_field)
            relationships.extend(inline)

    table = Table(
        name=name,
        alias=normalize_name(alias) if alias else None,
        fields=fields,
        color=color_match.group(1) if color_match else None,
        note=note,
    )
    return table, relationships


def parse_standalone_refs(code: str, masked: str, skip: list[tuple[int, int]]) -> list[Relationship]:
    """
    Find `Ref:` statements and `Ref { }` blocks outside table bodies.

    Results are ordered by their position in the text.
    """
    def outside(position: int) -> bool:
        return not any(start <= position < end for start, end in skip)

    found: list[tuple[int, Relationship]] = []
    for match in REF_SHORT_RE.finditer(masked):
        if outside(match.start()):
            found.append((match.start(), _relationship(
                _span(code, match, "from"), match.group("op"), _span(code, match, "to"),
            )))

    for block in REF_BLOCK_RE.finditer(masked):
        if not outside(block.start()):
            continue
        offset = block.start("body")
        for pair in REF_PAIR_RE.finditer(block.group("body")):
            from_ = code[offset + pair.start("from"):offset + pair.end("from")]
            to = code[offset + pair.start("to"):offset + pair.end("to")]
            found.append((offset + pair.start(), _relationship(from_, pair.group("op"), to)))

    found.sort(key=lambda item: item[0])
    return [relationship for _, relationship in found]


def _resolve_aliases(tables: list[Table], relationships: list[Relationship]) -> list[Relationship]:
    names = {table.name for table in tables}
    aliases = {
        table.alias: table.name
        for table in tables
        if table.alias and table.alias not in names
    }
    if not aliases:
        return relationships

    def resolve(endpoint: Endpoint) -> Endpoint:
        if endpoint.table in aliases:
            return Endpoint(table=aliases[endpoint.table], field=endpoint.field)
        return endpoint

    return [
        Relationship(from_=resolve(rel.from_), to=resolve(rel.to), kind=rel.kind)
        for rel in relationships
    ]


def extract(text: str) -> ExtractionResult:
    """
    Extract tables and relationships from schema text.

    Never raises for malformed input. An internal failure is logged and
    reported as a single diagnostic alongside whatever was extracted before
    the failure.

    Args:
        text: Raw schema text

    Returns:
        ExtractionResult with tables (position 0,0) and relationships
    """
    tables: list[Table] = []
    inline: list[Relationship] = []
    standalone: list[Relationship] = []
    try:
        lines = [strip_comment(line) for line in split_lines(text or "")]
        code = "\n".join(lines)
        masked = "\n".join(mask_quotes(line) for line in lines)

        bodies: list[tuple[int, int]] = []
        for block in _table_blocks(masked):
            table, table_refs = parse_table(code, masked, block)
            tables.append(table)
            inline.extend(table_refs)
            bodies.append((block.header.start(), block.body_end))

        standalone = parse_standalone_refs(code, masked, bodies)
        relationships = _resolve_aliases(tables, inline + standalone)
    except Exception as exc:
        logger.exception("Schema extraction failed")
        return ExtractionResult(
            tables=tables,
            relationships=inline + standalone,
            diagnostics=[internal_error_diagnostic(exc, "extraction")],
        )

    logger.debug("Extracted %d tables and %d relationships", len(tables), len(relationships))
    return ExtractionResult(tables=tables, relationships=relationships)
