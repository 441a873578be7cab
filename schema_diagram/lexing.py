"""
Lexical helpers shared by the validator and the extractor.

Both work on line-indexed text where comments and the contents of quoted
strings have been blanked out with spaces. Blanking (rather than removing)
keeps every column where it was, so a regex match on the masked text maps
straight back onto the original line.
"""

QUOTES = "'\"`"

# table.field, schema.table.field, "quoted"."names", table.(a, b)
ENDPOINT = r'(?:"[^"]*"|\w+)(?:\.(?:"[^"]*"|\w+))*\.(?:"[^"]*"|\w+|\([^)]*\))'
REF_OPERATOR = r"(?:<>|<|>|-)"


def split_lines(text: str) -> list[str]:
    """Split text into editor lines (a trailing newline yields a final empty line)."""
    return [line.rstrip("\r") for line in text.split("\n")]


def strip_comment(line: str) -> str:
    """Blank out a `//` comment that is not inside quotes, keeping columns."""
    quote = None
    escaped = False
    for index, char in enumerate(line):
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
        elif char in QUOTES:
            quote = char
        elif char == "/" and line.startswith("//", index):
            return line[:index] + " " * (len(line) - index)
    return line


def mask_quotes(line: str) -> str:
    """Replace quoted contents with spaces, keeping the quote characters and columns."""
    out = []
    quote = None
    escaped = False
    for char in line:
        if quote:
            if escaped:
                escaped = False
                out.append(" ")
            elif char == "\\":
                escaped = True
                out.append(" ")
            elif char == quote:
                quote = None
                out.append(char)
            else:
                out.append(" ")
        else:
            if char in QUOTES:
                quote = char
            out.append(char)
    return "".join(out)


def normalize_name(name: str) -> str:
    """Strip quote characters from a (possibly dotted) identifier."""
    return ".".join(part.strip(QUOTES) for part in name.strip().split("."))


def split_endpoint(endpoint: str) -> tuple[str, str]:
    """Split `schema.table.field` into (`schema.table`, `field`)."""
    if "(" in endpoint:
        table, _, columns = endpoint.partition(".(")
        return normalize_name(table), f"({columns}"
    table, _, field_name = endpoint.strip().rpartition(".")
    return normalize_name(table), field_name.strip(QUOTES)
