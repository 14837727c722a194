"""Parse Diesel `table!` schema files into table declarations."""

from __future__ import annotations

import dataclasses
import enum
import logging
import re

from modelsync.errors import ParseError

logger = logging.getLogger(__name__)


class TypeKind(enum.Enum):
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    DATE = "date"
    TIME = "time"
    BINARY = "binary"
    NUMERIC = "numeric"
    UUID = "uuid"
    JSON = "json"
    NULLABLE = "nullable"
    ARRAY = "array"
    CUSTOM = "custom"


@dataclasses.dataclass(frozen=True)
class SqlType:
    kind: TypeKind
    raw: str
    inner: SqlType | None = None
    width: int | None = None
    timezone: bool = False
    precision: int | None = None
    scale: int | None = None

    @property
    def is_nullable(self) -> bool:
        return self.kind is TypeKind.NULLABLE


@dataclasses.dataclass(frozen=True)
class ColumnDeclaration:
    name: str
    type_token: str
    sql_type: SqlType
    nullable: bool
    sql_name: str | None = None
    max_length: int | None = None
    doc: str | None = None

    @property
    def column_name(self) -> str:
        """Name of the column in the database (falls back to the schema name)."""
        return self.sql_name or self.name


@dataclasses.dataclass(frozen=True)
class ForeignKey:
    column: str
    parent_table: str


@dataclasses.dataclass(frozen=True)
class TableDeclaration:
    name: str
    columns: tuple[ColumnDeclaration, ...]
    primary_keys: tuple[str, ...]
    schema: str | None = None
    sql_name: str | None = None
    doc: str | None = None
    foreign_keys: tuple[ForeignKey, ...] = ()

    @property
    def qualified_name(self) -> str:
        """Database name of the table, schema-qualified when a schema is declared."""
        name = self.sql_name or self.name
        return f"{self.schema}.{name}" if self.schema else name

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> ColumnDeclaration | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def is_primary_key(self, name: str) -> bool:
        return name in self.primary_keys


# (kind, width, timezone) keyed by the lowercased last path segment.
BASE_TYPES: dict[str, tuple[TypeKind, int | None, bool]] = {
    "tinyint": (TypeKind.INTEGER, 8, False),
    "smallint": (TypeKind.INTEGER, 16, False),
    "int2": (TypeKind.INTEGER, 16, False),
    "integer": (TypeKind.INTEGER, 32, False),
    "int4": (TypeKind.INTEGER, 32, False),
    "bigint": (TypeKind.INTEGER, 64, False),
    "int8": (TypeKind.INTEGER, 64, False),
    "float": (TypeKind.FLOAT, 32, False),
    "float4": (TypeKind.FLOAT, 32, False),
    "double": (TypeKind.FLOAT, 64, False),
    "float8": (TypeKind.FLOAT, 64, False),
    "text": (TypeKind.TEXT, None, False),
    "varchar": (TypeKind.TEXT, None, False),
    "char": (TypeKind.TEXT, None, False),
    "bpchar": (TypeKind.TEXT, None, False),
    "citext": (TypeKind.TEXT, None, False),
    "tinytext": (TypeKind.TEXT, None, False),
    "mediumtext": (TypeKind.TEXT, None, False),
    "longtext": (TypeKind.TEXT, None, False),
    "bool": (TypeKind.BOOLEAN, None, False),
    "timestamp": (TypeKind.TIMESTAMP, None, False),
    "datetime": (TypeKind.TIMESTAMP, None, False),
    "timestamptz": (TypeKind.TIMESTAMP, None, True),
    "date": (TypeKind.DATE, None, False),
    "time": (TypeKind.TIME, None, False),
    "bytea": (TypeKind.BINARY, None, False),
    "binary": (TypeKind.BINARY, None, False),
    "varbinary": (TypeKind.BINARY, None, False),
    "blob": (TypeKind.BINARY, None, False),
    "tinyblob": (TypeKind.BINARY, None, False),
    "mediumblob": (TypeKind.BINARY, None, False),
    "longblob": (TypeKind.BINARY, None, False),
    "numeric": (TypeKind.NUMERIC, None, False),
    "decimal": (TypeKind.NUMERIC, None, False),
    "uuid": (TypeKind.UUID, None, False),
    "json": (TypeKind.JSON, None, False),
    "jsonb": (TypeKind.JSON, None, False),
}

COLUMN_ATTRIBUTES = {"sql_name", "max_length"}
TABLE_ATTRIBUTES = {"sql_name"}

TOKEN_RE = re.compile(
    r"""
    (?P<doc>///(?!/)[^\n]*)
  | (?P<comment>//[^\n]*)
  | (?P<block>/\*)
  | (?P<ws>\s+)
  | (?P<string>"(?:\\.|[^"\\])*")
  | (?P<number>\d+)
  | (?P<ident>(?:r\#)?[A-Za-z_][A-Za-z0-9_]*)
  | (?P<arrow>->)
  | (?P<path>::)
  | (?P<punct>.)
    """,
    flags=re.S | re.X,
)


@dataclasses.dataclass(frozen=True)
class Token:
    kind: str
    value: str
    line: int


def block_comment_end(text: str, start: int) -> int:
    """Index just past the block comment opened at `start`; block comments nest."""
    depth = 0
    idx = start
    while idx < len(text):
        if text.startswith("/*", idx):
            depth += 1
            idx += 2
        elif text.startswith("*/", idx):
            depth -= 1
            idx += 2
            if depth == 0:
                return idx
        else:
            idx += 1
    line = text.count("\n", 0, start) + 1
    raise ParseError(None, f"unterminated block comment starting at line {line}")


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    line = 1
    pos = 0
    while pos < len(text):
        m = TOKEN_RE.match(text, pos)
        kind = m.lastgroup or "punct"
        if kind == "block":
            end = block_comment_end(text, pos)
        else:
            end = m.end()
        raw = text[pos:end]
        pos = end
        if kind == "doc":
            value = raw[3:]
            if value.startswith(" "):
                value = value[1:]
            tokens.append(Token(kind, value.rstrip(), line))
        elif kind not in ("ws", "comment", "block"):
            tokens.append(Token(kind, raw, line))
        line += raw.count("\n")
    return tokens


def unraw(ident: str) -> str:
    return ident[2:] if ident.startswith("r#") else ident


def unquote(literal: str) -> str:
    inner = literal[1:-1]
    return re.sub(r"\\(.)", r"\1", inner)


def build_sql_type(path: str, args: list[SqlType], numbers: list[int], table: str | None) -> SqlType:
    raw = path
    if args:
        raw += "<" + ", ".join(a.raw for a in args) + ">"
    if numbers:
        raw += "(" + ", ".join(str(n) for n in numbers) + ")"

    base = path.rsplit("::", 1)[-1].lower()
    if base in ("nullable", "array"):
        if len(args) != 1:
            raise ParseError(table, f"`{raw}` expects exactly one type argument")
        kind = TypeKind.NULLABLE if base == "nullable" else TypeKind.ARRAY
        return SqlType(kind=kind, raw=raw, inner=args[0])

    if args or base not in BASE_TYPES:
        return SqlType(kind=TypeKind.CUSTOM, raw=raw)

    kind, width, timezone = BASE_TYPES[base]
    precision = numbers[0] if numbers else None
    scale = numbers[1] if len(numbers) > 1 else None
    return SqlType(kind=kind, raw=raw, width=width, timezone=timezone, precision=precision, scale=scale)


class SchemaParser:
    def __init__(self, text: str) -> None:
        self.tokens = tokenize(text)
        self.pos = 0

    # token helpers

    def peek(self, offset: int = 0) -> Token | None:
        idx = self.pos + offset
        if idx < len(self.tokens):
            return self.tokens[idx]
        return None

    def at(self, kind: str, value: str | None = None, offset: int = 0) -> bool:
        tok = self.peek(offset)
        if tok is None or tok.kind != kind:
            return False
        return value is None or tok.value == value

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def expect(self, kind: str, value: str | None = None, table: str | None = None) -> Token:
        tok = self.peek()
        wanted = f"`{value}`" if value else kind
        if tok is None:
            raise ParseError(table, f"expected {wanted}, found end of input")
        if not self.at(kind, value):
            raise ParseError(table, f"expected {wanted} at line {tok.line}, found `{tok.value}`")
        return self.advance()

    def macro_name_at(self, name: str, opener: str) -> int | None:
        """Number of tokens up to the macro's opening delimiter when a `path::name!` invocation starts here."""
        if not self.at("ident"):
            return None
        offset = 0
        while self.at("path", offset=offset + 1) and self.at("ident", offset=offset + 2):
            offset += 2
        if (
            self.peek(offset).value == name
            and self.at("punct", "!", offset=offset + 1)
            and self.at("punct", opener, offset=offset + 2)
        ):
            return offset + 3
        return None

    # grammar

    def parse(self) -> list[TableDeclaration]:
        tables: list[TableDeclaration] = []
        joinables: list[tuple[str, str, str]] = []
        while self.peek() is not None:
            skip = self.macro_name_at("table", "{")
            if skip is not None:
                self.pos += skip
                tables.extend(self.parse_table_block())
                continue
            skip = self.macro_name_at("joinable", "(")
            if skip is not None:
                self.pos += skip
                joinables.append(self.parse_joinable())
                continue
            self.advance()

        seen: set[str] = set()
        for table in tables:
            if table.name in seen:
                raise ParseError(table.name, "table declared more than once")
            seen.add(table.name)

        return attach_foreign_keys(tables, joinables)

    def parse_table_block(self) -> list[TableDeclaration]:
        tables: list[TableDeclaration] = []
        docs: list[str] = []
        attrs: list[tuple[str, str | None]] = []
        while not self.at("punct", "}"):
            tok = self.peek()
            if tok is None:
                raise ParseError(None, "unterminated table! block")
            if tok.kind == "ident" and tok.value == "use":
                while not self.at("punct", ";"):
                    if self.peek() is None:
                        raise ParseError(None, f"unterminated `use` at line {tok.line}")
                    self.advance()
                self.advance()
            elif tok.kind == "doc":
                docs.append(self.advance().value)
            elif self.at("punct", "#"):
                attrs.append(self.parse_attribute(None))
            else:
                tables.append(self.parse_table(docs, attrs))
                docs, attrs = [], []
        self.advance()
        return tables

    def parse_attribute(self, table: str | None) -> tuple[str, str | None]:
        self.expect("punct", "#", table)
        self.expect("punct", "[", table)
        name = self.expect("ident", table=table).value
        value = None
        if self.at("punct", "="):
            self.advance()
            tok = self.peek()
            if tok is None or tok.kind not in ("string", "number", "ident"):
                raise ParseError(table, f"attribute `{name}` has no value")
            self.advance()
            value = unquote(tok.value) if tok.kind == "string" else tok.value
        self.expect("punct", "]", table)
        return name, value

    def parse_table(self, docs: list[str], attrs: list[tuple[str, str | None]]) -> TableDeclaration:
        schema = None
        name = unraw(self.expect("ident").value)
        if self.at("punct", "."):
            self.advance()
            schema = name
            name = unraw(self.expect("ident", table=name).value)

        sql_name = None
        for attr, value in attrs:
            if attr not in TABLE_ATTRIBUTES:
                raise ParseError(name, f"unrecognized attribute `{attr}`")
            sql_name = value

        primary_keys: list[str] | None = None
        if self.at("punct", "("):
            self.advance()
            primary_keys = []
            while not self.at("punct", ")"):
                primary_keys.append(unraw(self.expect("ident", table=name).value))
                if not self.at("punct", ","):
                    break
                self.advance()
            self.expect("punct", ")", name)

        self.expect("punct", "{", name)
        columns: list[ColumnDeclaration] = []
        col_docs: list[str] = []
        col_attrs: list[tuple[str, str | None]] = []
        while not self.at("punct", "}"):
            tok = self.peek()
            if tok is None:
                raise ParseError(name, "unterminated column list")
            if tok.kind == "doc":
                col_docs.append(self.advance().value)
            elif self.at("punct", "#"):
                col_attrs.append(self.parse_attribute(name))
            else:
                columns.append(self.parse_column(name, col_docs, col_attrs))
                col_docs, col_attrs = [], []
        self.advance()

        return build_table(
            name,
            columns,
            primary_keys,
            schema=schema,
            sql_name=sql_name,
            doc="\n".join(docs) or None,
        )

    def parse_column(
        self, table: str, docs: list[str], attrs: list[tuple[str, str | None]]
    ) -> ColumnDeclaration:
        name = unraw(self.expect("ident", table=table).value)
        self.expect("arrow", table=table)
        sql_type = self.parse_type(table)
        if self.at("punct", ","):
            self.advance()
        elif not self.at("punct", "}"):
            tok = self.peek()
            found = f"`{tok.value}` at line {tok.line}" if tok else "end of input"
            raise ParseError(table, f"expected `,` after column `{name}`, found {found}")

        sql_name = None
        max_length = None
        for attr, value in attrs:
            if attr not in COLUMN_ATTRIBUTES:
                raise ParseError(table, f"unrecognized attribute `{attr}` on column `{name}`")
            if attr == "sql_name":
                sql_name = value
            elif value is not None and value.isdigit():
                max_length = int(value)
            else:
                raise ParseError(table, f"`max_length` of column `{name}` must be an integer")

        return ColumnDeclaration(
            name=name,
            type_token=sql_type.raw,
            sql_type=sql_type,
            nullable=sql_type.is_nullable,
            sql_name=sql_name,
            max_length=max_length,
            doc="\n".join(docs) or None,
        )

    def parse_type(self, table: str) -> SqlType:
        segments = [self.expect("ident", table=table).value]
        while self.at("path"):
            self.advance()
            segments.append(self.expect("ident", table=table).value)

        args: list[SqlType] = []
        if self.at("punct", "<"):
            self.advance()
            while not self.at("punct", ">"):
                args.append(self.parse_type(table))
                if not self.at("punct", ","):
                    break
                self.advance()
            self.expect("punct", ">", table)

        numbers: list[int] = []
        if self.at("punct", "(") and self.at("number", offset=1):
            self.advance()
            while not self.at("punct", ")"):
                numbers.append(int(self.expect("number", table=table).value))
                if not self.at("punct", ","):
                    break
                self.advance()
            self.expect("punct", ")", table)

        return build_sql_type("::".join(segments), args, numbers, table)

    def parse_joinable(self) -> tuple[str, str, str]:
        child = unraw(self.expect("ident").value)
        self.expect("arrow", table=child)
        parent = unraw(self.expect("ident", table=child).value)
        self.expect("punct", "(", child)
        column = unraw(self.expect("ident", table=child).value)
        self.expect("punct", ")", child)
        self.expect("punct", ")", child)
        return child, parent, column


def build_table(
    name: str,
    columns: list[ColumnDeclaration],
    primary_keys: list[str] | None,
    schema: str | None = None,
    sql_name: str | None = None,
    doc: str | None = None,
) -> TableDeclaration:
    if not columns:
        raise ParseError(name, "no columns declared")

    names = [c.name for c in columns]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ParseError(name, f"duplicate column names: {', '.join(duplicates)}")

    if primary_keys is not None:
        if not primary_keys:
            raise ParseError(name, "empty primary key list")
        missing = [pk for pk in primary_keys if pk not in names]
        if missing:
            raise ParseError(name, f"primary key column(s) not declared: {', '.join(missing)}")
    elif "id" in names:
        logger.debug("table %s declares no primary key, using `id`", name)
        primary_keys = ["id"]
    else:
        raise ParseError(name, "no primary key declared and no `id` column to fall back to")

    return TableDeclaration(
        name=name,
        columns=tuple(columns),
        primary_keys=tuple(primary_keys),
        schema=schema,
        sql_name=sql_name,
        doc=doc,
    )


def attach_foreign_keys(
    tables: list[TableDeclaration], joinables: list[tuple[str, str, str]]
) -> list[TableDeclaration]:
    by_name = {t.name: t for t in tables}
    foreign_keys: dict[str, list[ForeignKey]] = {}
    for child, parent, column in joinables:
        child_table = by_name.get(child)
        if child_table is None or parent not in by_name:
            logger.warning("joinable!(%s -> %s (%s)) references an undeclared table, skipping", child, parent, column)
            continue
        if child_table.column(column) is None:
            logger.warning("joinable!(%s -> %s (%s)): `%s` has no column `%s`, skipping", child, parent, column, child, column)
            continue
        foreign_keys.setdefault(child, []).append(ForeignKey(column=column, parent_table=parent))

    return [
        dataclasses.replace(t, foreign_keys=tuple(foreign_keys[t.name])) if t.name in foreign_keys else t
        for t in tables
    ]


def parse(schema_text: str) -> list[TableDeclaration]:
    """Parse schema text into table declarations, in declaration order.

    Raises ParseError on the first malformed table.
    """
    return SchemaParser(schema_text).parse()
