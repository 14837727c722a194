"""Render Diesel model code for a parsed table."""

from __future__ import annotations

from modelsync.config import GenerationConfig, TableOptions
from modelsync.marked_file import FILE_SIGNATURE
from modelsync.parser import ColumnDeclaration, SqlType, TableDeclaration, TypeKind

RUST_KEYWORDS = {
    "as", "async", "await", "box", "break", "const", "continue", "crate", "dyn", "else", "enum",
    "extern", "false", "fn", "for", "if", "impl", "in", "let", "loop", "match", "mod", "move",
    "mut", "pub", "ref", "return", "static", "struct", "trait", "true", "type", "unsafe", "use",
    "where", "while", "yield",
}

SIMPLE_RUST_TYPES = {
    TypeKind.TEXT: "String",
    TypeKind.BOOLEAN: "bool",
    TypeKind.DATE: "chrono::NaiveDate",
    TypeKind.TIME: "chrono::NaiveTime",
    TypeKind.BINARY: "Vec<u8>",
    TypeKind.NUMERIC: "bigdecimal::BigDecimal",
    TypeKind.UUID: "uuid::Uuid",
    TypeKind.JSON: "serde_json::Value",
}


def singularize(word: str) -> str:
    lower = word.lower()
    if lower.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if lower.endswith(("sses", "xes", "ches", "shes")):
        return word[:-2]
    if lower.endswith("s") and not lower.endswith(("ss", "us", "is")):
        return word[:-1]
    return word


def to_pascal_case(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


def struct_name(table_name: str) -> str:
    return to_pascal_case(singularize(table_name))


def rust_ident(name: str) -> str:
    return f"r#{name}" if name in RUST_KEYWORDS else name


def rust_type(sql_type: SqlType) -> str:
    kind = sql_type.kind
    if kind is TypeKind.NULLABLE:
        return f"Option<{rust_type(sql_type.inner)}>"
    if kind is TypeKind.ARRAY:
        return f"Vec<{rust_type(sql_type.inner)}>"
    if kind is TypeKind.INTEGER:
        return f"i{sql_type.width or 32}"
    if kind is TypeKind.FLOAT:
        return f"f{sql_type.width or 64}"
    if kind is TypeKind.TIMESTAMP:
        return "chrono::DateTime<chrono::Utc>" if sql_type.timezone else "chrono::NaiveDateTime"
    if kind is TypeKind.CUSTOM:
        return sql_type.raw
    return SIMPLE_RUST_TYPES[kind]


def render_fields(columns: list[ColumnDeclaration], optional: bool = False) -> list[str]:
    lines: list[str] = []
    for col in columns:
        if col.doc:
            lines.extend(f"    /// {doc}".rstrip() for doc in col.doc.splitlines())
        if col.max_length is not None:
            lines.append(f"    /// Max length: {col.max_length}")
        field_type = rust_type(col.sql_type)
        if optional:
            field_type = f"Option<{field_type}>"
        lines.append(f"    pub {rust_ident(col.name)}: {field_type},")
    return lines


def render_struct(name: str, derives: list[str], diesel_attr: str, fields: list[str], doc: str, tsync: bool) -> list[str]:
    lines = [f"/// {line}".rstrip() for line in doc.splitlines()]
    if tsync:
        lines.append("#[tsync::tsync]")
    lines.append(f"#[derive({', '.join(derives)})]")
    lines.append(f"#[diesel({diesel_attr})]")
    lines.append(f"pub struct {name} {{")
    lines.extend(fields)
    lines.append("}")
    return lines


def render_functions(
    table: TableDeclaration,
    config: GenerationConfig,
    create_name: str | None,
    update_name: str | None,
    use_async: bool,
) -> list[str]:
    name = table.name
    pk_columns = [table.column(pk) for pk in table.primary_keys]
    params = ", ".join(f"param_{pk.name}: {rust_type(pk.sql_type)}" for pk in pk_columns)
    filters = "".join(f".filter({rust_ident(pk.name)}.eq(param_{pk.name}))" for pk in pk_columns)
    dsl = f"        use {config.schema_path}{name}::dsl::*;"
    fn = "pub async fn" if use_async else "pub fn"
    aw = ".await" if use_async else ""

    blocks: list[list[str]] = []
    if create_name:
        blocks.append([
            f"    {fn} create(db: &mut ConnectionType, item: &{create_name}) -> QueryResult<Self> {{",
            dsl,
            "",
            f"        insert_into({name}).values(item).get_result::<Self>(db){aw}",
            "    }",
        ])
    blocks.append([
        f"    {fn} read(db: &mut ConnectionType, {params}) -> QueryResult<Self> {{",
        dsl,
        "",
        f"        {name}{filters}.first::<Self>(db){aw}",
        "    }",
    ])
    blocks.append([
        "    /// Paginates through the table where page is a 0-based index (i.e. page 0 is the first page)",
        f"    {fn} paginate(db: &mut ConnectionType, page: i64, page_size: i64) -> QueryResult<PaginationResult<Self>> {{",
        dsl,
        "",
        "        let page_size = if page_size < 1 { 1 } else { page_size };",
        f"        let total_items = {name}.count().get_result(db){aw}?;",
        f"        let items = {name}.limit(page_size).offset(page * page_size).load::<Self>(db){aw}?;",
        "",
        "        Ok(PaginationResult {",
        "            items,",
        "            total_items,",
        "            page,",
        "            page_size,",
        "            /* ceiling division of integers */",
        "            num_pages: total_items / page_size + i64::from(total_items % page_size != 0)",
        "        })",
        "    }",
    ])
    if update_name:
        blocks.append([
            f"    {fn} update(db: &mut ConnectionType, {params}, item: &{update_name}) -> QueryResult<Self> {{",
            dsl,
            "",
            f"        diesel::update({name}{filters}).set(item).get_result(db){aw}",
            "    }",
        ])
    blocks.append([
        f"    {fn} delete(db: &mut ConnectionType, {params}) -> QueryResult<usize> {{",
        dsl,
        "",
        f"        diesel::delete({name}{filters}).execute(db){aw}",
        "    }",
    ])

    lines = [f"impl {struct_name(name)} {{"]
    for idx, block in enumerate(blocks):
        if idx:
            lines.append("")
        lines.extend(block)
    lines.append("}")
    return lines


def emit(table: TableDeclaration, options: TableOptions, config: GenerationConfig | None = None) -> str:
    """Return the full contents of `generated.rs` for `table`.

    Ignored tables produce an empty string. The output always starts with
    FILE_SIGNATURE and depends only on the arguments.
    """
    if options.get_ignore():
        return ""
    config = config or GenerationConfig()
    tsync = options.get_tsync()
    use_async = options.get_async()
    autogenerated = set(options.get_autogenerated_columns())

    name = table.name
    model = struct_name(name)
    columns = list(table.columns)
    create_columns = [c for c in columns if c.name not in autogenerated]
    update_columns = [c for c in columns if not table.is_primary_key(c.name)]
    create_name = f"Create{model}" if create_columns else None
    update_name = f"Update{model}" if update_columns else None

    lines: list[str] = [FILE_SIGNATURE, ""]
    lines.append("use crate::diesel::*;")
    lines.append(f"use {config.schema_path}*;")
    lines.append("use diesel::QueryResult;")
    lines.append("use serde::{Deserialize, Serialize};")
    for parent in sorted({fk.parent_table for fk in table.foreign_keys}):
        lines.append(f"use {config.model_path}{parent}::{struct_name(parent)};")
    if use_async:
        lines.append("use diesel_async::RunQueryDsl;")
    lines.append("")
    lines.append(f"type ConnectionType = {config.connection_type};")
    lines.append("")

    derives = ["Debug", "Clone", "Serialize", "Deserialize", "Queryable", "Selectable", "Identifiable"]
    diesel_attr = f"table_name={name}, primary_key({', '.join(table.primary_keys)})"
    if table.foreign_keys:
        derives.append("Associations")
        for fk in table.foreign_keys:
            diesel_attr += f", belongs_to({struct_name(fk.parent_table)}, foreign_key={fk.column})"
    doc = table.doc or f"Struct representing a row in table `{table.qualified_name}`"
    lines.extend(render_struct(model, derives, diesel_attr, render_fields(columns), doc, tsync))

    if create_name:
        lines.append("")
        lines.extend(
            render_struct(
                create_name,
                ["Debug", "Clone", "Serialize", "Deserialize", "Insertable"],
                f"table_name={name}",
                render_fields(create_columns),
                f"Create Struct for a row in table `{name}` for [`{model}`]",
                tsync,
            )
        )
    if update_name:
        lines.append("")
        lines.extend(
            render_struct(
                update_name,
                ["Debug", "Clone", "Serialize", "Deserialize", "AsChangeset", "Default"],
                f"table_name={name}",
                render_fields(update_columns, optional=True),
                f"Update Struct for a row in table `{name}` for [`{model}`]",
                tsync,
            )
        )

    lines.append("")
    if tsync:
        lines.append("#[tsync::tsync]")
    lines.extend([
        "#[derive(Debug, Serialize)]",
        "pub struct PaginationResult<T> {",
        "    pub items: Vec<T>,",
        "    pub total_items: i64,",
        "    /// 0-based index",
        "    pub page: i64,",
        "    pub page_size: i64,",
        "    pub num_pages: i64,",
        "}",
        "",
    ])
    lines.extend(render_functions(table, config, create_name, update_name, use_async))
    lines.append("")
    return "\n".join(lines)
