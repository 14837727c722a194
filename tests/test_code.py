import re
import unittest

from modelsync.code import emit, rust_type, struct_name
from modelsync.config import GenerationConfig, TableOptions
from modelsync.marked_file import FILE_SIGNATURE
from modelsync.parser import parse

POSTS_SCHEMA = """
diesel::table! {
    posts (id) {
        id -> Int4,
        title -> Text,
        created_at -> Timestamp,
    }
}
"""


def struct_fields(code: str, name: str) -> dict[str, str]:
    m = re.search(rf"pub struct {re.escape(name)} \{{\n(.*?)\n\}}", code, flags=re.S)
    if not m:
        raise AssertionError(f"missing struct: {name}")
    fields: dict[str, str] = {}
    for line in m.group(1).splitlines():
        fm = re.match(r"\s*pub ([\w#]+): (.+),$", line)
        if fm:
            fields[fm.group(1)] = fm.group(2)
    return fields


def parse_one(text: str):
    (table,) = parse(text)
    return table


class TestEmitPosts(unittest.TestCase):
    def setUp(self) -> None:
        self.table = parse_one(POSTS_SCHEMA)
        self.options = TableOptions().with_autogenerated_columns(["created_at"])
        self.code = emit(self.table, self.options)

    def test_starts_with_signature(self) -> None:
        self.assertEqual(self.code.splitlines()[0], FILE_SIGNATURE)

    def test_full_record_has_every_column(self) -> None:
        self.assertEqual(
            struct_fields(self.code, "Post"),
            {"id": "i32", "title": "String", "created_at": "chrono::NaiveDateTime"},
        )
        self.assertIn("#[diesel(table_name=posts, primary_key(id))]", self.code)

    def test_insertable_skips_autogenerated_columns(self) -> None:
        self.assertEqual(struct_fields(self.code, "CreatePost"), {"id": "i32", "title": "String"})

    def test_changeset_skips_primary_key(self) -> None:
        self.assertEqual(
            struct_fields(self.code, "UpdatePost"),
            {"title": "Option<String>", "created_at": "Option<chrono::NaiveDateTime>"},
        )

    def test_crud_functions(self) -> None:
        self.assertIn("pub fn create(db: &mut ConnectionType, item: &CreatePost) -> QueryResult<Self> {", self.code)
        self.assertIn("pub fn read(db: &mut ConnectionType, param_id: i32) -> QueryResult<Self> {", self.code)
        self.assertIn("posts.filter(id.eq(param_id)).first::<Self>(db)", self.code)
        self.assertIn("pub fn update(db: &mut ConnectionType, param_id: i32, item: &UpdatePost)", self.code)
        self.assertIn("diesel::delete(posts.filter(id.eq(param_id))).execute(db)", self.code)
        self.assertIn("use crate::schema::posts::dsl::*;", self.code)
        self.assertNotIn(".await", self.code)

    def test_connection_type(self) -> None:
        self.assertIn("type ConnectionType = diesel::pg::PgConnection;", self.code)
        config = GenerationConfig(connection_type="diesel::sqlite::SqliteConnection")
        code = emit(self.table, self.options, config)
        self.assertIn("type ConnectionType = diesel::sqlite::SqliteConnection;", code)

    def test_output_is_deterministic(self) -> None:
        again = emit(parse_one(POSTS_SCHEMA), TableOptions().with_autogenerated_columns(["created_at"]))
        self.assertEqual(self.code, again)

    def test_ignored_table_emits_nothing(self) -> None:
        self.assertEqual(emit(self.table, self.options.ignore_table()), "")


class TestEmitVariants(unittest.TestCase):
    def test_nullable_columns_become_double_options_in_changeset(self) -> None:
        table = parse_one("table! { notes (id) { id -> Int8, body -> Nullable<Text> } }")
        code = emit(table, TableOptions())
        self.assertEqual(struct_fields(code, "Note")["body"], "Option<String>")
        self.assertEqual(struct_fields(code, "UpdateNote")["body"], "Option<Option<String>>")

    def test_composite_primary_key_parameters(self) -> None:
        table = parse_one("table! { memberships (user_id, team_id) { user_id -> Int4, team_id -> Int8, role -> Text } }")
        code = emit(table, TableOptions())
        self.assertIn("pub fn read(db: &mut ConnectionType, param_user_id: i32, param_team_id: i64)", code)
        self.assertIn(".filter(user_id.eq(param_user_id)).filter(team_id.eq(param_team_id))", code)
        self.assertIn("primary_key(user_id, team_id)", code)

    def test_key_only_table_has_no_changeset(self) -> None:
        table = parse_one("table! { tags (name) { name -> Text } }")
        code = emit(table, TableOptions())
        self.assertNotIn("UpdateTag", code)
        self.assertNotIn("pub fn update", code)
        self.assertIn("pub struct CreateTag", code)

    def test_fully_autogenerated_table_has_no_insertable(self) -> None:
        table = parse_one("table! { ticks (id) { id -> Int4, at -> Timestamptz } }")
        code = emit(table, TableOptions(autogenerated_columns=("id", "at")))
        self.assertNotIn("CreateTick", code)
        self.assertNotIn("pub fn create", code)
        self.assertEqual(struct_fields(code, "UpdateTick"), {"at": "Option<chrono::DateTime<chrono::Utc>>"})

    def test_tsync_and_async_toggles(self) -> None:
        table = parse_one("table! { posts (id) { id -> Int4, title -> Text } }")
        code = emit(table, TableOptions(tsync=True, use_async=True))
        self.assertEqual(code.count("#[tsync::tsync]"), 4)
        self.assertIn("use diesel_async::RunQueryDsl;", code)
        self.assertIn("pub async fn read(", code)
        self.assertIn(".first::<Self>(db).await", code)
        self.assertIn("let total_items = posts.count().get_result(db).await?;", code)

    def test_foreign_keys_add_associations(self) -> None:
        tables = parse(
            "table! { posts (id) { id -> Int4 } }\n"
            "table! { comments (id) { id -> Int4, post_id -> Int4 } }\n"
            "joinable!(comments -> posts (post_id));\n"
        )
        code = emit(tables[1], TableOptions())
        self.assertIn("use crate::models::posts::Post;", code)
        self.assertIn("Identifiable, Associations)]", code)
        self.assertIn("belongs_to(Post, foreign_key=post_id)", code)

    def test_docs_and_keywords(self) -> None:
        table = parse_one(
            "table! {\n"
            "    /// Things people own.\n"
            "    items (id) {\n"
            "        id -> Int4,\n"
            "        /// Kind of item.\n"
            "        r#type -> Text,\n"
            "    }\n"
            "}\n"
        )
        code = emit(table, TableOptions())
        self.assertIn("/// Things people own.\n#[derive(", code)
        self.assertIn("    /// Kind of item.\n    pub r#type: String,", code)

    def test_default_doc_names_database_table(self) -> None:
        table = parse_one('table! { #[sql_name = "people"] auth.persons (id) { id -> Int4 } }')
        code = emit(table, TableOptions())
        self.assertIn("/// Struct representing a row in table `auth.people`\n", code)
        self.assertIn("#[diesel(table_name=persons, primary_key(id))]", code)

    def test_max_length_is_documented(self) -> None:
        table = parse_one(
            "table! { users (id) {\n"
            "    id -> Int4,\n"
            "    /// Login name.\n"
            "    #[max_length = 64]\n"
            "    login -> Varchar,\n"
            "} }\n"
        )
        code = emit(table, TableOptions())
        self.assertIn("    /// Login name.\n    /// Max length: 64\n    pub login: String,", code)
        self.assertEqual(struct_fields(code, "UpdateUser"), {"login": "Option<String>"})


class TestNaming(unittest.TestCase):
    def test_struct_names(self) -> None:
        self.assertEqual(struct_name("posts"), "Post")
        self.assertEqual(struct_name("categories"), "Category")
        self.assertEqual(struct_name("user_addresses"), "UserAddress")
        self.assertEqual(struct_name("status"), "Status")
        self.assertEqual(struct_name("Users"), "User")

    def test_rust_types(self) -> None:
        table = parse_one(
            "table! { t (id) {\n"
            "    id -> SmallInt,\n"
            "    a -> Float8,\n"
            "    b -> Bytea,\n"
            "    c -> Array<Nullable<Uuid>>,\n"
            "    d -> Numeric,\n"
            "    e -> Date,\n"
            "    f -> Jsonb,\n"
            "    g -> crate::schema::sql_types::Mood,\n"
            "} }"
        )
        types = {c.name: rust_type(c.sql_type) for c in table.columns}
        self.assertEqual(types, {
            "id": "i16",
            "a": "f64",
            "b": "Vec<u8>",
            "c": "Vec<Option<uuid::Uuid>>",
            "d": "bigdecimal::BigDecimal",
            "e": "chrono::NaiveDate",
            "f": "serde_json::Value",
            "g": "crate::schema::sql_types::Mood",
        })


if __name__ == "__main__":
    unittest.main()
