import tempfile
import unittest
from pathlib import Path

from modelsync.config import GenerationConfig, TableOptions, load_config
from modelsync.errors import ConfigError

FIXTURES = Path(__file__).resolve().parent / "fixtures"


class TestTableOptions(unittest.TestCase):
    def test_unset_options_resolve_to_falsy_defaults(self) -> None:
        options = TableOptions()
        self.assertFalse(options.get_ignore())
        self.assertFalse(options.get_tsync())
        self.assertFalse(options.get_async())
        self.assertEqual(options.get_autogenerated_columns(), ())

    def test_builders_return_new_instances(self) -> None:
        base = TableOptions()
        changed = base.ignore_table().with_tsync().with_async().with_autogenerated_columns(["created_at"])
        self.assertIsNone(base.ignore)
        self.assertTrue(changed.get_ignore())
        self.assertTrue(changed.get_tsync())
        self.assertTrue(changed.get_async())
        self.assertEqual(changed.get_autogenerated_columns(), ("created_at",))

    def test_apply_defaults_merges_field_by_field(self) -> None:
        own = TableOptions(tsync=False)
        defaults = TableOptions(tsync=True, use_async=True, autogenerated_columns=("created_at",))
        merged = own.apply_defaults(defaults)
        self.assertIs(merged.tsync, False)
        self.assertIs(merged.use_async, True)
        self.assertEqual(merged.autogenerated_columns, ("created_at",))
        self.assertIsNone(merged.ignore)


class TestGenerationConfig(unittest.TestCase):
    def test_unknown_table_gets_default_options(self) -> None:
        defaults = TableOptions(use_async=True)
        config = GenerationConfig(default_table_options=defaults)
        self.assertEqual(config.table("anything"), defaults)

    def test_disjoint_overrides_resolve_independently(self) -> None:
        config = GenerationConfig(
            table_options={
                "posts": TableOptions(autogenerated_columns=("published_at",)),
                "users": TableOptions(tsync=True),
            },
            default_table_options=TableOptions(tsync=False, autogenerated_columns=("created_at",)),
        )
        posts = config.table("posts")
        users = config.table("users")
        self.assertEqual(posts.get_autogenerated_columns(), ("published_at",))
        self.assertFalse(posts.get_tsync())
        self.assertTrue(users.get_tsync())
        self.assertEqual(users.get_autogenerated_columns(), ("created_at",))


class TestLoadConfig(unittest.TestCase):
    def write_config(self, text: str) -> Path:
        td = tempfile.TemporaryDirectory()
        self.addCleanup(td.cleanup)
        path = Path(td.name) / "modelsync.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_loads_fixture(self) -> None:
        config = load_config(FIXTURES / "modelsync.yaml")
        self.assertEqual(config.connection_type, "diesel::sqlite::SqliteConnection")
        self.assertEqual(config.schema_path, "crate::schema::")
        self.assertEqual(config.default_table_options.autogenerated_columns, ("created_at", "updated_at"))
        self.assertTrue(config.table("audit_log").get_ignore())
        comments = config.table("comments")
        self.assertTrue(comments.get_tsync())
        self.assertEqual(comments.get_autogenerated_columns(), ("created_at", "updated_at"))

    def test_async_alias(self) -> None:
        config = load_config(self.write_config("defaults:\n  async: true\n"))
        self.assertTrue(config.default_table_options.get_async())

    def test_empty_file_gives_default_config(self) -> None:
        self.assertEqual(load_config(self.write_config("")), GenerationConfig())

    def test_unknown_top_level_key(self) -> None:
        with self.assertRaisesRegex(ConfigError, "unknown config keys: colour"):
            load_config(self.write_config("colour: blue\n"))

    def test_unknown_option(self) -> None:
        with self.assertRaisesRegex(ConfigError, "tables.posts: unknown option `frozen`"):
            load_config(self.write_config("tables:\n  posts:\n    frozen: true\n"))

    def test_wrong_option_types(self) -> None:
        with self.assertRaisesRegex(ConfigError, "must be true or false"):
            load_config(self.write_config("defaults:\n  ignore: maybe\n"))
        with self.assertRaisesRegex(ConfigError, "list of column names"):
            load_config(self.write_config("defaults:\n  autogenerated_columns: created_at\n"))

    def test_invalid_yaml(self) -> None:
        with self.assertRaisesRegex(ConfigError, "invalid YAML"):
            load_config(self.write_config("tables: [unclosed\n"))

    def test_missing_file(self) -> None:
        with self.assertRaisesRegex(ConfigError, "could not read config file"):
            load_config(Path("/nonexistent/modelsync.yaml"))


if __name__ == "__main__":
    unittest.main()
