import tempfile
import unittest
from pathlib import Path

from selfhost_gen.codegen import (
    EDITABLE_COMPILER_OPTIONS,
    REQUIRED_COMPILER_OPTIONS,
    generate_environment_descriptor,
    is_excluded,
    is_included,
    parse_environment_descriptor,
    regenerate_environment_descriptor,
    render_environment_descriptor,
    write_environment_descriptor,
)

EXPECTED_TSCONFIG = """{
  /* This TypeScript project config describes the environment that
   * Convex functions run in and is used to typecheck them.
   * You can modify it, but some settings required to use Convex.
   */
  "compilerOptions": {
    /* These settings are not required by Convex and can be modified. */
    "allowJs": true,
    "strict": true,
    "moduleResolution": "Bundler",

    /* These compiler options are required by Convex */
    "target": "ESNext",
    "lib": ["ES2021", "dom"],
    "forceConsistentCasingInFileNames": true,
    "allowSyntheticDefaultImports": true,
    "module": "ESNext",
    "isolatedModules": true,
    "skipLibCheck": true,
    "noEmit": true,
  },
  "include": ["./**/*"],
  "exclude": ["./_generated"]
}"""


class GenerateTests(unittest.TestCase):
    def test_template_is_exact(self):
        self.assertEqual(generate_environment_descriptor(), EXPECTED_TSCONFIG)

    def test_generation_is_deterministic(self):
        self.assertEqual(generate_environment_descriptor(), generate_environment_descriptor())

    def test_required_options_cannot_be_overridden(self):
        text = render_environment_descriptor({"strict": False, "target": "ES5", "noEmit": False})
        parsed = parse_environment_descriptor(text)["compilerOptions"]
        self.assertFalse(parsed["strict"])
        self.assertEqual(parsed["target"], "ESNext")
        self.assertTrue(parsed["noEmit"])

    def test_partitions_are_disjoint_and_read_only(self):
        self.assertFalse(set(EDITABLE_COMPILER_OPTIONS) & set(REQUIRED_COMPILER_OPTIONS))
        with self.assertRaises(TypeError):
            REQUIRED_COMPILER_OPTIONS["target"] = "ES5"  # type: ignore[index]

    def test_generated_text_parses(self):
        parsed = parse_environment_descriptor(generate_environment_descriptor())
        self.assertEqual(parsed["include"], ["./**/*"])
        self.assertEqual(parsed["exclude"], ["./_generated"])
        self.assertEqual(parsed["compilerOptions"]["lib"], ["ES2021", "dom"])


class IncludeExcludeTests(unittest.TestCase):
    def test_only_generated_directory_is_excluded(self):
        self.assertTrue(is_excluded("_generated/api.d.ts"))
        self.assertTrue(is_excluded("./_generated/server.js"))
        self.assertFalse(is_excluded("messages.ts"))
        self.assertFalse(is_excluded("lib/_generated/helper.ts"))
        self.assertFalse(is_excluded("_generated_old/api.ts"))
        self.assertFalse(is_excluded("generated/api.ts"))

    def test_include_covers_the_project_tree(self):
        self.assertTrue(is_included("messages.ts"))
        self.assertTrue(is_included("nested/deeper/file.ts"))
        self.assertFalse(is_included("_generated/api.d.ts"))
        self.assertFalse(is_included("../outside.ts"))
        self.assertFalse(is_included("/abs/file.ts"))


class RegenerateTests(unittest.TestCase):
    def test_unmodified_file_regenerates_identically(self):
        self.assertEqual(regenerate_environment_descriptor(EXPECTED_TSCONFIG), EXPECTED_TSCONFIG)

    def test_user_edits_are_kept_and_required_fields_reset(self):
        edited = EXPECTED_TSCONFIG.replace('"strict": true', '"strict": false').replace(
            '"target": "ESNext"', '"target": "ES5"'
        )
        edited = edited.replace('"exclude": ["./_generated"]', '"exclude": ["./_generated", "./scripts"]')
        edited = edited.replace('    "noEmit": true,\n', '    "noEmit": true,\n    // mine\n    "jsx": "react",\n')
        result = parse_environment_descriptor(regenerate_environment_descriptor(edited))
        self.assertFalse(result["compilerOptions"]["strict"])
        self.assertEqual(result["compilerOptions"]["jsx"], "react")
        self.assertEqual(result["compilerOptions"]["target"], "ESNext")
        self.assertEqual(result["exclude"], ["./_generated"])

    def test_deleted_editable_option_stays_deleted(self):
        edited = EXPECTED_TSCONFIG.replace('    "allowJs": true,\n', "")
        result = parse_environment_descriptor(regenerate_environment_descriptor(edited))
        self.assertNotIn("allowJs", result["compilerOptions"])
        self.assertTrue(result["compilerOptions"]["strict"])
        self.assertTrue(result["compilerOptions"]["noEmit"])

    def test_missing_compiler_options_fall_back_to_defaults(self):
        text = '{\n  "include": ["./**/*"],\n  "exclude": ["./_generated"]\n}'
        self.assertEqual(regenerate_environment_descriptor(text), EXPECTED_TSCONFIG)

    def test_extra_top_level_keys_are_kept(self):
        edited = EXPECTED_TSCONFIG.replace(
            '"exclude": ["./_generated"]', '"exclude": ["./_generated"],\n  "references": [{"path": "../shared"}]'
        )
        result = parse_environment_descriptor(regenerate_environment_descriptor(edited))
        self.assertEqual(result["references"], [{"path": "../shared"}])

    def test_unparseable_file_falls_back_to_template(self):
        self.assertEqual(regenerate_environment_descriptor("{ not json"), EXPECTED_TSCONFIG)

    def test_write_overwrites_or_preserves(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "tsconfig.json"
            write_environment_descriptor(path)
            self.assertEqual(path.read_text(encoding="utf-8"), EXPECTED_TSCONFIG)

            path.write_text(EXPECTED_TSCONFIG.replace('"allowJs": true', '"allowJs": false'), encoding="utf-8")
            write_environment_descriptor(path, preserve_edits=True)
            self.assertIn('"allowJs": false', path.read_text(encoding="utf-8"))

            write_environment_descriptor(path)
            self.assertEqual(path.read_text(encoding="utf-8"), EXPECTED_TSCONFIG)


if __name__ == "__main__":
    unittest.main()
