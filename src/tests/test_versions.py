import unittest

import semantic_version

from omniswitch.errors import InvalidVersionSpec
from omniswitch.versions import looks_like_spec, parse_spec, version_sort_key


class TestParseSpec(unittest.TestCase):
    def test_accepts_name_at_semver(self):
        package, version = parse_spec("sqlx-cli@0.7.2")
        self.assertEqual(package, "sqlx-cli")
        self.assertEqual(version, semantic_version.Version("0.7.2"))

    def test_accepts_prerelease(self):
        package, version = parse_spec("zig@1.0.0-rc0")
        self.assertEqual(package, "zig")
        self.assertEqual(str(version), "1.0.0-rc0")

    def test_rejects_malformed_tokens(self):
        for token in ("zig@rc", "zig@", "@0.7.2", "zig", "zig@1.2"):
            with self.subTest(token=token):
                with self.assertRaises(InvalidVersionSpec) as ctx:
                    parse_spec(token)
                self.assertEqual(ctx.exception.token, token)

    def test_rejects_names_that_escape_the_store(self):
        for token in ("../evil@1.0.0", "a/b@1.0.0", ".locks@1.0.0", "bin@1.0.0"):
            with self.subTest(token=token):
                with self.assertRaises(InvalidVersionSpec):
                    parse_spec(token)

    def test_operation_is_named_in_message(self):
        with self.assertRaises(InvalidVersionSpec) as ctx:
            parse_spec("zig@rc", "switch")
        self.assertTrue(str(ctx.exception).startswith("switch"))
        self.assertEqual(ctx.exception.exit_code, 2)

    def test_looks_like_spec(self):
        self.assertTrue(looks_like_spec("sqlx-cli@0.7.2"))
        self.assertFalse(looks_like_spec("list"))
        self.assertFalse(looks_like_spec("--root=a@b"))


class TestVersionOrdering(unittest.TestCase):
    def test_semver_precedence_not_string_order(self):
        raw = ["0.10.0", "0.7.2", "1.0.0", "1.0.0-rc1", "0.6.3", "1.0.0-alpha"]
        ordered = sorted((semantic_version.Version(v) for v in raw), key=version_sort_key)
        self.assertEqual(
            [str(v) for v in ordered],
            ["0.6.3", "0.7.2", "0.10.0", "1.0.0-alpha", "1.0.0-rc1", "1.0.0"],
        )

    def test_build_metadata_ties_are_deterministic(self):
        a = semantic_version.Version("1.0.0+b")
        b = semantic_version.Version("1.0.0+a")
        self.assertEqual([str(v) for v in sorted([a, b], key=version_sort_key)], ["1.0.0+a", "1.0.0+b"])


if __name__ == "__main__":
    unittest.main()
