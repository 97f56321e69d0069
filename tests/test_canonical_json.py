import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from myco.canonical_json import CanonicalJsonTypeError, canonical_dumps, canonical_loads


class TestCanonicalJson(unittest.TestCase):
    def test_key_ordering_is_deterministic(self) -> None:
        a = {"formData": {"name": "Rye"}, "entityType": "grainType"}
        b = {"entityType": "grainType", "formData": {"name": "Rye"}}
        self.assertEqual(canonical_dumps(a), canonical_dumps(b))

    def test_nested_snapshot_layout(self) -> None:
        snapshot = {"session_id": "s1", "drafts": [{"id": "d1", "formData": {"b": 1, "a": None}}]}
        expected = '{"drafts":[{"formData":{"a":null,"b":1},"id":"d1"}],"session_id":"s1"}'
        self.assertEqual(canonical_dumps(snapshot), expected)

    def test_emoji_icons_preserved(self) -> None:
        out = canonical_dumps({"icon": "🧫", "name": "Agar"})
        self.assertIn("🧫", out)
        self.assertNotIn("\\u", out)

    def test_tuples_written_as_lists(self) -> None:
        self.assertEqual(canonical_dumps({"usageContext": ("culture", "grow")}), '{"usageContext":["culture","grow"]}')

    def test_unsupported_type_raises(self) -> None:
        with self.assertRaises(CanonicalJsonTypeError):
            canonical_dumps({"bad": {1, 2, 3}})

    def test_non_string_key_raises(self) -> None:
        with self.assertRaises(CanonicalJsonTypeError):
            canonical_dumps({1: "x"})

    def test_reject_non_finite(self) -> None:
        for value in (float("nan"), float("inf"), float("-inf")):
            with self.assertRaises(ValueError):
                canonical_dumps({"tempRange": {"min": value}})

    def test_loads_accepts_bytes(self) -> None:
        self.assertEqual(canonical_loads('{"a":1}'.encode("utf-8")), {"a": 1})


if __name__ == "__main__":
    unittest.main()
