import tempfile
import unittest
from pathlib import Path

from relbase.classifier import RelationClassifier, detect_column_type, infer_base_folder
from relbase.resolver import NoteResolver
from relbase.rows import row_from_mapping
from relbase.store.vault import DocumentStore


def _touch(root: Path, rel_path: str) -> None:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("", encoding="utf-8")


def _rows(property_id: str, values: list) -> list:
    return [
        row_from_mapping(f"work/tasks/t{i}.md", {property_id: value})
        for i, value in enumerate(values)
    ]


class InferBaseFolderTests(unittest.TestCase):
    def test_goes_one_level_up_from_deep_common_parent(self) -> None:
        self.assertEqual(infer_base_folder(["work/tasks/a.md", "work/tasks/b.md"]), "work")

    def test_keeps_single_level_common_parent(self) -> None:
        self.assertEqual(infer_base_folder(["work/a.md", "work/b.md"]), "work")
        self.assertEqual(infer_base_folder(["work/tasks/a.md", "work/projects/b.md"]), "work")

    def test_returns_none_without_common_folder(self) -> None:
        self.assertIsNone(infer_base_folder([]))
        self.assertIsNone(infer_base_folder(["a.md", "b.md"]))
        self.assertIsNone(infer_base_folder(["work/x/a.md", "home/b.md"]))


class RelationClassifierTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        for rel_path in (
            "work/tasks/t0.md",
            "work/projects/Alpha.md",
            "work/projects/Beta.md",
            "work/people/Ada.md",
            "work/clients/Acme.md",
        ):
            _touch(root, rel_path)
        self.store = DocumentStore(root)
        self.store.refresh()
        self.classifier = RelationClassifier(NoteResolver(self.store))

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _classify(self, property_id: str, values: list):
        return self.classifier.classify(property_id, _rows(property_id, values), "work")

    def test_lists_of_encoded_references_are_relations(self) -> None:
        label = self._classify("note.related", [["[[Alpha]]"], ["[[Beta]]", "[[Ghost]]"], [], None])
        self.assertTrue(label.isRelation)
        self.assertEqual(label.propertyName, "related")
        self.assertEqual(label.inferredScope, "work")

    def test_lists_of_resolving_names_are_relations(self) -> None:
        self.assertTrue(self._classify("owners", [["Ada"], ["Ada", "Alpha"]]).isRelation)
        self.assertFalse(self._classify("owners", [["Ada"], ["Ada", "Nobody"]]).isRelation)

    def test_mixed_lists_are_not_relations(self) -> None:
        self.assertFalse(self._classify("related", [["[[Alpha]]"], ["plain words"]]).isRelation)

    def test_scalar_names_need_a_strict_majority(self) -> None:
        self.assertTrue(self._classify("lead", ["Ada", "Alpha", "Ghost"]).isRelation)
        self.assertFalse(self._classify("lead", ["Ada", "Ghost"]).isRelation)

    def test_single_scalar_sample_is_not_enough(self) -> None:
        self.assertFalse(self._classify("lead", ["Ada", None, ""]).isRelation)

    def test_empty_column_matching_subfolder_is_relation(self) -> None:
        label = self._classify("client", [None, None])
        self.assertTrue(label.isRelation)
        self.assertEqual(label.inferredScope, "work/clients")

        label = self._classify("note.project", [["[[Alpha]]"]])
        self.assertEqual(label.inferredScope, "work/projects")

    def test_plain_values_and_file_properties_are_not_relations(self) -> None:
        status = self._classify("status", ["open", "done", "open"])
        self.assertFalse(status.isRelation)
        self.assertIsNone(status.inferredScope)
        self.assertFalse(self._classify("file.name", ["Alpha", "Beta"]).isRelation)
        self.assertFalse(self._classify("estimate", [1, 2, 3]).isRelation)

    def test_classify_columns_feeds_is_relation(self) -> None:
        rows = [
            row_from_mapping("work/tasks/t0.md", {"project": ["[[Alpha]]"], "status": "open"}),
            row_from_mapping("work/tasks/t1.md", {"project": ["[[Beta]]"], "status": "done"}),
        ]

        labels = self.classifier.classify_columns(["note.project", "note.status", "file.name"], rows)

        self.assertEqual(set(labels), {"note.project", "note.status", "file.name"})
        self.assertTrue(self.classifier.is_relation("project"))
        self.assertTrue(self.classifier.is_relation("note.project"))
        self.assertFalse(self.classifier.is_relation("status"))
        self.assertFalse(self.classifier.is_relation("unknown"))
        self.assertEqual(self.classifier.relation_properties(), ["project"])

    def test_only_sampled_rows_are_considered(self) -> None:
        classifier = RelationClassifier(NoteResolver(self.store), sample_size=2)
        rows = _rows("related", [None, None, ["[[Alpha]]"]])
        self.assertFalse(classifier.classify("related", rows, "work").isRelation)


class DetectColumnTypeTests(unittest.TestCase):
    def test_registered_types_win_over_sniffing(self) -> None:
        rows = _rows("done", ["yes"])
        self.assertEqual(detect_column_type("note.done", rows, False, {"done": "checkbox"}), "checkbox")

    def test_sniffs_values(self) -> None:
        self.assertEqual(detect_column_type("n", _rows("n", [None, 3]), False), "number")
        self.assertEqual(detect_column_type("b", _rows("b", [True]), False), "checkbox")
        self.assertEqual(detect_column_type("l", _rows("l", [["a"]]), False), "list")
        self.assertEqual(detect_column_type("s", _rows("s", ["x"]), False), "text")
        self.assertEqual(detect_column_type("e", _rows("e", [None]), False), "text")

    def test_special_columns(self) -> None:
        self.assertEqual(detect_column_type("file.name", [], False), "file")
        self.assertEqual(detect_column_type("note.project", [], True), "relation")
        self.assertEqual(detect_column_type("note.tags", [], False), "tags")


if __name__ == "__main__":
    unittest.main()
