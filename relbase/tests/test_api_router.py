import tempfile
import types
import unittest
from pathlib import Path

import yaml
from fastapi import HTTPException

from relbase.frontmatter import extract_frontmatter
from relbase.models import CellEdit, MruSelection, QuickActionRequest, RelationEdit, ViewRequest
from relbase.mru import MruService
from relbase.quick_actions import parse_dsl
from relbase.routers import api
from relbase.session import SessionRegistry
from relbase.store.vault import DocumentStore


def _write_note(root: Path, rel_path: str, fm: dict) -> None:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"---\n{yaml.safe_dump(fm, sort_keys=False)}---\n", encoding="utf-8")


class ApiRouterTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        _write_note(self.root, "work/tasks/T1.md", {"project": ["[[Alpha]]"], "status": "open"})
        _write_note(self.root, "work/projects/Alpha.md", {"estimate": 2})
        _write_note(self.root, "work/projects/Alphabet.md", {"estimate": 1})
        _write_note(self.root, "work/projects/Beta.md", {"estimate": 3})
        self.store = DocumentStore(self.root)
        self.store.refresh()
        self.registry = SessionRegistry(self.store, debounce_seconds=5, inter_op_delay_seconds=0)
        self.mru = MruService()
        self.request = types.SimpleNamespace(
            app=types.SimpleNamespace(
                state=types.SimpleNamespace(store=self.store, sessions=self.registry, mru=self.mru)
            )
        )

    async def asyncTearDown(self) -> None:
        await self.registry.close_all()
        self._tmp.cleanup()

    def _fm(self, rel_path: str) -> dict:
        fm, _body, _had = extract_frontmatter((self.root / rel_path).read_text(encoding="utf-8"))
        return fm

    async def test_build_view_returns_columns_and_rollups(self) -> None:
        req = ViewRequest(
            folder="work/tasks",
            properties=["file.name", "note.project"],
            options={"rollupCount": 1, "rollup1_relation": "note.project", "rollup1_target": "estimate", "rollup1_aggregation": "sum"},
        )

        view = await api.build_view(self.request, "s1", req)

        self.assertEqual([c.propertyId for c in view.columns], ["file.name", "note.project", "rollup_1"])
        self.assertEqual(view.rows[0].values["rollup_1"], 2)

        status = await api.get_relation_status(self.request, "s1", "note.project")
        self.assertEqual(status, {"propertyName": "project", "isRelation": True})
        listing = await api.list_relation_properties(self.request, "s1")
        self.assertEqual(listing, {"items": ["project"]})

    async def test_invalid_options_map_to_400(self) -> None:
        req = ViewRequest(options={"rollupCount": 1, "rollup1_relation": "p", "rollup1_target": "t", "rollup1_aggregation": "bogus"})
        with self.assertRaises(HTTPException) as ctx:
            await api.build_view(self.request, "s1", req)
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_unknown_session_and_note_map_to_404(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await api.get_relation_status(self.request, "missing", "project")
        self.assertEqual(ctx.exception.status_code, 404)

        with self.assertRaises(HTTPException) as ctx:
            await api.enqueue_edit(self.request, "s1", CellEdit(identity="nope.md", propertyId="status", value="x"))
        self.assertEqual(ctx.exception.status_code, 404)

        with self.assertRaises(HTTPException) as ctx:
            await api.close_session(self.request, "missing")
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_missing_services_map_to_503(self) -> None:
        request = types.SimpleNamespace(app=types.SimpleNamespace(state=types.SimpleNamespace()))
        with self.assertRaises(HTTPException) as ctx:
            await api.build_view(request, "s1", ViewRequest())
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_edit_is_queued_then_flushed(self) -> None:
        payload = await api.enqueue_edit(
            self.request, "s1", CellEdit(identity="work/tasks/t1", propertyId="note.status", value="done")
        )
        self.assertEqual(payload, {"status": "queued", "pending": 1})
        self.assertEqual(self._fm("work/tasks/T1.md")["status"], "open")

        flushed = await api.flush_session(self.request, "s1")

        self.assertEqual(flushed["stats"]["written"], 1)
        self.assertEqual(self._fm("work/tasks/T1.md")["status"], "done")

    async def test_relation_edit_syncs_back_links(self) -> None:
        req = RelationEdit(
            identity="work/tasks/T1.md",
            propertyId="note.project",
            links=["[[Alpha]]", "[[Beta]]"],
            options={"bidiCount": 1, "bidi1_column": "note.project", "bidi1_reverse": "tasks"},
        )

        payload = await api.update_relation(self.request, "s1", req)
        self.assertEqual(payload["backLinks"]["added"], 1)

        await api.flush_session(self.request, "s1")
        self.assertEqual(self._fm("work/projects/Beta.md")["tasks"], ["[[work/tasks/T1]]"])
        self.assertEqual(self._fm("work/tasks/T1.md")["project"], ["[[Alpha]]", "[[Beta]]"])

        closed = await api.close_session(self.request, "s1")
        self.assertEqual(closed, {"status": "closed"})

    async def test_search_notes_includes_recent_picks(self) -> None:
        await api.record_selection(self.request, MruSelection(identity="work/projects/Beta.md"), scope="work/projects")

        payload = await api.search_notes(self.request, q="alpha", scope="work/projects", limit=10)

        self.assertEqual(payload["count"], 2)
        self.assertEqual([item.basename for item in payload["items"]], ["Alpha", "Alphabet"])
        self.assertEqual([item.path for item in payload["recent"]], ["work/projects/Beta.md"])

        everything = await api.search_notes(self.request, q="", scope=None, limit=2)
        self.assertEqual(everything["count"], 2)

    async def test_resolve_note(self) -> None:
        resolved = await api.resolve_note(self.request, ref="[[Beta|The beta]]", scope=None)
        self.assertEqual(resolved.note.path, "work/projects/Beta.md")
        self.assertEqual(resolved.displayLabel, "The beta")
        self.assertEqual(resolved.rawText, "[[Beta|The beta]]")

        plain = await api.resolve_note(self.request, ref="alphabet", scope="work/projects")
        self.assertEqual((plain.note.basename, plain.displayLabel), ("Alphabet", "alphabet"))

        with self.assertRaises(HTTPException) as ctx:
            await api.resolve_note(self.request, ref="[[Ghost]]", scope=None)
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_mru_roundtrip(self) -> None:
        await api.record_selection(self.request, MruSelection(identity="a.md"), scope=None)
        payload = await api.record_selection(self.request, MruSelection(identity="b.md"), scope=None)
        self.assertEqual(payload, {"scope": "", "items": ["b.md", "a.md"]})
        self.assertEqual((await api.get_recent(self.request, scope=None))["items"], ["b.md", "a.md"])

    async def test_execute_quick_action(self) -> None:
        action = parse_dsl("Close:status=closed,done=TRUE")[0]

        payload = await api.execute_quick_action(
            self.request, QuickActionRequest(identity="work/tasks/T1.md", action=action)
        )

        self.assertEqual(payload, {"status": "ok", "changed": True})
        fm = self._fm("work/tasks/T1.md")
        self.assertEqual((fm["status"], fm["done"]), ("closed", True))


if __name__ == "__main__":
    unittest.main()
