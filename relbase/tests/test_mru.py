import unittest

from relbase.db.connection import open_connection
from relbase.db.repositories.mru import SqliteMruRepository
from relbase.db.sqlite_migrations import SCHEMA_VERSION, run_migrations
from relbase.mru import MruService


class _BrokenRepository:
    async def list_scopes(self):
        raise RuntimeError("db gone")

    async def get_entries(self, scope):
        raise RuntimeError("db gone")

    async def replace_entries(self, scope, identities):
        raise RuntimeError("db gone")


class MruServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await open_connection(":memory:")
        await run_migrations(self.db)
        self.repo = SqliteMruRepository(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_migrations_are_idempotent(self) -> None:
        await run_migrations(self.db)
        async with self.db.execute("SELECT COUNT(*), MAX(version) FROM schema_version") as cur:
            count, version = await cur.fetchone()
        self.assertEqual((count, version), (1, SCHEMA_VERSION))

    async def test_record_selection_moves_identity_to_front(self) -> None:
        service = MruService(self.repo)
        await service.record_selection("projects", "projects/A.md")
        await service.record_selection("projects", "projects/B.md")
        items = await service.record_selection("projects", "projects/A.md")

        self.assertEqual(items, ["projects/A.md", "projects/B.md"])
        self.assertEqual(service.get_recent("projects"), items)
        self.assertEqual(service.get_recent("people"), [])

    async def test_entries_are_capped(self) -> None:
        service = MruService(self.repo, max_entries=3)
        for i in range(5):
            await service.record_selection(None, f"n{i}.md")

        self.assertEqual(service.get_recent(None), ["n4.md", "n3.md", "n2.md"])
        self.assertEqual(await self.repo.get_entries(""), ["n4.md", "n3.md", "n2.md"])

    async def test_load_restores_persisted_scopes(self) -> None:
        first = MruService(self.repo)
        await first.record_selection("projects", "projects/A.md")
        await first.record_selection("", "inbox.md")

        second = MruService(self.repo)
        await second.load()

        self.assertEqual(second.get_recent("projects"), ["projects/A.md"])
        self.assertEqual(second.get_recent(None), ["inbox.md"])
        self.assertEqual(await self.repo.list_scopes(), ["", "projects"])

    async def test_persistence_failures_are_logged_not_raised(self) -> None:
        service = MruService(_BrokenRepository())
        with self.assertLogs("relbase.mru", level="ERROR"):
            await service.load()
        with self.assertLogs("relbase.mru", level="ERROR"):
            items = await service.record_selection("projects", "projects/A.md")
        self.assertEqual(items, ["projects/A.md"])

    async def test_service_without_repository_keeps_memory_only(self) -> None:
        service = MruService()
        await service.load()
        self.assertEqual(await service.record_selection("x", "a.md"), ["a.md"])


if __name__ == "__main__":
    unittest.main()
