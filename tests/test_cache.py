import unittest

from tillsync.db.base import init_models
from tillsync.db.repositories.cache import ORDERS, PRODUCTS, LocalCache, get_entry, put_entry

from tests.fakes import memory_db


class LocalCacheTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.bind, self.session_factory = memory_db()
        await init_models(self.bind)
        self.cache = LocalCache(self.session_factory)

    async def asyncTearDown(self):
        await self.bind.dispose()

    async def test_missing_entry_loads_empty(self):
        self.assertEqual(await self.cache.load(PRODUCTS), [])

    async def test_save_replaces_collection(self):
        await self.cache.save(PRODUCTS, [{"barcode": "1"}, {"barcode": "2"}])
        await self.cache.save(PRODUCTS, [{"barcode": "3"}])

        self.assertEqual(await self.cache.load(PRODUCTS), [{"barcode": "3"}])

    async def test_entries_are_independent(self):
        await self.cache.save(PRODUCTS, [{"barcode": "1"}])
        await self.cache.save(ORDERS, [{"id": "o1"}])

        self.assertEqual(await self.cache.load(PRODUCTS), [{"barcode": "1"}])
        self.assertEqual(await self.cache.load(ORDERS), [{"id": "o1"}])

    async def test_non_list_payload_is_ignored(self):
        async with self.session_factory() as db:
            await put_entry(db, ORDERS, [])
            entry = await get_entry(db, ORDERS)
            entry.payload = {"broken": True}
            await db.commit()

        self.assertEqual(await self.cache.load(ORDERS), [])

    async def test_survives_new_cache_instance(self):
        await self.cache.save(PRODUCTS, [{"barcode": "9", "name": "Cola"}])

        reopened = LocalCache(self.session_factory)
        self.assertEqual(await reopened.load(PRODUCTS), [{"barcode": "9", "name": "Cola"}])


if __name__ == "__main__":
    unittest.main()
