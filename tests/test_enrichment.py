import unittest
from decimal import Decimal

from tillsync.remote.enrichment import EnrichmentService, normalize_response

from tests.fakes import FakeRemoteStore


class NormalizeResponseTest(unittest.TestCase):
    def test_found_with_spec(self):
        result = normalize_response({"found": True, "name": " Cola ", "spec": "330ml", "price": "3.50", "msg": "ok"})

        self.assertTrue(result.found)
        self.assertEqual(result.display_name, "Cola (330ml)")
        self.assertEqual(result.price, Decimal("3.50"))

    def test_unparsable_price_becomes_zero(self):
        for price in ("n/a", None, "-2", "NaN"):
            result = normalize_response({"found": True, "name": "Cola", "price": price})
            self.assertEqual(result.price, Decimal("0"), price)

    def test_malformed_payloads_are_misses(self):
        for body in (None, [], "found", {"found": True}, {"found": True, "name": ""}):
            self.assertFalse(normalize_response(body).found, body)

    def test_miss_keeps_message(self):
        result = normalize_response({"found": False, "msg": "unknown barcode"})

        self.assertFalse(result.found)
        self.assertEqual(result.msg, "unknown barcode")


class EnrichmentServiceTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.remote = FakeRemoteStore()
        self.service = EnrichmentService(self.remote, "fetch-product", timeout=0.5)

    async def test_lookup_sends_barcode(self):
        self.remote.functions["fetch-product"] = lambda payload: {"found": True, "name": payload["barcode"]}

        result = await self.service.lookup("6901234")

        self.assertEqual(result.name, "6901234")
        self.assertIn(("invoke", "fetch-product", {"barcode": "6901234"}), self.remote.calls)

    async def test_store_error_is_a_miss(self):
        result = await self.service.lookup("6901234")

        self.assertFalse(result.found)
        self.assertIn("404", result.msg)

    async def test_timeout_is_a_miss(self):
        self.remote.functions["fetch-product"] = lambda payload: {"found": True, "name": "late"}
        self.remote.invoke_delay = 2.0
        self.service.timeout = 0.05

        result = await self.service.lookup("6901234")

        self.assertFalse(result.found)
        self.assertEqual(result.msg, "timeout")

    async def test_empty_barcode_skips_call(self):
        result = await self.service.lookup("")

        self.assertFalse(result.found)
        self.assertEqual(self.remote.calls, [])


if __name__ == "__main__":
    unittest.main()
