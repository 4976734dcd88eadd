import unittest
from decimal import Decimal

from tillsync.domain.catalog.schemas import Product
from tillsync.domain.checkout.cart import Cart, round_money


class CartTest(unittest.TestCase):
    def setUp(self):
        self.cart = Cart()
        self.tea = Product(barcode="1", name="Tea", price=Decimal("1.005"), stock=10)

    def test_add_merges_lines(self):
        self.cart.add(self.tea)
        self.cart.add(self.tea, 2)

        self.assertEqual(len(self.cart), 1)
        self.assertEqual(self.cart.get("1").qty, 3)

    def test_total_rounds_half_up(self):
        self.cart.add(self.tea, 1)

        self.assertEqual(self.cart.total, Decimal("1.01"))
        self.assertEqual(round_money("2.345"), Decimal("2.35"))

    def test_set_qty_to_zero_removes_line(self):
        self.cart.add(self.tea)

        self.assertTrue(self.cart.set_qty("1", 0))
        self.assertNotIn("1", self.cart)
        self.assertFalse(self.cart.set_qty("1", 2))

    def test_refresh_copies_name_and_price(self):
        self.cart.add(self.tea)

        self.cart.refresh(self.tea.model_copy(update={"name": "Chai", "price": Decimal("2")}))

        self.assertEqual(self.cart.get("1").name, "Chai")
        self.assertEqual(self.cart.total, Decimal("2.00"))

    def test_snapshot_is_detached(self):
        self.cart.add(self.tea)
        snapshot = self.cart.snapshot()

        self.cart.set_qty("1", 5)

        self.assertEqual(snapshot[0].qty, 1)

    def test_rejects_non_positive_qty(self):
        with self.assertRaises(ValueError):
            self.cart.add(self.tea, 0)


if __name__ == "__main__":
    unittest.main()
