import unittest
from decimal import Decimal

from quotehub.core.errors import InvalidInput
from quotehub.services.pricing import LineItem, compute_totals, line_total


class ComputeTotalsTests(unittest.TestCase):
    def test_percentage_discount(self):
        totals = compute_totals([LineItem(Decimal("1"), 10000)], "percentage", 10)
        self.assertEqual(totals.subtotal, 10000)
        self.assertEqual(totals.discount, 1000)
        self.assertEqual(totals.total, 9000)

    def test_fixed_discount_with_tax(self):
        totals = compute_totals([LineItem(Decimal("2"), 5000)], "fixed_amount", 500, tax_amount=200)
        self.assertEqual(totals.subtotal, 10000)
        self.assertEqual(totals.discount, 500)
        self.assertEqual(totals.tax, 200)
        self.assertEqual(totals.total, 9700)

    def test_total_identity_holds(self):
        cases = [
            ([{"quantity": "1.5", "unit_price": 333}], "percentage", "12.5", 17),
            ([{"quantity": 3, "unit_price": 999}, {"quantity": "0.25", "unit_price": 101}], None, None, None),
            ([{"quantity": "0.33", "unit_price": 1}], "fixed_amount", 0, 0),
            ([], "percentage", 50, 100),
        ]
        for items, discount_type, discount_value, tax in cases:
            totals = compute_totals(items, discount_type, discount_value, tax)
            self.assertEqual(totals.total, totals.subtotal - totals.discount + totals.tax)

    def test_subtotal_is_rounded_once(self):
        items = [{"quantity": "0.5", "unit_price": 1}, {"quantity": "0.5", "unit_price": 1}]
        self.assertEqual(compute_totals(items).subtotal, 1)

    def test_rounding_is_half_away_from_zero(self):
        self.assertEqual(line_total("0.5", 1), 1)
        self.assertEqual(line_total("2.5", 1), 3)
        totals = compute_totals([{"quantity": 1, "unit_price": 5}], "percentage", 10)
        self.assertEqual(totals.discount, 1)

    def test_discount_never_exceeds_subtotal(self):
        totals = compute_totals([{"quantity": 1, "unit_price": 1000}], "fixed_amount", 5000, tax_amount=50)
        self.assertEqual(totals.discount, 1000)
        self.assertEqual(totals.total, 50)

        totals = compute_totals([{"quantity": 1, "unit_price": 1000}], "percentage", 150)
        self.assertEqual(totals.discount, 1000)
        self.assertEqual(totals.total, 0)

    def test_negative_discount_is_clamped_to_zero(self):
        totals = compute_totals([{"quantity": 1, "unit_price": 1000}], "fixed_amount", -300)
        self.assertEqual(totals.discount, 0)
        self.assertEqual(totals.total, 1000)

    def test_none_discount_type_ignores_value(self):
        totals = compute_totals([{"quantity": 1, "unit_price": 1000}], "none", 300)
        self.assertEqual(totals.discount, 0)

    def test_accepts_orm_like_items(self):
        class Item:
            quantity = Decimal("2")
            unit_price_cents = 250

        self.assertEqual(compute_totals([Item()]).subtotal, 500)

    def test_invalid_inputs_raise(self):
        with self.assertRaises(InvalidInput):
            compute_totals([{"quantity": -1, "unit_price": 100}])
        with self.assertRaises(InvalidInput):
            compute_totals([{"quantity": 1, "unit_price": -100}])
        with self.assertRaises(InvalidInput):
            compute_totals([{"quantity": "abc", "unit_price": 100}])
        with self.assertRaises(InvalidInput):
            compute_totals([{"quantity": 1, "unit_price": 100}], tax_amount=-1)
        with self.assertRaises(InvalidInput):
            compute_totals([{"quantity": 1, "unit_price": 100}], "bogus", 10)
        with self.assertRaises(InvalidInput):
            compute_totals([{"quantity": 1, "unit_price": "10.5"}])
        with self.assertRaises(InvalidInput):
            compute_totals([{"quantity": 1, "unit_price": 100}], "percentage", "nan")


if __name__ == "__main__":
    unittest.main()
