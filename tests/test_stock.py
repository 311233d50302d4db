import unittest

from core import stock
from core.errors import (
    InsufficientStockError,
    ProductNotFoundError,
    UnsupportedUnitError,
    ValidationError,
)
from db.models import InventoryItem, SaleItem


def make_item(
    product="Dairy Meal",
    quantity=10,
    unit="bags",
    threshold=5,
    desired_quantity=20,
    item_id=None,
    shop_id="kiambu",
):
    return InventoryItem(
        id=item_id or f"{product}-{unit}",
        shop_id=shop_id,
        product=product,
        quantity=quantity,
        unit=unit,
        threshold=threshold,
        desired_quantity=desired_quantity,
    )


class StockLevelsTestCase(unittest.TestCase):
    def test_low_stock_is_quantity_at_or_below_threshold(self):
        for quantity in range(0, 12):
            item = make_item(quantity=quantity, threshold=5)
            self.assertEqual(stock.is_low_stock(item), quantity <= 5)

        items = [make_item(quantity=3, item_id="a"), make_item(quantity=9, item_id="b")]
        self.assertEqual([i.id for i in stock.low_stock_items(items)], ["a"])

    def test_replenishment_uses_desired_quantity(self):
        self.assertEqual(stock.replenishment_quantity(make_item(quantity=7)), 13)
        # at or above the target nothing needs ordering
        self.assertEqual(stock.replenishment_quantity(make_item(quantity=20)), 0)
        self.assertEqual(stock.replenishment_quantity(make_item(quantity=35)), 0)

    def test_replenishment_without_desired_quantity_targets_twice_threshold(self):
        item = make_item(quantity=4, threshold=10, desired_quantity=None)
        self.assertEqual(stock.replenishment_quantity(item), 16)
        item = make_item(quantity=25, threshold=10, desired_quantity=None)
        self.assertEqual(stock.replenishment_quantity(item), 0)

    def test_replenishment_never_negative(self):
        for quantity in (0, 5, 19, 20, 21, 100):
            for desired in (None, 0, 20):
                item = make_item(quantity=quantity, desired_quantity=desired)
                self.assertGreaterEqual(stock.replenishment_quantity(item), 0)


class ParseQuantityTestCase(unittest.TestCase):
    def test_valid_inputs(self):
        self.assertEqual(stock.parse_quantity("12"), 12)
        self.assertEqual(stock.parse_quantity(" 3 "), 3)
        self.assertEqual(stock.parse_quantity(0), 0)
        self.assertEqual(stock.parse_quantity(7, allow_zero=False), 7)

    def test_invalid_inputs(self):
        for raw in ("", "   ", None, "abc", "1.5", "-2", -1, True):
            with self.assertRaises(ValidationError, msg=repr(raw)):
                stock.parse_quantity(raw)
        with self.assertRaises(ValidationError):
            stock.parse_quantity("0", allow_zero=False)

    def test_message_names_the_field(self):
        with self.assertRaises(ValidationError) as ctx:
            stock.parse_quantity("x", "Threshold")
        self.assertIn("Threshold", str(ctx.exception))


class AddStockTestCase(unittest.TestCase):
    def test_increments_matching_record(self):
        inventory = [make_item(quantity=10), make_item(unit="kgs", quantity=3)]
        item = stock.add_stock(inventory, "kiambu", "Dairy Meal", "5", "bags")
        self.assertEqual(item.id, "Dairy Meal-bags")
        self.assertEqual(item.quantity, 15)
        # input untouched
        self.assertEqual(inventory[0].quantity, 10)

    def test_creates_record_with_default_levels(self):
        item = stock.add_stock([make_item()], "kiambu", " Layers Mash ", 8, "bags")
        self.assertEqual(item.product, "Layers Mash")
        self.assertEqual(item.quantity, 8)
        self.assertEqual(item.threshold, stock.DEFAULT_THRESHOLD)
        self.assertEqual(item.desired_quantity, stock.DEFAULT_DESIRED_QUANTITY)

    def test_rejects_bad_input(self):
        with self.assertRaises(ValidationError):
            stock.add_stock([], "kiambu", "", 1, "bags")
        with self.assertRaises(ValidationError):
            stock.add_stock([], "kiambu", "Dairy Meal", 1, "tons")
        with self.assertRaises(ValidationError):
            stock.add_stock([], "kiambu", "Dairy Meal", "0", "bags")


class ConvertUnitsTestCase(unittest.TestCase):
    def test_two_bags_become_140_kgs_in_a_new_record(self):
        inventory = [make_item(quantity=10)]
        conversion = stock.convert_units(inventory, "Dairy Meal", "bags", 2)

        self.assertEqual(conversion.withdrawn, 2)
        self.assertEqual(conversion.kg_equivalent, 140)
        self.assertEqual(conversion.source.quantity, 8)
        self.assertTrue(conversion.created)
        self.assertEqual(conversion.target.unit, "kgs")
        self.assertEqual(conversion.target.quantity, 140)
        self.assertEqual(conversion.target.threshold, stock.KG_DEFAULT_THRESHOLD)
        self.assertEqual(inventory[0].quantity, 10)

    def test_credits_existing_kgs_record(self):
        kgs = make_item(unit="kgs", quantity=30)
        conversion = stock.convert_units(
            [make_item(unit="50kg", quantity=4), kgs], "Dairy Meal", "50kg", 3
        )
        self.assertEqual(conversion.kg_equivalent, 150)
        self.assertFalse(conversion.created)
        self.assertEqual(conversion.target.id, kgs.id)
        self.assertEqual(conversion.target.quantity, 180)
        self.assertEqual(conversion.source.quantity, 1)

    def test_credits_legacy_kg_record_when_no_kgs_record(self):
        legacy = make_item(unit="kg", quantity=5, desired_quantity=None)
        conversion = stock.convert_units(
            [make_item(quantity=2), legacy], "Dairy Meal", "bags", 1
        )
        self.assertEqual(conversion.target.id, legacy.id)
        self.assertEqual(conversion.target.unit, "kg")
        self.assertEqual(conversion.target.quantity, 75)

    def test_mass_is_preserved(self):
        for unit, rate in stock.CONVERSION_RATES.items():
            for amount in (1, 2, 7):
                source = make_item(unit=unit, quantity=10)
                target = make_item(unit="kgs", quantity=11)
                c = stock.convert_units([source, target], "Dairy Meal", unit, amount)
                self.assertEqual(c.withdrawn * rate, c.kg_equivalent)
                self.assertEqual(source.quantity - c.source.quantity, c.withdrawn)
                self.assertEqual(c.target.quantity - target.quantity, c.kg_equivalent)

    def test_errors(self):
        inventory = [make_item(quantity=10)]
        with self.assertRaises(UnsupportedUnitError):
            stock.convert_units(inventory, "Dairy Meal", "kgs", 1)
        with self.assertRaises(ProductNotFoundError):
            stock.convert_units(inventory, "Dairy Meal", "50kg", 1)
        with self.assertRaises(InsufficientStockError) as ctx:
            stock.convert_units(inventory, "Dairy Meal", "bags", 11)
        self.assertEqual(ctx.exception.available, 10)
        with self.assertRaises(ValidationError):
            stock.convert_units(inventory, "Dairy Meal", "bags", 0)


class ApplySaleTestCase(unittest.TestCase):
    def test_sale_of_three_bags(self):
        inventory = [make_item(quantity=10, threshold=5, desired_quantity=20)]
        after = stock.apply_sale(inventory, [SaleItem("Dairy Meal", 3, "bags")])

        self.assertEqual(after[0].quantity, 7)
        self.assertFalse(stock.is_low_stock(after[0]))
        self.assertEqual(stock.replenishment_quantity(after[0]), 13)
        self.assertEqual(inventory[0].quantity, 10)

    def test_oversell_fails_and_leaves_stock(self):
        inventory = [make_item(quantity=10)]
        with self.assertRaises(InsufficientStockError) as ctx:
            stock.apply_sale(inventory, [SaleItem("Dairy Meal", 12, "bags")])
        self.assertEqual(ctx.exception.requested, 12)
        self.assertEqual(inventory[0].quantity, 10)

    def test_all_or_nothing(self):
        inventory = [
            make_item("Dairy Meal", quantity=10),
            make_item("Pig Grower", quantity=2),
        ]
        with self.assertRaises(InsufficientStockError):
            stock.apply_sale(
                inventory,
                [SaleItem("Dairy Meal", 4, "bags"), SaleItem("Pig Grower", 5, "bags")],
            )
        with self.assertRaises(ProductNotFoundError):
            stock.apply_sale(
                inventory,
                [SaleItem("Dairy Meal", 4, "bags"), SaleItem("Calf Starter", 1, "bags")],
            )
        self.assertEqual([i.quantity for i in inventory], [10, 2])

    def test_repeated_lines_are_summed(self):
        inventory = [make_item(quantity=10)]
        line = SaleItem("Dairy Meal", 6, "bags")
        with self.assertRaises(InsufficientStockError):
            stock.apply_sale(inventory, [line, line])
        after = stock.apply_sale(inventory, [line, SaleItem("Dairy Meal", 4, "bags")])
        self.assertEqual(after[0].quantity, 0)

    def test_takes_stock_from_record_in_sale_unit(self):
        inventory = [make_item(quantity=10), make_item(unit="kgs", quantity=100)]
        after = stock.apply_sale(inventory, [SaleItem("Dairy Meal", 30, "kgs")])
        self.assertEqual([i.quantity for i in after], [10, 70])

    def test_unit_not_stocked_fails(self):
        inventory = [make_item(quantity=10)]
        for unit in ("kgs", "50kg"):
            with self.assertRaises(ProductNotFoundError) as ctx:
                stock.apply_sale(inventory, [SaleItem("Dairy Meal", 3, unit)])
            self.assertEqual(ctx.exception.unit, unit)
        self.assertEqual(inventory[0].quantity, 10)

    def test_kgs_and_legacy_kg_are_the_same_unit(self):
        legacy = make_item(unit="kg", quantity=40, desired_quantity=None)
        after = stock.apply_sale([make_item(quantity=10), legacy], [SaleItem("Dairy Meal", 5, "kgs")])
        self.assertEqual([i.quantity for i in after], [10, 35])
        # an exact unit match still wins
        kgs = make_item(unit="kgs", quantity=8)
        after = stock.apply_sale([legacy, kgs], [SaleItem("Dairy Meal", 5, "kgs")])
        self.assertEqual([i.quantity for i in after], [40, 3])

    def test_find_item_without_unit_takes_first_record(self):
        inventory = [make_item(quantity=10), make_item(unit="kgs", quantity=100)]
        self.assertEqual(stock.find_item(inventory, "Dairy Meal").unit, "bags")
        self.assertIsNone(stock.find_item(inventory, "Dairy Meal", "50kg"))
        self.assertIsNone(stock.find_item(inventory, "Pig Grower"))

    def test_sale_lines_parse_quantities(self):
        lines = stock.sale_lines([SaleItem("Dairy Meal", " 3 ", "bags")])
        self.assertEqual(lines, (SaleItem("Dairy Meal", 3, "bags"),))
        with self.assertRaises(ValidationError):
            stock.sale_lines([SaleItem("Dairy Meal", "three", "bags")])

    def test_rejects_empty_sale_and_bad_quantities(self):
        inventory = [make_item()]
        with self.assertRaises(ValidationError):
            stock.apply_sale(inventory, [])
        with self.assertRaises(ValidationError):
            stock.apply_sale(inventory, [SaleItem("Dairy Meal", 0, "bags")])
        with self.assertRaises(ValidationError):
            stock.apply_sale(inventory, [SaleItem("Dairy Meal", -1, "bags")])


if __name__ == "__main__":
    unittest.main()
