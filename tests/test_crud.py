import os
import tempfile
import unittest
from datetime import date

from core.errors import (
    InsufficientStockError,
    InvalidCredentialsError,
    PersistenceError,
    ProductNotFoundError,
    UnsupportedUnitError,
    ValidationError,
)
from db import crud
from db import database as db_database
from db.models import SaleItem


class CrudTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        # Point the DB to a temporary file and force re-initialization with demo data
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "test.sqlite")
        db_database.DB_PATH = self.db_path
        db_database.SEED_DEMO = True
        db_database._initialized = False

    async def asyncSetUp(self):
        # Touch initialization by opening a connection
        async with db_database.connect() as conn:
            cur = await conn.execute("SELECT name FROM sqlite_master WHERE type='table';")
            await cur.fetchall()
            await cur.close()

    def tearDown(self):
        self.temp_dir.cleanup()

    async def count_rows(self, table):
        async with db_database.connect() as conn:
            cur = await conn.execute(f"SELECT COUNT(*) FROM {table};")
            row = await cur.fetchone()
            await cur.close()
        return row[0]

    # ---------- Auth & profiles ----------

    async def test_authenticate(self):
        admin = await crud.authenticate("admin", "admin123")
        self.assertTrue(admin.is_admin)
        self.assertIsNone(admin.shop_id)

        seller = await crud.authenticate(" kiambu_shop ", "password123")
        self.assertEqual(seller.role, "seller")
        self.assertEqual(seller.shop_id, "kiambu")
        self.assertEqual(seller.shop_name, "Kiambu Shop")

        for username, pwd in (("admin", "wrong"), ("nobody", "admin123"), ("", ""), ("admin", "")):
            with self.assertRaises(InvalidCredentialsError):
                await crud.authenticate(username, pwd)

    async def test_passwords_are_stored_hashed(self):
        async with db_database.connect() as conn:
            cur = await conn.execute("SELECT password_hash FROM profiles WHERE username = 'admin';")
            row = await cur.fetchone()
            await cur.close()
        self.assertNotEqual(row["password_hash"], "admin123")

    async def test_create_and_list_profiles(self):
        seller = await crud.create_profile(
            "limuru_shop", "secret99", "seller", "Limuru Seller", "limuru", "Limuru Shop"
        )
        self.assertEqual(seller.shop_id, "limuru")
        self.assertEqual((await crud.get_profile(seller.id)), seller)
        self.assertEqual((await crud.authenticate("limuru_shop", "secret99")).id, seller.id)

        # admins never carry a shop; display name falls back to the username
        admin = await crud.create_profile("boss", "secret99", "admin", shop_id="x")
        self.assertIsNone(admin.shop_id)
        self.assertEqual(admin.display_name, "boss")

        profiles = await crud.list_profiles()
        self.assertEqual(len(profiles), 1 + len(db_database.DEMO_SELLERS) + 2)
        # admins first
        self.assertEqual({p.role for p in profiles[:2]}, {"admin"})

        shops = {s.shop_id: s.shop_name for s in await crud.list_shops()}
        self.assertEqual(shops["limuru"], "Limuru Shop")
        self.assertEqual(shops["kiambu"], "Kiambu Shop")
        self.assertEqual(len(shops), len(db_database.DEMO_SELLERS) + 1)

    async def test_create_profile_validation(self):
        with self.assertRaises(ValidationError):
            await crud.create_profile("kiambu_shop", "secret99", "seller", shop_id="k2")
        with self.assertRaises(ValidationError):
            await crud.create_profile("new_shop", "secret99", "seller")
        with self.assertRaises(ValidationError):
            await crud.create_profile("new_shop", "123", "seller", shop_id="new")
        with self.assertRaises(ValidationError):
            await crud.create_profile("new_shop", "secret99", "owner", shop_id="new")
        with self.assertRaises(ValidationError):
            await crud.create_profile("  ", "secret99", "admin")

    async def test_update_profile(self):
        updated = await crud.update_profile("p-ikinu", display_name="Jane", shop_name="Ikinu Branch")
        self.assertEqual(updated.display_name, "Jane")
        self.assertEqual(updated.shop_id, "ikinu")
        self.assertEqual((await crud.get_profile("p-ikinu")).shop_name, "Ikinu Branch")

        # seller promoted to admin loses the shop
        promoted = await crud.update_profile("p-ikinu", role="admin")
        self.assertTrue(promoted.is_admin)
        self.assertIsNone(promoted.shop_id)

        with self.assertRaises(ValidationError):
            await crud.update_profile("p-kibugu", username="kiambu_shop")
        self.assertIsNone(await crud.update_profile("p-missing", display_name="x"))

    async def test_passwords(self):
        with self.assertRaises(InvalidCredentialsError):
            await crud.change_password("p-kiambu", "wrong-one", "newpass1")
        with self.assertRaises(ValidationError):
            await crud.change_password("p-kiambu", "password123", "short")

        await crud.change_password("p-kiambu", "password123", "newpass1")
        self.assertEqual((await crud.authenticate("kiambu_shop", "newpass1")).id, "p-kiambu")
        with self.assertRaises(InvalidCredentialsError):
            await crud.authenticate("kiambu_shop", "password123")

        self.assertTrue(await crud.reset_password("p-kiambu", "reset123"))
        self.assertEqual((await crud.authenticate("kiambu_shop", "reset123")).id, "p-kiambu")
        self.assertFalse(await crud.reset_password("p-missing", "reset123"))

    async def test_delete_profile(self):
        self.assertTrue(await crud.delete_profile("p-kibugu"))
        self.assertIsNone(await crud.get_profile("p-kibugu"))
        self.assertFalse(await crud.delete_profile("p-kibugu"))

    # ---------- Inventory ----------

    async def test_list_inventory_is_scoped_by_shop(self):
        kiambu = await crud.list_inventory("kiambu")
        self.assertEqual({i.shop_id for i in kiambu}, {"kiambu"})
        self.assertEqual(len(kiambu), 4)
        # newest first
        self.assertEqual(kiambu[0].id, "inv-kiambu-4")
        self.assertEqual(await crud.list_inventory("nowhere"), [])

        everything = await crud.list_all_inventory()
        self.assertEqual(len(everything), 7)

        legacy = await crud.get_inventory_item("inv-kiambu-3")
        self.assertIsNone(legacy.desired_quantity)
        self.assertIsNone(await crud.get_inventory_item("inv-missing"))

    async def test_add_stock(self):
        item = await crud.add_stock("kiambu", "Dairy Meal", "5", "bags")
        self.assertEqual(item.id, "inv-kiambu-1")
        self.assertEqual((await crud.get_inventory_item("inv-kiambu-1")).quantity, 55)

        new = await crud.add_stock("kiambu", "Pig Grower", 12, "bags")
        stored = await crud.get_inventory_item(new.id)
        self.assertEqual(stored.quantity, 12)
        self.assertEqual(stored.threshold, 10)
        self.assertEqual(stored.desired_quantity, 20)

        bad_input = [
            ("Dairy Meal", "-1", "bags"),
            ("Dairy Meal", "abc", "bags"),
            ("Dairy Meal", 1, "tons"),
            ("", 1, "bags"),
        ]
        for product, qty, unit in bad_input:
            with self.assertRaises(ValidationError):
                await crud.add_stock("kiambu", product, qty, unit)
        self.assertEqual(len(await crud.list_inventory("kiambu")), 5)

    async def test_update_inventory_item(self):
        updated = await crud.update_inventory_item(
            "inv-kiambu-2", quantity="30", threshold=5, desired_quantity=None
        )
        self.assertEqual(updated.quantity, 30)
        self.assertEqual(updated.threshold, 5)
        self.assertIsNone(updated.desired_quantity)

        levels = await crud.update_stock_levels("inv-kiambu-2", "7", "50")
        self.assertEqual((levels.threshold, levels.desired_quantity), (7, 50))

        with self.assertRaises(ValidationError):
            await crud.update_inventory_item("inv-kiambu-2", quantity="-3")
        with self.assertRaises(ValidationError):
            await crud.update_inventory_item("inv-kiambu-2", shop_id="ikinu")
        with self.assertRaises(ValidationError):
            await crud.update_inventory_item("inv-kiambu-2", unit="crates")
        self.assertIsNone(await crud.update_inventory_item("inv-missing", quantity=1))

    async def test_delete_inventory_item(self):
        self.assertTrue(await crud.delete_inventory_item("inv-ikinu-3"))
        self.assertIsNone(await crud.get_inventory_item("inv-ikinu-3"))
        self.assertFalse(await crud.delete_inventory_item("inv-ikinu-3"))

    async def test_convert_units_creates_then_credits_kgs_record(self):
        first = await crud.convert_units("kiambu", "Dairy Meal", "bags", 2)
        self.assertEqual(first.kg_equivalent, 140)
        self.assertTrue(first.created)
        self.assertEqual((await crud.get_inventory_item("inv-kiambu-1")).quantity, 48)
        self.assertEqual((await crud.get_inventory_item(first.target.id)).quantity, 140)

        second = await crud.convert_units("kiambu", "Dairy Meal", "50kg", "3")
        self.assertFalse(second.created)
        self.assertEqual(second.target.id, first.target.id)
        self.assertEqual((await crud.get_inventory_item(first.target.id)).quantity, 290)
        self.assertEqual((await crud.get_inventory_item("inv-kiambu-4")).quantity, 9)

    async def test_convert_units_into_legacy_kg_record(self):
        await crud.add_stock("ikinu", "Calf Starter", 2, "bags")
        conversion = await crud.convert_units("ikinu", "Calf Starter", "bags", 1)
        self.assertEqual(conversion.target.id, "inv-ikinu-3")
        self.assertEqual((await crud.get_inventory_item("inv-ikinu-3")).quantity, 74)

    async def test_convert_units_errors_leave_stock(self):
        with self.assertRaises(UnsupportedUnitError):
            await crud.convert_units("kiambu", "Broiler Starter", "kgs", 1)
        with self.assertRaises(InsufficientStockError):
            await crud.convert_units("kiambu", "Dairy Meal", "bags", 51)
        with self.assertRaises(ProductNotFoundError):
            await crud.convert_units("kiambu", "Pig Grower", "bags", 1)
        self.assertEqual((await crud.get_inventory_item("inv-kiambu-1")).quantity, 50)
        self.assertEqual(len(await crud.list_inventory("kiambu")), 4)

    # ---------- Sales ----------

    async def test_record_sale_decrements_stock(self):
        txn = await crud.record_sale(
            "ikinu",
            " Ann Wambui ",
            [SaleItem("Dairy Meal", 3, "bags"), SaleItem("Pig Grower", 10, "bags")],
            when=date(2024, 6, 20),
        )
        self.assertEqual(txn.customer_name, "Ann Wambui")
        self.assertEqual(txn.date, "2024-06-20")

        dairy = await crud.get_inventory_item("inv-ikinu-1")
        self.assertEqual(dairy.quantity, 7)
        self.assertEqual((await crud.get_inventory_item("inv-ikinu-2")).quantity, 20)

        txns = await crud.list_transactions("ikinu")
        self.assertEqual(txns[0].id, txn.id)
        self.assertEqual(
            txns[0].items,
            (SaleItem("Dairy Meal", 3, "bags"), SaleItem("Pig Grower", 10, "bags")),
        )

    async def test_record_sale_returns_parsed_quantities(self):
        txn = await crud.record_sale("ikinu", "Ann", [SaleItem("Pig Grower", " 3 ", "bags")])
        self.assertEqual(txn.items, (SaleItem("Pig Grower", 3, "bags"),))
        self.assertEqual((await crud.list_transactions("ikinu"))[0].items, txn.items)
        self.assertEqual((await crud.get_inventory_item("inv-ikinu-2")).quantity, 27)

    async def test_record_sale_needs_stock_in_the_sold_unit(self):
        # ikinu has Dairy Meal in bags only
        with self.assertRaises(ProductNotFoundError) as ctx:
            await crud.record_sale("ikinu", "Ann", [SaleItem("Dairy Meal", 3, "kgs")])
        self.assertEqual(ctx.exception.unit, "kgs")
        self.assertEqual((await crud.get_inventory_item("inv-ikinu-1")).quantity, 10)

        # the legacy kg record serves a kgs line
        await crud.record_sale("ikinu", "Ann", [SaleItem("Calf Starter", 3, "kgs")])
        self.assertEqual((await crud.get_inventory_item("inv-ikinu-3")).quantity, 1)

    async def test_record_sale_is_all_or_nothing(self):
        items_before = await self.count_rows("sales_items")
        with self.assertRaises(InsufficientStockError):
            await crud.record_sale(
                "ikinu",
                "Ann",
                [SaleItem("Pig Grower", 5, "bags"), SaleItem("Dairy Meal", 12, "bags")],
            )
        with self.assertRaises(ProductNotFoundError):
            await crud.record_sale(
                "ikinu",
                "Ann",
                [SaleItem("Pig Grower", 5, "bags"), SaleItem("Layers Mash", 1, "bags")],
            )
        with self.assertRaises(ValidationError):
            await crud.record_sale("ikinu", "  ", [SaleItem("Pig Grower", 1, "bags")])
        with self.assertRaises(ValidationError):
            await crud.record_sale("ikinu", "Ann", [])

        self.assertEqual((await crud.get_inventory_item("inv-ikinu-1")).quantity, 10)
        self.assertEqual((await crud.get_inventory_item("inv-ikinu-2")).quantity, 30)
        self.assertEqual(len(await crud.list_transactions("ikinu")), 1)
        self.assertEqual(await self.count_rows("sales_items"), items_before)

    async def test_record_sale_rolls_back_on_concurrent_stock_change(self):
        # another session sold 2 bags after this one read the stock
        stale = await crud.list_inventory("ikinu")
        await crud.update_inventory_item("inv-ikinu-1", quantity=8)

        async def stale_inventory(_conn, _shop_id):
            return stale

        orig_shop_inventory = crud._shop_inventory
        try:
            crud._shop_inventory = stale_inventory  # type: ignore
            with self.assertRaises(PersistenceError):
                await crud.record_sale(
                    "ikinu",
                    "Ann",
                    [SaleItem("Pig Grower", 1, "bags"), SaleItem("Dairy Meal", 3, "bags")],
                )
        finally:
            crud._shop_inventory = orig_shop_inventory  # restore

        self.assertEqual((await crud.get_inventory_item("inv-ikinu-1")).quantity, 8)
        self.assertEqual((await crud.get_inventory_item("inv-ikinu-2")).quantity, 30)
        self.assertEqual(len(await crud.list_transactions("ikinu")), 1)

    async def test_both_sale_shapes_are_listed_together(self):
        txns = await crud.list_transactions("kiambu")
        self.assertEqual(
            [t.id for t in txns],
            ["txn-kiambu-1", "sale-kiambu-3", "sale-kiambu-2", "sale-kiambu-1"],
        )
        self.assertEqual(len(txns[0].items), 2)
        self.assertEqual(txns[1].items, (SaleItem("Dairy Meal", 5, "bags"),))
        self.assertEqual(txns[2].customer_name, "Mary Wanjiku")

        everything = await crud.list_all_transactions()
        self.assertEqual(len(everything), 5)
        self.assertEqual({t.shop_id for t in everything}, {"kiambu", "ikinu"})

    async def test_update_transaction(self):
        self.assertTrue(await crud.update_transaction("txn-kiambu-1", customer_name="Grace N."))
        self.assertTrue(await crud.update_transaction("sale-kiambu-1", date=" 2024-06-15 "))
        txns = {t.id: t for t in await crud.list_transactions("kiambu")}
        self.assertEqual(txns["txn-kiambu-1"].customer_name, "Grace N.")
        self.assertEqual(txns["txn-kiambu-1"].items[0].quantity, 2)
        self.assertEqual(txns["sale-kiambu-1"].date, "2024-06-15")

        with self.assertRaises(ValidationError):
            await crud.update_transaction("txn-kiambu-1", date="15/06/2024")
        with self.assertRaises(ValidationError):
            await crud.update_transaction("txn-kiambu-1", customer_name=" ")
        self.assertFalse(await crud.update_transaction("txn-missing", customer_name="X"))
        self.assertFalse(await crud.update_transaction("txn-kiambu-1"))

    async def test_delete_transaction(self):
        items_before = await self.count_rows("sales_items")
        self.assertTrue(await crud.delete_transaction("txn-kiambu-1"))
        self.assertEqual(await self.count_rows("sales_items"), items_before - 2)
        self.assertTrue(await crud.delete_transaction("sale-kiambu-2"))
        self.assertFalse(await crud.delete_transaction("sale-kiambu-2"))

        ids = [t.id for t in await crud.list_transactions("kiambu")]
        self.assertEqual(ids, ["sale-kiambu-3", "sale-kiambu-1"])
        # stock is not given back
        self.assertEqual((await crud.get_inventory_item("inv-kiambu-1")).quantity, 50)

    async def test_sold_out_record_stays_listed(self):
        await crud.record_sale("ikinu", "Ann", [SaleItem("Dairy Meal", 10, "bags")])
        item = await crud.get_inventory_item("inv-ikinu-1")
        self.assertEqual(item.quantity, 0)
        self.assertIn(item, await crud.list_inventory("ikinu"))
        with self.assertRaises(InsufficientStockError):
            await crud.record_sale("ikinu", "Ann", [SaleItem("Dairy Meal", 1, "bags")])


if __name__ == "__main__":
    unittest.main()
