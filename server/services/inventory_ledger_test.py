#   Copyright 2026 UCP Authors
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""Tests for the inventory ledger."""

import asyncio

from absl.testing import absltest
from exceptions import InsufficientStockError
from exceptions import InvalidRequestError
from exceptions import ProductNotFoundError
from services.inventory_ledger import InventoryLedger
from services.inventory_ledger import merge_items
import testbed


class MergeItemsTest(absltest.TestCase):

  def test_sums_repeated_products_and_sorts(self) -> None:
    self.assertEqual(
        merge_items([("b", 1), ("a", 2), ("b", 3)]), [("a", 2), ("b", 4)]
    )

  def test_rejects_non_positive_quantity(self) -> None:
    with self.assertRaises(InvalidRequestError):
      merge_items([("a", 0)])
    with self.assertRaises(InvalidRequestError):
      merge_items([("a", -2)])


class InventoryLedgerTest(absltest.TestCase):

  def setUp(self) -> None:
    super().setUp()
    self.testbed = testbed.Testbed()
    self.testbed.start()
    asyncio.run(self.testbed.seed())

  def tearDown(self) -> None:
    self.testbed.stop()
    super().tearDown()

  def _run_reserve(self, items):
    async def reserve():
      async with self.testbed.transactions_session_factory() as session:
        try:
          reservation = await InventoryLedger(session).reserve(items)
          await session.commit()
        except Exception:
          await session.rollback()
          raise
        return reservation

    return asyncio.run(reserve())

  def test_reserve_decrements_stock(self) -> None:
    reservation = self._run_reserve([("p1", 2), ("p3", 4)])

    self.assertEqual(reservation.quantity_for("p1"), 2)
    self.assertEqual(reservation.quantity_for("p3"), 4)
    levels = asyncio.run(self.testbed.stock_levels("p1", "p3"))
    self.assertEqual(levels, {"p1": 3, "p3": 6})

  def test_reserve_exact_stock_reaches_zero(self) -> None:
    self._run_reserve([("p1", 5)])
    self.assertEqual(asyncio.run(self.testbed.stock("p1")), 0)

  def test_reserve_insufficient_reports_available(self) -> None:
    with self.assertRaises(InsufficientStockError) as cm:
      self._run_reserve([("p2", 2)])

    self.assertEqual(cm.exception.product_id, "p2")
    self.assertEqual(cm.exception.requested, 2)
    self.assertEqual(cm.exception.available, 1)
    self.assertEqual(cm.exception.code, "OUT_OF_STOCK")
    self.assertEqual(asyncio.run(self.testbed.stock("p2")), 1)

  def test_failed_batch_leaves_every_product_untouched(self) -> None:
    # p1 sorts before p2, so its decrement is applied and then undone.
    with self.assertRaises(InsufficientStockError):
      self._run_reserve([("p3", 1), ("p1", 2), ("p2", 5)])

    levels = asyncio.run(self.testbed.stock_levels("p1", "p2", "p3"))
    self.assertEqual(levels, {"p1": 5, "p2": 1, "p3": 10})

  def test_reserve_unknown_product(self) -> None:
    with self.assertRaises(ProductNotFoundError) as cm:
      self._run_reserve([("p1", 1), ("missing", 1)])

    self.assertEqual(cm.exception.product_id, "missing")
    self.assertEqual(asyncio.run(self.testbed.stock("p1")), 5)

  def test_repeated_product_is_checked_as_one_total(self) -> None:
    with self.assertRaises(InsufficientStockError) as cm:
      self._run_reserve([("p1", 3), ("p1", 3)])

    self.assertEqual(cm.exception.requested, 6)
    self.assertEqual(asyncio.run(self.testbed.stock("p1")), 5)

  def test_release_restores_stock(self) -> None:
    async def reserve_then_release():
      async with self.testbed.transactions_session_factory() as session:
        ledger = InventoryLedger(session)
        await ledger.reserve([("p1", 4)])
        await session.commit()
        await ledger.release([("p1", 4)])
        await session.commit()

    asyncio.run(reserve_then_release())
    self.assertEqual(asyncio.run(self.testbed.stock("p1")), 5)

  def test_release_of_unknown_product_is_ignored(self) -> None:
    async def release():
      async with self.testbed.transactions_session_factory() as session:
        await InventoryLedger(session).release([("missing", 1), ("p2", 1)])
        await session.commit()

    asyncio.run(release())
    self.assertEqual(asyncio.run(self.testbed.stock("p2")), 2)

  def test_get_available(self) -> None:
    async def available(product_id):
      async with self.testbed.transactions_session_factory() as session:
        return await InventoryLedger(session).get_available(product_id)

    self.assertEqual(asyncio.run(available("p3")), 10)
    with self.assertRaises(ProductNotFoundError):
      asyncio.run(available("missing"))

  def test_concurrent_reservations_for_last_unit(self) -> None:
    async def attempt():
      async with self.testbed.transactions_session_factory() as session:
        try:
          await InventoryLedger(session).reserve([("p2", 1)])
          await session.commit()
        except InsufficientStockError:
          await session.rollback()
          return False
        return True

    async def race():
      return await asyncio.gather(attempt(), attempt())

    results = asyncio.run(race())

    self.assertCountEqual(results, [True, False])
    self.assertEqual(asyncio.run(self.testbed.stock("p2")), 0)


if __name__ == "__main__":
  absltest.main()
