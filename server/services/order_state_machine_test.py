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

"""Tests for sub-order status transitions and cancellation."""

import asyncio

from absl.testing import absltest
import db
from enums import ActorRole
from enums import OrderStatus
from exceptions import InvalidRequestError
from exceptions import InvalidTransitionError
from exceptions import NotCancellableError
from exceptions import PermissionDeniedError
from exceptions import ResourceNotFoundError
from exceptions import StaleWriteError
from models import Actor
from models import CartSnapshot
from models import ResolvedLine
from models import ShippingAddress
from services import order_splitter
from services import order_state_machine
from services.inventory_ledger import InventoryLedger
from services.order_state_machine import OrderStateMachine
import testbed

ALICE = Actor(id="alice", role=ActorRole.CUSTOMER)
MALLORY = Actor(id="mallory", role=ActorRole.CUSTOMER)
VENDOR_A = Actor(id="vendor-a", role=ActorRole.VENDOR)
VENDOR_B = Actor(id="vendor-b", role=ActorRole.VENDOR)
ADMIN = Actor(id="root", role=ActorRole.ADMIN)


class TransitionRulesTest(absltest.TestCase):

  def test_forward_chain(self) -> None:
    can = order_state_machine.can_transition
    self.assertTrue(can(OrderStatus.PENDING, OrderStatus.PROCESSING))
    self.assertTrue(can(OrderStatus.PROCESSING, OrderStatus.SHIPPED))
    self.assertTrue(can(OrderStatus.SHIPPED, OrderStatus.DELIVERED))

  def test_skips_and_reversals_are_rejected(self) -> None:
    can = order_state_machine.can_transition
    self.assertFalse(can(OrderStatus.PENDING, OrderStatus.SHIPPED))
    self.assertFalse(can(OrderStatus.SHIPPED, OrderStatus.PROCESSING))
    self.assertFalse(can(OrderStatus.DELIVERED, OrderStatus.PENDING))
    self.assertFalse(can(OrderStatus.CANCELLED, OrderStatus.PENDING))

  def test_cancellation_window(self) -> None:
    can = order_state_machine.can_transition
    self.assertTrue(can(OrderStatus.PENDING, OrderStatus.CANCELLED))
    self.assertTrue(can(OrderStatus.PROCESSING, OrderStatus.CANCELLED))
    self.assertFalse(can(OrderStatus.SHIPPED, OrderStatus.CANCELLED))
    self.assertFalse(can(OrderStatus.DELIVERED, OrderStatus.CANCELLED))
    self.assertFalse(can(OrderStatus.CANCELLED, OrderStatus.CANCELLED))

  def test_parse_status_rejects_unknown(self) -> None:
    with self.assertRaises(InvalidRequestError):
      order_state_machine.parse_status("lost")

  def test_permissions(self) -> None:
    self.assertTrue(
        order_state_machine.can_act_on_sub_order(VENDOR_A, "vendor-a")
    )
    self.assertFalse(
        order_state_machine.can_act_on_sub_order(VENDOR_B, "vendor-a")
    )
    self.assertFalse(
        order_state_machine.can_act_on_sub_order(ALICE, "alice")
    )
    self.assertTrue(
        order_state_machine.can_act_on_sub_order(ADMIN, "vendor-a")
    )
    self.assertTrue(
        order_state_machine.can_cancel_sub_order(ALICE, "vendor-a", "alice")
    )
    self.assertFalse(
        order_state_machine.can_cancel_sub_order(MALLORY, "vendor-a", "alice")
    )


class OrderStateMachineTest(absltest.TestCase):

  def setUp(self) -> None:
    super().setUp()
    self.testbed = testbed.Testbed()
    self.testbed.start()
    asyncio.run(self.testbed.seed())
    self.parent_id, self.sub_ids = asyncio.run(self._place_order())

  def tearDown(self) -> None:
    self.testbed.stop()
    super().tearDown()

  async def _place_order(self):
    """Places alice's order: 2 x p1 and 1 x p3 (vendor-a), 1 x p2 (vendor-b)."""
    snapshot = CartSnapshot(
        customer_id="alice",
        lines=[
            ResolvedLine(
                cart_line_id="l1",
                product_id="p1",
                title="Red Mug",
                vendor_id="vendor-a",
                unit_price=1000,
                quantity=2,
                available=5,
            ),
            ResolvedLine(
                cart_line_id="l2",
                product_id="p2",
                title="Blue Plate",
                vendor_id="vendor-b",
                unit_price=2500,
                quantity=1,
                available=1,
            ),
            ResolvedLine(
                cart_line_id="l3",
                product_id="p3",
                title="Green Bowl",
                vendor_id="vendor-a",
                unit_price=1500,
                quantity=1,
                available=10,
            ),
        ],
    )
    async with self.testbed.transactions_session_factory() as session:
      await InventoryLedger(session).reserve(snapshot.reservation_items())
      draft = order_splitter.split(
          snapshot, ShippingAddress(**testbed.ADDRESS), "cash_on_delivery"
      )
      parent, sub_orders = await order_splitter.persist(session, draft)
      await session.commit()
      return parent.id, [s.id for s in sub_orders]

  def _call(self, method_name, *args):
    async def call():
      async with self.testbed.transactions_session_factory() as session:
        return await getattr(OrderStateMachine(session), method_name)(*args)

    return asyncio.run(call())

  def _parent_status(self):
    async def get():
      async with self.testbed.transactions_session_factory() as session:
        return (await db.get_parent_order(session, self.parent_id)).status

    return asyncio.run(get())

  def test_vendor_advances_own_sub_order(self) -> None:
    sub_a, _ = self.sub_ids
    updated = self._call("update_status", sub_a, "processing", VENDOR_A)

    self.assertEqual(updated.status, OrderStatus.PROCESSING.value)
    # vendor-b is still pending, so the parent stays pending.
    self.assertEqual(self._parent_status(), OrderStatus.PENDING.value)

  def test_parent_status_follows_least_advanced_sub_order(self) -> None:
    sub_a, sub_b = self.sub_ids
    for status in ("processing", "shipped"):
      self._call("update_status", sub_a, status, VENDOR_A)
    self._call("update_status", sub_b, "processing", VENDOR_B)

    self.assertEqual(self._parent_status(), OrderStatus.PROCESSING.value)

  def test_skipping_a_step_is_rejected(self) -> None:
    sub_a, _ = self.sub_ids
    with self.assertRaises(InvalidTransitionError) as cm:
      self._call("update_status", sub_a, "shipped", VENDOR_A)

    self.assertEqual(cm.exception.current, "pending")
    self.assertEqual(cm.exception.attempted, "shipped")

  def test_delivered_is_terminal(self) -> None:
    sub_a, _ = self.sub_ids
    for status in ("processing", "shipped", "delivered"):
      self._call("update_status", sub_a, status, VENDOR_A)

    with self.assertRaises(InvalidTransitionError):
      self._call("update_status", sub_a, "pending", VENDOR_A)
    with self.assertRaises(NotCancellableError):
      self._call("cancel", sub_a, VENDOR_A)

  def test_other_vendor_cannot_update(self) -> None:
    sub_a, _ = self.sub_ids
    with self.assertRaises(PermissionDeniedError):
      self._call("update_status", sub_a, "processing", VENDOR_B)
    with self.assertRaises(PermissionDeniedError):
      self._call("cancel", sub_a, VENDOR_B)

  def test_customer_cannot_advance_status(self) -> None:
    sub_a, _ = self.sub_ids
    with self.assertRaises(PermissionDeniedError):
      self._call("update_status", sub_a, "processing", ALICE)

  def test_unknown_sub_order(self) -> None:
    with self.assertRaises(ResourceNotFoundError):
      self._call("update_status", "nope", "processing", ADMIN)

  def test_cancel_returns_stock_and_updates_parent(self) -> None:
    sub_a, _ = self.sub_ids
    self.assertEqual(
        asyncio.run(self.testbed.stock_levels("p1", "p3")), {"p1": 3, "p3": 9}
    )

    cancelled = self._call("cancel", sub_a, ALICE)

    self.assertEqual(cancelled.status, OrderStatus.CANCELLED.value)
    self.assertEqual(
        asyncio.run(self.testbed.stock_levels("p1", "p3")), {"p1": 5, "p3": 10}
    )
    self.assertEqual(asyncio.run(self.testbed.stock("p2")), 0)
    self.assertEqual(self._parent_status(), OrderStatus.PENDING.value)

  def test_cancelled_quantity_can_be_reserved_again(self) -> None:
    _, sub_b = self.sub_ids
    self.assertEqual(asyncio.run(self.testbed.stock("p2")), 0)

    self._call("cancel", sub_b, VENDOR_B)

    async def reserve_again():
      async with self.testbed.transactions_session_factory() as session:
        reservation = await InventoryLedger(session).reserve([("p2", 1)])
        await session.commit()
        return reservation

    reservation = asyncio.run(reserve_again())
    self.assertEqual(reservation.quantity_for("p2"), 1)
    self.assertEqual(asyncio.run(self.testbed.stock("p2")), 0)

  def test_cancel_via_status_update(self) -> None:
    _, sub_b = self.sub_ids
    self._call("update_status", sub_b, "cancelled", VENDOR_B)
    self.assertEqual(asyncio.run(self.testbed.stock("p2")), 1)

  def test_cancel_twice_does_not_release_twice(self) -> None:
    _, sub_b = self.sub_ids
    self._call("cancel", sub_b, ADMIN)
    with self.assertRaises(NotCancellableError):
      self._call("cancel", sub_b, ADMIN)
    self.assertEqual(asyncio.run(self.testbed.stock("p2")), 1)

  def test_stale_write_is_rejected(self) -> None:
    sub_a, _ = self.sub_ids

    async def write_from_stale_read():
      async with self.testbed.transactions_session_factory() as session:
        machine = OrderStateMachine(session)
        stale = await machine._get_sub_order(sub_a)
        # Someone else moves the order on after it was read.
        async with self.testbed.transactions_session_factory() as other:
          await OrderStateMachine(other).update_status(
              sub_a, "processing", VENDOR_A
          )
        await machine._write_status(
            stale.id, OrderStatus.PENDING, OrderStatus.PROCESSING
        )

    with self.assertRaises(StaleWriteError):
      asyncio.run(write_from_stale_read())

  def test_cancel_parent_cancels_everything(self) -> None:
    parent = self._call("cancel_parent", self.parent_id, ALICE)

    self.assertEqual(parent.status, OrderStatus.CANCELLED.value)
    self.assertEqual(
        asyncio.run(self.testbed.stock_levels("p1", "p2", "p3")),
        {"p1": 5, "p2": 1, "p3": 10},
    )

  def test_cancel_parent_skips_already_cancelled(self) -> None:
    sub_a, _ = self.sub_ids
    self._call("cancel", sub_a, VENDOR_A)
    parent = self._call("cancel_parent", self.parent_id, ALICE)

    self.assertEqual(parent.status, OrderStatus.CANCELLED.value)
    self.assertEqual(
        asyncio.run(self.testbed.stock_levels("p1", "p2", "p3")),
        {"p1": 5, "p2": 1, "p3": 10},
    )

  def test_cancel_parent_is_all_or_nothing(self) -> None:
    sub_a, sub_b = self.sub_ids
    for status in ("processing", "shipped"):
      self._call("update_status", sub_b, status, VENDOR_B)

    with self.assertRaises(NotCancellableError) as cm:
      self._call("cancel_parent", self.parent_id, ALICE)

    self.assertEqual(cm.exception.sub_order_ids, [sub_b])
    self.assertEqual(
        self._call("_get_sub_order", sub_a).status, OrderStatus.PENDING.value
    )
    self.assertEqual(asyncio.run(self.testbed.stock("p1")), 3)

  def test_cancel_parent_when_all_cancelled(self) -> None:
    self._call("cancel_parent", self.parent_id, ALICE)
    with self.assertRaises(NotCancellableError):
      self._call("cancel_parent", self.parent_id, ALICE)

  def test_cancel_parent_by_another_customer(self) -> None:
    with self.assertRaises(PermissionDeniedError):
      self._call("cancel_parent", self.parent_id, MALLORY)


if __name__ == "__main__":
  absltest.main()
