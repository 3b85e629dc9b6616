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

"""Tests for hosted card checkout sessions and payment verification."""

import asyncio

from absl.testing import absltest
import db
from enums import ActorRole
from enums import PaymentMethod
from enums import PaymentSessionStatus
from exceptions import InvalidRequestError
from exceptions import InvalidSessionError
from exceptions import PaymentNotCompletedError
from exceptions import PaymentProviderError
from exceptions import ReservationFailedAfterPaymentError
from gateways.fake_gateway import FakeGateway
from models import Actor
from models import PaymentResult
from models import ShippingAddress
from services.cart_resolver import CartSnapshotResolver
from services.payment_reconciler import PaymentReconciler
import testbed

ALICE = Actor(id="alice", role=ActorRole.CUSTOMER)
BOB = Actor(id="bob", role=ActorRole.CUSTOMER)
ADMIN = Actor(id="root", role=ActorRole.ADMIN)

SUCCESS_URL = "http://shop.test/paid?session_id={CHECKOUT_SESSION_ID}"
CANCEL_URL = "http://shop.test/cart"


class PaymentReconcilerTest(absltest.TestCase):

  def setUp(self) -> None:
    super().setUp()
    self.testbed = testbed.Testbed()
    self.testbed.start()
    asyncio.run(self.testbed.seed())
    self.gateway = FakeGateway()

  def tearDown(self) -> None:
    self.testbed.stop()
    super().tearDown()

  def _reconciler(self, session) -> PaymentReconciler:
    return PaymentReconciler(self.gateway, session, SUCCESS_URL, CANCEL_URL)

  def _open_session(self, customer_id: str = "alice") -> str:
    async def open_session():
      async with self.testbed.products_session_factory() as products:
        async with self.testbed.transactions_session_factory() as session:
          snapshot = await CartSnapshotResolver(products, session).resolve(
              customer_id
          )
          created = await self._reconciler(session).create_card_session(
              snapshot, ShippingAddress(**testbed.ADDRESS)
          )
          await session.commit()
          return created.session_id

    return asyncio.run(open_session())

  async def _verify(self, session_id: str, actor: Actor):
    async with self.testbed.transactions_session_factory() as session:
      order = await self._reconciler(session).verify(session_id, actor)
      return order.id, order.is_paid, order.payment_result

  def _session_record(self, session_id: str):
    async def get():
      async with self.testbed.transactions_session_factory() as session:
        return await db.get_payment_session(session, session_id)

    return asyncio.run(get())

  def _order_count(self, customer_id: str = "alice") -> int:
    async def count():
      async with self.testbed.transactions_session_factory() as session:
        return len(await db.list_parent_orders(session, customer_id))

    return asyncio.run(count())

  def _fill_cart(self) -> None:
    asyncio.run(self.testbed.add_to_cart("alice", "p1", 2))
    asyncio.run(self.testbed.add_to_cart("alice", "p2", 1))

  def test_create_session_records_snapshot_without_reserving(self) -> None:
    self._fill_cart()
    session_id = self._open_session()

    record = self._session_record(session_id)
    self.assertEqual(record.status, PaymentSessionStatus.OPEN.value)
    self.assertEqual(record.amount, 2 * 1000 + 2500)
    self.assertEqual(record.snapshot["shipping_address"]["city"], "Springfield")
    self.assertLen(record.snapshot["cart"]["lines"], 2)
    self.assertEqual(
        asyncio.run(self.testbed.stock_levels("p1", "p2")), {"p1": 5, "p2": 1}
    )
    create_call = self.gateway.calls[0]
    self.assertEqual(create_call["amount"], 4500)
    self.assertEqual(create_call["success_url"], SUCCESS_URL)
    self.assertEqual(self._order_count(), 0)

  def test_create_session_provider_failure(self) -> None:
    self._fill_cart()
    self.gateway.fail_next()

    with self.assertRaises(PaymentProviderError):
      self._open_session()

  def test_verify_unpaid_session(self) -> None:
    self._fill_cart()
    session_id = self._open_session()

    with self.assertRaises(PaymentNotCompletedError):
      asyncio.run(self._verify(session_id, ALICE))

    self.assertEqual(
        self._session_record(session_id).status,
        PaymentSessionStatus.OPEN.value,
    )
    self.assertEqual(asyncio.run(self.testbed.stock("p1")), 5)

  def test_verify_paid_session_creates_paid_order(self) -> None:
    self._fill_cart()
    session_id = self._open_session()
    self.gateway.mark_paid(session_id)

    order_id, is_paid, payment_result = asyncio.run(
        self._verify(session_id, ALICE)
    )

    self.assertTrue(is_paid)
    self.assertEqual(payment_result["session_id"], session_id)
    self.assertEqual(payment_result["status"], "paid")
    self.assertEqual(
        payment_result["receipt_url"],
        f"https://checkout.fake.test/receipts/{session_id}",
    )
    self.assertIsNotNone(payment_result["paid_at"])
    self.assertEqual(
        asyncio.run(self.testbed.stock_levels("p1", "p2")), {"p1": 3, "p2": 0}
    )
    self.assertEqual(asyncio.run(self.testbed.cart_product_ids("alice")), [])
    record = self._session_record(session_id)
    self.assertEqual(record.status, PaymentSessionStatus.COMPLETED.value)
    self.assertEqual(record.parent_order_id, order_id)

  def test_order_uses_card_payment_method(self) -> None:
    self._fill_cart()
    session_id = self._open_session()
    self.gateway.mark_paid(session_id)
    order_id, _, _ = asyncio.run(self._verify(session_id, ALICE))

    async def get_order():
      async with self.testbed.transactions_session_factory() as session:
        return await db.get_parent_order(session, order_id)

    order = asyncio.run(get_order())
    self.assertEqual(order.payment_method, PaymentMethod.CARD.value)
    self.assertEqual(order.total_amount, 4500)

  def test_verify_twice_returns_same_order(self) -> None:
    self._fill_cart()
    session_id = self._open_session()
    self.gateway.mark_paid(session_id)

    first_id, _, _ = asyncio.run(self._verify(session_id, ALICE))
    second_id, _, _ = asyncio.run(self._verify(session_id, ALICE))

    self.assertEqual(first_id, second_id)
    self.assertEqual(self._order_count(), 1)
    self.assertEqual(asyncio.run(self.testbed.stock("p1")), 3)
    retrievals = [
        c for c in self.gateway.calls if c["method"] == "retrieve_session"
    ]
    self.assertLen(retrievals, 1)

  def test_concurrent_verifications_create_one_order(self) -> None:
    self._fill_cart()
    session_id = self._open_session()
    self.gateway.mark_paid(session_id)

    async def race():
      return await asyncio.gather(
          self._verify(session_id, ALICE), self._verify(session_id, ALICE)
      )

    results = asyncio.run(race())

    self.assertEqual(results[0][0], results[1][0])
    self.assertEqual(self._order_count(), 1)
    self.assertEqual(
        asyncio.run(self.testbed.stock_levels("p1", "p2")), {"p1": 3, "p2": 0}
    )

  def test_lines_added_after_checkout_started_are_kept(self) -> None:
    self._fill_cart()
    session_id = self._open_session()
    asyncio.run(self.testbed.add_to_cart("alice", "p3", 1))
    self.gateway.mark_paid(session_id)

    asyncio.run(self._verify(session_id, ALICE))

    self.assertEqual(
        asyncio.run(self.testbed.cart_product_ids("alice")), ["p3"]
    )

  def test_quantity_added_to_paid_line_is_kept(self) -> None:
    asyncio.run(self.testbed.add_to_cart("alice", "p1", 2))
    session_id = self._open_session()
    asyncio.run(self.testbed.add_to_cart("alice", "p1", 3))
    self.gateway.mark_paid(session_id)

    asyncio.run(self._verify(session_id, ALICE))

    self.assertEqual(
        asyncio.run(self.testbed.cart_contents("alice")), [("p1", 3)]
    )
    self.assertEqual(asyncio.run(self.testbed.stock("p1")), 3)

  def test_stock_gone_after_payment(self) -> None:
    self._fill_cart()
    session_id = self._open_session()
    # Another customer bought the last plate while alice was paying.
    asyncio.run(self.testbed.set_stock("p2", 0))
    self.gateway.mark_paid(session_id)

    with self.assertRaises(ReservationFailedAfterPaymentError) as cm:
      asyncio.run(self._verify(session_id, ALICE))

    self.assertEqual(cm.exception.product_id, "p2")
    record = self._session_record(session_id)
    self.assertEqual(
        record.status, PaymentSessionStatus.RESERVATION_FAILED.value
    )
    self.assertEqual(record.failure_reason, "OUT_OF_STOCK:p2")
    self.assertEqual(asyncio.run(self.testbed.stock("p1")), 5)
    self.assertEqual(self._order_count(), 0)
    self.assertCountEqual(
        asyncio.run(self.testbed.cart_product_ids("alice")), ["p1", "p2"]
    )

    # Later attempts report the same condition without another order.
    with self.assertRaises(ReservationFailedAfterPaymentError) as cm:
      asyncio.run(self._verify(session_id, ALICE))
    self.assertEqual(cm.exception.product_id, "p2")
    self.assertEqual(self._order_count(), 0)

  def test_unknown_session(self) -> None:
    with self.assertRaises(InvalidSessionError):
      asyncio.run(self._verify("cs_unknown", ALICE))

  def test_empty_session_id(self) -> None:
    with self.assertRaises(InvalidRequestError):
      asyncio.run(self._verify("", ALICE))

  def test_other_customers_session(self) -> None:
    self._fill_cart()
    session_id = self._open_session()
    self.gateway.mark_paid(session_id)

    with self.assertRaises(InvalidSessionError):
      asyncio.run(self._verify(session_id, BOB))
    self.assertEqual(self._order_count(), 0)

    order_id, _, _ = asyncio.run(self._verify(session_id, ADMIN))
    self.assertIsNotNone(order_id)

  def test_provider_outage_during_verify(self) -> None:
    self._fill_cart()
    session_id = self._open_session()
    self.gateway.mark_paid(session_id)
    self.gateway.fail_next()

    with self.assertRaises(PaymentProviderError):
      asyncio.run(self._verify(session_id, ALICE))

    # The session stays open, so a retry succeeds.
    order_id, is_paid, _ = asyncio.run(self._verify(session_id, ALICE))
    self.assertIsNotNone(order_id)
    self.assertTrue(is_paid)

  def test_finalize_is_idempotent(self) -> None:
    self._fill_cart()
    session_id = self._open_session()
    self.gateway.mark_paid(session_id)
    order_id, _, _ = asyncio.run(self._verify(session_id, ALICE))

    async def finalize_again():
      async with self.testbed.transactions_session_factory() as session:
        changed = await self._reconciler(session).finalize(
            order_id, PaymentResult(session_id="other", status="paid")
        )
        await session.commit()
        order = await db.get_parent_order(session, order_id)
        return changed, order.payment_result

    changed, payment_result = asyncio.run(finalize_again())
    self.assertFalse(changed)
    self.assertEqual(payment_result["session_id"], session_id)


if __name__ == "__main__":
  absltest.main()
