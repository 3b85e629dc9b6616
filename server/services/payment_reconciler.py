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

"""Payment reconciliation for cash-on-delivery and hosted card checkout.

Card checkout is split in two. `create_card_session` opens a session with the
hosted provider and stores a serialized snapshot of the resolved cart and
shipping address; no stock is reserved and no order exists yet. `verify`
runs when the customer returns from the provider (possibly several times, or
concurrently): it claims the session with a conditional update on its status,
and only the caller that wins the claim reserves stock and creates the
order. Everyone else gets the order the winner created.

If stock ran out while the customer was paying, the provider has captured
money for an order that cannot exist. The session is marked
`reservation_failed`, the condition is logged at ERROR for an operator to
refund, and every later verification reports the same error.
"""

import logging
from typing import Optional

import db
from enums import ActorRole
from enums import PaymentMethod
from enums import PaymentSessionStatus
from exceptions import InsufficientStockError
from exceptions import InvalidRequestError
from exceptions import InvalidSessionError
from exceptions import PaymentNotCompletedError
from exceptions import PaymentProviderError
from exceptions import ProductNotFoundError
from exceptions import ReservationFailedAfterPaymentError
from exceptions import ResourceNotFoundError
from gateways.port import CreatedSession
from gateways.port import GatewayError
from gateways.port import GatewayLineItem
from gateways.port import PaymentGateway
from gateways.port import SessionNotFoundError
from gateways.port import SessionStatus
from models import Actor
from models import CartSnapshot
from models import PaymentResult
from models import PaymentSessionSnapshot
from models import ShippingAddress
from services import order_splitter
from services.inventory_ledger import InventoryLedger
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class PaymentReconciler:
  """Bridges both payment paths into one idempotent finalize step."""

  def __init__(
      self,
      gateway: PaymentGateway,
      transactions_session: AsyncSession,
      success_url: str,
      cancel_url: str,
      currency: str = "usd",
      ledger: Optional[InventoryLedger] = None,
  ):
    self.gateway = gateway
    self.transactions_session = transactions_session
    self.success_url = success_url
    self.cancel_url = cancel_url
    self.currency = currency
    self.ledger = ledger or InventoryLedger(transactions_session)

  async def finalize(
      self, parent_order_id: str, payment_result: PaymentResult
  ) -> bool:
    """Marks an order paid within the caller's transaction.

    Returns:
      True if this call marked the order paid, False if it already was.
    """
    changed = await db.mark_parent_order_paid(
        self.transactions_session,
        parent_order_id,
        payment_result.model_dump(mode="json"),
    )
    if changed:
      logger.info("Order %s marked paid", parent_order_id)
    else:
      logger.info("Order %s already paid, finalize skipped", parent_order_id)
    return changed

  async def create_card_session(
      self,
      snapshot: CartSnapshot,
      shipping_address: ShippingAddress,
      customer_email: Optional[str] = None,
  ) -> CreatedSession:
    """Opens a hosted checkout session and records the snapshot.

    The caller commits the transaction.
    """
    amount = snapshot.total_amount
    line_items = [
        GatewayLineItem(
            name=line.title or line.product_id,
            unit_amount=line.unit_price,
            quantity=line.quantity,
        )
        for line in snapshot.lines
    ]
    try:
      created = await self.gateway.create_session(
          amount=amount,
          currency=self.currency,
          success_url=self.success_url,
          cancel_url=self.cancel_url,
          line_items=line_items,
          metadata={"customer_id": snapshot.customer_id},
          customer_email=customer_email,
      )
    except GatewayError as e:
      logger.error("Payment session creation failed: %s", e)
      raise PaymentProviderError() from e

    payload = PaymentSessionSnapshot(
        cart=snapshot, shipping_address=shipping_address, amount=amount
    )
    await db.save_payment_session(
        self.transactions_session,
        created.session_id,
        snapshot.customer_id,
        amount,
        payload.model_dump(mode="json"),
        PaymentSessionStatus.OPEN.value,
    )
    logger.info(
        "Opened payment session %s for %s, amount %d",
        created.session_id,
        snapshot.customer_id,
        amount,
    )
    return created

  async def verify(self, session_id: str, actor: Actor) -> db.ParentOrder:
    """Confirms a hosted checkout session and returns its order.

    Safe to call any number of times for the same session.

    Raises:
      InvalidSessionError: Unknown session, or another customer's.
      PaymentNotCompletedError: The provider reports the session unpaid.
      PaymentProviderError: The provider could not be reached.
      ReservationFailedAfterPaymentError: Paid, but stock ran out.
    """
    if not session_id:
      raise InvalidRequestError(
          "Session ID is required.", fields=["session_id"]
      )

    record = await db.get_payment_session(self.transactions_session, session_id)
    if record is None or (
        actor.role != ActorRole.ADMIN and record.customer_id != actor.id
    ):
      raise InvalidSessionError(session_id)

    if record.status != PaymentSessionStatus.OPEN.value:
      return await self._settled(record)

    status = await self._retrieve(session_id)
    if not status.paid:
      raise PaymentNotCompletedError(session_id)

    return await self._complete(record, status)

  async def _retrieve(self, session_id: str) -> SessionStatus:
    try:
      return await self.gateway.retrieve_session(session_id)
    except SessionNotFoundError as e:
      raise InvalidSessionError(session_id) from e
    except GatewayError as e:
      logger.error("Payment session %s lookup failed: %s", session_id, e)
      raise PaymentProviderError() from e

  async def _complete(
      self, record: db.PaymentSession, status: SessionStatus
  ) -> db.ParentOrder:
    session_id = record.id
    customer_id = record.customer_id
    snapshot = PaymentSessionSnapshot.model_validate(record.snapshot)
    try:
      claimed = await db.transition_payment_session(
          self.transactions_session,
          session_id,
          PaymentSessionStatus.OPEN.value,
          PaymentSessionStatus.COMPLETED.value,
      )
      if not claimed:
        # A concurrent verification got here first.
        await self.transactions_session.rollback()
        latest = await db.get_payment_session(
            self.transactions_session, session_id
        )
        return await self._settled(latest)

      try:
        await self.ledger.reserve(snapshot.cart.reservation_items())
      except (InsufficientStockError, ProductNotFoundError) as e:
        await self.transactions_session.rollback()
        await self._record_reservation_failure(session_id, e)
        raise ReservationFailedAfterPaymentError(
            session_id, e.product_id
        ) from e

      draft = order_splitter.split(
          snapshot.cart, snapshot.shipping_address, PaymentMethod.CARD.value
      )
      parent, _ = await order_splitter.persist(
          self.transactions_session, draft
      )
      await self.finalize(
          parent.id,
          PaymentResult(
              session_id=session_id,
              status=status.payment_status,
              receipt_url=status.receipt_url,
              paid_at=db.utcnow(),
              email_address=status.customer_email,
          ),
      )
      await db.link_payment_session(
          self.transactions_session, session_id, parent.id
      )
      # Anything added to the cart after checkout started stays in the cart.
      await db.consume_cart_lines(
          self.transactions_session,
          customer_id,
          snapshot.cart.cart_line_quantities(),
      )
      await self.transactions_session.commit()
    except ReservationFailedAfterPaymentError:
      raise
    except Exception:
      await self.transactions_session.rollback()
      raise

    logger.info(
        "Payment session %s completed as order %s", session_id, parent.id
    )
    return await db.get_parent_order(self.transactions_session, parent.id)

  async def _record_reservation_failure(
      self,
      session_id: str,
      error: InsufficientStockError | ProductNotFoundError,
  ) -> None:
    await db.transition_payment_session(
        self.transactions_session,
        session_id,
        PaymentSessionStatus.OPEN.value,
        PaymentSessionStatus.RESERVATION_FAILED.value,
        failure_reason=f"{error.code}:{error.product_id}",
    )
    await self.transactions_session.commit()
    logger.error(
        "Payment session %s was paid but stock for %s could not be reserved;"
        " manual refund required",
        session_id,
        error.product_id,
    )

  async def _settled(self, record: db.PaymentSession) -> db.ParentOrder:
    """Outcome of a session some earlier verification already processed."""
    if record.status == PaymentSessionStatus.RESERVATION_FAILED.value:
      product_id = None
      if record.failure_reason and ":" in record.failure_reason:
        product_id = record.failure_reason.split(":", 1)[1]
      raise ReservationFailedAfterPaymentError(record.id, product_id)

    order = None
    if record.parent_order_id:
      order = await db.get_parent_order(
          self.transactions_session, record.parent_order_id
      )
    if order is None:
      raise ResourceNotFoundError("Order not found.")
    return order
