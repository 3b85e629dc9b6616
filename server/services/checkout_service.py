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

"""Checkout service turning a customer's cart into orders.

This module provides the `CheckoutService` class, the entry point for
checkout. It sequences the cart resolver, inventory ledger, order splitter
and payment reconciler.

Key responsibilities include:
- Validating the shipping address and payment method.
- Cash on delivery: resolving the cart, reserving stock, persisting the
  parent order and its per-vendor sub-orders and clearing the cart, all in
  one transaction. Any failure leaves stock and cart untouched.
- Card: resolving the cart and opening a hosted checkout session with a
  snapshot of it. Orders are created later, by payment verification.
"""

import logging
from typing import Optional

import db
from enums import PaymentMethod
from exceptions import InvalidRequestError
from models import Actor
from models import CheckoutResponse
from models import ShippingAddress
from services import order_splitter
from services.cart_resolver import CartSnapshotResolver
from services.inventory_ledger import InventoryLedger
from services.payment_reconciler import PaymentReconciler
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def parse_payment_method(value: str) -> PaymentMethod:
  try:
    return PaymentMethod(value)
  except ValueError:
    raise InvalidRequestError(
        f"Unsupported payment method '{value}'.", fields=["payment_method"]
    ) from None


class CheckoutService:
  """Service for converting carts into orders."""

  def __init__(
      self,
      products_session: AsyncSession,
      transactions_session: AsyncSession,
      reconciler: PaymentReconciler,
      ledger: Optional[InventoryLedger] = None,
  ):
    self.products_session = products_session
    self.transactions_session = transactions_session
    self.reconciler = reconciler
    self.ledger = ledger or InventoryLedger(transactions_session)
    self.resolver = CartSnapshotResolver(
        products_session, transactions_session
    )

  async def checkout(
      self,
      actor: Actor,
      payment_method: str,
      shipping_address: ShippingAddress,
  ) -> CheckoutResponse:
    """Checks out the actor's cart.

    Args:
      actor: The customer checking out.
      payment_method: `cash_on_delivery` or `card`.
      shipping_address: Where to deliver; every field is required.

    Returns:
      The parent order id for cash on delivery, or the payment session id
      and provider redirect URL for card.
    """
    method = parse_payment_method(payment_method)
    missing = shipping_address.missing_fields()
    if missing:
      raise InvalidRequestError(
          "Please provide a complete shipping address.", fields=missing
      )

    if method == PaymentMethod.CASH_ON_DELIVERY:
      return await self._checkout_cash_on_delivery(actor.id, shipping_address)
    return await self._checkout_card(actor.id, shipping_address)

  async def _checkout_cash_on_delivery(
      self, customer_id: str, shipping_address: ShippingAddress
  ) -> CheckoutResponse:
    logger.info("Cash on delivery checkout for %s", customer_id)
    try:
      snapshot = await self.resolver.resolve(customer_id)
      await self.ledger.reserve(snapshot.reservation_items())
      draft = order_splitter.split(
          snapshot, shipping_address, PaymentMethod.CASH_ON_DELIVERY.value
      )
      parent, _ = await order_splitter.persist(
          self.transactions_session, draft
      )
      # The order stays unpaid; cash is collected on delivery.
      await db.consume_cart_lines(
          self.transactions_session,
          customer_id,
          snapshot.cart_line_quantities(),
      )
      await self.transactions_session.commit()
    except Exception:
      await self.transactions_session.rollback()
      raise

    return CheckoutResponse(parent_order_id=parent.id)

  async def _checkout_card(
      self, customer_id: str, shipping_address: ShippingAddress
  ) -> CheckoutResponse:
    logger.info("Card checkout for %s", customer_id)
    try:
      snapshot = await self.resolver.resolve(customer_id)
      created = await self.reconciler.create_card_session(
          snapshot, shipping_address
      )
      await self.transactions_session.commit()
    except Exception:
      await self.transactions_session.rollback()
      raise

    return CheckoutResponse(
        session_id=created.session_id, redirect_url=created.redirect_url
    )
