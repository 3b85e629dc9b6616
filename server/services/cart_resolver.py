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

"""Resolves a customer's cart against the live catalog at checkout time."""

import logging

import db
from exceptions import EmptyCartError
from exceptions import ProductUnavailableError
from models import CartSnapshot
from models import ResolvedLine
from models import Variant
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class CartSnapshotResolver:
  """Reads cart lines and attaches current price, vendor and stock."""

  def __init__(
      self,
      products_session: AsyncSession,
      transactions_session: AsyncSession,
  ):
    self.products_session = products_session
    self.transactions_session = transactions_session

  async def resolve(self, customer_id: str) -> CartSnapshot:
    """Builds the checkout snapshot for a customer's cart.

    The price stored on a cart line is the price at the time it was added and
    may be stale; the snapshot always uses the catalog price.

    Raises:
      EmptyCartError: The cart has no lines.
      ProductUnavailableError: A product was deleted or has no stock. The
        whole checkout is rejected rather than ordering part of the cart.
    """
    cart_lines = await db.get_cart_lines(self.transactions_session, customer_id)
    if not cart_lines:
      raise EmptyCartError()

    product_ids = list(dict.fromkeys(line.product_id for line in cart_lines))
    products = await db.get_products_by_ids(self.products_session, product_ids)
    stock = await db.get_inventory_levels(
        self.transactions_session, product_ids
    )

    lines = []
    for cart_line in cart_lines:
      product = products.get(cart_line.product_id)
      available = stock.get(cart_line.product_id, 0)
      if product is None or available <= 0:
        logger.info(
            "Cart of %s holds unavailable product %s",
            customer_id,
            cart_line.product_id,
        )
        raise ProductUnavailableError(cart_line.product_id, cart_line.quantity)

      lines.append(
          ResolvedLine(
              cart_line_id=cart_line.id,
              product_id=product.id,
              title=product.title or "",
              vendor_id=product.vendor_id,
              unit_price=product.price,
              quantity=cart_line.quantity,
              available=available,
              variant=Variant(**cart_line.variant)
              if cart_line.variant
              else None,
          )
      )

    return CartSnapshot(customer_id=customer_id, lines=lines)
