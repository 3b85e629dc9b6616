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

"""Cart management for customers building up a checkout."""

import logging
from typing import Optional

import db
from exceptions import InvalidRequestError
from exceptions import ProductNotFoundError
from exceptions import ResourceNotFoundError
from models import CartLineView
from models import CartView
from models import Variant
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class CartService:
  """Reads and edits a customer's cart lines."""

  def __init__(
      self,
      products_session: AsyncSession,
      transactions_session: AsyncSession,
  ):
    self.products_session = products_session
    self.transactions_session = transactions_session

  async def get_cart(self, customer_id: str) -> CartView:
    lines = await db.get_cart_lines(self.transactions_session, customer_id)
    return CartView(
        customer_id=customer_id,
        items=[
            CartLineView(
                id=line.id,
                product_id=line.product_id,
                quantity=line.quantity,
                variant=Variant(**line.variant) if line.variant else None,
                price=line.price,
            )
            for line in lines
        ],
    )

  async def add_item(
      self,
      customer_id: str,
      product_id: str,
      quantity: int,
      variant: Optional[Variant] = None,
  ) -> CartView:
    """Adds a product, merging with a line holding the same variant."""
    if quantity <= 0:
      raise InvalidRequestError(
          "Quantity must be a positive number.", fields=["quantity"]
      )
    product = await db.get_product(self.products_session, product_id)
    if product is None:
      raise ProductNotFoundError(product_id)

    await db.add_cart_line(
        self.transactions_session,
        customer_id,
        product_id,
        quantity,
        variant.model_dump() if variant else None,
        product.price,
    )
    await self.transactions_session.commit()
    logger.info(
        "Added %d x %s to cart of %s", quantity, product_id, customer_id
    )
    return await self.get_cart(customer_id)

  async def remove_item(self, customer_id: str, line_id: str) -> CartView:
    removed = await db.delete_cart_line(
        self.transactions_session, customer_id, line_id
    )
    if not removed:
      await self.transactions_session.rollback()
      raise ResourceNotFoundError("Cart item not found.")
    await self.transactions_session.commit()
    return await self.get_cart(customer_id)

  async def clear(self, customer_id: str) -> CartView:
    await db.clear_cart(self.transactions_session, customer_id)
    await self.transactions_session.commit()
    return CartView(customer_id=customer_id, items=[])
