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

"""Inventory ledger holding authoritative stock counts.

Stock is a row per product in the transactions DB. Every decrement is a
single conditional UPDATE (`quantity >= requested`), so two checkouts racing
for the last unit cannot both succeed no matter how many server processes
share the database. A batch reservation either applies every decrement or
none: on the first failure the decrements already applied in the batch are
reversed before the error propagates.
"""

import dataclasses
import logging
from typing import Dict, Iterable, List, Tuple

import db
from exceptions import InsufficientStockError
from exceptions import InvalidRequestError
from exceptions import ProductNotFoundError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class StockReservation:
  """The decrements applied by one successful `reserve` call."""

  items: Tuple[Tuple[str, int], ...]

  def quantity_for(self, product_id: str) -> int:
    return sum(q for p, q in self.items if p == product_id)


def merge_items(items: Iterable[Tuple[str, int]]) -> List[Tuple[str, int]]:
  """Sums quantities per product and orders by product ID.

  A fixed ordering keeps concurrent batches from locking rows in opposite
  orders on databases with row-level locks.
  """
  merged: Dict[str, int] = {}
  for product_id, quantity in items:
    if quantity <= 0:
      raise InvalidRequestError(
          "Quantity must be a positive number.", fields=["quantity"]
      )
    merged[product_id] = merged.get(product_id, 0) + quantity
  return sorted(merged.items())


class InventoryLedger:
  """Atomic reserve/release operations over the inventory table."""

  def __init__(self, transactions_session: AsyncSession):
    self.transactions_session = transactions_session

  async def get_available(self, product_id: str) -> int:
    quantity = await db.get_inventory(self.transactions_session, product_id)
    if quantity is None:
      raise ProductNotFoundError(product_id)
    return quantity

  async def reserve(
      self, items: Iterable[Tuple[str, int]]
  ) -> StockReservation:
    """Decrements stock for every item or for none of them.

    Args:
      items: (product_id, quantity) pairs. Repeated products are merged.

    Returns:
      The applied reservation, which can be handed back to `release`.

    Raises:
      InsufficientStockError: A product has fewer units than requested.
      ProductNotFoundError: A product has no inventory row.
    """
    batch = merge_items(items)
    applied: List[Tuple[str, int]] = []
    try:
      for product_id, quantity in batch:
        if await db.reserve_stock(
            self.transactions_session, product_id, quantity
        ):
          applied.append((product_id, quantity))
          continue

        available = await db.get_inventory(
            self.transactions_session, product_id
        )
        if available is None:
          raise ProductNotFoundError(product_id)
        logger.warning(
            "Insufficient stock for %s: requested %d, available %d",
            product_id,
            quantity,
            available,
        )
        raise InsufficientStockError(product_id, quantity, available)
    except Exception:
      await self._undo(applied)
      raise

    logger.info("Reserved stock for %d products", len(applied))
    return StockReservation(items=tuple(applied))

  async def release(self, items: Iterable[Tuple[str, int]]) -> None:
    """Gives stock back, e.g. on cancellation."""
    for product_id, quantity in merge_items(items):
      if not await db.release_stock(
          self.transactions_session, product_id, quantity
      ):
        # The product was removed from inventory after it was ordered.
        logger.warning(
            "Cannot release %d of %s: no inventory row", quantity, product_id
        )
    logger.info("Released stock for order items")

  async def _undo(self, applied: List[Tuple[str, int]]) -> None:
    for product_id, quantity in applied:
      await db.release_stock(self.transactions_session, product_id, quantity)
