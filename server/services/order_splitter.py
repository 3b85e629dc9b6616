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

"""Splits a resolved cart into one parent order and per-vendor sub-orders.

`split` and `derive_parent_status` are pure functions; `persist` writes a
draft into the caller's transaction so the rows commit (or roll back)
together with the stock reservation.
"""

import logging
from typing import Dict, Iterable, List, Tuple
import uuid

import db
from enums import OrderStatus
from models import CartSnapshot
from models import OrderDraft
from models import ShippingAddress
from models import SubOrderDraft
from models import SubOrderItem
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Fulfillment progress used for the aggregate status; cancelled is excluded.
STATUS_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.PROCESSING: 1,
    OrderStatus.SHIPPED: 2,
    OrderStatus.DELIVERED: 3,
}


def split(
    snapshot: CartSnapshot,
    shipping_address: ShippingAddress,
    payment_method: str,
) -> OrderDraft:
  """Groups snapshot lines by vendor, in order of first appearance."""
  groups: Dict[str, List[SubOrderItem]] = {}
  for line in snapshot.lines:
    groups.setdefault(line.vendor_id, []).append(
        SubOrderItem(
            product_id=line.product_id,
            title=line.title,
            quantity=line.quantity,
            unit_price=line.unit_price,
            subtotal=line.unit_price * line.quantity,
            variant=line.variant,
        )
    )

  sub_orders = [
      SubOrderDraft(
          vendor_id=vendor_id,
          items=items,
          total_amount=sum(item.subtotal for item in items),
      )
      for vendor_id, items in groups.items()
  ]
  return OrderDraft(
      customer_id=snapshot.customer_id,
      shipping_address=shipping_address,
      payment_method=payment_method,
      sub_orders=sub_orders,
      total_amount=sum(s.total_amount for s in sub_orders),
  )


def derive_parent_status(statuses: Iterable[str]) -> OrderStatus:
  """Collapses sub-order statuses into the customer-facing status.

  All cancelled gives cancelled and all delivered gives delivered. Otherwise
  the least advanced non-cancelled status wins.
  """
  statuses = [OrderStatus(s) for s in statuses]
  if not statuses:
    return OrderStatus.PENDING
  if all(s == OrderStatus.CANCELLED for s in statuses):
    return OrderStatus.CANCELLED
  active = [s for s in statuses if s != OrderStatus.CANCELLED]
  return min(active, key=STATUS_RANK.__getitem__)


async def persist(
    session: AsyncSession, draft: OrderDraft
) -> Tuple[db.ParentOrder, List[db.SubOrder]]:
  """Adds the parent order and its sub-orders to the session."""
  now = db.utcnow()
  parent = db.ParentOrder(
      id=str(uuid.uuid4()),
      customer_id=draft.customer_id,
      shipping_address=draft.shipping_address.model_dump(mode="json"),
      payment_method=draft.payment_method,
      is_paid=False,
      payment_result=None,
      total_amount=draft.total_amount,
      status=OrderStatus.PENDING.value,
      created_at=now,
      updated_at=now,
  )
  session.add(parent)

  sub_orders = []
  for position, sub_draft in enumerate(draft.sub_orders):
    sub_order = db.SubOrder(
        id=str(uuid.uuid4()),
        parent_order_id=parent.id,
        vendor_id=sub_draft.vendor_id,
        position=position,
        items=[item.model_dump(mode="json") for item in sub_draft.items],
        total_amount=sub_draft.total_amount,
        status=OrderStatus.PENDING.value,
        created_at=now,
        updated_at=now,
    )
    session.add(sub_order)
    sub_orders.append(sub_order)

  # Flush so the rows exist for conditional updates later in the transaction.
  await session.flush()
  logger.info(
      "Created order %s with %d sub-orders, total %d",
      parent.id,
      len(sub_orders),
      parent.total_amount,
  )
  return parent, sub_orders
