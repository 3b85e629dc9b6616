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

"""Read side of orders: customer history, vendor queues and single lookups."""

from typing import List, Optional

import db
from enums import ActorRole
from exceptions import PermissionDeniedError
from exceptions import ResourceNotFoundError
from models import Actor
from models import ParentOrderView
from models import PaymentResult
from models import ShippingAddress
from models import SubOrderItem
from models import SubOrderView
from models import VendorSubOrderView
from sqlalchemy.ext.asyncio import AsyncSession


def to_sub_order_view(sub_order: db.SubOrder) -> SubOrderView:
  return SubOrderView(
      id=sub_order.id,
      parent_order_id=sub_order.parent_order_id,
      vendor_id=sub_order.vendor_id,
      items=[SubOrderItem(**item) for item in sub_order.items or []],
      total_amount=sub_order.total_amount,
      status=sub_order.status,
      created_at=sub_order.created_at,
      updated_at=sub_order.updated_at,
  )


def to_parent_view(
    parent: db.ParentOrder, sub_orders: List[db.SubOrder]
) -> ParentOrderView:
  payment_result = None
  if parent.payment_result:
    payment_result = PaymentResult(**parent.payment_result)
  return ParentOrderView(
      id=parent.id,
      customer_id=parent.customer_id,
      shipping_address=ShippingAddress(**(parent.shipping_address or {})),
      payment_method=parent.payment_method,
      is_paid=bool(parent.is_paid),
      payment_result=payment_result,
      total_amount=parent.total_amount,
      status=parent.status,
      created_at=parent.created_at,
      sub_orders=[to_sub_order_view(s) for s in sub_orders],
  )


def to_vendor_view(
    sub_order: db.SubOrder, parent: db.ParentOrder
) -> VendorSubOrderView:
  view = to_sub_order_view(sub_order)
  return VendorSubOrderView(
      **view.model_dump(),
      customer_id=parent.customer_id,
      shipping_address=ShippingAddress(**(parent.shipping_address or {})),
      payment_method=parent.payment_method,
      is_paid=bool(parent.is_paid),
  )


class OrderService:
  """Builds order views scoped to what the actor may see."""

  def __init__(self, transactions_session: AsyncSession):
    self.transactions_session = transactions_session

  async def render(self, parent: db.ParentOrder) -> ParentOrderView:
    sub_orders = await db.list_sub_orders(self.transactions_session, parent.id)
    return to_parent_view(parent, sub_orders)

  async def list_mine(self, actor: Actor) -> List[ParentOrderView]:
    parents = await db.list_parent_orders(self.transactions_session, actor.id)
    return [await self.render(parent) for parent in parents]

  async def list_vendor(self, actor: Actor) -> List[VendorSubOrderView]:
    """Lists the vendor's sub-orders; admins see every vendor's."""
    vendor_id: Optional[str]
    if actor.role == ActorRole.ADMIN:
      vendor_id = None
    elif actor.role == ActorRole.VENDOR:
      vendor_id = actor.id
    else:
      raise PermissionDeniedError("Only vendors can view vendor orders.")

    rows = await db.list_vendor_sub_orders(
        self.transactions_session, vendor_id
    )
    return [to_vendor_view(sub_order, parent) for sub_order, parent in rows]

  async def get_order(
      self, parent_order_id: str, actor: Actor
  ) -> ParentOrderView:
    parent = await db.get_parent_order(
        self.transactions_session, parent_order_id
    )
    # Other customers' orders are reported as missing.
    if parent is None or (
        actor.role != ActorRole.ADMIN and parent.customer_id != actor.id
    ):
      raise ResourceNotFoundError("Order not found.")
    return await self.render(parent)
