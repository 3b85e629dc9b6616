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

"""Sub-order status state machine.

    pending -> processing -> shipped -> delivered
    pending | processing -> cancelled

Nothing leaves `delivered` or `cancelled`. Status writes are conditional on
the status the caller read (optimistic concurrency): a write that lost a race
is rejected with `StaleWriteError` instead of overwriting the winner. Each
write recomputes the parent order's aggregate status in the same
transaction, and cancellation returns stock through the inventory ledger in
that transaction too.
"""

import logging
from typing import Optional

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
from services import order_splitter
from services.inventory_ledger import InventoryLedger
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

NEXT_STATUS = {
    OrderStatus.PENDING: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}

CANCELLABLE = frozenset([OrderStatus.PENDING, OrderStatus.PROCESSING])


def parse_status(value: str) -> OrderStatus:
  try:
    return OrderStatus(value)
  except ValueError:
    raise InvalidRequestError(
        f"Unknown order status '{value}'.", fields=["status"]
    ) from None


def is_cancellable(status: OrderStatus) -> bool:
  return status in CANCELLABLE


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
  if new == OrderStatus.CANCELLED:
    return is_cancellable(current)
  return NEXT_STATUS.get(current) == new


def can_act_on_sub_order(actor: Actor, vendor_id: str) -> bool:
  """Vendors may only touch their own sub-orders; admins may touch any."""
  if actor.role == ActorRole.ADMIN:
    return True
  return actor.role == ActorRole.VENDOR and actor.id == vendor_id


def can_act_on_parent_order(actor: Actor, customer_id: str) -> bool:
  if actor.role == ActorRole.ADMIN:
    return True
  return actor.role == ActorRole.CUSTOMER and actor.id == customer_id


def can_cancel_sub_order(
    actor: Actor, vendor_id: str, customer_id: str
) -> bool:
  return can_act_on_sub_order(actor, vendor_id) or can_act_on_parent_order(
      actor, customer_id
  )


class OrderStateMachine:
  """Applies status changes and cancellations to persisted sub-orders."""

  def __init__(
      self,
      transactions_session: AsyncSession,
      ledger: Optional[InventoryLedger] = None,
  ):
    self.transactions_session = transactions_session
    self.ledger = ledger or InventoryLedger(transactions_session)

  async def update_status(
      self, sub_order_id: str, new_status: str, actor: Actor
  ) -> db.SubOrder:
    """Moves a sub-order one step forward in the fulfillment chain.

    Args:
      sub_order_id: The sub-order to update.
      new_status: Target status. `cancelled` is handled by `cancel`.
      actor: The acting vendor (or admin).

    Returns:
      The updated sub-order.

    Raises:
      InvalidTransitionError: `new_status` is not the immediate successor.
      PermissionDeniedError: The actor does not own the sub-order.
      StaleWriteError: The status changed since it was read.
    """
    target = parse_status(new_status)
    if target == OrderStatus.CANCELLED:
      return await self.cancel(sub_order_id, actor)

    try:
      sub_order = await self._get_sub_order(sub_order_id)
      if not can_act_on_sub_order(actor, sub_order.vendor_id):
        raise PermissionDeniedError("Not authorized to update this order.")

      current = OrderStatus(sub_order.status)
      if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)

      await self._write_status(sub_order.id, current, target)
      await self._refresh_parent_status(sub_order.parent_order_id)
      await self.transactions_session.commit()
    except Exception:
      await self.transactions_session.rollback()
      raise

    logger.info(
        "Sub-order %s moved %s -> %s by %s",
        sub_order_id,
        current.value,
        target.value,
        actor.id,
    )
    return await self._get_sub_order(sub_order_id)

  async def cancel(self, sub_order_id: str, actor: Actor) -> db.SubOrder:
    """Cancels one sub-order and returns its items to stock.

    Raises:
      NotCancellableError: The sub-order is shipped, delivered or cancelled.
      PermissionDeniedError: The actor owns neither the sub-order nor the
        parent order.
    """
    try:
      sub_order = await self._get_sub_order(sub_order_id)
      parent = await db.get_parent_order(
          self.transactions_session, sub_order.parent_order_id
      )
      if not can_cancel_sub_order(
          actor, sub_order.vendor_id, parent.customer_id
      ):
        raise PermissionDeniedError("Not authorized to cancel this order.")

      current = OrderStatus(sub_order.status)
      if not is_cancellable(current):
        raise NotCancellableError(current.value)

      await self._cancel_one(sub_order, current)
      await self._refresh_parent_status(parent.id)
      await self.transactions_session.commit()
    except Exception:
      await self.transactions_session.rollback()
      raise

    logger.info("Sub-order %s cancelled by %s", sub_order_id, actor.id)
    return await self._get_sub_order(sub_order_id)

  async def cancel_parent(
      self, parent_order_id: str, actor: Actor
  ) -> db.ParentOrder:
    """Cancels every remaining sub-order of a parent order, or none.

    Sub-orders already cancelled are left alone. If any sub-order is past
    the cancellable window the whole request fails and nothing changes.
    """
    try:
      parent = await db.get_parent_order(
          self.transactions_session, parent_order_id
      )
      if parent is None:
        raise ResourceNotFoundError("Order not found.")
      if not can_act_on_parent_order(actor, parent.customer_id):
        raise PermissionDeniedError("Not authorized to cancel this order.")

      sub_orders = await db.list_sub_orders(
          self.transactions_session, parent.id
      )
      blocked = [
          s
          for s in sub_orders
          if s.status != OrderStatus.CANCELLED.value
          and not is_cancellable(OrderStatus(s.status))
      ]
      if blocked:
        raise NotCancellableError(
            blocked[0].status, sub_order_ids=[s.id for s in blocked]
        )

      pending = [
          s for s in sub_orders if s.status != OrderStatus.CANCELLED.value
      ]
      if not pending:
        raise NotCancellableError(OrderStatus.CANCELLED.value)

      for sub_order in pending:
        await self._cancel_one(sub_order, OrderStatus(sub_order.status))
      await self._refresh_parent_status(parent.id)
      await self.transactions_session.commit()
    except Exception:
      await self.transactions_session.rollback()
      raise

    logger.info(
        "Order %s cancelled by %s (%d sub-orders)",
        parent_order_id,
        actor.id,
        len(pending),
    )
    return await db.get_parent_order(self.transactions_session, parent_order_id)

  async def _cancel_one(
      self, sub_order: db.SubOrder, current: OrderStatus
  ) -> None:
    await self._write_status(sub_order.id, current, OrderStatus.CANCELLED)
    await self.ledger.release(
        (item["product_id"], item["quantity"]) for item in sub_order.items
    )

  async def _write_status(
      self, sub_order_id: str, expected: OrderStatus, new: OrderStatus
  ) -> None:
    written = await db.compare_and_set_sub_order_status(
        self.transactions_session, sub_order_id, expected.value, new.value
    )
    if not written:
      logger.warning(
          "Stale status write on %s: expected %s", sub_order_id, expected.value
      )
      raise StaleWriteError(expected.value)

  async def _refresh_parent_status(self, parent_order_id: str) -> None:
    sub_orders = await db.list_sub_orders(
        self.transactions_session, parent_order_id
    )
    status = order_splitter.derive_parent_status(s.status for s in sub_orders)
    await db.set_parent_order_status(
        self.transactions_session, parent_order_id, status.value
    )

  async def _get_sub_order(self, sub_order_id: str) -> db.SubOrder:
    sub_order = await db.get_sub_order(self.transactions_session, sub_order_id)
    if sub_order is None:
      raise ResourceNotFoundError("Order not found.")
    return sub_order
