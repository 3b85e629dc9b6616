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

"""Database management and persistence layer for the fulfillment server.

This module provides the schema definitions, database session management, and
asynchronous data access helpers used by the server. It utilizes SQLAlchemy with
SQLite (via aiosqlite) and implements a multi-database architecture separating
the read-only product catalog from transactional stock, cart, order and
payment session data.

Key features include:
- `DatabaseManager`: Handles asynchronous engine initialization and session
  factory setup for both 'Products' and 'Transactions' databases.
- WAL Mode: Automatically enables SQLite Write-Ahead Logging so concurrent
  checkouts and vendor updates can read while one of them writes.
- Declarative Models: Defines tables for products, inventory, cart lines,
  parent orders, sub-orders and payment sessions.
- Data Access Helpers: A suite of asynchronous functions for CRUD operations
  and the conditional updates (stock compare-and-decrement, expected-status
  writes, one-shot payment session claims) the engine relies on.
"""

import datetime
import logging
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple
import uuid

from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import delete
from sqlalchemy import ForeignKey
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import select
from sqlalchemy import String
from sqlalchemy import text
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

ProductBase = declarative_base()
TransactionBase = declarative_base()


def utcnow() -> str:
  return datetime.datetime.now(datetime.timezone.utc).isoformat()


async def init_engine(
    path: str, base: Any, **engine_kwargs: Any
) -> Tuple[AsyncEngine, sessionmaker]:
  """Creates an engine for a SQLite file, enables WAL and creates tables."""
  engine = create_async_engine(
      f"sqlite+aiosqlite:///{path}", echo=False, **engine_kwargs
  )

  async with engine.connect() as conn:
    await conn.execute(text("PRAGMA journal_mode=WAL"))

  session_factory = sessionmaker(
      engine, expire_on_commit=False, class_=AsyncSession
  )

  async with engine.begin() as conn:
    await conn.run_sync(base.metadata.create_all)
  logger.info("Opened database %s", path)

  return engine, session_factory


class DatabaseManager:
  """Manages database engines and sessions without using global variables."""

  def __init__(self) -> None:
    self.products_engine: Optional[AsyncEngine] = None
    self.transactions_engine: Optional[AsyncEngine] = None
    self.products_session_factory: Optional[sessionmaker] = None
    self.transactions_session_factory: Optional[sessionmaker] = None

  async def init_dbs(self, products_path: str, transactions_path: str) -> None:
    """Initializes database engines and creates tables."""
    self.products_engine, self.products_session_factory = await init_engine(
        products_path, ProductBase
    )
    # Inventory lives with orders so reservation and order creation share a
    # transaction.
    self.transactions_engine, self.transactions_session_factory = (
        await init_engine(transactions_path, TransactionBase)
    )

  async def close(self) -> None:
    """Closes all database engines."""
    if self.products_engine:
      await self.products_engine.dispose()
    if self.transactions_engine:
      await self.transactions_engine.dispose()


# Global manager instance (to be initialized via lifespan)
manager = DatabaseManager()


class Product(ProductBase):
  __tablename__ = "products"

  id = Column(String, primary_key=True)
  title = Column(String)
  price = Column(Integer)  # Price in cents
  vendor_id = Column(String, index=True)
  image_url = Column(String, nullable=True)


class Inventory(TransactionBase):
  __tablename__ = "inventory"

  product_id = Column(String, primary_key=True)
  quantity = Column(Integer, default=0)


class CartLine(TransactionBase):
  __tablename__ = "cart_lines"

  id = Column(String, primary_key=True)
  customer_id = Column(String, index=True)
  product_id = Column(String)
  quantity = Column(Integer)
  variant = Column(JSON, nullable=True)  # {"type": "Size", "value": "XL"}
  price = Column(Integer, nullable=True)  # Snapshot at addition, not billed
  added_at = Column(String)


class ParentOrder(TransactionBase):
  __tablename__ = "parent_orders"

  id = Column(String, primary_key=True)
  customer_id = Column(String, index=True)
  shipping_address = Column(JSON)
  payment_method = Column(String)
  is_paid = Column(Boolean, default=False)
  payment_result = Column(JSON, nullable=True)
  total_amount = Column(Integer)
  status = Column(String)
  created_at = Column(String)
  updated_at = Column(String)


class SubOrder(TransactionBase):
  __tablename__ = "sub_orders"

  id = Column(String, primary_key=True)
  parent_order_id = Column(String, ForeignKey("parent_orders.id"), index=True)
  vendor_id = Column(String, index=True)
  position = Column(Integer)  # Rank of the vendor's first line in the cart
  # [{product_id, title, quantity, unit_price, subtotal, variant}]
  items = Column(JSON)
  total_amount = Column(Integer)
  status = Column(String)
  created_at = Column(String)
  updated_at = Column(String)


class PaymentSession(TransactionBase):
  __tablename__ = "payment_sessions"

  id = Column(String, primary_key=True)  # Provider session id
  customer_id = Column(String, index=True)
  status = Column(String)
  snapshot = Column(JSON)
  amount = Column(Integer)
  parent_order_id = Column(String, nullable=True)
  failure_reason = Column(String, nullable=True)
  created_at = Column(String)
  updated_at = Column(String)


# --- Data Access Helpers ---


async def get_product(
    session: AsyncSession, product_id: str
) -> Optional[Product]:
  """Retrieves a product by ID."""
  return await session.get(Product, product_id)


async def get_products_by_ids(
    session: AsyncSession, product_ids: List[str]
) -> Dict[str, Product]:
  """Retrieves multiple products in a single query, keyed by ID."""
  if not product_ids:
    return {}
  result = await session.execute(
      select(Product).where(Product.id.in_(product_ids))
  )
  return {p.id: p for p in result.scalars().all()}


async def get_inventory(
    session: AsyncSession, product_id: str
) -> Optional[int]:
  """Retrieves the inventory quantity for a product."""
  result = await session.execute(
      select(Inventory.quantity).where(Inventory.product_id == product_id)
  )
  return result.scalar_one_or_none()


async def get_inventory_levels(
    session: AsyncSession, product_ids: List[str]
) -> Dict[str, int]:
  """Retrieves inventory quantities for several products, keyed by ID."""
  if not product_ids:
    return {}
  result = await session.execute(
      select(Inventory.product_id, Inventory.quantity).where(
          Inventory.product_id.in_(product_ids)
      )
  )
  return {row.product_id: row.quantity for row in result}


async def reserve_stock(
    session: AsyncSession, product_id: str, quantity: int
) -> bool:
  """Atomically decrements inventory if sufficient stock exists."""
  stmt = (
      update(Inventory)
      .where(Inventory.product_id == product_id)
      .where(Inventory.quantity >= quantity)
      .values(quantity=Inventory.quantity - quantity)
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def release_stock(
    session: AsyncSession, product_id: str, quantity: int
) -> bool:
  """Atomically increments inventory; returns False if the row is missing."""
  stmt = (
      update(Inventory)
      .where(Inventory.product_id == product_id)
      .values(quantity=Inventory.quantity + quantity)
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def get_cart_lines(
    session: AsyncSession, customer_id: str
) -> List[CartLine]:
  """Retrieves a customer's cart lines in the order they were added."""
  result = await session.execute(
      select(CartLine)
      .where(CartLine.customer_id == customer_id)
      .order_by(CartLine.added_at, CartLine.id)
  )
  return list(result.scalars().all())


async def add_cart_line(
    session: AsyncSession,
    customer_id: str,
    product_id: str,
    quantity: int,
    variant: Optional[Dict[str, Any]],
    price: Optional[int],
) -> CartLine:
  """Adds a cart line, merging with an existing line for the same variant."""
  for line in await get_cart_lines(session, customer_id):
    if line.product_id == product_id and (line.variant or None) == (
        variant or None
    ):
      await session.execute(
          update(CartLine)
          .where(CartLine.id == line.id)
          .values(quantity=CartLine.quantity + quantity)
          .execution_options(synchronize_session=False)
      )
      await session.refresh(line)
      return line

  line = CartLine(
      id=str(uuid.uuid4()),
      customer_id=customer_id,
      product_id=product_id,
      quantity=quantity,
      variant=variant,
      price=price,
      added_at=utcnow(),
  )
  session.add(line)
  return line


async def delete_cart_line(
    session: AsyncSession, customer_id: str, line_id: str
) -> bool:
  """Removes one cart line owned by the customer."""
  result = await session.execute(
      delete(CartLine)
      .where(CartLine.customer_id == customer_id)
      .where(CartLine.id == line_id)
  )
  return result.rowcount > 0


async def clear_cart(session: AsyncSession, customer_id: str) -> int:
  """Deletes all of a customer's cart lines."""
  result = await session.execute(
      delete(CartLine).where(CartLine.customer_id == customer_id)
  )
  return result.rowcount


async def consume_cart_lines(
    session: AsyncSession, customer_id: str, quantities: Dict[str, int]
) -> int:
  """Takes ordered quantities off cart lines; deletes lines left empty.

  Quantity merged into a line after it was snapshotted stays in the cart.
  Returns the number of lines deleted.
  """
  if not quantities:
    return 0
  for line_id, quantity in quantities.items():
    await session.execute(
        update(CartLine)
        .where(CartLine.id == line_id)
        .where(CartLine.customer_id == customer_id)
        .values(quantity=CartLine.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
  result = await session.execute(
      delete(CartLine)
      .where(CartLine.customer_id == customer_id)
      .where(CartLine.id.in_(list(quantities)))
      .where(CartLine.quantity <= 0)
      .execution_options(synchronize_session=False)
  )
  return result.rowcount


async def get_parent_order(
    session: AsyncSession, order_id: str
) -> Optional[ParentOrder]:
  """Retrieves a parent order by ID, bypassing the identity map."""
  result = await session.execute(
      select(ParentOrder)
      .where(ParentOrder.id == order_id)
      .execution_options(populate_existing=True)
  )
  return result.scalar_one_or_none()


async def list_parent_orders(
    session: AsyncSession, customer_id: str
) -> List[ParentOrder]:
  """Retrieves a customer's parent orders, newest first."""
  result = await session.execute(
      select(ParentOrder)
      .where(ParentOrder.customer_id == customer_id)
      .order_by(ParentOrder.created_at.desc())
  )
  return list(result.scalars().all())


async def get_sub_order(
    session: AsyncSession, sub_order_id: str
) -> Optional[SubOrder]:
  """Retrieves a sub-order by ID, bypassing the identity map."""
  result = await session.execute(
      select(SubOrder)
      .where(SubOrder.id == sub_order_id)
      .execution_options(populate_existing=True)
  )
  return result.scalar_one_or_none()


async def list_sub_orders(
    session: AsyncSession, parent_order_id: str
) -> List[SubOrder]:
  """Retrieves the sub-orders of a parent order in creation order."""
  result = await session.execute(
      select(SubOrder)
      .where(SubOrder.parent_order_id == parent_order_id)
      .order_by(SubOrder.position)
      .execution_options(populate_existing=True)
  )
  return list(result.scalars().all())


async def list_vendor_sub_orders(
    session: AsyncSession, vendor_id: Optional[str]
) -> List[Tuple[SubOrder, ParentOrder]]:
  """Retrieves sub-orders with their parent, newest first.

  Args:
    session: The database session to use.
    vendor_id: The vendor to filter on, or None for every vendor.

  Returns:
    A list of (SubOrder, ParentOrder) pairs.
  """
  stmt = select(SubOrder, ParentOrder).join(
      ParentOrder, SubOrder.parent_order_id == ParentOrder.id
  )
  if vendor_id is not None:
    stmt = stmt.where(SubOrder.vendor_id == vendor_id)
  result = await session.execute(stmt.order_by(SubOrder.created_at.desc()))
  return [(row[0], row[1]) for row in result.all()]


async def compare_and_set_sub_order_status(
    session: AsyncSession, sub_order_id: str, expected: str, new: str
) -> bool:
  """Writes a new status only if the current status is still `expected`."""
  stmt = (
      update(SubOrder)
      .where(SubOrder.id == sub_order_id)
      .where(SubOrder.status == expected)
      .values(status=new, updated_at=utcnow())
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def set_parent_order_status(
    session: AsyncSession, order_id: str, status: str
) -> None:
  """Stores a recomputed aggregate status on the parent order."""
  await session.execute(
      update(ParentOrder)
      .where(ParentOrder.id == order_id)
      .values(status=status, updated_at=utcnow())
  )


async def mark_parent_order_paid(
    session: AsyncSession, order_id: str, payment_result: Dict[str, Any]
) -> bool:
  """Marks an unpaid order paid; returns False if it was already paid."""
  stmt = (
      update(ParentOrder)
      .where(ParentOrder.id == order_id)
      .where(ParentOrder.is_paid.is_(False))
      .values(is_paid=True, payment_result=payment_result, updated_at=utcnow())
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def save_payment_session(
    session: AsyncSession,
    session_id: str,
    customer_id: str,
    amount: int,
    snapshot: Dict[str, Any],
    status: str,
) -> PaymentSession:
  """Persists a new payment session."""
  now = utcnow()
  record = PaymentSession(
      id=session_id,
      customer_id=customer_id,
      status=status,
      snapshot=snapshot,
      amount=amount,
      created_at=now,
      updated_at=now,
  )
  session.add(record)
  return record


async def get_payment_session(
    session: AsyncSession, session_id: str
) -> Optional[PaymentSession]:
  """Retrieves a payment session by provider session ID."""
  result = await session.execute(
      select(PaymentSession)
      .where(PaymentSession.id == session_id)
      .execution_options(populate_existing=True)
  )
  return result.scalar_one_or_none()


async def transition_payment_session(
    session: AsyncSession,
    session_id: str,
    expected: str,
    new: str,
    **values: Any,
) -> bool:
  """Moves a payment session out of `expected`; False if someone else did."""
  stmt = (
      update(PaymentSession)
      .where(PaymentSession.id == session_id)
      .where(PaymentSession.status == expected)
      .values(status=new, updated_at=utcnow(), **values)
  )
  result = await session.execute(stmt)
  return result.rowcount > 0


async def link_payment_session(
    session: AsyncSession, session_id: str, parent_order_id: str
) -> None:
  """Records the order created for a payment session."""
  await session.execute(
      update(PaymentSession)
      .where(PaymentSession.id == session_id)
      .values(parent_order_id=parent_order_id, updated_at=utcnow())
  )
