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

"""Temporary databases and seed data shared by the server tests."""

import asyncio
import os
import shutil
import tempfile
from typing import Dict, Iterable, Optional, Tuple

from absl import flags
import db
from sqlalchemy.pool import NullPool

FLAGS = flags.FLAGS

# (id, title, price, vendor_id, stock)
DEFAULT_CATALOG = (
    ("p1", "Red Mug", 1000, "vendor-a", 5),
    ("p2", "Blue Plate", 2500, "vendor-b", 1),
    ("p3", "Green Bowl", 1500, "vendor-a", 10),
)

ADDRESS = {
    "street": "1 Main St",
    "city": "Springfield",
    "state": "IL",
    "postal_code": "62701",
    "country": "US",
}


def ensure_flags_parsed() -> None:
  """Lets tests read flag defaults when run under pytest."""
  if not FLAGS.is_parsed():
    FLAGS.mark_as_parsed()


class Testbed:
  """Owns a products DB and a transactions DB in a temporary directory.

  Engines use NullPool so that connections never outlive the event loop that
  opened them; each test step may run under its own `asyncio.run`.
  """

  def __init__(self) -> None:
    self.test_dir = tempfile.mkdtemp()
    self.products_db = os.path.join(self.test_dir, "products.db")
    self.transactions_db = os.path.join(self.test_dir, "transactions.db")
    self.products_engine = None
    self.transactions_engine = None
    self.products_session_factory = None
    self.transactions_session_factory = None

  def start(self) -> None:
    async def init() -> None:
      self.products_engine, self.products_session_factory = (
          await db.init_engine(
              self.products_db, db.ProductBase, poolclass=NullPool
          )
      )
      self.transactions_engine, self.transactions_session_factory = (
          await db.init_engine(
              self.transactions_db, db.TransactionBase, poolclass=NullPool
          )
      )

    asyncio.run(init())

  def stop(self) -> None:
    async def dispose() -> None:
      await self.products_engine.dispose()
      await self.transactions_engine.dispose()

    asyncio.run(dispose())
    shutil.rmtree(self.test_dir)

  async def seed(
      self,
      catalog: Iterable[Tuple[str, str, int, str, Optional[int]]] = (
          DEFAULT_CATALOG
      ),
  ) -> None:
    """Adds products and stock; a stock of None leaves no inventory row."""
    async with self.products_session_factory() as session:
      for product_id, title, price, vendor_id, _ in catalog:
        session.add(
            db.Product(
                id=product_id, title=title, price=price, vendor_id=vendor_id
            )
        )
      await session.commit()
    async with self.transactions_session_factory() as session:
      for product_id, _, _, _, stock in catalog:
        if stock is not None:
          session.add(db.Inventory(product_id=product_id, quantity=stock))
      await session.commit()

  async def add_to_cart(
      self, customer_id: str, product_id: str, quantity: int
  ) -> str:
    async with self.transactions_session_factory() as session:
      line = await db.add_cart_line(
          session, customer_id, product_id, quantity, None, None
      )
      line_id = line.id
      await session.commit()
    return line_id

  async def stock(self, product_id: str) -> Optional[int]:
    async with self.transactions_session_factory() as session:
      return await db.get_inventory(session, product_id)

  async def stock_levels(self, *product_ids: str) -> Dict[str, int]:
    async with self.transactions_session_factory() as session:
      return await db.get_inventory_levels(session, list(product_ids))

  async def cart_product_ids(self, customer_id: str):
    async with self.transactions_session_factory() as session:
      lines = await db.get_cart_lines(session, customer_id)
      return [line.product_id for line in lines]

  async def cart_contents(self, customer_id: str):
    async with self.transactions_session_factory() as session:
      lines = await db.get_cart_lines(session, customer_id)
      return [(line.product_id, line.quantity) for line in lines]

  async def set_stock(self, product_id: str, quantity: int) -> None:
    async with self.transactions_session_factory() as session:
      row = await session.get(db.Inventory, product_id)
      row.quantity = quantity
      await session.commit()

  async def delete_product(self, product_id: str) -> None:
    async with self.products_session_factory() as session:
      await session.delete(await session.get(db.Product, product_id))
      await session.commit()
