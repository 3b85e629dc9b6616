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

"""Utility script to dump stock levels.

This script reads the current stock levels from the configured transactions
SQLite database and outputs them to standard output in CSV format. When a
products database is given too, each row also carries the vendor and title.

Usage:
  uv run dump_inventory.py --transactions_db_path=... [--products_db_path=...]
"""

import asyncio
import csv
import sys
from absl import app as absl_app
from absl import flags
import db
from db import Inventory
from sqlalchemy import select

FLAGS = flags.FLAGS
flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")
flags.DEFINE_string("products_db_path", None, "Optional path to products DB")


async def dump_inventory():
  """Queries the database and prints current inventory levels."""
  if not FLAGS.transactions_db_path:
    print("Error: --transactions_db_path is required.")
    sys.exit(1)

  engine, session_factory = await db.init_engine(
      FLAGS.transactions_db_path, db.TransactionBase
  )
  async with session_factory() as session:
    result = await session.execute(
        select(Inventory).order_by(Inventory.product_id)
    )
    items = result.scalars().all()
  await engine.dispose()

  catalog = {}
  if FLAGS.products_db_path:
    engine, session_factory = await db.init_engine(
        FLAGS.products_db_path, db.ProductBase
    )
    async with session_factory() as session:
      catalog = await db.get_products_by_ids(
          session, [item.product_id for item in items]
      )
    await engine.dispose()

  writer = csv.writer(sys.stdout)
  writer.writerow(["product_id", "vendor_id", "title", "quantity"])
  for item in items:
    product = catalog.get(item.product_id)
    writer.writerow([
        item.product_id,
        product.vendor_id if product else "",
        product.title if product else "",
        item.quantity,
    ])


def main(argv):
  """Main entry point for the inventory dump script."""
  del argv
  asyncio.run(dump_inventory())


if __name__ == "__main__":
  absl_app.run(main)
