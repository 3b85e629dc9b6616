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

"""Utility script to dump orders and payment sessions.

This script reads from the configured transactions SQLite database and prints
every parent order with its per-vendor sub-orders and line items, followed by
payment sessions that did not turn into an order. It is useful for debugging
and for spotting paid sessions that need a manual refund.

Usage:
  uv run dump_orders.py --transactions_db_path=...
"""

import asyncio
import sys
from absl import app as absl_app
from absl import flags
import db
from db import ParentOrder
from db import PaymentSession
from sqlalchemy import select

FLAGS = flags.FLAGS
flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")


def _money(cents: int) -> str:
  return f"${(cents or 0) / 100.0:.2f}"


async def dump_orders():
  """Queries the database and prints all orders."""
  if not FLAGS.transactions_db_path:
    print("Error: --transactions_db_path is required.")
    sys.exit(1)

  engine, session_factory = await db.init_engine(
      FLAGS.transactions_db_path, db.TransactionBase
  )

  async with session_factory() as session:
    result = await session.execute(
        select(ParentOrder).order_by(ParentOrder.created_at)
    )
    orders = result.scalars().all()

    if not orders:
      print("No orders found.")

    for order in orders:
      paid = "paid" if order.is_paid else "unpaid"
      print(
          f"Order: {order.id} [{order.status}] customer={order.customer_id}"
          f" {order.payment_method} {paid} total={_money(order.total_amount)}"
      )
      for sub_order in await db.list_sub_orders(session, order.id):
        print(
            f"  Sub-order {sub_order.id} vendor={sub_order.vendor_id}"
            f" [{sub_order.status}] total={_money(sub_order.total_amount)}"
        )
        for item in sub_order.items or []:
          print(
              f"    - {item.get('title')} (ID: {item.get('product_id')})"
              f" x{item.get('quantity')} @ {_money(item.get('unit_price'))}"
              f" = {_money(item.get('subtotal'))}"
          )
      print("-" * 60)

    result = await session.execute(
        select(PaymentSession).where(PaymentSession.parent_order_id.is_(None))
    )
    for record in result.scalars().all():
      reason = f" ({record.failure_reason})" if record.failure_reason else ""
      print(
          f"Payment session: {record.id} [{record.status}]"
          f" customer={record.customer_id} amount={_money(record.amount)}"
          f"{reason}"
      )

  await engine.dispose()


def main(argv):
  """Main entry point for the order dump script."""
  del argv
  asyncio.run(dump_orders())


if __name__ == "__main__":
  absl_app.run(main)
