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

"""Storefront Fulfillment Server (Python/FastAPI)."""

import logging
import sys
from typing import Sequence
from absl import app as absl_app
import config
from exceptions import FulfillmentError
from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from routes.cart import router as cart_router
from routes.checkout import router as checkout_router
from routes.order import router as order_router
import uvicorn

# --- App Setup ---

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Storefront Fulfillment Service",
    version=config.SERVER_VERSION,
    description="Multi-vendor checkout, inventory and order fulfillment",
    lifespan=config.lifespan,
)


@app.exception_handler(FulfillmentError)
async def fulfillment_exception_handler(
    request: Request, exc: FulfillmentError
):
  """Converts domain exceptions to JSON responses."""
  del request  # Unused.
  return JSONResponse(
      status_code=exc.status_code,
      content={"detail": exc.message, "code": exc.code, **exc.details},
  )


@app.get("/health", operation_id="health")
async def health() -> dict[str, bool]:
  return {"ok": True}


app.include_router(cart_router)
app.include_router(checkout_router)
app.include_router(order_router)


def main(argv: Sequence[str]) -> None:
  """Main entry point for the Fulfillment Server."""
  del argv  # Unused.

  if (
      config.FLAGS.products_db_path is None
      or config.FLAGS.transactions_db_path is None
      or config.FLAGS.port is None
  ):
    logger.error(
        "Both --products_db_path, --transactions_db_path, and --port must be"
        " provided."
    )
    print("\nUsage:")
    print(config.FLAGS.main_module_help())
    sys.exit(1)

  uvicorn.run(app, host="0.0.0.0", port=config.FLAGS.port)


if __name__ == "__main__":
  absl_app.run(main)
