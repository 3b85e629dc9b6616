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

"""Shared configuration and startup logic for the fulfillment server."""

import contextlib
from absl import flags
import db
from fastapi import FastAPI

FLAGS = flags.FLAGS

SERVER_VERSION = "0.1.0"

# Define flags only if they haven't been defined yet (to avoid duplicates
# during tests or re-imports)
try:
  flags.DEFINE_string("products_db_path", None, "Path to products DB")
  flags.DEFINE_string("transactions_db_path", None, "Path to transactions DB")
  flags.DEFINE_integer("port", None, "Port to run the server on")
  flags.DEFINE_string(
      "client_url",
      "http://localhost:5173",
      "Base URL of the storefront client, used for payment redirects",
  )
  flags.DEFINE_enum(
      "payment_gateway",
      "fake",
      ["fake", "hosted"],
      "Which hosted-checkout gateway adapter to use",
  )
  flags.DEFINE_string(
      "payment_api_base",
      "https://api.stripe.com/v1",
      "Base URL of the hosted checkout provider API",
  )
  flags.DEFINE_string(
      "payment_api_key", None, "Secret API key for the hosted checkout provider"
  )
  flags.DEFINE_string("currency", "usd", "ISO currency code for payments")
except flags.DuplicateFlagError:
  pass


def get_client_url() -> str:
  """Returns the storefront base URL without a trailing slash."""
  return (FLAGS.client_url or "").rstrip("/")


def payment_success_url() -> str:
  # The provider substitutes the placeholder with the real session id.
  return (
      f"{get_client_url()}/payment-success"
      "?session_id={CHECKOUT_SESSION_ID}"
  )


def payment_cancel_url() -> str:
  return f"{get_client_url()}/cart"


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
  """Shared lifespan manager for initializing databases."""
  del app  # Unused.
  # In tests or if flags aren't set, these might be None, handled by caller
  if FLAGS.products_db_path and FLAGS.transactions_db_path:
    await db.manager.init_dbs(
        FLAGS.products_db_path, FLAGS.transactions_db_path
    )
  yield
  await db.manager.close()
