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

"""FastAPI dependencies for the fulfillment server.

This module contains dependency injection logic for FastAPI endpoints,
including:
- Actor identity, taken from headers set by the upstream auth layer.
- Database session management (Products and Transactions DBs).
- Payment gateway selection.
- Service instantiation (cart, checkout, orders, payments).
"""

import logging
from typing import AsyncGenerator, Optional

import config
import db
from enums import ActorRole
from exceptions import InvalidRequestError
from fastapi import Depends
from fastapi import Header
from gateways.fake_gateway import FakeGateway
from gateways.hosted_checkout_gateway import HostedCheckoutGateway
from gateways.port import PaymentGateway
from models import Actor
from services.cart_service import CartService
from services.checkout_service import CheckoutService
from services.order_service import OrderService
from services.order_state_machine import OrderStateMachine
from services.payment_reconciler import PaymentReconciler
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_gateway: Optional[PaymentGateway] = None


async def get_actor(
    x_actor_id: str = Header(...),
    x_actor_role: str = Header(ActorRole.CUSTOMER.value),
) -> Actor:
  """Builds the acting identity from the auth layer's headers."""
  try:
    role = ActorRole(x_actor_role.lower())
  except ValueError:
    raise InvalidRequestError(
        f"Unknown actor role '{x_actor_role}'.", fields=["X-Actor-Role"]
    ) from None
  return Actor(id=x_actor_id, role=role)


def get_payment_gateway() -> PaymentGateway:
  """Returns the process-wide payment gateway chosen by flags."""
  global _gateway
  if _gateway is None:
    if config.FLAGS.payment_gateway == "hosted":
      if not config.FLAGS.payment_api_key:
        # Card checkouts will be refused by the provider.
        logger.warning("--payment_api_key is not set for the hosted gateway")
      _gateway = HostedCheckoutGateway(
          config.FLAGS.payment_api_base, config.FLAGS.payment_api_key or ""
      )
    else:
      logger.info("Using the in-memory fake payment gateway")
      _gateway = FakeGateway()
  return _gateway


async def get_products_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Products DB session."""
  async with db.manager.products_session_factory() as session:
    yield session


async def get_transactions_db() -> AsyncGenerator[AsyncSession, None]:
  """Dependency provider for Transactions DB session."""
  async with db.manager.transactions_session_factory() as session:
    yield session


def get_cart_service(
    products_session: AsyncSession = Depends(get_products_db),
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> CartService:
  return CartService(products_session, transactions_session)


def get_payment_reconciler(
    gateway: PaymentGateway = Depends(get_payment_gateway),
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> PaymentReconciler:
  """Dependency provider for PaymentReconciler."""
  return PaymentReconciler(
      gateway,
      transactions_session,
      success_url=config.payment_success_url(),
      cancel_url=config.payment_cancel_url(),
      currency=config.FLAGS.currency,
  )


def get_checkout_service(
    products_session: AsyncSession = Depends(get_products_db),
    transactions_session: AsyncSession = Depends(get_transactions_db),
    reconciler: PaymentReconciler = Depends(get_payment_reconciler),
) -> CheckoutService:
  """Dependency provider for CheckoutService."""
  return CheckoutService(products_session, transactions_session, reconciler)


def get_order_service(
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> OrderService:
  return OrderService(transactions_session)


def get_order_state_machine(
    transactions_session: AsyncSession = Depends(get_transactions_db),
) -> OrderStateMachine:
  return OrderStateMachine(transactions_session)
