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

"""Checkout and payment verification routes."""

import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from models import Actor
from models import CheckoutRequest
from models import CheckoutResponse
from models import ParentOrderView
from models import VerifyPaymentRequest
from services.checkout_service import CheckoutService
from services.order_service import OrderService
from services.payment_reconciler import PaymentReconciler

router = APIRouter()


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    response_model_exclude_none=True,
    status_code=201,
    operation_id="checkout",
)
async def checkout(
    request: CheckoutRequest = Body(...),
    actor: Actor = Depends(dependencies.get_actor),
    checkout_service: CheckoutService = Depends(
        dependencies.get_checkout_service
    ),
) -> CheckoutResponse:
  """Check out the actor's cart.

  Cash on delivery returns the new parent order id. Card returns the payment
  session id and the URL to send the customer to.
  """
  return await checkout_service.checkout(
      actor, request.payment_method, request.shipping_address
  )


@router.post(
    "/payment/verify",
    response_model=ParentOrderView,
    operation_id="verify_payment",
)
async def verify_payment(
    request: VerifyPaymentRequest = Body(...),
    actor: Actor = Depends(dependencies.get_actor),
    reconciler: PaymentReconciler = Depends(
        dependencies.get_payment_reconciler
    ),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> ParentOrderView:
  """Confirm a card payment; repeated calls return the same order."""
  parent = await reconciler.verify(request.session_id, actor)
  return await order_service.render(parent)
