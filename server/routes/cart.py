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

"""Cart routes for the fulfillment server."""

import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from models import Actor
from models import AddCartItemRequest
from models import CartView
from services.cart_service import CartService

router = APIRouter()


@router.get("/cart", response_model=CartView, operation_id="get_cart")
async def get_cart(
    actor: Actor = Depends(dependencies.get_actor),
    cart_service: CartService = Depends(dependencies.get_cart_service),
) -> CartView:
  """Get the actor's cart."""
  return await cart_service.get_cart(actor.id)


@router.post("/cart", response_model=CartView, operation_id="add_cart_item")
async def add_cart_item(
    request: AddCartItemRequest = Body(...),
    actor: Actor = Depends(dependencies.get_actor),
    cart_service: CartService = Depends(dependencies.get_cart_service),
) -> CartView:
  """Add a product to the actor's cart."""
  return await cart_service.add_item(
      actor.id, request.product_id, request.quantity, request.variant
  )


@router.delete(
    "/cart/{line_id}", response_model=CartView, operation_id="remove_cart_item"
)
async def remove_cart_item(
    line_id: str = Path(...),
    actor: Actor = Depends(dependencies.get_actor),
    cart_service: CartService = Depends(dependencies.get_cart_service),
) -> CartView:
  """Remove one line from the actor's cart."""
  return await cart_service.remove_item(actor.id, line_id)


@router.delete("/cart", response_model=CartView, operation_id="clear_cart")
async def clear_cart(
    actor: Actor = Depends(dependencies.get_actor),
    cart_service: CartService = Depends(dependencies.get_cart_service),
) -> CartView:
  """Empty the actor's cart."""
  return await cart_service.clear(actor.id)
