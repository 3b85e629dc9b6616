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

"""Order management routes for the fulfillment server."""

from typing import List

import dependencies
from fastapi import APIRouter
from fastapi import Body
from fastapi import Depends
from fastapi import Path
from models import Actor
from models import ParentOrderView
from models import StatusUpdateRequest
from models import SubOrderView
from models import VendorSubOrderView
from services import order_service as order_views
from services.order_service import OrderService
from services.order_state_machine import OrderStateMachine

router = APIRouter()

# Fixed paths are registered before `/orders/{id}` so they are not captured
# by it.


@router.get(
    "/orders/mine",
    response_model=List[ParentOrderView],
    operation_id="list_my_orders",
)
async def list_my_orders(
    actor: Actor = Depends(dependencies.get_actor),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> List[ParentOrderView]:
  """List the actor's orders, newest first."""
  return await order_service.list_mine(actor)


@router.get(
    "/orders/vendor",
    response_model=List[VendorSubOrderView],
    operation_id="list_vendor_orders",
)
async def list_vendor_orders(
    actor: Actor = Depends(dependencies.get_actor),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> List[VendorSubOrderView]:
  """List the vendor's sub-orders with delivery details."""
  return await order_service.list_vendor(actor)


@router.put(
    "/orders/sub/{id}/cancel",
    response_model=SubOrderView,
    operation_id="cancel_sub_order",
)
async def cancel_sub_order(
    sub_order_id: str = Path(..., alias="id"),
    actor: Actor = Depends(dependencies.get_actor),
    state_machine: OrderStateMachine = Depends(
        dependencies.get_order_state_machine
    ),
) -> SubOrderView:
  """Cancel a single vendor's part of an order."""
  sub_order = await state_machine.cancel(sub_order_id, actor)
  return order_views.to_sub_order_view(sub_order)


@router.get(
    "/orders/{id}",
    response_model=ParentOrderView,
    operation_id="get_order",
)
async def get_order(
    order_id: str = Path(..., alias="id"),
    actor: Actor = Depends(dependencies.get_actor),
    order_service: OrderService = Depends(dependencies.get_order_service),
) -> ParentOrderView:
  """Get an order by ID."""
  return await order_service.get_order(order_id, actor)


@router.put(
    "/orders/{id}/status",
    response_model=SubOrderView,
    operation_id="update_sub_order_status",
)
async def update_sub_order_status(
    sub_order_id: str = Path(..., alias="id"),
    request: StatusUpdateRequest = Body(...),
    actor: Actor = Depends(dependencies.get_actor),
    state_machine: OrderStateMachine = Depends(
        dependencies.get_order_state_machine
    ),
) -> SubOrderView:
  """Move a sub-order to its next status."""
  sub_order = await state_machine.update_status(
      sub_order_id, request.status, actor
  )
  return order_views.to_sub_order_view(sub_order)


@router.put(
    "/orders/{id}/cancel",
    response_model=ParentOrderView,
    operation_id="cancel_order",
)
async def cancel_order(
    order_id: str = Path(..., alias="id"),
    actor: Actor = Depends(dependencies.get_actor),
    order_service: OrderService = Depends(dependencies.get_order_service),
    state_machine: OrderStateMachine = Depends(
        dependencies.get_order_state_machine
    ),
) -> ParentOrderView:
  """Cancel every sub-order of an order, or none if any has shipped."""
  parent = await state_machine.cancel_parent(order_id, actor)
  return await order_service.render(parent)
