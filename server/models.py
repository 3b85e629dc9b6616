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

"""Pydantic models for the fulfillment server.

Request and response shapes for the HTTP API, plus the value objects passed
between services: the resolved cart snapshot (also serialized into payment
sessions), order drafts produced by the splitter, and the acting identity.
"""

from typing import Dict, List, Optional

from enums import ActorRole
from pydantic import BaseModel
from pydantic import Field

ADDRESS_FIELDS = ("street", "city", "state", "postal_code", "country")


class Actor(BaseModel):
  """Authenticated identity supplied by the auth layer."""

  id: str
  role: ActorRole


class ShippingAddress(BaseModel):
  street: str = ""
  city: str = ""
  state: str = ""
  postal_code: str = ""
  country: str = ""

  def missing_fields(self) -> List[str]:
    """Names of required fields that are empty or whitespace."""
    return [f for f in ADDRESS_FIELDS if not getattr(self, f).strip()]


class Variant(BaseModel):
  type: Optional[str] = None
  value: Optional[str] = None


class ResolvedLine(BaseModel):
  """A cart line with price and vendor read from the live catalog."""

  cart_line_id: str
  product_id: str
  title: str
  vendor_id: str
  unit_price: int
  quantity: int
  available: int
  variant: Optional[Variant] = None


class CartSnapshot(BaseModel):
  customer_id: str
  lines: List[ResolvedLine]

  @property
  def total_amount(self) -> int:
    return sum(line.unit_price * line.quantity for line in self.lines)

  def cart_line_quantities(self) -> Dict[str, int]:
    return {line.cart_line_id: line.quantity for line in self.lines}

  def reservation_items(self) -> List[tuple[str, int]]:
    return [(line.product_id, line.quantity) for line in self.lines]


class SubOrderItem(BaseModel):
  product_id: str
  title: str
  quantity: int
  unit_price: int
  subtotal: int
  variant: Optional[Variant] = None


class SubOrderDraft(BaseModel):
  vendor_id: str
  items: List[SubOrderItem]
  total_amount: int


class OrderDraft(BaseModel):
  customer_id: str
  shipping_address: ShippingAddress
  payment_method: str
  sub_orders: List[SubOrderDraft]
  total_amount: int


class PaymentResult(BaseModel):
  session_id: Optional[str] = None
  status: Optional[str] = None
  receipt_url: Optional[str] = None
  paid_at: Optional[str] = None
  email_address: Optional[str] = None


class PaymentSessionSnapshot(BaseModel):
  """Everything needed to build the order once payment is confirmed."""

  cart: CartSnapshot
  shipping_address: ShippingAddress
  amount: int


# --- API shapes ---


class SubOrderView(BaseModel):
  id: str
  parent_order_id: str
  vendor_id: str
  items: List[SubOrderItem]
  total_amount: int
  status: str
  created_at: str
  updated_at: str


class ParentOrderView(BaseModel):
  id: str
  customer_id: str
  shipping_address: ShippingAddress
  payment_method: str
  is_paid: bool
  payment_result: Optional[PaymentResult] = None
  total_amount: int
  status: str
  created_at: str
  sub_orders: List[SubOrderView] = Field(default_factory=list)


class VendorSubOrderView(SubOrderView):
  """A sub-order with the parent's customer and delivery fields populated."""

  customer_id: str
  shipping_address: ShippingAddress
  payment_method: str
  is_paid: bool


class CartLineView(BaseModel):
  id: str
  product_id: str
  quantity: int
  variant: Optional[Variant] = None
  price: Optional[int] = None


class CartView(BaseModel):
  customer_id: str
  items: List[CartLineView]


class AddCartItemRequest(BaseModel):
  product_id: str
  quantity: int = 1
  variant: Optional[Variant] = None


class CheckoutRequest(BaseModel):
  payment_method: str = "cash_on_delivery"
  shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)


class CheckoutResponse(BaseModel):
  parent_order_id: Optional[str] = None
  session_id: Optional[str] = None
  redirect_url: Optional[str] = None


class StatusUpdateRequest(BaseModel):
  status: str


class VerifyPaymentRequest(BaseModel):
  session_id: str = ""
