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

"""Custom exceptions for the fulfillment service.

Every error carries a short user-facing message, a stable machine code and
the HTTP status used by the API layer. Identifiers that help a client render
a better message (product ids, quantities, states) travel in `details`.
"""

from typing import Any, Dict, List, Optional


class FulfillmentError(Exception):
  """Base class for all fulfillment exceptions."""

  def __init__(
      self,
      message: str,
      code: str = "INTERNAL_ERROR",
      status_code: int = 500,
      details: Optional[Dict[str, Any]] = None,
  ):
    self.message = message
    self.code = code
    self.status_code = status_code
    self.details = details or {}
    super().__init__(self.message)


# --- Validation ---


class InvalidRequestError(FulfillmentError):
  """Raised when the request is invalid (e.g. missing fields)."""

  def __init__(self, message: str, fields: Optional[List[str]] = None):
    details = {"fields": fields} if fields else None
    super().__init__(
        message, code="INVALID_REQUEST", status_code=400, details=details
    )
    self.fields = fields or []


class EmptyCartError(FulfillmentError):
  """Raised when checkout is attempted with no cart lines."""

  def __init__(self):
    super().__init__("Your cart is empty.", code="EMPTY_CART", status_code=400)


class ResourceNotFoundError(FulfillmentError):
  """Raised when a requested resource is not found."""

  def __init__(self, message: str):
    super().__init__(message, code="RESOURCE_NOT_FOUND", status_code=404)


class PermissionDeniedError(FulfillmentError):
  """Raised when the actor may not act on the target order."""

  def __init__(self, message: str = "You are not allowed to do that."):
    super().__init__(message, code="FORBIDDEN", status_code=403)


class InvalidTransitionError(FulfillmentError):
  """Raised when a status change is not a legal transition."""

  def __init__(self, current: str, attempted: str):
    super().__init__(
        f"Order cannot move from '{current}' to '{attempted}'.",
        code="INVALID_TRANSITION",
        status_code=409,
        details={"current": current, "attempted": attempted},
    )
    self.current = current
    self.attempted = attempted


class NotCancellableError(FulfillmentError):
  """Raised when cancelling an order that has left the cancellable window."""

  def __init__(self, status: str, sub_order_ids: Optional[List[str]] = None):
    details: Dict[str, Any] = {"status": status}
    if sub_order_ids:
      details["sub_order_ids"] = sub_order_ids
    super().__init__(
        f"Order cannot be cancelled. Status is {status}.",
        code="NOT_CANCELLABLE",
        status_code=409,
        details=details,
    )
    self.status = status
    self.sub_order_ids = sub_order_ids or []


# --- Resource conflicts ---


class ProductNotFoundError(FulfillmentError):
  """Raised when a referenced product no longer exists."""

  def __init__(self, product_id: str):
    super().__init__(
        "This item no longer exists.",
        code="PRODUCT_NOT_FOUND",
        status_code=404,
        details={"product_id": product_id},
    )
    self.product_id = product_id


class InsufficientStockError(FulfillmentError):
  """Raised when there is insufficient inventory for an item."""

  def __init__(
      self,
      product_id: str,
      requested: int,
      available: int,
      message: Optional[str] = None,
      code: str = "OUT_OF_STOCK",
  ):
    if message is None:
      message = (
          f"Only {available} left in stock."
          if available > 0
          else "This item is out of stock."
      )
    super().__init__(
        message,
        code=code,
        status_code=409,
        details={
            "product_id": product_id,
            "requested": requested,
            "available": available,
        },
    )
    self.product_id = product_id
    self.requested = requested
    self.available = available


class ProductUnavailableError(InsufficientStockError):
  """Raised when a cart product was deleted or has no stock left."""

  def __init__(self, product_id: str, requested: int = 0):
    super().__init__(
        product_id,
        requested,
        0,
        message="This item is no longer available.",
        code="PRODUCT_UNAVAILABLE",
    )


class StaleWriteError(FulfillmentError):
  """Raised when a conditional status write lost a race."""

  def __init__(self, expected: str):
    super().__init__(
        "This order was updated by someone else. Refresh and try again.",
        code="STALE_WRITE",
        status_code=409,
        details={"expected": expected},
    )
    self.expected = expected


# --- External dependency ---


class InvalidSessionError(FulfillmentError):
  """Raised when a payment session id is unknown or not the caller's."""

  def __init__(self, session_id: str):
    super().__init__(
        "This payment session is not valid.",
        code="INVALID_SESSION",
        status_code=404,
        details={"session_id": session_id},
    )
    self.session_id = session_id


class PaymentNotCompletedError(FulfillmentError):
  """Raised when the provider reports the session as unpaid."""

  def __init__(self, session_id: str):
    super().__init__(
        "Payment has not been completed.",
        code="PAYMENT_NOT_COMPLETED",
        status_code=402,
        details={"session_id": session_id},
    )
    self.session_id = session_id


class PaymentProviderError(FulfillmentError):
  """Raised when the hosted payment provider cannot be reached or refuses."""

  def __init__(self, message: str = "Payment provider is unavailable."):
    super().__init__(message, code="PAYMENT_PROVIDER_ERROR", status_code=502)


# --- Integrity ---


class ReservationFailedAfterPaymentError(FulfillmentError):
  """Raised when stock ran out after the provider already captured payment.

  Requires a manual refund; the payment session is left marked so every
  later verification reports the same condition.
  """

  def __init__(self, session_id: str, product_id: Optional[str] = None):
    super().__init__(
        "Your payment was received but an item sold out. Our team will"
        " refund you shortly.",
        code="RESERVATION_FAILED_AFTER_PAYMENT",
        status_code=409,
        details={"session_id": session_id, "product_id": product_id},
    )
    self.session_id = session_id
    self.product_id = product_id
