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

"""Hosted checkout adapter speaking a Stripe-compatible REST API over httpx."""

import logging
from typing import Any, Dict, List, Optional

from gateways.port import CreatedSession
from gateways.port import GatewayError
from gateways.port import GatewayLineItem
from gateways.port import PaymentGateway
from gateways.port import SessionNotFoundError
from gateways.port import SessionStatus
import httpx

logger = logging.getLogger(__name__)


def _form_fields(
    amount: int,
    currency: str,
    success_url: str,
    cancel_url: str,
    line_items: List[GatewayLineItem],
    metadata: Dict[str, str],
    customer_email: Optional[str],
) -> Dict[str, Any]:
  """Flattens a session request into bracketed form fields."""
  del amount  # The provider derives it from the line items.
  fields: Dict[str, Any] = {
      "mode": "payment",
      "payment_method_types[0]": "card",
      "success_url": success_url,
      "cancel_url": cancel_url,
  }
  if customer_email:
    fields["customer_email"] = customer_email
  for i, item in enumerate(line_items):
    prefix = f"line_items[{i}]"
    fields[f"{prefix}[price_data][currency]"] = currency
    fields[f"{prefix}[price_data][product_data][name]"] = item.name
    fields[f"{prefix}[price_data][unit_amount]"] = str(item.unit_amount)
    fields[f"{prefix}[quantity]"] = str(item.quantity)
  for key, value in metadata.items():
    fields[f"metadata[{key}]"] = value
  return fields


def _receipt_url(session: Dict[str, Any]) -> Optional[str]:
  intent = session.get("payment_intent")
  if not isinstance(intent, dict):
    return None
  charge = intent.get("latest_charge")
  if isinstance(charge, dict):
    return charge.get("receipt_url")
  # Older API versions expose charges as a list.
  charges = (intent.get("charges") or {}).get("data") or []
  if charges:
    return charges[0].get("receipt_url")
  return None


class HostedCheckoutGateway(PaymentGateway):
  """Production gateway adapter."""

  def __init__(
      self,
      api_base: str,
      api_key: str,
      timeout: float = 10.0,
      transport: Optional[httpx.AsyncBaseTransport] = None,
  ) -> None:
    self.api_base = api_base.rstrip("/")
    self.api_key = api_key
    self.timeout = timeout
    self.transport = transport

  def _client(self) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=self.api_base,
        headers={"Authorization": f"Bearer {self.api_key}"},
        timeout=self.timeout,
        transport=self.transport,
    )

  async def create_session(
      self,
      amount: int,
      currency: str,
      success_url: str,
      cancel_url: str,
      line_items: List[GatewayLineItem],
      metadata: Dict[str, str],
      customer_email: Optional[str] = None,
  ) -> CreatedSession:
    fields = _form_fields(
        amount,
        currency,
        success_url,
        cancel_url,
        line_items,
        metadata,
        customer_email,
    )
    try:
      async with self._client() as client:
        response = await client.post("/checkout/sessions", data=fields)
        response.raise_for_status()
        body = response.json()
    except httpx.HTTPError as e:
      logger.error("Failed to create checkout session: %s", e)
      raise GatewayError(str(e)) from e

    return CreatedSession(session_id=body["id"], redirect_url=body["url"])

  async def retrieve_session(self, session_id: str) -> SessionStatus:
    try:
      async with self._client() as client:
        response = await client.get(
            f"/checkout/sessions/{session_id}",
            params={"expand[]": "payment_intent.latest_charge"},
        )
        if response.status_code == 404:
          raise SessionNotFoundError(session_id)
        response.raise_for_status()
        body = response.json()
    except httpx.HTTPError as e:
      logger.error("Failed to retrieve checkout session %s: %s", session_id, e)
      raise GatewayError(str(e)) from e

    payment_status = body.get("payment_status") or "unpaid"
    return SessionStatus(
        session_id=body.get("id", session_id),
        paid=payment_status == "paid",
        payment_status=payment_status,
        receipt_url=_receipt_url(body),
        customer_email=(body.get("customer_details") or {}).get("email"),
    )
