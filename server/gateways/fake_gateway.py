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

"""In-memory hosted checkout gateway for development and testing.

Sessions are created unpaid. Tests (or a developer poking the API) call
`mark_paid` to simulate the customer completing payment on the provider's
page. `fail_next` makes the next call raise `GatewayError`.
"""

from typing import Any, Dict, List, Optional
import uuid

from gateways.port import CreatedSession
from gateways.port import GatewayError
from gateways.port import GatewayLineItem
from gateways.port import PaymentGateway
from gateways.port import SessionNotFoundError
from gateways.port import SessionStatus


class FakeGateway(PaymentGateway):
  """Configurable fake hosted checkout provider."""

  def __init__(self, base_url: str = "https://checkout.fake.test") -> None:
    self.base_url = base_url.rstrip("/")
    self.sessions: Dict[str, Dict[str, Any]] = {}
    self.calls: List[Dict[str, Any]] = []
    self._fail_next = False

  def fail_next(self) -> None:
    self._fail_next = True

  def mark_paid(
      self, session_id: str, receipt_url: Optional[str] = None
  ) -> None:
    session = self.sessions[session_id]
    session["paid"] = True
    session["receipt_url"] = (
        receipt_url or f"{self.base_url}/receipts/{session_id}"
    )

  def _check_failure(self) -> None:
    if self._fail_next:
      self._fail_next = False
      raise GatewayError("Simulated provider outage")

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
    self.calls.append({
        "method": "create_session",
        "amount": amount,
        "currency": currency,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "line_items": line_items,
        "metadata": metadata,
    })
    self._check_failure()

    session_id = f"cs_fake_{uuid.uuid4().hex[:16]}"
    self.sessions[session_id] = {
        "amount": amount,
        "paid": False,
        "receipt_url": None,
        "customer_email": customer_email,
    }
    return CreatedSession(
        session_id=session_id,
        redirect_url=f"{self.base_url}/pay/{session_id}",
    )

  async def retrieve_session(self, session_id: str) -> SessionStatus:
    self.calls.append({"method": "retrieve_session", "session_id": session_id})
    self._check_failure()

    session = self.sessions.get(session_id)
    if session is None:
      raise SessionNotFoundError(session_id)
    return SessionStatus(
        session_id=session_id,
        paid=session["paid"],
        payment_status="paid" if session["paid"] else "unpaid",
        receipt_url=session["receipt_url"],
        customer_email=session["customer_email"],
    )
