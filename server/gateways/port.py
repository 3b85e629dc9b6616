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

"""Hosted checkout gateway port (abstract interface).

Defines the contract every hosted payment provider adapter implements, so the
payment reconciler can run against `FakeGateway` in development and tests and
against `HostedCheckoutGateway` in production without code changes.
"""

import abc
import dataclasses
from typing import Dict, List, Optional


class GatewayError(Exception):
  """The provider could not be reached or rejected the request."""


class SessionNotFoundError(GatewayError):
  """The provider does not know the session id."""


@dataclasses.dataclass(frozen=True)
class GatewayLineItem:
  name: str
  unit_amount: int
  quantity: int


@dataclasses.dataclass(frozen=True)
class CreatedSession:
  """A hosted checkout session the customer is redirected to."""

  session_id: str
  redirect_url: str


@dataclasses.dataclass(frozen=True)
class SessionStatus:
  """Provider-side state of a hosted checkout session."""

  session_id: str
  paid: bool
  payment_status: str
  receipt_url: Optional[str] = None
  customer_email: Optional[str] = None


class PaymentGateway(abc.ABC):
  """Abstract hosted checkout interface."""

  @abc.abstractmethod
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
    """Creates a hosted checkout session for `amount` minor units."""

  @abc.abstractmethod
  async def retrieve_session(self, session_id: str) -> SessionStatus:
    """Fetches the payment state of a session.

    Raises:
      SessionNotFoundError: The id is unknown to the provider.
      GatewayError: Any other provider failure.
    """
