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

"""Enumerations for the fulfillment service.

This module defines standard enums used throughout the server application
to represent order states, payment methods, payment session states and
actor roles.
"""

import enum


class OrderStatus(str, enum.Enum):
  PENDING = "pending"
  PROCESSING = "processing"
  SHIPPED = "shipped"
  DELIVERED = "delivered"
  CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
  CASH_ON_DELIVERY = "cash_on_delivery"
  CARD = "card"


class PaymentSessionStatus(str, enum.Enum):
  OPEN = "open"
  COMPLETED = "completed"
  RESERVATION_FAILED = "reservation_failed"


class ActorRole(str, enum.Enum):
  CUSTOMER = "customer"
  VENDOR = "vendor"
  ADMIN = "admin"
