"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .payment import (
    AuthorizeRequest,
    ContentPaymentRequest,
    FetchInstructionPayload,
    PaymentMetadata,
    SubscriptionRequest,
)

__all__ = [
    "AuthorizeRequest",
    "ContentPaymentRequest",
    "FetchInstructionPayload",
    "PaymentMetadata",
    "SubscriptionRequest",
]
