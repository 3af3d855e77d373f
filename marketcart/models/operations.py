"""Cart mutation operations"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .cart import utcnow
from .product import ProductListing, SellerInfo


class OperationType(str, Enum):
    ADD_ITEM = "add_item"
    UPDATE_QUANTITY = "update_quantity"
    REMOVE_ITEM = "remove_item"
    CLEAR = "clear"


class MutationOp(BaseModel):
    """
    One local cart mutation.

    `seq` comes from the cart's monotonic operation counter and is what stale
    server responses are detected against. `idempotency_key` lets the server
    drop replays of an operation it already applied.
    """
    seq: int = Field(ge=1)
    type: OperationType
    product_id: Optional[str] = None
    seller_id: Optional[str] = None
    quantity: Optional[int] = None
    product: Optional[ProductListing] = None
    seller: Optional[SellerInfo] = None
    idempotency_key: str = Field(default_factory=lambda: str(uuid.uuid4()))
    issued_at: datetime = Field(default_factory=utcnow)

    class Config:
        frozen = True

    def to_wire(self) -> dict[str, Any]:
        """Request payload understood by the cart backend"""
        payload: dict[str, Any] = {
            "op_seq": self.seq,
            "idempotency_key": self.idempotency_key,
            "type": self.type.value,
        }
        if self.product_id is not None:
            payload["product_id"] = self.product_id
        if self.seller_id is not None:
            payload["seller_org_id"] = self.seller_id
        if self.quantity is not None:
            payload["quantity"] = self.quantity
        return payload
