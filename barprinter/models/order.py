"""
Order models for the barprinter worker.
Pydantic models for order documents read from the order store.
"""
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderStatus(str, Enum):
    """Order status states."""
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"
    REJECTED = "rejected"


class Order(BaseModel):
    """Drink order as stored in the order queue."""
    id: str = Field(..., description="Document id assigned by the order store")
    drink: str = Field("", description="Name of the requested drink")
    client_name: str = Field("", alias="clientName", description="Name printed on the ticket")
    employee_id: Optional[Union[str, int]] = Field(None, alias="employeeId",
                                                   description="Staff member who placed the order")
    timestamp: Optional[int] = Field(None, description="Creation time (epoch milliseconds)")
    status: OrderStatus = Field(OrderStatus.PENDING, description="Current order status")
    processed_at: Optional[int] = Field(None, alias="processedAt",
                                        description="Time the ticket was printed (epoch milliseconds)")
    error: Optional[str] = Field(None, description="Diagnostic message for failed orders")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator('drink', 'client_name', mode='before')
    @classmethod
    def coerce_text(cls, v):
        """Missing or non-text values become strings."""
        if v is None:
            return ""
        return str(v)

    @field_validator('timestamp', 'processed_at', mode='before')
    @classmethod
    def coerce_epoch_ms(cls, v):
        """Store numbers may come back as floats."""
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return int(v)
        return v

    @property
    def is_pending(self) -> bool:
        """Check if the order still awaits printing."""
        return self.status == OrderStatus.PENDING

    @classmethod
    def from_document(cls, doc_id: str, data: Optional[Dict[str, Any]]) -> "Order":
        """Build an order from a store document id and its field mapping."""
        return cls.model_validate({**(data or {}), "id": doc_id})
