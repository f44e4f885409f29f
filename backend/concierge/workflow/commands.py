"""Request and payload models for the Command Dispatcher.

Field aliases follow the camelCase wire format callers send.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from concierge.errors import InvalidPayloadError

P = TypeVar("P", bound="_Payload")


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @classmethod
    def parse(cls: type[P], data: dict[str, Any] | None) -> P:
        """Validate an action payload, raising InvalidPayloadError."""
        try:
            return cls.model_validate(data or {})
        except ValidationError as exc:
            raise InvalidPayloadError(
                f"Invalid payload for {cls.__name__}: {exc.errors()[0]['msg']}"
            ) from exc


class WorkflowCommand(_Payload):
    """Single external entry-point request."""

    action: str
    order_id: str | None = Field(default=None, alias="orderId")
    item_id: str | None = Field(default=None, alias="itemId")
    data: dict[str, Any] = Field(default_factory=dict)
    expected_current_status: str | None = Field(
        default=None, alias="expectedCurrentStatus"
    )
    skip_validation: bool = Field(default=False, alias="skipValidation")

    @field_validator("data", mode="before")
    @classmethod
    def null_data_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("skip_validation", mode="before")
    @classmethod
    def null_skip_is_false(cls, v: Any) -> Any:
        return False if v is None else v


class ItemFoundData(_Payload):
    found_quantity: int | None = Field(default=None, alias="foundQuantity", ge=0)
    notes: str | None = None
    photo_url: str | None = Field(default=None, alias="photoUrl")


class SubstitutionRequestData(_Payload):
    reason: str | None = None
    suggested_product: str | None = Field(default=None, alias="suggestedProduct")
    notes: str | None = None


class RollbackRequestData(_Payload):
    target_status: str = Field(alias="targetStatus")
    reason: str = ""


class AssignStaffData(_Payload):
    staff_id: str = Field(alias="staffId", min_length=1)
    role: str
