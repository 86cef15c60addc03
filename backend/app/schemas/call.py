from typing import Any

from pydantic import BaseModel, Field, AliasChoices

from app.domain.entities.call_record import PendingContact

class PreCallIn(BaseModel):
    phone: str = Field(default="", validation_alias=AliasChoices("phone", "phone_number"))
    contact_name: str | None = Field(default=None, validation_alias=AliasChoices("contactName", "contact_name"))
    company_name: str | None = Field(default=None, validation_alias=AliasChoices("companyName", "company_name"))
    reference_price: float | None = Field(
        default=None, validation_alias=AliasChoices("referencePrice", "reference_price_eur_tm_ddp")
    )
    price_min: float | None = Field(default=None, validation_alias=AliasChoices("priceMin", "price_range_min"))
    price_max: float | None = Field(default=None, validation_alias=AliasChoices("priceMax", "price_range_max"))

    def to_pending(self) -> PendingContact:
        return PendingContact(**self.model_dump())

class CallResultIn(BaseModel):
    phone: str = Field(default="", validation_alias=AliasChoices("phone", "phone_number"))
    # non-string values reach the outcome check and are rejected there
    outcome: Any = None
    tool_called: Any = None
    client_price: str | int | float | None = None
    negotiation_result: str | None = None
    callback_date: str | None = None
    callback_time: str | None = None
    callback_notes: str | None = None
    decision_maker_name: str | None = None
    close_reason: str | None = None
    duration: str | int | float | None = None

    def report_fields(self) -> dict:
        return self.model_dump(exclude={"phone"}, exclude_none=True)
