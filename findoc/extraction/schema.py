"""Financial document data models for structured extraction.

Values are kept close to what the model returned (strings or numbers);
cleaning and rule checks belong to the validation engine.
"""

import math
import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

Scalar = str | int | float

_SEPARATORS = re.compile(r"[\s,]")


def clean_amount(raw: Scalar | None) -> Decimal | None:
    """Parse a monetary amount, ignoring currency symbols, thousands separators and whitespace.

    Args:
        raw: Amount as number or text (e.g. "$1,234.50", " 12.00 EUR")

    Returns:
        Decimal within float range, or None if the value is absent or not numeric
    """
    if raw is None or isinstance(raw, bool):
        return None
    text = _SEPARATORS.sub("", str(raw))
    text = "".join(ch for ch in text if unicodedata.category(ch) != "Sc")
    # Trailing/leading ISO codes such as "USD" or "EUR"
    text = re.sub(r"^[A-Za-z]{3}|[A-Za-z]{3}$", "", text)
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite() or not math.isfinite(float(value)):
        return None
    return value


class LineItem(BaseModel):
    """A single line on the document."""

    model_config = ConfigDict(frozen=True)

    description: str | None = Field(None, description="Item or service description")
    quantity: float | None = Field(None, description="Quantity, if shown")
    unit_price: float | None = Field(None, description="Unit price, if shown")
    amount: Scalar | None = Field(None, description="Line amount as printed")


class ExtractedFieldSet(BaseModel):
    """Fields extracted from one financial document.

    Legacy invoice-centric names (invoice_number, invoice_date, amount_due,
    due_date) are accepted on input and mapped to the canonical fields.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    vendor_name: Scalar | None = Field(None, description="Business that provided goods/services")
    reference_number: Scalar | None = Field(
        None,
        validation_alias=AliasChoices("reference_number", "invoice_number"),
        description="Primary document identifier (order #, invoice #, account #, ...)",
    )
    transaction_date: str | None = Field(
        None,
        validation_alias=AliasChoices("transaction_date", "invoice_date"),
        description="Issue/purchase/billing date (YYYY-MM-DD)",
    )
    payment_due_date: str | None = Field(
        None,
        validation_alias=AliasChoices("payment_due_date", "due_date"),
        description="Payment due date (YYYY-MM-DD), only when payment is owed",
    )
    total_amount: Scalar | None = Field(
        None,
        validation_alias=AliasChoices("total_amount", "amount_due"),
        description="Final amount paid, due or charged",
    )
    currency: str | None = Field(None, description="Currency code (ISO 4217)")

    # Customer information
    customer_name: Scalar | None = Field(None, description="Payer/customer/patient name")
    customer_address: str | None = Field(None, description="Billing or service address")

    line_items: list[LineItem] = Field(default_factory=list)

    # Collaborator's own assessment
    extraction_quality: Literal["high", "medium", "low"] | None = None
    document_type: str | None = Field(
        None, description="receipt | invoice | bill | statement | order_confirmation"
    )
    payment_status: str | None = Field(None, description="paid | unpaid")
    missing_fields: list[str] = Field(default_factory=list)

    @field_validator("line_items", "missing_fields", mode="before")
    @classmethod
    def none_as_empty(cls, value: object) -> object:
        return [] if value is None else value

    @field_validator("extraction_quality", "document_type", "payment_status", mode="before")
    @classmethod
    def lowercase_labels(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value
