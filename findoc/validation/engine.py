"""Deterministic validation of extracted document fields.

Pure functions only: no network, no clock reads except the optional default
for ``today``. The same field set and ``today`` always yield the same result
set, which keeps the rules unit-testable.

Errors make a field invalid; warnings are informational. Nothing here raises
for bad data: every problem is reported on the field's ValidationResult.
"""

import re
from datetime import UTC, date, datetime
from decimal import Decimal

from findoc.extraction.schema import ExtractedFieldSet, LineItem, Scalar, clean_amount
from findoc.validation.schema import ValidationResult, ValidationResultSet, ValidationSummary

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Accepted without an "unusual currency" warning
COMMON_CURRENCIES = frozenset({"USD", "EUR", "GBP", "CAD", "AUD", "JPY", "CNY", "INR"})
DEFAULT_CURRENCY = "USD"

YEARS_BACK = 5
YEARS_AHEAD = 2

AMOUNT_TOLERANCE_FLOOR = Decimal("0.01")
AMOUNT_TOLERANCE_RATIO = Decimal("0.01")


def validate_document(fields: ExtractedFieldSet, today: date | None = None) -> ValidationResultSet:
    """Validate an extracted field set.

    Args:
        fields: Raw fields from the extraction stage
        today: Reference date for plausibility ranges (defaults to today, UTC)

    Returns:
        ValidationResultSet keyed by canonical field, alias names resolving to
        the same results
    """
    today = today or datetime.now(UTC).date()

    transaction = validate_date(fields.transaction_date, "transaction_date", today)
    results: dict[str, ValidationResult] = {
        "vendor_name": validate_vendor_name(fields.vendor_name),
        "reference_number": validate_reference_number(fields.reference_number),
        "transaction_date": transaction,
    }

    if not _is_blank(fields.payment_due_date):
        results["payment_due_date"] = validate_due_date(
            fields.payment_due_date,
            fields.transaction_date,
            transaction,
            today,
            payment_status=fields.payment_status,
        )

    results["total_amount"] = validate_amount(fields.total_amount, fields.line_items)
    results["currency"] = validate_currency(fields.currency)
    results["customer_name"] = validate_customer_name(fields.customer_name)

    return ValidationResultSet(results)


def get_summary(results: ValidationResultSet) -> ValidationSummary:
    """Summarize a result set.

    Counts each canonical field once; alias names are not double-counted.

    Args:
        results: Output of validate_document

    Returns:
        ValidationSummary; ``all_valid`` is True iff no field has an error
    """
    canonical = results.canonical().values()
    errors = sum(1 for r in canonical if r.error)
    return ValidationSummary(
        total=len(canonical),
        valid=sum(1 for r in canonical if r.valid),
        warnings=sum(1 for r in canonical if r.warning),
        errors=errors,
        all_valid=errors == 0,
    )


def validate_vendor_name(vendor_name: Scalar | None) -> ValidationResult:
    if _is_blank(vendor_name):
        return ValidationResult(value=vendor_name, valid=False, error="Vendor name is required")

    name = str(vendor_name).strip()
    if len(name) < 2:
        return ValidationResult(value=name, valid=False, error="Vendor name too short")
    return ValidationResult(value=name, valid=True)


def validate_reference_number(reference_number: Scalar | None) -> ValidationResult:
    if _is_blank(reference_number):
        return ValidationResult(
            value=reference_number, valid=False, error="Reference number is required"
        )
    return ValidationResult(value=str(reference_number).strip(), valid=True)


def validate_date(value: str | None, field_name: str, today: date) -> ValidationResult:
    """Check strict YYYY-MM-DD format, calendar validity and plausibility range.

    Dates outside [today - 5 years, today + 2 years] stay valid with a warning.
    """
    if _is_blank(value):
        return ValidationResult(value=value, valid=False, error=f"{field_name} is required")

    text = str(value).strip()
    if not DATE_PATTERN.match(text):
        return ValidationResult(
            value=value, valid=False, error=f"{field_name} must be in YYYY-MM-DD format"
        )

    parsed = _parse_date(text)
    if parsed is None:
        return ValidationResult(value=value, valid=False, error=f"{field_name} is not a valid date")

    earliest = _shift_years(today, -YEARS_BACK)
    latest = _shift_years(today, YEARS_AHEAD)
    if parsed < earliest or parsed > latest:
        return ValidationResult(
            value=text,
            valid=True,
            warning=(
                f"{field_name} is outside typical range "
                f"({YEARS_BACK} years ago to {YEARS_AHEAD} years from now)"
            ),
        )

    return ValidationResult(value=text, valid=True)


def validate_due_date(
    due_date: str | None,
    transaction_date: str | None,
    transaction_result: ValidationResult,
    today: date,
    payment_status: str | None = None,
) -> ValidationResult:
    """Validate the due date and order it against the transaction date.

    Equal dates are valid. Without a usable transaction date the ordering
    cannot be checked and a warning is attached instead.
    """
    result = validate_date(due_date, "payment_due_date", today)
    if not result.valid:
        return result

    warnings = [result.warning] if result.warning else []

    if _is_blank(transaction_date):
        warnings.append("Cannot verify payment_due_date without transaction_date")
    elif not transaction_result.valid:
        warnings.append("Cannot verify payment_due_date because transaction_date is invalid")
    else:
        due = _parse_date(str(due_date).strip())
        issued = _parse_date(str(transaction_date).strip())
        if due is not None and issued is not None and due < issued:
            return ValidationResult(
                value=result.value,
                valid=False,
                error="payment_due_date must be on or after transaction_date",
            )

    if payment_status == "paid":
        warnings.append("Document is marked paid but has a payment due date")

    return ValidationResult(
        value=result.value, valid=True, warning="; ".join(warnings) if warnings else None
    )


def validate_amount(
    amount: Scalar | None, line_items: list[LineItem] | None = None
) -> ValidationResult:
    """Clean and check the total, then reconcile it with the line items.

    Line items whose amount cannot be read count as 0. A line-item mismatch
    beyond ``max(0.01, 1% of total)`` is a warning, not an error.
    """
    if _is_blank(amount):
        return ValidationResult(value=amount, valid=False, error="Amount is required")

    total = clean_amount(amount)
    if total is None:
        return ValidationResult(value=amount, valid=False, error="Amount must be a valid number")
    if total <= 0:
        return ValidationResult(
            value=amount, valid=False, error="Amount must be positive", numeric_value=float(total)
        )

    if line_items:
        items_total = sum(
            (clean_amount(item.amount) or Decimal(0) for item in line_items), Decimal(0)
        )
        tolerance = max(AMOUNT_TOLERANCE_FLOOR, total * AMOUNT_TOLERANCE_RATIO)
        difference = abs(total - items_total)
        if difference > tolerance:
            return ValidationResult(
                value=amount,
                valid=True,
                numeric_value=float(total),
                warning=(
                    f"Line items sum to {items_total:.2f}, but total is {total:.2f} "
                    f"(difference: {difference:.2f})"
                ),
            )

    return ValidationResult(value=amount, valid=True, numeric_value=float(total))


def validate_currency(currency: str | None) -> ValidationResult:
    if _is_blank(currency):
        return ValidationResult(
            value=DEFAULT_CURRENCY,
            valid=True,
            warning=f"Currency not specified, assuming {DEFAULT_CURRENCY}",
        )

    code = str(currency).strip().upper()
    if code not in COMMON_CURRENCIES:
        return ValidationResult(value=code, valid=True, warning=f"Unusual currency code: {code}")
    return ValidationResult(value=code, valid=True)


def validate_customer_name(customer_name: Scalar | None) -> ValidationResult:
    # Optional field: never invalid
    if _is_blank(customer_name):
        return ValidationResult(value=customer_name, valid=True, warning="Customer name is empty")
    return ValidationResult(value=str(customer_name).strip(), valid=True)


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_date(text: str) -> date | None:
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def _shift_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year + years, day=28)
