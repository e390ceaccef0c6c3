"""Canonical field names and their legacy aliases.

Older consumers read invoice-centric names (invoice_number, amount_due, ...)
while the extraction contract uses document-neutral names. Both validation
results and confidence scores are exposed under either name through this
single table.
"""

# alias -> canonical
FIELD_ALIASES: dict[str, str] = {
    "invoice_number": "reference_number",
    "invoice_date": "transaction_date",
    "amount_due": "total_amount",
    "due_date": "payment_due_date",
}

# canonical -> alias
CANONICAL_ALIASES: dict[str, str] = {
    canonical: alias for alias, canonical in FIELD_ALIASES.items()
}


def canonical_name(field: str) -> str:
    """Resolve an alias to its canonical field name (identity for canonical names)."""
    return FIELD_ALIASES.get(field, field)


def expand_aliases(values: dict[str, object]) -> dict[str, object]:
    """Return a copy of ``values`` with each aliased canonical key also exposed under its alias.

    The alias entry references the same object as the canonical entry.
    """
    expanded = dict(values)
    for canonical, alias in CANONICAL_ALIASES.items():
        if canonical in values:
            expanded[alias] = values[canonical]
    return expanded
