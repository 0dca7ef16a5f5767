"""Shared builders for test payloads."""


def line(name, quantity, unit_price=100, category="Solar Panel", unit="Nos"):
    """One invoice line item in its stored JSON shape."""
    return {
        "itemName": name,
        "category": category,
        "quantity": quantity,
        "unit": unit,
        "unitPrice": unit_price,
    }
