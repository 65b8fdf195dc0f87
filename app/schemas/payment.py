"""JSON Schema for a decrypted card submission."""

CARD_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Card",
    "type": "object",
    "required": ["cardNumber", "expiryDate", "cvv"],
    "properties": {
        "cardNumber": {"type": "string", "pattern": r"^[0-9]{13,19}$"},
        "expiryDate": {"type": "string", "pattern": r"^[0-9]{2}/[0-9]{2}$"},
        "cvv": {"type": "string", "pattern": r"^[0-9]{3,4}$"},
    },
}

# Checked in this order; the first failing field decides the message.
CARD_FIELD_MESSAGES = (
    ("cardNumber", "Invalid card number"),
    ("expiryDate", "Invalid expiry date format (MM/YY)"),
    ("cvv", "Invalid CVV"),
)

CARD_TYPES_BY_FIRST_DIGIT = {
    "4": "visa",
    "5": "mastercard",
    "3": "amex",
    "6": "discover",
}
