"""Reusable payloads for API scenarios."""

DEFAULT_PASSWORD = "correct-horse-9"

REGISTER_BUYER = {
    "name": "Ama Buyer",
    "email": "Ama@Example.com",
    "password": DEFAULT_PASSWORD,
    "phone": "+237600000001",
}

REGISTER_SELLER = {
    "name": "Kofi Seller",
    "email": "kofi@example.com",
    "password": DEFAULT_PASSWORD,
    "wants_to_sell": True,
}

SHIPPING = {
    "name": "Ama Buyer",
    "address_1": "12 Rue de la Paix",
    "city": "Douala",
    "postal_code": "00237",
    "country": "CM",
    "phone": "+237600000001",
}

CAMPAIGN_WITH_CODE = {
    "name": "Summer Sale",
    "description": "Ten percent off the whole summer range",
    "campaign_type": "seasonal",
    "start_date": "2026-06-01T00:00:00Z",
    "end_date": "2026-08-31T23:59:59Z",
    "discount_code": {
        "code": "summer10",
        "discount_type": "percentage",
        "value": "10",
        "usage_limit": 100,
    },
}

DISCOUNT_CODE = {
    "code": "WELCOME5",
    "discount_type": "fixed_amount",
    "value": "5.00",
    "min_purchase_amount": "20.00",
    "usage_limit": 10,
    "start_date": "2026-01-01T00:00:00Z",
    "end_date": "2026-12-31T23:59:59Z",
}
