"""
Domain Layer.

Entities (Order, FoodItem, PaymentQr), realtime event envelopes, the keyset
cursor and the order validation rules. Nothing in here performs I/O.
"""
