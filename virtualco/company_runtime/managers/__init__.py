"""Business logic for the company runtime.

Managers raise domain exceptions (``LookupError``, ``ValueError``), never
HTTP exceptions -- that translation is the router's responsibility.
"""
