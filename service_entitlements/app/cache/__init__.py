"""
Cache package for Entitlements Service.

Holds the local, per-user entitlement state that lets resolution degrade
gracefully while the authority is unreachable: the last resolved access
record, the reverse-trial start marker, and the beta coupon written by the
redemption flow. Backends implement the KeyValueStore protocol (Redis or
in-memory).
"""
