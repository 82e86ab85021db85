"""
Remote entitlement authority package.

The authority is the source of truth whenever it is reachable. The client
separates its answers into success, rejection and unreachability, which the
resolver treats differently.
"""
