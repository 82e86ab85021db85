"""
Entitlements Service package.

Answers, for one user at one point in time, whether they may use the paid
feature set, which tier they hold, and how much trial time or quota remains.

- app.main: API surface for resolution, mutations and health.
- app.access: data model, resolver, reverse trial, mutations, gate.
- app.authority: HTTP client for the remote entitlement authority.
- app.cache: durable per-user state (Redis or in-memory).

Guidelines:
- Resolution never raises; every failure degrades to a valid record.
- The authority is the source of truth whenever it answers.
"""
