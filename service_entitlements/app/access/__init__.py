"""
Access resolution package.

Resolves a user's entitlement (access tier, remaining trial days, quota
limits) from the remote authority, the local cache, or a locally computed
reverse trial, and maps the result to a gate decision.

Modules of interest:
- models: AccessType, QuotaLimits, AccessRecord and the lite tier table.
- resolver: the priority chain and cache-aside write.
- reverse_trial: the local time-boxed trial and its decay.
- mutations: beta redemption, trial start, checkout.
- gate: loading/granted/denied posture and advisory banner.
- session: per-identity publication with stale-result discarding.
"""
