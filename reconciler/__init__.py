"""
Recommendation Reconciliation Engine.
Matches loosely specified recommendation stubs against authoritative metadata
records with tiered search, similarity scoring and confidence classification;
retries transient lookup failures and caches outcomes in two TTL tiers.
"""
