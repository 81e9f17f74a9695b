"""
Shared infrastructure for the verification engine

Provides:
- retry: bounded retry with linear backoff and cancellation
- db_pool: engine and sink connection pools owned by a PoolManager
- logging, tracing, metrics: observability plumbing
- sql_safety: identifier validation and quoting for engine SQL
- vault_client: HashiCorp Vault credential lookup
"""

__version__ = "1.0.0"
__all__ = ["retry", "db_pool", "logging", "tracing", "metrics", "sql_safety", "vault_client"]
