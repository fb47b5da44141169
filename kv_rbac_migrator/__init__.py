"""
Key Vault RBAC Migrator

Audits and replicates Azure RBAC role assignments scoped to Key Vault
resources from one security principal to another, across subscriptions,
with a dry-run mode and a replayable operation log.
"""

__version__ = "0.1.0"
