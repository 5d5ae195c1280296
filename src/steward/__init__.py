"""Dependency steward for a catalog of GitHub repositories.

This package keeps the dependencies of many repositories up to date:
- Fork, clone and fast-forward sync of each repository
- Discovery of outdated dependencies through the build tool
- Branch lifecycle decisions for update branches (create, reset, skip)
- Idempotent pull request publication on GitHub
- Fault-isolated, per-repository pipeline runs with guaranteed cleanup
"""
