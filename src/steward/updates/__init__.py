"""Discovery, filtering and application of dependency updates.

- ignore: ignore policy (IgnoreRule, filter_updates)
- discoverer: UpdateDiscoverer, listing outdated dependencies
- safety: BranchSafetyEvaluator, the rule table for existing branches
- applier: UpdateApplier, creating, resetting or skipping update branches
"""
