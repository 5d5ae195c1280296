"""Fork creation and fast-forward synchronisation with upstream."""

from steward.sync.fork import ForkSyncer, upstream_url

__all__ = ["ForkSyncer", "upstream_url"]
