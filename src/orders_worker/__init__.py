"""Order sync worker: full/incremental sync, reconciliation and HTTP surface."""
