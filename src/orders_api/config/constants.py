"""
Centralized application constants.

Single point of truth for the sync, persistence and reconciliation limits
shared by the API client and the worker services.
"""

# ==============================================================================
# UPSTREAM PAGINATION
# ==============================================================================

# Orders requested per page
ORDER_LIST_PAGE_SIZE = 100

# Safety ceiling for a full walk (~10,000+ orders, roughly a year of history)
FULL_SYNC_MAX_PAGES = 200

# Recent orders for an incremental window should fit in this many pages
INCREMENTAL_SYNC_MAX_PAGES = 20

# Stop after this many consecutive pages containing only already-seen orders.
# Upstream pagination has been observed to loop past the last page.
MAX_CONSECUTIVE_DUPLICATE_PAGES = 3

# ==============================================================================
# PERSISTENCE
# ==============================================================================

# Rows per upsert statement
UPSERT_BATCH_SIZE = 100

# Delay between upsert batches to throttle load on the store (seconds)
INTER_BATCH_DELAY_SECONDS = 0.2

# Maximum ids per IN (...) lookup
ID_LOOKUP_CHUNK_SIZE = 500

# ==============================================================================
# INCREMENTAL SYNC
# ==============================================================================

DEFAULT_INCREMENTAL_WINDOW_HOURS = 24

# ==============================================================================
# RECONCILIATION
# ==============================================================================

# Sample depths (pages) for the three drift checks
VALIDATION_COUNT_SAMPLE_PAGES = 50
VALIDATION_MISSING_SAMPLE_PAGES = 10
VALIDATION_OUTDATED_SAMPLE_PAGES = 5

# Cached API page responses expire after this long (seconds); a validation
# run reuses pages across its three sample walks
API_RESPONSE_CACHE_TTL_SECONDS = 60.0

ACCURACY_OK_THRESHOLD = 99.0
ACCURACY_WARNING_THRESHOLD = 95.0
MISSING_WARNING_LIMIT = 50

# ==============================================================================
# MONITORING
# ==============================================================================

# Alert when a run persists less than this share of fetched orders (percent)
SUCCESS_RATE_ALERT_THRESHOLD = 95.0

# Health check flags the last sync as stale after this many hours
LAST_SYNC_MAX_AGE_HOURS = 25

# Health check caches the upstream probe for this long (seconds)
HEALTH_PROBE_CACHE_TTL_SECONDS = 60.0

# Keep this many runs in the metrics sidecar file
METRICS_HISTORY_LIMIT = 100

# Sync lock expiry (maximum time for a single run in seconds)
SYNC_LOCK_TIMEOUT_SECONDS = 3600

# ==============================================================================
# WEBHOOKS
# ==============================================================================

WEBHOOK_EVENTS = (
    "order.created",
    "order.updated",
    "order.paid",
    "order.refunded",
    "order.chargeback",
)
