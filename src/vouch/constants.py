"""Constants for vouch."""

# Subprocess timeouts (seconds)
GIT_TIMEOUT = 30
STEP_TIMEOUT = 300  # 5 minutes for test/build commands
PROCESS_KILL_GRACE = 5

# Git notes namespace
NOTES_ROOT = "vouch"
HISTORY_NOTES_REF = f"{NOTES_ROOT}/validate"
RUN_CACHE_NOTES_PREFIX = f"{NOTES_ROOT}/run"

# History defaults
MAX_RUNS_PER_TREE = 10
MAX_OUTPUT_BYTES = 10_000
WARN_AFTER_DAYS = 30
WARN_AFTER_COUNT = 1000

# Temporary index files older than this are removed if their owner is gone
STALE_INDEX_AGE_SECONDS = 5 * 60

# Exit code recorded for steps killed by their timeout (same as coreutils timeout)
TIMEOUT_EXIT_CODE = 124
