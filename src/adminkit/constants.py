"""
Storage layout, access levels and expiry policy.
"""

from datetime import timedelta

# Bucket names
SESSION_BUCKET = b"session"
USER_BUCKET = b"user"
INVITE_BUCKET = b"invite"
CACHE_BUCKET = b"cache"
PASS_RESET_BUCKET = b"passreset"
FEEDBACK_BUCKET = b"feedback"
LOG_BUCKET = b"log"

ALL_BUCKETS = (
    LOG_BUCKET,
    INVITE_BUCKET,
    SESSION_BUCKET,
    USER_BUCKET,
    CACHE_BUCKET,
    PASS_RESET_BUCKET,
    FEEDBACK_BUCKET,
)

# Cache keys
ADMIN_KEY = b"admin"

# Scheduled job names
INVITE_JOB = "invite"
PASS_RESET_JOB = "passreset"

# Expiry policy
SESSION_TTL = timedelta(hours=2)
SESSION_RENEWAL = timedelta(minutes=1)
INVITE_TTL = timedelta(days=7)
PASS_RESET_TTL = timedelta(days=5)

# Audit log day partitions look like "19-Oct-2026"
DATE_FORMAT = "%d-%b-%Y"
# Dates supplied when listing audit logs look like "2026-10-19 08:00:00"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# bcrypt only hashes the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72
