"""Table layout and default lifetimes for DynamoDB-backed sessions."""

from datetime import timedelta

# Attribute names in the session table
UUID_ATTRIBUTE = "uuid"
EXPIRATION_ATTRIBUTE = "expiration"
DATA_ATTRIBUTE = "data"

# Coarse backend retention for a record, refreshed on every save.
# Independent of the cookie max-age.
DEFAULT_RECORD_TTL = timedelta(minutes=60)

# Cookie max-age for new sessions (30 days)
DEFAULT_MAX_AGE = 86400 * 30

# Cap on the length of an encoded token; 0 disables the check
DEFAULT_MAX_LENGTH = 4096

# Random bytes behind each session identifier
SESSION_ID_BYTES = 32
