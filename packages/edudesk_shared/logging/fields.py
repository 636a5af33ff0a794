"""Canonical logging field names for structured client logs.

Keeping names centralized prevents drift between the request pipeline, the
mutation controller and the CLI when they bind context.
"""

TIMESTAMP = "timestamp"
LEVEL = "level"
LOGGER = "logger"
MESSAGE = "message"

# Request pipeline fields.
METHOD = "method"
PATH = "path"
STATUS_CODE = "status_code"
ATTEMPT = "attempt"
RENEWAL_STATE = "renewal_state"

# Mutation fields.
RESOURCE = "resource"
ENTITY_ID = "entity_id"
MUTATION = "mutation"
OUTCOME = "outcome"

# Session fields.
USERNAME = "username"
SESSION_END_REASON = "session_end_reason"

# Common process-level fields.
SERVICE = "service"
ENVIRONMENT = "environment"
