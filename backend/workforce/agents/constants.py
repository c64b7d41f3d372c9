"""Constants for the restaurant agents and the event processor.

Single source of truth for the magic numbers used across agents, the
processor and the completion client.
"""

# ---------------------------------------------------------------------------
# Event processor
# ---------------------------------------------------------------------------
DEFAULT_IDLE_INTERVAL_SECONDS = 5.0
AGENT_NOT_REGISTERED_ERROR = "Agent not registered: {}"
AGENT_NOT_ENABLED_ERROR = "Agent not enabled for restaurant {}: {}"
AGENT_TIMEOUT_ERROR = "Agent timed out after {:.0f}s"
MAX_ERROR_CHARS = 2000

# ---------------------------------------------------------------------------
# Conversation windows
# ---------------------------------------------------------------------------
RESERVATION_HISTORY_MESSAGES = 10
SUPPORT_HISTORY_MESSAGES = 20
SUPPORT_CONTEXT_MESSAGES = 10  # subset of the history sent to the LLM

# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------
DEFAULT_PARTY_SIZE = 2
DEFAULT_CHANNEL = "whatsapp"
REMINDER_WINDOW_HOURS = 24

# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------
POSITIVE_RATING_MIN = 4
NEUTRAL_RATING_MIN = 3

# ---------------------------------------------------------------------------
# Re-engagement campaigns
# ---------------------------------------------------------------------------
DEFAULT_INACTIVE_DAYS = 30
CAMPAIGN_SEND_DELAY_SECONDS = 1.0

# ---------------------------------------------------------------------------
# LLM retry
# ---------------------------------------------------------------------------
LLM_MAX_RETRIES = 3
LLM_RETRY_BASE_DELAY_SECONDS = 1.0
LLM_RETRY_MAX_DELAY_SECONDS = 15.0
LLM_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
LLM_TEMPERATURE = 0.3
