"""Default values shared across the engine."""

DEFAULT_MAX_RETRIES = 2
DEFAULT_STEP_TIMEOUT_SECONDS = 120.0
DEFAULT_CANCEL_GRACE_PERIOD = 5.0
DEFAULT_MAX_PARALLEL = 4

DEFAULT_BACKOFF_INITIAL = 1.0
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_BACKOFF_MAX = 30.0

DEFAULT_INSTRUCTIONS = "Analyze and provide recommendations."
DEFAULT_CONFIG_PATH = "agentchain.yaml"
