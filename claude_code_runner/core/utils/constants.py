"""Constants used throughout the runner."""

# Environment variables understood by the Claude Code CLI
CLI_PATH_ENV = "CLAUDE_CLI_PATH"
API_KEY_ENV = "ANTHROPIC_API_KEY"
OAUTH_TOKEN_ENV = "CLAUDE_CODE_OAUTH_TOKEN"
HOME_ENV = "HOME"
EXTRA_CA_CERTS_ENV = "NODE_EXTRA_CA_CERTS"
CREDENTIAL_ENV_VARS = (API_KEY_ENV, OAUTH_TOKEN_ENV)

# Command-line flags
PROMPT_FLAG = "-p"
SKIP_PERMISSIONS_FLAG = "--dangerously-skip-permissions"
MODEL_FLAG = "--model"
SESSION_ID_FLAG = "--session-id"
RESUME_FLAG = "--resume"
VERSION_FLAG = "--version"

# Timeouts (seconds)
DEFAULT_EXECUTION_TIMEOUT = 180.0
DEFAULT_SESSION_TURN_TIMEOUT = 300.0
VERSION_TIMEOUT = 10.0
GRACEFUL_TERMINATION_WAIT = 1.0

# Session housekeeping (seconds)
DEFAULT_SESSION_INACTIVITY_TIMEOUT = 30 * 60
DEFAULT_SESSION_CLEANUP_INTERVAL = 5 * 60

# Worker pools
DEFAULT_ASYNC_WORKERS = 4
TIMEOUT_THREAD_NAME = "claude-code-timeout"
CLEANUP_THREAD_NAME = "conversation-session-cleanup"

# Diagnostics
STREAM_TAIL_LINES = 200
LOG_PREVIEW_CHARS = 100
