"""Application-wide constants."""

APP_NAME = "Forge Engine"
APP_DESCRIPTION = "Automation and AI agent runtime for Forge boards"

# Agent run limits
DEFAULT_AGENT_MAX_TOKENS = 4096
DEFAULT_AGENT_MAX_ACTIONS = 10
DEFAULT_AGENT_MAX_ROUNDS = 25
DEFAULT_AGENT_RUN_TIMEOUT_SECONDS = 600
DEFAULT_AGENT_PROMPT = "Execute your task based on your system prompt."

# Automation limits
DEFAULT_AI_STEP_MAX_TOKENS = 2048
DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 10

# Provider defaults
DEFAULT_AI_REQUEST_TIMEOUT_SECONDS = 120
DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com"
DEFAULT_ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_ANTHROPIC_MODELS = [
    "claude-sonnet-4-5-20250929",
    "claude-haiku-4-5-20251001",
]
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODELS = ["gpt-4o", "gpt-4o-mini"]
DEFAULT_MODEL_MAX_TOKENS = 4096

# Event bus
DEFAULT_MAX_LISTENERS_WARNING = 200

# Database defaults
DEFAULT_DATABASE_URL = "sqlite:///data/forge.db"

# Prompt size caps
MAX_EVENT_VALUE_LENGTH = 200

# Shutdown
SHUTDOWN_GRACE_SECONDS = 10
