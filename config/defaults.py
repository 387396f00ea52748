"""Default configuration values."""

DEFAULT_PROVIDER = "openai"
DEFAULT_MAIN_MODEL = "gpt-4.1"
DEFAULT_AUX_MODEL = "gpt-4.1-mini"
DEFAULT_EXPERT_MODEL = "o3"

DEFAULT_AGENT_NAME = "Jeff"
DEFAULT_TEMPERATURE = 1.0
DEFAULT_MAX_OUTPUT_TOKENS = 16384

# Model provider configurations
DEFAULT_MODEL_PROVIDERS = {
    "anthropic": {
        "name": "Anthropic",
        "base_url": "https://api.anthropic.com",
        "env_key": "ANTHROPIC_API_KEY",
        "default_model": "claude-sonnet-4-20250514",
    },
    "openai": {
        "name": "OpenAI",
        "base_url": "https://api.openai.com/v1",
        "env_key": "OPENAI_API_KEY",
        "default_model": "gpt-4.1",
    },
    "ollama": {
        "name": "Ollama (Local)",
        "base_url": "http://localhost:11434",
        "env_key": None,  # No API key needed
        "default_model": "qwen3",
    },
    "gemini": {
        "name": "Google Gemini",
        "base_url": "https://generativelanguage.googleapis.com/v1beta",
        "env_key": "GEMINI_API_KEY",
        "default_model": "gemini-2.5-pro",
    },
}

# Config file locations
GLOBAL_CONFIG_DIR = "~/.agent"
GLOBAL_CONFIG_FILE = "config.jsonc"
PROJECT_CONFIG_FILES = ("agent.jsonc", "agent.json", ".agent/config.jsonc")

DEFAULT_SESSIONS_DIR = "~/.agent/sessions"
DEFAULT_PERSONAS_DIR = "~/.agent/agents"
