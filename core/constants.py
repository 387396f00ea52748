"""
Core constants for the agent system.

This module defines system-wide constants used across the codebase.
Following the style guide: no magic constants in code.
"""

# Web fetch limits
MAX_RESPONSE_SIZE = 5 * 1024 * 1024  # 5MB - maximum size for HTTP responses
DEFAULT_WEB_TIMEOUT = 30  # 30 seconds - default timeout for web requests
MAX_WEB_CONTENT_CHARS = 50_000  # extracted page text is cut here
WEB_CACHE_TTL_SECONDS = 15 * 60

# Session cache
SESSION_TTL_SECONDS = 10 * 60  # idle sessions are evicted from memory after this
SUB_SESSION_PREFIX = "sub_"  # sub-agent sessions are never persisted
INTERRUPTED_MESSAGE = "[Request interrupted by user]"

# Cooperative cancellation
INTERRUPT_POLL_INTERVAL_SECONDS = 0.25

# Shell execution
DEFAULT_BASH_TIMEOUT_MS = 250_000
GRACE_KILL_MS = 5_000  # SIGKILL follows SIGTERM after this grace period
MAX_BASH_OUTPUT_CHARS = 30_000
TRUNCATION_MARKER = "... [TRUNCATED]"

# Token accounting
CHARS_PER_TOKEN = 4.91  # rough estimate used when a provider reports no usage
MAX_CONTEXT_TOKENS = 1_000_000

# File tools
LS_MAX_DEPTH = 5
LS_MAX_ENTRIES = 500
VIEW_DEFAULT_LIMIT = 2000
VIEW_LARGE_FILE_LINES = 2500
GREP_MAX_FILES = 20
GREP_MAX_LINES_PER_FILE = 5
GREP_MAX_LINE_LENGTH = 150
