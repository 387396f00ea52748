"""
Configuration module for the agent project.

Exports the main configuration classes and functions for use throughout the application.
"""

from .agent_config import AgentConfig
from .defaults import DEFAULT_MODEL_PROVIDERS
from .loader import get_config, get_working_directory, load_config, load_config_file, merge_configs, strip_jsonc_comments
from .main_config import Config
from .mcp_server_config import MCPServerConfig
from .models_config import ModelRole, ModelsConfig
from .personas import Persona, PersonaStore, parse_persona
from .providers import ModelProvider, ProviderRegistry, create_provider_registry
from .sandbox_config import SandboxConfig
from .sessions_config import SessionsConfig
from .tools_config import ToolsConfig

__all__ = [
    # Constants
    "DEFAULT_MODEL_PROVIDERS",
    # Config models
    "Config",
    "AgentConfig",
    "ModelRole",
    "ModelsConfig",
    "SandboxConfig",
    "SessionsConfig",
    "ToolsConfig",
    "MCPServerConfig",
    # Providers
    "ModelProvider",
    "ProviderRegistry",
    "create_provider_registry",
    # Personas
    "Persona",
    "PersonaStore",
    "parse_persona",
    # Loader functions
    "load_config",
    "get_config",
    "get_working_directory",
    "load_config_file",
    "merge_configs",
    "strip_jsonc_comments",
]
