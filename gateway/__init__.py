"""
Provider Gateway.

Normalizes vendor chat APIs into one canonical request/response contract.
Drivers are selected by name from a registry; model quirks are a secondary
lookup keyed by driver and model substring.
"""

import logging

from core.models import ChatRequest, ChatResponse

from .anthropic import AnthropicDriver
from .base import BaseDriver, Credentials, sanitize_tool_calls, synthesize_call_id
from .gemini import GeminiDriver
from .ollama import OllamaDriver
from .openai import OpenAIDriver
from .quirks import ModelQuirk, find_quirk, register_quirk

logger = logging.getLogger(__name__)

_drivers: dict[str, BaseDriver] = {}


def register_driver(driver: BaseDriver) -> None:
    _drivers[driver.name] = driver


def get_driver(name: str) -> BaseDriver:
    """
    Look up a driver by name.

    Raises:
        ValueError: If no driver is registered under ``name``
    """
    driver = _drivers.get(name)
    if driver is None:
        raise ValueError(f'No provider registered for name "{name}"')
    return driver


def list_drivers() -> list[str]:
    return sorted(_drivers)


async def chat(driver_name: str, request: ChatRequest, credentials: Credentials | None = None) -> ChatResponse:
    """Send ``request`` through the named driver."""
    return await get_driver(driver_name).chat(request, credentials)


for _driver in (AnthropicDriver(), OpenAIDriver(), OllamaDriver(), GeminiDriver()):
    register_driver(_driver)

__all__ = [
    "BaseDriver",
    "Credentials",
    "ModelQuirk",
    "chat",
    "find_quirk",
    "get_driver",
    "list_drivers",
    "register_driver",
    "register_quirk",
    "sanitize_tool_calls",
    "synthesize_call_id",
]
