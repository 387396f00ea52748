"""
Command-line entry point.

Runs one request against a session stored as JSON on disk:

    python main.py --session demo --workdir ~/src/project "list files"

Progress events are printed to stderr and the final answer to stdout.
Ctrl-C requests interruption of the running turn.
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys

from agent import LLMService, RequestHandler
from config import PersonaStore, create_provider_registry, get_config, get_working_directory
from core.events import Event
from core.exceptions import SessionNotFound
from core.logging_config import setup_logging
from core.mcp import get_mcp_registry
from core.sessions import SessionStateManager
from core.store import JsonFileSessionStore

logger = logging.getLogger(__name__)


class ConsoleEventBus:
    """Prints progress events as they arrive."""

    def __init__(self, stream=sys.stderr):
        self.stream = stream

    async def publish(self, event: Event) -> None:
        props = event.properties
        if event.type == "tool_execution_start":
            line = f"> {props.get('descriptiveText') or props.get('tool')}"
        elif event.type == "tool_execution_complete":
            line = f"< {props.get('tool')} done"
        elif event.type == "interim_content":
            line = props.get("content") or ""
        elif event.type == "gerund_generation":
            line = f"{props.get('gerund')}..."
        elif event.type == "error":
            line = f"error: {props.get('error', {}).get('message')}"
        elif event.type == "interrupt_complete":
            line = "[interrupted]"
        else:
            return
        print(line, file=self.stream, flush=True)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one coding-agent request against a session")
    parser.add_argument("message", help="User message")
    parser.add_argument("--session", required=True, help="Session id")
    parser.add_argument("--workdir", help="Working directory that confines tool I/O")
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    config = get_config()
    bus = ConsoleEventBus()
    sessions = SessionStateManager(
        JsonFileSessionStore(os.path.expanduser(config.sessions.store_dir)),
        event_bus=None,
        ttl_seconds=config.sessions.ttl_seconds,
    )
    llm = LLMService(config, create_provider_registry(config.model_providers), sessions)
    mcp_registry = get_mcp_registry()
    await mcp_registry.sync_with_config(config.mcp_servers())
    handler = RequestHandler(sessions, llm, PersonaStore(config.agent.personas_dir), mcp_registry)

    working_directory = os.path.abspath(os.path.expanduser(args.workdir)) if args.workdir else None
    try:
        await sessions.get_session(args.session)
        if working_directory:
            await sessions.set_working_directory(args.session, working_directory)
    except SessionNotFound:
        logger.info("Creating session %s", args.session)
        await sessions.create_session(args.session, working_directory or get_working_directory())

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(
        signal.SIGINT, lambda: asyncio.ensure_future(sessions.request_interruption(args.session))
    )
    sessions.start_sweeper()
    try:
        result = await handler.handle_request(args.session, args.message, progress_sink=bus)
    finally:
        loop.remove_signal_handler(signal.SIGINT)
        await sessions.close()
        await mcp_registry.close()

    if result.get("interrupted"):
        return 130
    message = result.get("message") or {}
    content = message.get("content")
    print(content if isinstance(content, str) else json.dumps(content))
    return 1 if result.get("error") else 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.log_level)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
