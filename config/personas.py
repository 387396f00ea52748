"""Agent personas.

A persona is a markdown file with YAML frontmatter kept in the personas
directory (``~/.agent/agents`` by default). The frontmatter names the persona,
restricts its tools and may override model roles; the body replaces the main
system prompt.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .defaults import DEFAULT_PERSONAS_DIR

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"^---\n(.*?)\n---\n?(.*)$", re.DOTALL)


@dataclass
class Persona:
    """A named agent configuration."""

    id: str
    name: str
    description: str = ""
    system_prompt: str = ""
    tools: Optional[list[str]] = None
    models: dict[str, dict[str, Any]] = field(default_factory=dict)
    file_path: Optional[Path] = None

    def allows_tool(self, tool_name: str) -> bool:
        return self.tools is None or tool_name in self.tools


def parse_persona(persona_id: str, content: str, file_path: Path | None = None) -> Optional[Persona]:
    """
    Parse persona markdown.

    Args:
        persona_id: Identifier (file stem) referenced by a session's ``agentId``
        content: File content
        file_path: Source file, for logging

    Returns:
        Persona, or None if the frontmatter is missing or invalid
    """
    match = FRONTMATTER_RE.match(content)
    if not match:
        logger.warning("Persona file %s missing YAML frontmatter", file_path or persona_id)
        return None

    try:
        frontmatter = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        logger.warning("Invalid YAML frontmatter in %s: %s", file_path or persona_id, e)
        return None

    if not isinstance(frontmatter, dict):
        logger.warning("Frontmatter in %s is not a dictionary", file_path or persona_id)
        return None

    tools = frontmatter.get("tools")
    if tools is not None and not isinstance(tools, list):
        tools = [t.strip() for t in str(tools).split(",") if t.strip()]

    models = frontmatter.get("models") or {}
    if not isinstance(models, dict):
        models = {}

    return Persona(
        id=persona_id,
        name=str(frontmatter.get("name") or persona_id),
        description=str(frontmatter.get("description") or ""),
        system_prompt=match.group(2).strip(),
        tools=tools,
        models=models,
        file_path=file_path,
    )


class PersonaStore:
    """Loads personas from a directory on demand."""

    def __init__(self, personas_dir: Path | str | None = None):
        self.personas_dir = Path(personas_dir or DEFAULT_PERSONAS_DIR).expanduser()

    def get(self, persona_id: str | None) -> Optional[Persona]:
        if not persona_id:
            return None
        path = self.personas_dir / f"{persona_id}.md"
        try:
            content = path.read_text(encoding="utf-8")
        except OSError:
            logger.warning("Persona %s not found in %s", persona_id, self.personas_dir)
            return None
        return parse_persona(persona_id, content, path)

    def list_personas(self) -> list[Persona]:
        if not self.personas_dir.exists():
            return []
        personas = []
        for path in sorted(self.personas_dir.glob("*.md")):
            persona = self.get(path.stem)
            if persona:
                personas.append(persona)
        return personas
