"""
Web fetch tool with size limits and a short-lived cache.

Responses over 5MB are rejected while streaming, HTML is reduced to text with
BeautifulSoup, and extracted text is cut at 50,000 characters. When a prompt
is given, the aux model answers it from the fetched content.
"""

import logging
import time
from typing import Any

import httpx
from bs4 import BeautifulSoup

from core.cancellation import run_cancellable
from core.constants import DEFAULT_WEB_TIMEOUT, MAX_RESPONSE_SIZE, MAX_WEB_CONTENT_CHARS, WEB_CACHE_TTL_SECONDS
from core.exceptions import Cancelled, ToolError
from core.models import Message

from .base import Tool, ToolContext
from .registry import register_tool

logger = logging.getLogger(__name__)

TOO_LARGE = "response too large (exceeds 5MB limit)"
TRUNCATED_NOTE = "... [content truncated due to length]"

REQUEST_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

WEB_PROMPT = """You answer questions about the content of a web page.
Use only the page content below. If the answer is not in the page, say so.

URL: {url}

Page content:
{content}"""


class FetchCache:
    """URL → extracted text, expiring after ``ttl`` seconds."""

    def __init__(self, ttl: float = WEB_CACHE_TTL_SECONDS, clock=time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._items: dict[str, tuple[float, str]] = {}

    def get(self, url: str) -> str | None:
        self.clean()
        item = self._items.get(url)
        return item[1] if item else None

    def set(self, url: str, content: str) -> None:
        self._items[url] = (self.clock(), content)

    def clean(self) -> None:
        now = self.clock()
        for url in [u for u, (stamp, _) in self._items.items() if now - stamp > self.ttl]:
            del self._items[url]

    def clear(self) -> None:
        self._items.clear()


_cache = FetchCache()


def get_fetch_cache() -> FetchCache:
    return _cache


async def fetch_url(url: str, timeout: float = DEFAULT_WEB_TIMEOUT) -> tuple[str, str]:
    """
    Fetch a URL with size limit enforcement.

    Args:
        url: URL to fetch
        timeout: Request timeout in seconds

    Returns:
        Tuple of (decoded body, content type)

    Raises:
        ToolError: For invalid URLs, oversized responses and HTTP failures
    """
    if not url or not isinstance(url, str):
        raise ToolError("URL must be a non-empty string")
    if not url.startswith(("http://", "https://")):
        raise ToolError("URL must start with http:// or https://")

    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, headers=REQUEST_HEADERS) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()

                content_length = response.headers.get("content-length")
                if content_length and content_length.isdigit() and int(content_length) > MAX_RESPONSE_SIZE:
                    raise ToolError(TOO_LARGE)

                chunks = []
                total_size = 0
                async for chunk in response.aiter_bytes():
                    chunks.append(chunk)
                    total_size += len(chunk)
                    if total_size > MAX_RESPONSE_SIZE:
                        raise ToolError(TOO_LARGE)
                data = b"".join(chunks)

                content_type = response.headers.get("content-type", "")
                encoding = "utf-8"
                if "charset=" in content_type:
                    encoding = content_type.split("charset=")[1].split(";")[0].strip() or "utf-8"
                try:
                    return data.decode(encoding), content_type
                except (UnicodeDecodeError, LookupError):
                    return data.decode("latin-1"), content_type
    except httpx.TimeoutException as e:
        raise ToolError(f"Request timed out after {timeout}s") from e
    except httpx.HTTPStatusError as e:
        raise ToolError(
            f"Failed to fetch content from {url}. Status: {e.response.status_code} {e.response.reason_phrase}"
        ) from e
    except httpx.RequestError as e:
        raise ToolError(f"Failed to fetch content from {url}. Reason: {e}") from e


def looks_like_html(body: str, content_type: str) -> bool:
    head = body.lstrip()[:100].lower()
    return "text/html" in content_type or head.startswith("<!doctype") or head.startswith("<html")


def html_to_text(html: str) -> str:
    """Visible text of an HTML document, one block per line."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template", "svg"]):
        tag.decompose()
    lines = (line.strip() for line in soup.get_text("\n").splitlines())
    return "\n".join(line for line in lines if line)


def truncate_content(text: str, limit: int = MAX_WEB_CONTENT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATED_NOTE


@register_tool
class WebFetchTool(Tool):
    name = "WebFetchTool"
    description = (
        "- Fetches content from a URL and, when a prompt is given, answers the prompt from that content "
        "with a small, fast model.\n"
        "- HTML is converted to plain text; results are cached for 15 minutes.\n"
        "- Content over 50,000 characters is truncated."
    )
    parameters = {
        "type": "object",
        "properties": {
            "url": {"type": "string", "description": "The URL to fetch content from"},
            "prompt": {"type": "string", "description": "The question to answer from the fetched content"},
        },
        "required": ["url"],
        "additionalProperties": False,
    }

    def get_descriptive_text(self, args: dict[str, Any]) -> str | None:
        return f"Fetching {args.get('url')}"

    async def execute(self, args: dict[str, Any], context: ToolContext) -> Any:
        url = (args.get("url") or "").strip()
        prompt = args.get("prompt")

        cache = get_fetch_cache()
        content = cache.get(url)
        if content is None:
            body, content_type = await run_cancellable(fetch_url(url), context.cancel_token)
            content = html_to_text(body) if looks_like_html(body, content_type) else body
            content = truncate_content(content)
            cache.set(url, content)
        else:
            logger.debug("Web fetch cache hit: %s", url)

        if not prompt:
            return {"url": url, "content": content}
        return await self._answer(url, content, prompt, context)

    async def _answer(self, url: str, content: str, prompt: str, context: ToolContext) -> Any:
        try:
            response = await context.llm.call_by_type(
                "aux",
                [
                    Message(role="system", content=WEB_PROMPT.format(url=url, content=content)),
                    Message(role="user", content=prompt),
                ],
                session_id=None if context.is_sub_session else context.session_id,
                cancel_token=context.cancel_token,
            )
        except Cancelled:
            raise
        except Exception as e:
            logger.warning("Web fetch summarization failed for %s: %s", url, e)
            return {"url": url, "content": content}
        return {"url": url, "result": response.content or ""}
