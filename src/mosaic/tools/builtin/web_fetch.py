"""Web fetch tool for HTTP/HTTPS pages."""

import logging
import time
from typing import Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from mosaic.tools.base import Tool, ToolDefinition, ToolParameter, ToolResult

logger = logging.getLogger(__name__)


class WebFetchTool(Tool):
    """Fetch a URL and return its readable text."""

    def __init__(self, config: dict) -> None:
        """
        Initialize web fetch tool.

        Args:
            config: Tool configuration dictionary
        """
        self.config = config
        self.timeout_seconds = config.get("timeout_seconds", 30)
        self.max_response_size_mb = config.get("max_response_size_mb", 5)
        self.max_redirects = config.get("max_redirects", 10)
        self.user_agent = config.get("user_agent", "mosaic-agent/0.1")
        self.allowed_schemes = config.get("allowed_schemes", ["http", "https"])
        self.blocked_domains = config.get("blocked_domains", [])

        self.definition = ToolDefinition(
            name="fetch",
            namespace="web",
            description=(
                "Fetch a web page over HTTP/HTTPS. HTML is reduced to its title "
                "and plain text; other content types are returned as-is."
            ),
            parameters=[
                ToolParameter(
                    name="url",
                    type="string",
                    description="URL to fetch (http:// or https://)",
                    required=True,
                ),
                ToolParameter(
                    name="parse_html",
                    type="boolean",
                    description="Reduce HTML to plain text (default: true)",
                    required=False,
                ),
            ],
            timeout_seconds=self.timeout_seconds,
        )

    async def execute(self, url: str, parse_html: bool = True) -> ToolResult:
        validation_error = self._validate_url(url)
        if validation_error:
            return ToolResult(success=False, error=validation_error)

        start_time = time.time()
        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                max_redirects=self.max_redirects,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout_seconds,
            ) as client:
                response = await client.get(url)
        except httpx.TooManyRedirects:
            return ToolResult(success=False, error=f"Too many redirects (max: {self.max_redirects})")
        except httpx.TimeoutException:
            return ToolResult(
                success=False, error=f"Request timed out after {self.timeout_seconds} seconds"
            )
        except httpx.ConnectError as e:
            logger.error(f"Connection error fetching {url}: {e}")
            return ToolResult(
                success=False,
                error=f"Connection error: Could not connect to {urlparse(url).netloc}",
            )
        except httpx.HTTPError as e:
            logger.error(f"Error fetching {url}: {e}", exc_info=True)
            return ToolResult(success=False, error=f"Fetch error: {e}")

        response_time_ms = int((time.time() - start_time) * 1000)

        content_length = response.headers.get("content-length")
        if content_length and int(content_length) / (1024 * 1024) > self.max_response_size_mb:
            return ToolResult(
                success=False,
                error=f"Response exceeds maximum allowed size ({self.max_response_size_mb}MB)",
            )

        if response.status_code >= 400:
            kind = "Client error" if response.status_code < 500 else "Server error"
            return ToolResult(
                success=False,
                error=f"HTTP {response.status_code}: {kind} - {response.reason_phrase}",
                metadata={"status_code": response.status_code, "url": str(response.url)},
            )

        content_type = response.headers.get("content-type", "")
        is_html = "html" in content_type.lower()
        title: Optional[str] = None
        content = response.text
        if parse_html and is_html:
            title, content = self._parse_html(content)

        logger.info(
            f"Fetched {url} - Status: {response.status_code}, "
            f"Size: {len(content)} chars, Time: {response_time_ms}ms"
        )

        data = {
            "url": str(response.url),
            "content": content,
            "status_code": response.status_code,
            "content_type": content_type,
        }
        if title:
            data["title"] = title

        return ToolResult(
            success=True,
            data=data,
            metadata={"response_time_ms": response_time_ms, "redirects": len(response.history)},
        )

    def _validate_url(self, url: str) -> Optional[str]:
        """
        Validate URL format and security constraints.

        Returns:
            Error message if invalid, None if valid
        """
        parsed = urlparse(url)
        if parsed.scheme not in self.allowed_schemes:
            return (
                f"URL scheme '{parsed.scheme}' not allowed. "
                f"Allowed schemes: {', '.join(self.allowed_schemes)}"
            )
        if not parsed.netloc:
            return "Invalid URL: missing domain"
        if parsed.netloc in self.blocked_domains:
            return f"Domain blocked by configuration: {parsed.netloc}"
        return None

    def _parse_html(self, html: str) -> tuple[Optional[str], str]:
        """
        Reduce HTML to (title, plain text), dropping scripts, styles and chrome.
        """
        soup = BeautifulSoup(html, "html.parser")

        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else None

        for tag in soup(["script", "style", "nav", "footer", "header"]):
            tag.decompose()

        body = soup.find("body") or soup
        lines = (line.strip() for line in body.get_text(separator="\n").split("\n"))
        return title or None, "\n".join(line for line in lines if line)
