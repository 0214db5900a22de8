"""Web tools: instant-answer search and page scraping."""

import re
from typing import Any, List

import httpx
from bs4 import BeautifulSoup

from ..core.logging import get_logger
from .base import argument, tool

logger = get_logger(__name__)

DUCKDUCKGO_URL = "https://api.duckduckgo.com/"
MAX_TEXT_LENGTH = 4000


def _timeout() -> float:
    from ..config import get_config
    return get_config().tool_timeout


@tool("web_search", "Search the web for free via DuckDuckGo Instant Answer API and return a short summary.")
async def web_search(input: Any) -> str:
    query = str(argument(input, "query", "")).strip()
    if not query:
        raise ValueError("web_search expects a non-empty query")

    logger.info(f"Searching DuckDuckGo for: {query!r}")
    async with httpx.AsyncClient(timeout=_timeout()) as client:
        resp = await client.get(
            DUCKDUCKGO_URL,
            params={"q": query, "format": "json", "no_redirect": "1", "no_html": "1"},
        )
    if resp.status_code >= 400:
        raise RuntimeError(f"DuckDuckGo API error {resp.status_code}")

    data = resp.json()
    parts: List[str] = []
    if data.get("AbstractText"):
        parts.append(data["AbstractText"])
    related = [
        f"- {topic['Text']}"
        for topic in (data.get("RelatedTopics") or [])[:3]
        if isinstance(topic, dict) and topic.get("Text")
    ]
    if related:
        parts.append("Related topics:\n" + "\n".join(related))

    if not parts:
        message = f"No instant answer, but I looked up: {query}"
        logger.debug(message)
        return message

    summary = "\n\n".join(parts)
    logger.debug(f"Search result preview: {summary[:160]}")
    return summary


def extract_visible_text(html: str) -> str:
    """Return the whitespace-collapsed visible text of an HTML document."""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["head", "script", "style", "noscript", "template"]):
        element.decompose()
    return re.sub(r"\s+", " ", soup.get_text(separator=" ")).strip()


@tool("scrape_url", "Fetch a web page and return the cleaned visible text content for analysis.")
async def scrape_url(input: Any) -> str:
    url = str(argument(input, "url", "")).strip()
    if not url:
        raise ValueError("scrape_url expects a URL")

    logger.info(f"Fetching and scraping: {url}")
    async with httpx.AsyncClient(timeout=_timeout(), follow_redirects=True) as client:
        resp = await client.get(url)
    if resp.status_code >= 400:
        raise RuntimeError(f"Failed to fetch {url}: {resp.status_code}")

    text = extract_visible_text(resp.text)
    return text[:MAX_TEXT_LENGTH] or "No text content found."
