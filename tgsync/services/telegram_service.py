# tgsync/services/telegram_service.py
import logging
import re
from typing import Any, AsyncIterator, Callable, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from bs4 import BeautifulSoup

from tgsync.exceptions import SourceFetchError
from tgsync.schemas import PageResult
from tgsync.utils import now_ms, parse_datetime

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
DEFAULT_MAX_ITERATIONS = 50


def _pick(node, spec: Dict[str, Any]):
    pick = spec.get("pick", "text")
    if pick == "attr":
        value = node.get(spec["attr"])
        if isinstance(value, list):
            value = " ".join(value)
    elif pick == "html":
        value = node.decode_contents()
    elif pick == "exists":
        return True
    else:
        value = node.get_text(" ", strip=True)

    if value is not None and spec.get("regex"):
        match = re.search(spec["regex"], value)
        value = (match.group(1) if match.groups() else match.group(0)) if match else None
    if value is not None and spec.get("type") == "int":
        try:
            value = int(value)
        except ValueError:
            value = None
    return value


def extract_field(root, spec: Dict[str, Any]):
    """
    Extract one declared field below ``root``.

    Args:
        root: BeautifulSoup node to search from.
        spec: {"selector", "pick" (text|html|attr|exists), "attr", "regex",
               "type", "many", "fields"}.

    Returns:
        A scalar, a dict (nested "fields"), or a list of either when "many" is set.
    """
    selector = spec.get("selector")
    if spec.get("many"):
        nodes = root.select(selector) if selector else [root]
        if "fields" in spec:
            return [extract_fields(node, spec["fields"]) for node in nodes]
        return [v for v in (_pick(node, spec) for node in nodes) if v is not None]

    node = root.select_one(selector) if selector else root
    if node is None:
        return False if spec.get("pick") == "exists" else None
    if "fields" in spec:
        return extract_fields(node, spec["fields"])
    return _pick(node, spec)


def extract_fields(root, fields: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    return {key: extract_field(root, spec) for key, spec in fields.items()}


def extract_page(html: str, config: Dict[str, Any]) -> Dict[str, Any]:
    soup = BeautifulSoup(html, "html.parser")
    data = extract_fields(soup, config.get("fields", {}))
    items = config.get("items")
    if items:
        data[items["key"]] = [extract_fields(node, items["fields"]) for node in soup.select(items["selector"])]
    return data


class TelegramWebService:
    """
    Fetches public channel pages (t.me/s/<handle>) and extracts records
    according to a declarative config.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = now_ms,
    ):
        self.timeout = timeout
        self.client = client
        self._owns_client = client is None
        self._clock = clock

    async def fetch_page(self, url: str) -> str:
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise SourceFetchError(f"Failed to fetch {url}: {e}") from e

        # Channels without a public preview redirect away from /s/<handle>
        if response.history and response.url.path != httpx.URL(url).path:
            raise SourceFetchError(f"Redirected from {url} to {response.url}")
        return response.text

    async def parse_by_config(self, config: Dict[str, Any], context: Dict[str, Any]) -> AsyncIterator[PageResult]:
        """
        Yield one PageResult per fetched page until the source is exhausted.

        Pagination follows config["paginate"]: the smallest cursor value on a
        page becomes the ``before`` parameter of the next request. Iteration
        also ends once a page's oldest item is older than
        context["until_published_at"]. The sequence is demand-driven: the
        next page is requested only when the consumer asks for it.
        """
        start_time = self._clock()
        target = config["target"].format(**context)
        paginate = config.get("paginate")
        items_key = (config.get("items") or {}).get("key")
        max_iterations = config.get("max_iterations", DEFAULT_MAX_ITERATIONS)
        until_published_at = parse_datetime(context.get("until_published_at"))

        before = None
        iteration = 0
        while iteration < max_iterations:
            url = target if before is None else f"{target}?{urlencode({paginate['param']: before})}"
            logger.debug(f"Fetching {url} (iteration {iteration})")
            data = extract_page(await self.fetch_page(url), config)

            items: List[Dict[str, Any]] = (data.get(items_key) or []) if items_key else []
            published = [d for d in (parse_datetime(i.get("published_at")) for i in items) if d]
            last_published_at = min(published) if published else None

            next_before = None
            if paginate and items:
                cursors = [i.get(paginate["cursor"]) for i in items if isinstance(i.get(paginate["cursor"]), int)]
                next_before = min(cursors) if cursors else None

            yield PageResult(
                data=data,
                iteration=iteration,
                start_time=start_time,
                before=next_before,
                last_published_at=last_published_at,
            )

            if not paginate or not items or next_before is None:
                break
            if before is not None and next_before >= before:
                break
            if until_published_at and last_published_at and last_published_at < until_published_at:
                break
            before = next_before
            iteration += 1

    async def __aenter__(self):
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=DEFAULT_HEADERS,
                follow_redirects=True,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_client and self.client is not None:
            await self.client.aclose()
            self.client = None
