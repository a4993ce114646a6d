import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from cachetools import TTLCache

from discover.config import Settings
from discover.models.article import Article, FeedPage, Heading, PostSummary
from discover.services.errors import MissingCredentials, ProviderError, UpstreamMalformed, UpstreamUnavailable
from discover.utils import add_heading_ids, extract_headings, strip_tags, time_ago

log = logging.getLogger("discover.wordpress")

POSTS_PATH = "/wp-json/wp/v2/posts"

# article page: fetch 6 latest, drop the current one, keep 5
RELATED_FETCH = 6
RELATED_KEEP = 5

# =========================
# Shaping
# =========================
def _rendered(post: Dict[str, Any], key: str) -> str:
    v = post.get(key)
    if isinstance(v, dict):
        return v.get("rendered") or ""
    return v or ""

def _first(items: Any) -> Dict[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}

def embedded_meta(post: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """Author name, first category and featured image from an ``_embed`` response."""
    emb = post.get("_embedded") or {}
    category = None
    for group in emb.get("wp:term") or []:
        for term in group or []:
            if isinstance(term, dict) and term.get("taxonomy") == "category":
                category = term.get("name")
                break
        if category:
            break
    return {
        "author": _first(emb.get("author")).get("name"),
        "category": category,
        "image_url": _first(emb.get("wp:featuredmedia")).get("source_url"),
    }

def _published(post: Dict[str, Any]) -> datetime:
    return datetime.fromisoformat(post.get("date_gmt") or post["date"])

def build_summary(post: Any, now: Optional[datetime] = None) -> PostSummary:
    if not isinstance(post, dict):
        raise UpstreamMalformed("wordpress", "post is not an object")
    try:
        return PostSummary(
            id=post["id"],
            slug=post["slug"],
            title=_rendered(post, "title"),
            date=post["date"],
            time_ago=time_ago(_published(post), now, compact=True),
            excerpt=strip_tags(_rendered(post, "excerpt")).strip(),
            **embedded_meta(post),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamMalformed("wordpress", f"post: {e!r}") from e

def build_article(post: Any, related: Sequence[Any] = (), now: Optional[datetime] = None) -> Article:
    """Shape a WordPress post for the article page (TOC, anchors, relative date, related cards)."""
    if not isinstance(post, dict):
        raise UpstreamMalformed("wordpress", "post is not an object")
    try:
        body = _rendered(post, "content")
        others = [p for p in related if isinstance(p, dict) and p.get("id") != post["id"]]
        return Article(
            id=post["id"],
            slug=post["slug"],
            title=_rendered(post, "title"),
            date=post["date"],
            time_ago=time_ago(_published(post), now),
            description=strip_tags(_rendered(post, "excerpt")).strip(),
            content=add_heading_ids(body),
            headings=[Heading(**h) for h in extract_headings(body)],
            related=[build_summary(p, now) for p in others[:RELATED_KEEP]],
            **embedded_meta(post),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamMalformed("wordpress", f"post: {e!r}") from e

# =========================
# Client
# =========================
class WordPressClient:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.cache: TTLCache = TTLCache(maxsize=128, ttl=settings.POSTS_REVALIDATE)

    def _client(self) -> httpx.AsyncClient:
        if not self.settings.WORDPRESS_URL:
            raise MissingCredentials("wordpress")
        base = self.settings.WORDPRESS_URL.rstrip("/")
        return httpx.AsyncClient(base_url=base, timeout=self.settings.HTTP_TIMEOUT)

    async def _get_posts(self, client: httpx.AsyncClient, params: Dict[str, Any]) -> Tuple[List[Any], httpx.Headers]:
        try:
            r = await client.get(POSTS_PATH, params={**params, "_embed": 1})
        except httpx.HTTPError as e:
            raise UpstreamUnavailable("wordpress", f"{type(e).__name__}: {e}") from e
        if r.status_code >= 400:
            raise UpstreamUnavailable("wordpress", f"HTTP {r.status_code}", status_code=r.status_code)
        try:
            posts = r.json()
        except ValueError as e:
            raise UpstreamMalformed("wordpress", "body is not JSON") from e
        if not isinstance(posts, list):
            raise UpstreamMalformed("wordpress", "expected a list of posts")
        return posts, r.headers

    async def _by_slug(self, client: httpx.AsyncClient, slug: str) -> Optional[Dict[str, Any]]:
        posts, _ = await self._get_posts(client, {"slug": slug})
        if not posts:
            return None
        if not isinstance(posts[0], dict):
            raise UpstreamMalformed("wordpress", "post is not an object")
        return posts[0]

    async def get_post_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        async with self._client() as client:
            return await self._by_slug(client, slug)

    async def get_posts(self, page: int = 1, per_page: int = 10) -> FeedPage:
        key = ("feed", page, per_page)
        if key in self.cache:
            return self.cache[key]

        async with self._client() as client:
            posts, headers = await self._get_posts(client, {"page": page, "per_page": per_page})
        try:
            total = int(headers.get("X-WP-Total", len(posts)))
            total_pages = int(headers.get("X-WP-TotalPages", 1 if posts else 0))
        except ValueError as e:
            raise UpstreamMalformed("wordpress", "bad pagination headers") from e

        feed = FeedPage(
            page=page,
            per_page=per_page,
            total=total,
            total_pages=total_pages,
            posts=[build_summary(p) for p in posts],
        )
        self.cache[key] = feed
        return feed

    async def get_article(self, slug: str) -> Optional[Article]:
        """Post and the latest posts (for "related") are fetched together; related is optional."""
        async with self._client() as client:
            post, latest = await asyncio.gather(
                self._by_slug(client, slug),
                self._get_posts(client, {"page": 1, "per_page": RELATED_FETCH}),
                return_exceptions=True,
            )

        if isinstance(post, BaseException):
            raise post
        if post is None:
            log.info("post %s not found", slug)
            return None

        related: List[Any] = []
        if isinstance(latest, BaseException):
            if not isinstance(latest, ProviderError):
                raise latest
            log.warning("related posts for %s unavailable: %s", slug, latest)
        else:
            related = latest[0]

        try:
            return build_article(post, related)
        except UpstreamMalformed:
            if not related:
                raise
            log.warning("related posts for %s unusable, dropping them", slug)
            return build_article(post)
