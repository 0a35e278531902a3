"""
WordPress REST API client
- Paged fetch of whole collections (posts, pages, media, categories, tags, users)
- Single item fetch by id for posts, pages and media (404 means "not there")
- Best-effort site info lookup that never fails

All requests go through one requests.Session with the retry policy mounted
on its transport adapters.
"""

import json
import logging
import time
from dataclasses import dataclass, fields
from enum import Enum

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

UA = "WordPress-Export-JSON/1.0"
PER_PAGE = 100
DEFAULT_SITE_NAME = "WordPress Site"

logger = logging.getLogger("wp_export.client")


class ResourceKind(str, Enum):
    """Content collections exposed under /wp-json/wp/v2."""

    POSTS = "posts"
    PAGES = "pages"
    MEDIA = "media"
    CATEGORIES = "categories"
    TAGS = "tags"
    USERS = "users"

    @property
    def singular(self) -> str:
        return {
            ResourceKind.POSTS: "post",
            ResourceKind.PAGES: "page",
            ResourceKind.MEDIA: "media",
            ResourceKind.CATEGORIES: "category",
            ResourceKind.TAGS: "tag",
            ResourceKind.USERS: "user",
        }[self]


# Kinds that can be looked up one id at a time and therefore brute forced
SCANNABLE_KINDS = (ResourceKind.POSTS, ResourceKind.PAGES, ResourceKind.MEDIA)


class WordPressAPIError(Exception):
    """Base class for errors raised by WordPressClient."""

    def __init__(self, message, url=None, status_code=None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class TransportError(WordPressAPIError):
    """Network failure or an HTTP status the caller did not expect."""


class DecodeError(WordPressAPIError):
    """Response body is not the JSON shape the endpoint should return."""


@dataclass
class SiteInfo:
    name: str = ""
    description: str = ""
    url: str = ""
    home_url: str = ""
    admin_email: str = ""
    timezone: str = ""
    date_format: str = ""
    time_format: str = ""
    start_of_week: int = 0
    language: str = ""

    @classmethod
    def from_settings(cls, data: dict) -> "SiteInfo":
        """Build from /wp/v2/settings or the /wp-json/ root index.

        The two endpoints name the same things differently (title vs name,
        email vs admin_email, home vs home_url).
        """
        aliases = {
            "title": "name",
            "email": "admin_email",
            "home": "home_url",
            "timezone_string": "timezone",
        }
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            key = aliases.get(key, key)
            if key in known and value is not None and key not in values:
                values[key] = value
        return cls(**values)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def known_ids(records) -> set:
    """Collect the ids of already fetched records."""
    return {r["id"] for r in records if isinstance(r, dict) and isinstance(r.get("id"), int)}


class WordPressClient:
    """Thin client over the WordPress REST API (wp/v2)."""

    def __init__(self, site_url: str, timeout: float = 30, retries: int = 3,
                 user_agent: str = UA, auth=None, sleep: float = 0.0,
                 session: requests.Session = None):
        self.site_url = site_url.rstrip("/")
        self.base_url = self.site_url + "/wp-json/wp/v2"
        self.timeout = timeout
        self.retries = retries
        self.sleep = sleep

        if session is None:
            session = requests.Session()
            retry = Retry(
                total=retries,
                backoff_factor=0.5,
                status_forcelist=(429, 502, 503, 504),
                allowed_methods=frozenset(["GET"]),
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
        if auth:
            session.auth = auth
        self.session = session

    def _get(self, url: str, params=None) -> requests.Response:
        try:
            return self.session.get(url, params=params or {}, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"GET {url} failed: {e}", url=url) from e

    @staticmethod
    def _decode(r: requests.Response, url: str, what: str):
        try:
            return r.json()
        except ValueError as e:
            raise DecodeError(f"failed to parse {what} response: {e}", url=url,
                              status_code=r.status_code) from e

    # -- Site info -------------------------------------------------------------

    def fetch_site_info(self) -> SiteInfo:
        """Return site metadata, degrading to a minimal SiteInfo on any failure.

        Tries /wp/v2/settings first. The fallback is the /wp-json/ root index
        rather than /wp-json/wp/v2, which lists routes but carries no site name.
        """
        for url in (self.base_url + "/settings", self.site_url + "/wp-json/"):
            try:
                r = self._get(url)
            except TransportError as e:
                logger.debug("site info from %s unavailable: %s", url, e)
                continue
            if r.status_code != 200:
                logger.debug("site info from %s returned HTTP %s", url, r.status_code)
                continue
            try:
                data = r.json()
            except ValueError:
                logger.debug("site info from %s is not JSON", url)
                continue
            if not isinstance(data, dict):
                continue
            info = SiteInfo.from_settings(data)
            info.name = info.name or DEFAULT_SITE_NAME
            info.url = info.url or self.site_url
            return info

        logger.warning("could not read site info, using defaults")
        return SiteInfo(name=DEFAULT_SITE_NAME, url=self.site_url)

    # -- Collections -----------------------------------------------------------

    def paged(self, kind: ResourceKind, per_page: int = PER_PAGE):
        """Yield items across WP REST pagination.

        WordPress answers 400 (rest_post_invalid_page_number) for a page past
        the end; an empty array means the same thing.
        """
        kind = ResourceKind(kind)
        url = f"{self.base_url}/{kind.value}"
        page = 1
        while True:
            r = self._get(url, params={"page": page, "per_page": per_page})
            if r.status_code == 400:
                break
            if r.status_code != 200:
                raise TransportError(
                    f"API returned status {r.status_code} for {kind.value} page {page}",
                    url=url, status_code=r.status_code)
            items = self._decode(r, url, kind.value)
            if not isinstance(items, list) or not all(isinstance(it, dict) for it in items):
                raise DecodeError(f"expected a list of objects for {kind.value} page {page}",
                                  url=url, status_code=r.status_code)
            if not items:
                break
            yield from items
            page += 1
            if self.sleep:
                time.sleep(self.sleep)

    def fetch_all(self, kind: ResourceKind) -> list:
        """Fetch every item of a collection; raises instead of returning partial data."""
        items = list(self.paged(kind))
        logger.debug("fetched %d %s", len(items), ResourceKind(kind).value)
        return items

    def get_posts(self):
        return self.fetch_all(ResourceKind.POSTS)

    def get_pages(self):
        return self.fetch_all(ResourceKind.PAGES)

    def get_media(self):
        return self.fetch_all(ResourceKind.MEDIA)

    def get_categories(self):
        return self.fetch_all(ResourceKind.CATEGORIES)

    def get_tags(self):
        return self.fetch_all(ResourceKind.TAGS)

    def get_users(self):
        return self.fetch_all(ResourceKind.USERS)

    # -- Single items ----------------------------------------------------------

    def fetch_by_id(self, kind: ResourceKind, item_id: int):
        """Fetch one item. Returns None when the API answers 404."""
        kind = ResourceKind(kind)
        url = f"{self.base_url}/{kind.value}/{item_id}"
        r = self._get(url)
        if r.status_code == 404:
            return None
        if r.status_code != 200:
            raise TransportError(
                f"API returned status {r.status_code} for {kind.singular} {item_id}",
                url=url, status_code=r.status_code)
        item = self._decode(r, url, kind.singular)
        if not isinstance(item, dict):
            raise DecodeError(f"expected an object for {kind.singular} {item_id}",
                              url=url, status_code=r.status_code)
        return item

    def get_post_by_id(self, item_id: int):
        return self.fetch_by_id(ResourceKind.POSTS, item_id)

    def get_page_by_id(self, item_id: int):
        return self.fetch_by_id(ResourceKind.PAGES, item_id)

    def get_media_by_id(self, item_id: int):
        return self.fetch_by_id(ResourceKind.MEDIA, item_id)


def dumps_record(record) -> str:
    """Compact one-line rendering of a record for debug logs."""
    title = (record.get("title") or {})
    if isinstance(title, dict):
        title = title.get("rendered", "")
    return json.dumps({"id": record.get("id"), "title": title}, ensure_ascii=False)
