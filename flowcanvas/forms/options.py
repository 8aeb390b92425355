import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..errors import SchemaFetchError
from .components import UIOption

logger = logging.getLogger(__name__)

# (option family, controlling field value); e.g. ("models", "openai")
OptionKey = Tuple[str, Optional[str]]
OptionFetcher = Callable[[Optional[str]], Awaitable[List[UIOption]]]


def is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def should_reset(current_value: Any, options: Optional[List[UIOption]], loading: bool) -> bool:
    """
    Decide whether a cascading select must drop its current value.

    Only true when the option set for the current controlling value has
    finished loading and the selection is not in it. Nothing is reset while a
    fetch is in flight or before the first fetch ever completed, and an empty
    selection never needs resetting.
    """
    if loading or options is None or is_empty(current_value):
        return False
    allowed = {option.value for option in options}
    if isinstance(current_value, list):
        return any(str(v) not in allowed for v in current_value)
    return str(current_value) not in allowed


class OptionResolver:
    """
    Cache of dynamically fetched option lists.

    Entries are keyed by (family, controlling value) and written only under
    the key that triggered the fetch, so a response that arrives after the
    user moved on lands in its own slot and cannot clobber newer state.
    Concurrent requests for the same key share one fetch.
    """

    def __init__(self, fetchers: Optional[Dict[str, OptionFetcher]] = None):
        self.fetchers: Dict[str, OptionFetcher] = dict(fetchers or {})
        self._options: Dict[OptionKey, List[UIOption]] = {}
        self._inflight: Dict[OptionKey, "asyncio.Future"] = {}

    def register(self, family: str, fetcher: OptionFetcher):
        self.fetchers[family] = fetcher

    def get(self, key: OptionKey) -> Optional[List[UIOption]]:
        return self._options.get(key)

    def is_loaded(self, key: OptionKey) -> bool:
        return key in self._options

    def is_loading(self, key: OptionKey) -> bool:
        return key in self._inflight

    def seed(self, family: str, dependent: Optional[str], options: List[UIOption]):
        self._options[(family, dependent)] = list(options)

    def invalidate(self, family: Optional[str] = None):
        if family is None:
            self._options = {}
        else:
            self._options = {k: v for k, v in self._options.items() if k[0] != family}

    async def ensure(self, family: str, dependent: Optional[str] = None) -> Optional[List[UIOption]]:
        """Return the options for a key, fetching them once if needed. None if unavailable."""
        key = (family, dependent)
        if key in self._options:
            return self._options[key]

        pending = self._inflight.get(key)
        if pending is not None:
            return await pending

        fetcher = self.fetchers.get(family)
        if fetcher is None:
            logger.warning(f"No option fetcher registered for '{family}'")
            return None

        future = asyncio.ensure_future(self._fetch(key, fetcher))
        self._inflight[key] = future
        try:
            return await future
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    async def _fetch(self, key: OptionKey, fetcher: OptionFetcher) -> Optional[List[UIOption]]:
        family, dependent = key
        try:
            options = await fetcher(dependent)
        except SchemaFetchError as e:
            logger.error(f"Error fetching {family} options for {dependent!r}: {e}")
            return None
        self._options[key] = list(options)
        logger.info(f"Loaded {len(self._options[key])} {family} option(s) for {dependent!r}")
        return self._options[key]
