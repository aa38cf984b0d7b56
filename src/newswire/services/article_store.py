"""
Persistence hook for monitor output.

The engine never owns a database. Anything with `async save(articles) -> int`
can receive a monitor's new articles:

    handle = await registry.start_monitoring(options, on_new_articles=persist_new_articles(store))
"""

import logging
from typing import Awaitable, Callable, List, Protocol, runtime_checkable

from newswire.schemas.article import Article
from newswire.schemas.monitor import NewArticlesEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class ArticleStore(Protocol):
    async def save(self, articles: List[Article]) -> int:
        """Persist articles; returns how many were actually saved"""
        ...


def persist_new_articles(store: ArticleStore) -> Callable[[NewArticlesEvent], Awaitable[int]]:
    """Monitor callback that saves every new batch to `store`"""

    async def _on_new_articles(event: NewArticlesEvent) -> int:
        saved = await store.save(event.articles)
        logger.info(f"[Store] {event.monitor_id}: saved {saved}/{event.count} new articles")
        return saved

    return _on_new_articles
