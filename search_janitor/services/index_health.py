"""
Search Janitor — Index health checks.

Compares how many objects the site database holds with how many documents
the live index holds, per indexable (and per post type for posts).
"""

import logging
from typing import Any

from search_janitor.schemas import IndexableCollection
from search_janitor.services.search_host import SearchHostClient, SearchHostError

logger = logging.getLogger(__name__)


class HealthCheckError(Exception):
    """A count could not be obtained from the database or the index."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


async def validate_index_entity_count(
    query_args: dict[str, Any],
    indexable: IndexableCollection,
    client: SearchHostClient,
) -> dict:
    """
    Verify the difference in number for a given entity between the DB and the index.

    ``query_args`` are the object query criteria, e.g.::

        {"post_type": "page", "post_status": ["publish"]}

    Returns ``{"entity", "type", "db_total", "es_total", "diff"}`` where
    ``diff`` is ``es_total - db_total``. Raises ``HealthCheckError``.
    """
    try:
        db_total = int(await client.count_db(indexable, query_args))
    except (SearchHostError, TypeError, ValueError) as e:
        raise HealthCheckError("db_query_error", f"failure querying the DB: {e}") from e

    try:
        # Exact totals, the index stops counting at 10,000 by default
        es_total = int(await client.count_es(indexable, {**query_args, "track_total_hits": True}))
    except (SearchHostError, TypeError, ValueError) as e:
        raise HealthCheckError("es_query_error", f"failure querying ES: {e}") from e

    return {
        "entity": indexable.slug,
        "type": query_args.get("post_type", "N/A"),
        "db_total": db_total,
        "es_total": es_total,
        "diff": es_total - db_total,
    }


async def _get_indexable(client: SearchHostClient, slug: str) -> IndexableCollection | None:
    try:
        return await client.get(slug)
    except SearchHostError as e:
        logger.warning("Could not load %s indexable: %s", slug, e)
        return None


async def validate_index_users_count(client: SearchHostClient) -> list[dict]:
    """Validate DB and index user counts."""
    users = await _get_indexable(client, "user")
    if not users:
        return [{
            "entity": "user",
            "type": "N/A",
            "error": "Error retrieving users indexables from Elasticsearch",
        }]

    try:
        result = await validate_index_entity_count({"order": "asc"}, users, client)
    except HealthCheckError as e:
        result = {"entity": users.slug, "type": "N/A", "error": e.message}
    return [result]


async def validate_index_posts_count(client: SearchHostClient) -> list[dict]:
    """Validate DB and index post counts, one entry per indexable post type."""
    posts = await _get_indexable(client, "post")
    if not posts:
        return [{
            "entity": "post",
            "type": "N/A",
            "error": "Error retrieving posts indexables from Elasticsearch",
        }]

    results = []
    for post_type in posts.post_types:
        query_args = {
            "post_type": post_type,
            "post_status": list(posts.post_statuses),
        }
        try:
            result = await validate_index_entity_count(query_args, posts, client)
        except HealthCheckError as e:
            # Record and move on to the next post type
            result = {"entity": posts.slug, "type": post_type, "error": e.message}
        results.append(result)

    return results
