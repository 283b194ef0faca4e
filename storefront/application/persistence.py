"""Compare-and-set persistence helper.

Webhooks are delivered at least once and may race each other. Every
state change therefore goes through ``compare_and_set``: load a fresh
copy, apply the change, and write only if nobody else wrote in between.
Guards live inside the mutation, so a retry re-checks them against the
latest state instead of forcing a stale decision.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

from storefront.domain.base import AggregateRoot
from storefront.domain.exceptions import ConcurrentUpdateError

logger = structlog.get_logger()

A = TypeVar("A", bound=AggregateRoot)
R = TypeVar("R")

DEFAULT_ATTEMPTS = 3


@dataclass
class Mutation(Generic[A, R]):
    """Outcome of a compare-and-set write.

    Attributes:
        entity: The aggregate as written (or as loaded, if unchanged).
        result: Whatever the mutation function returned.
        changed: False when the mutation was an idempotent no-op.
    """

    entity: A
    result: R
    changed: bool


async def compare_and_set(
    load: Callable[[], Awaitable[A]],
    mutate: Callable[[A], R],
    save: Callable[[A, int], Awaitable[bool]],
    entity_type: str,
    entity_id: str,
    attempts: int = DEFAULT_ATTEMPTS,
) -> Mutation[A, R]:
    """Apply ``mutate`` to the latest version of an aggregate and persist it.

    Args:
        load: Loads a fresh, detached copy of the aggregate.
        mutate: Applies the change in place; may raise domain errors.
        save: Persists the aggregate if the stored version equals the
            version passed in; returns False on conflict.
        entity_type: Aggregate type name for errors and logs.
        entity_id: Aggregate id for errors and logs.
        attempts: Maximum number of load/apply/save rounds.

    Returns:
        Mutation describing what happened.

    Raises:
        ConcurrentUpdateError: If every attempt lost the race.
        DomainError: Whatever ``mutate`` raises; nothing is written.
    """
    for attempt in range(1, attempts + 1):
        entity = await load()
        expected_version = entity.version
        result = mutate(entity)
        if entity.version == expected_version:
            entity.collect_events()
            return Mutation(entity=entity, result=result, changed=False)
        if await save(entity, expected_version):
            return Mutation(entity=entity, result=result, changed=True)
        logger.warning(
            "Concurrent update detected, retrying",
            entity_type=entity_type,
            entity_id=entity_id,
            attempt=attempt,
        )
    raise ConcurrentUpdateError(entity_type, entity_id, attempts)
