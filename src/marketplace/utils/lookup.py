"""Repository lookups that fail with coded errors instead of Protean's."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace.errors import NotFoundError


def fetch(aggregate_cls, identifier, code: str = "NOT_FOUND"):
    """Load an aggregate by id or raise :class:`NotFoundError` with ``code``."""
    repo = current_domain.repository_for(aggregate_cls)
    try:
        return repo.get(str(identifier))
    except ObjectNotFoundError as exc:
        raise NotFoundError(f"{aggregate_cls.__name__} {identifier} not found", code=code) from exc
