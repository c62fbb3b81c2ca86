"""Assemble the current persisted state into a SnapshotDocument."""

from __future__ import annotations

import logging

import pydantic

from ..clock import Clock, to_iso, utc_now
from ..errors import PersistenceError
from ..storage.repository import InventoryRepository
from .schema import SNAPSHOT_FORMAT_VERSION, DomainState, SnapshotDocument, compute_integrity_hash

logger = logging.getLogger(__name__)


class SnapshotBuilder:
    """Reads every collection and stamps version, timestamp and hash.

    Building is a pure read: nothing is written to persistence.

    Example:
        >>> builder = SnapshotBuilder(repository)
        >>> document = builder.build()
        >>> document.version
        '2.0.0'
    """

    def __init__(self, repository: InventoryRepository, clock: Clock = utc_now) -> None:
        self.repository = repository
        self.clock = clock

    def build(self) -> SnapshotDocument:
        """Capture every collection.

        Raises:
            PersistenceError: If a stored collection does not have the
                shape a snapshot requires (e.g. materials is not a list)
        """
        repo = self.repository
        try:
            state = DomainState(
                materials=repo.get_materials(),
                personnel=repo.get_personnel(),
                cautelas=repo.get_cautelas(),
                logs=repo.get_logs(),
                settings=repo.get_settings(),
            )
        except pydantic.ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            logger.error("Persisted collections cannot be captured", extra={"fields": fields})
            raise PersistenceError(
                f"Persisted collections have an unexpected shape: {', '.join(fields)}",
                key=fields[0] if fields else None,
            ) from e
        document = SnapshotDocument(
            version=SNAPSHOT_FORMAT_VERSION,
            timestamp=to_iso(self.clock()),
            domain_state=state,
            integrity_hash=compute_integrity_hash(state),
        )
        logger.debug(
            "Snapshot built",
            extra={
                "materials": len(state.materials),
                "personnel": len(state.personnel),
                "cautelas": len(state.cautelas),
                "logs": len(state.logs),
            },
        )
        return document


__all__ = ["SnapshotBuilder"]
