from __future__ import annotations


class EntityNotFoundError(ValueError):
    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ConcurrentModificationError(ValueError):
    """Raised when a conditional update loses a race against another writer.

    The surrounding transaction is rolled back; retrying the operation re-reads
    the current state and re-evaluates the guard.
    """

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} was modified concurrently; reload and retry")
