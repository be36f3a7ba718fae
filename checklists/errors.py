"""Error taxonomy shared by the repository, reconciler and service layers."""


class PersistenceError(Exception):
    """Base class for failures reading or writing the store."""


class NotFoundError(PersistenceError):
    """An update or read targeted an id that does not exist."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f'{entity} {entity_id!r} not found')


class ConstraintViolation(PersistenceError):
    """Foreign-key, uniqueness or required-field violation."""


class TransientStoreError(PersistenceError):
    """Connection, lock or timeout failure talking to the store."""
