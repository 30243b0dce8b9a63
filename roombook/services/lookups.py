import logging

from roombook.errors import PersistenceError
from roombook.models.lookups import LOOKUP_TABLES

logger = logging.getLogger(__name__)


class Lookups:
    """Resolves lookup codes to row ids, then serves them from memory.

    A load that finds unseeded codes is not final: a later miss reloads, so
    seeding after startup is picked up without a restart.
    """

    def __init__(self, session):
        self.session = session
        self._known = None
        self._complete = False

    def load(self):
        known = set()
        missing = []
        for enum_cls, model in LOOKUP_TABLES.items():
            ids = {row_id for (row_id,) in self.session.query(model.id).all()}
            for code in enum_cls:
                if code.value in ids:
                    known.add(code)
                else:
                    missing.append(f"{model.__tablename__}.{code.value}")
        if missing:
            logger.warning("Lookups not seeded: %s", ', '.join(missing))
        self._known = frozenset(known)
        self._complete = not missing
        return self

    def require(self, code):
        if self._known is None or (code not in self._known and not self._complete):
            self.load()
        if code not in self._known:
            raise PersistenceError(f"{type(code).__name__} {code.value} not found")
        return code.value

    def reset(self):
        self._known = None
        self._complete = False
