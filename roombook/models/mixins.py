from datetime import datetime

from sqlalchemy.ext.hybrid import hybrid_property

from roombook.extensions import db
from roombook.utils.timeutils import utcnow


class SoftDeleteMixin:
    # A row is deleted exactly when deleted_at is set.
    deleted_at = db.Column(db.DateTime, nullable=True, index=True)

    @hybrid_property
    def is_deleted(self):
        return self.deleted_at is not None

    @is_deleted.expression
    def is_deleted(cls):
        return cls.deleted_at.isnot(None)

    def soft_delete(self, at: datetime = None):
        self.deleted_at = at or utcnow()


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
