"""
Chunked INSERT ... ON CONFLICT DO UPDATE writer

Every sync write goes through here, keyed by the entity's natural key, so
re-running a sync converges instead of duplicating rows.
"""
from typing import Any, Dict, List, Optional, Sequence, Set

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gmb_hub.config import get_settings
from gmb_hub.models.gmb import GMBReview
from gmb_hub.utils.helpers import chunk_list, utcnow
from gmb_hub.utils.logger import log

settings = get_settings()

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# Columns never overwritten by a re-sync
_PRESERVED_COLUMNS = {"id", "created_at"}


class UpsertService:
    """Writes row dicts in chunks with the dialect's native upsert"""

    def __init__(self, db: Session, chunk_size: Optional[int] = None):
        self.db = db
        self.chunk_size = chunk_size or settings.upsert_chunk_size

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _INSERTS[dialect]
        except KeyError:
            raise NotImplementedError(f"Upsert is not supported on the {dialect} dialect")

    def upsert(
        self,
        model,
        rows: List[Dict[str, Any]],
        conflict_columns: Sequence[str],
        preserve_columns: Sequence[str] = (),
    ) -> int:
        """
        Upsert rows into model's table, conflict target = conflict_columns.

        A failing chunk is rolled back and logged; later chunks still run.
        Returns the number of rows written.
        """
        if not rows:
            return 0

        insert = self._insert()
        table = model.__table__
        keep = _PRESERVED_COLUMNS | set(conflict_columns) | set(preserve_columns)
        written = 0

        for chunk in chunk_list(rows, self.chunk_size):
            now = utcnow()
            values = []
            for row in chunk:
                row = dict(row)
                if "updated_at" in table.c:
                    row["updated_at"] = now
                if "created_at" in table.c:
                    row.setdefault("created_at", now)
                values.append(row)

            stmt = insert(table).values(values)
            update_columns = {
                column: stmt.excluded[column]
                for column in values[0].keys()
                if column not in keep
            }
            stmt = stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=update_columns)

            try:
                self.db.execute(stmt)
                self.db.commit()
                written += len(values)
            except SQLAlchemyError as e:
                self.db.rollback()
                log.error(f"Upsert into {table.name} failed for a chunk of {len(values)} rows: {e}")

        return written

    def existing_review_ids(self, external_ids: List[str]) -> Set[str]:
        """External review ids already stored, checked before an upsert"""
        found: Set[str] = set()
        for chunk in chunk_list(external_ids, self.chunk_size):
            found.update(
                row[0] for row in self.db.query(GMBReview.external_review_id)
                .filter(GMBReview.external_review_id.in_(chunk))
                .all()
            )
        return found
