"""Repository classes encapsulating database operations.

Repositories are the only code that issues queries. Each one is bound to
a session and returns SQLModel rows, or `None` when a lookup finds
nothing. Storage failures never leak driver errors: integrity violations
become CONFLICT errors with a named reason, anything else a STORAGE error.
"""

import logging
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from . import models
from .errors import (
    COMPETENCY_NAME_EXISTS,
    SUBJECT_DOES_NOT_EXIST,
    SUBJECT_NAME_EXISTS,
    AppError,
    ConflictReason,
    classify_integrity_error,
    conflict,
    storage_error,
)

logger = logging.getLogger("evaluation.repositories")


class _Repository:
    """Shared plumbing: error translation around each storage call."""
    model = None
    duplicate_message = ""

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def _storage(self, operation: str, **context):
        try:
            yield
        except AppError:
            raise
        except IntegrityError as exc:
            self.session.rollback()
            reason = classify_integrity_error(exc)
            if reason == ConflictReason.DUPLICATE_NAME:
                logger.warning("duplicate name on %s %s", operation, context)
                raise conflict(self.duplicate_message, reason) from exc
            if reason == ConflictReason.MISSING_PARENT:
                logger.warning("missing parent on %s %s", operation, context)
                raise conflict(SUBJECT_DOES_NOT_EXIST, reason, field="subjectId") from exc
            logger.exception("integrity error on %s %s", operation, context)
            raise storage_error(operation, detail=str(exc)) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("storage error on %s %s", operation, context)
            raise storage_error(operation, detail=str(exc)) from exc

    def find_by_id(self, record_id: int):
        """Return the row with `record_id` or `None`."""
        with self._storage(f"find {self.model.__tablename__}", id=record_id):
            stmt = select(self.model).where(self.model.id == record_id)
            row = self.session.exec(stmt).first()
        if row is None:
            logger.debug("%s %s not found", self.model.__name__, record_id)
        return row

    def exists(self, record_id: int) -> bool:
        with self._storage(f"check {self.model.__tablename__}", id=record_id):
            stmt = select(self.model.id).where(self.model.id == record_id).limit(1)
            return self.session.exec(stmt).first() is not None

    def _insert(self, row):
        """Insert `row`, then re-read it so server-side values are loaded."""
        now = models.utcnow()
        row.created_at = now
        row.updated_at = now
        with self._storage(f"create {self.model.__tablename__}", name=row.name):
            self.session.add(row)
            self.session.commit()
            new_id = row.id
        created = self.find_by_id(new_id)
        if created is None:
            raise storage_error(f"re-read created {self.model.__tablename__}", detail=f"id={new_id}")
        logger.info("%s created id=%s", self.model.__name__, new_id)
        return created

    def update(self, record_id: int, changes: dict):
        """Apply only the supplied `changes` and bump `updated_at`.

        Returns `None` when no row matched, otherwise the refreshed row.
        An empty `changes` mapping leaves the row untouched.
        """
        if not changes:
            return self.find_by_id(record_id)
        with self._storage(f"update {self.model.__tablename__}", id=record_id, fields=sorted(changes)):
            stmt = (
                update(self.model)
                .where(self.model.id == record_id)
                .values(**changes, updated_at=models.utcnow())
            )
            result = self.session.exec(stmt)
            self.session.commit()
        if result.rowcount == 0:
            logger.debug("no %s %s to update", self.model.__name__, record_id)
            return None
        logger.info("%s updated id=%s", self.model.__name__, record_id)
        return self.find_by_id(record_id)

    def delete(self, record_id: int) -> bool:
        """Delete by id. Returns whether a row was removed."""
        with self._storage(f"delete {self.model.__tablename__}", id=record_id):
            result = self.session.exec(delete(self.model).where(self.model.id == record_id))
            self.session.commit()
        deleted = result.rowcount > 0
        if deleted:
            logger.info("%s deleted id=%s", self.model.__name__, record_id)
        else:
            logger.debug("no %s %s to delete", self.model.__name__, record_id)
        return deleted


class SubjectRepository(_Repository):
    """CRUD operations for `Subject` rows."""
    model = models.Subject
    duplicate_message = SUBJECT_NAME_EXISTS

    def find_all(self) -> List[models.Subject]:
        """All subjects, newest first."""
        with self._storage("list subjects"):
            stmt = select(models.Subject).order_by(models.Subject.created_at.desc(), models.Subject.id.desc())
            rows = self.session.exec(stmt).all()
        logger.debug("retrieved %d subjects", len(rows))
        return list(rows)

    def find_by_name(self, name: str) -> Optional[models.Subject]:
        """Uniqueness lookup used before inserts and renames."""
        with self._storage("find subject by name", name=name):
            stmt = select(models.Subject).where(models.Subject.name == name)
            return self.session.exec(stmt).first()

    def create(self, name: str, description: Optional[str] = None) -> models.Subject:
        return self._insert(models.Subject(name=name, description=description or None))

    def update(self, record_id: int, changes: dict) -> Optional[models.Subject]:
        if "description" in changes:
            changes = {**changes, "description": changes["description"] or None}
        return super().update(record_id, changes)


class CompetencyRepository(_Repository):
    """CRUD operations for `Competency` rows, scoped by subject where needed."""
    model = models.Competency
    duplicate_message = COMPETENCY_NAME_EXISTS

    def find_all(self) -> List[models.Competency]:
        """All competencies, newest first."""
        with self._storage("list competencies"):
            stmt = select(models.Competency).order_by(
                models.Competency.created_at.desc(), models.Competency.id.desc()
            )
            rows = self.session.exec(stmt).all()
        logger.debug("retrieved %d competencies", len(rows))
        return list(rows)

    def find_by_subject(self, subject_id: int) -> List[models.Competency]:
        """Competencies of one subject, highest marks first, then by name."""
        with self._storage("list competencies by subject", subject_id=subject_id):
            stmt = (
                select(models.Competency)
                .where(models.Competency.subject_id == subject_id)
                .order_by(models.Competency.marks.desc(), models.Competency.name.asc())
            )
            rows = self.session.exec(stmt).all()
        logger.debug("retrieved %d competencies for subject %s", len(rows), subject_id)
        return list(rows)

    def find_by_subject_and_name(self, subject_id: int, name: str) -> Optional[models.Competency]:
        """Uniqueness lookup within one subject."""
        with self._storage("find competency by name", subject_id=subject_id, name=name):
            stmt = select(models.Competency).where(
                models.Competency.subject_id == subject_id,
                models.Competency.name == name,
            )
            return self.session.exec(stmt).first()

    def count_by_subject(self, subject_id: int) -> int:
        with self._storage("count competencies", subject_id=subject_id):
            stmt = select(func.count()).select_from(models.Competency).where(
                models.Competency.subject_id == subject_id
            )
            return int(self.session.exec(stmt).one())

    def create(self, subject_id: int, name: str, marks: float) -> models.Competency:
        return self._insert(models.Competency(subject_id=subject_id, name=name, marks=marks))

    def delete_by_subject(self, subject_id: int) -> int:
        """Bulk delete a subject's competencies; returns how many went."""
        with self._storage("delete competencies by subject", subject_id=subject_id):
            result = self.session.exec(
                delete(models.Competency).where(models.Competency.subject_id == subject_id)
            )
            self.session.commit()
        logger.info("deleted %d competencies for subject %s", result.rowcount, subject_id)
        return result.rowcount
