"""Business logic services used by HTTP controllers.

Services enforce the rules that span more than one query: a competency's
subject must exist, names are unique (globally for subjects, per subject
for competencies) and lost races between a lookup and a write surface as
NOT_FOUND. The uniqueness checks are a read before the write; the unique
constraints in the schema catch whatever slips between the two and the
repositories report that as the same CONFLICT.
"""

import logging
from typing import List

from sqlmodel import Session

from . import models, repositories, schemas
from .errors import (
    COMPETENCY_NAME_EXISTS,
    SUBJECT_NAME_EXISTS,
    ConflictReason,
    conflict,
    not_found,
)

logger = logging.getLogger("evaluation.services")


class SubjectService:
    """Subject lifecycle: list, read, create, rename/describe, delete."""
    def __init__(self, session: Session):
        self.session = session
        self.subject_repo = repositories.SubjectRepository(session)
        self.competency_repo = repositories.CompetencyRepository(session)

    def list_subjects(self) -> List[models.Subject]:
        return self.subject_repo.find_all()

    def get_subject(self, subject_id: int) -> models.Subject:
        subject = self.subject_repo.find_by_id(subject_id)
        if subject is None:
            raise not_found("Subject", subject_id)
        return subject

    def subject_exists(self, subject_id: int) -> bool:
        return self.subject_repo.exists(subject_id)

    def create_subject(self, payload: schemas.SubjectCreate) -> models.Subject:
        """Create a subject unless the name is already taken."""
        logger.debug("creating subject name=%r", payload.name)
        if self.subject_repo.find_by_name(payload.name) is not None:
            raise conflict(SUBJECT_NAME_EXISTS, ConflictReason.DUPLICATE_NAME)
        return self.subject_repo.create(payload.name, payload.description)

    def update_subject(self, subject_id: int, payload: schemas.SubjectUpdate) -> models.Subject:
        """Apply a partial update.

        A new name is checked against the other subjects first; renaming a
        subject to its current name is a no-op for the check.
        """
        changes = payload.changes()
        existing = self.get_subject(subject_id)
        new_name = changes.get("name")
        if new_name is not None and new_name != existing.name:
            other = self.subject_repo.find_by_name(new_name)
            if other is not None and other.id != subject_id:
                raise conflict(SUBJECT_NAME_EXISTS, ConflictReason.DUPLICATE_NAME)
        updated = self.subject_repo.update(subject_id, changes)
        if updated is None:
            raise not_found("Subject", subject_id)
        return updated

    def delete_subject(self, subject_id: int) -> int:
        """Delete a subject; the database cascades to its competencies.

        Returns how many competencies went with it (read before the delete,
        for the log and the response message).
        """
        self.get_subject(subject_id)
        count = self.competency_repo.count_by_subject(subject_id)
        logger.info("deleting subject %s with %d competencies", subject_id, count)
        if not self.subject_repo.delete(subject_id):
            raise not_found("Subject", subject_id)
        return count


class CompetencyService:
    """Competency lifecycle, always scoped to an existing subject."""
    def __init__(self, session: Session):
        self.session = session
        self.subjects = SubjectService(session)
        self.competency_repo = repositories.CompetencyRepository(session)

    def list_competencies(self) -> List[models.Competency]:
        return self.competency_repo.find_all()

    def list_by_subject(self, subject_id: int) -> List[models.Competency]:
        if not self.subjects.subject_exists(subject_id):
            raise not_found("Subject", subject_id)
        return self.competency_repo.find_by_subject(subject_id)

    def get_competency(self, competency_id: int) -> models.Competency:
        competency = self.competency_repo.find_by_id(competency_id)
        if competency is None:
            raise not_found("Competency", competency_id)
        return competency

    def create_competency(self, payload: schemas.CompetencyCreate) -> models.Competency:
        """Create a competency under an existing subject with a fresh name."""
        logger.debug("creating competency subject=%s name=%r", payload.subject_id, payload.name)
        if not self.subjects.subject_exists(payload.subject_id):
            raise not_found("Subject", payload.subject_id)
        if self.competency_repo.find_by_subject_and_name(payload.subject_id, payload.name) is not None:
            raise conflict(COMPETENCY_NAME_EXISTS, ConflictReason.DUPLICATE_NAME)
        return self.competency_repo.create(payload.subject_id, payload.name, payload.marks)

    def update_competency(self, competency_id: int, payload: schemas.CompetencyUpdate) -> models.Competency:
        changes = payload.changes()
        existing = self.get_competency(competency_id)
        new_name = changes.get("name")
        if new_name is not None and new_name != existing.name:
            other = self.competency_repo.find_by_subject_and_name(existing.subject_id, new_name)
            if other is not None and other.id != competency_id:
                raise conflict(COMPETENCY_NAME_EXISTS, ConflictReason.DUPLICATE_NAME)
        updated = self.competency_repo.update(competency_id, changes)
        if updated is None:
            raise not_found("Competency", competency_id)
        return updated

    def delete_competency(self, competency_id: int) -> None:
        self.get_competency(competency_id)
        if not self.competency_repo.delete(competency_id):
            raise not_found("Competency", competency_id)
