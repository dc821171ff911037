import pytest
from sqlalchemy import DateTime

from evaluation import models, repositories, schemas, services
from evaluation.errors import AppError, ConflictReason, ErrorKind


def _subject(session, name='Algorithms', description=None):
    svc = services.SubjectService(session)
    fields = {'name': name}
    if description is not None:
        fields['description'] = description
    return svc.create_subject(schemas.SubjectCreate(**fields))


def _competency(session, subject_id, name, marks):
    svc = services.CompetencyService(session)
    return svc.create_competency(schemas.CompetencyCreate(subjectId=subject_id, name=name, marks=marks))


def test_create_subject_sets_matching_timestamps(session):
    subject = _subject(session, 'Algorithms', 'intro')
    assert subject.id is not None
    assert subject.description == 'intro'
    assert subject.created_at == subject.updated_at


def test_empty_description_is_stored_as_null(session):
    assert _subject(session, 'Logic', '').description is None


def test_duplicate_subject_name_conflicts(session):
    _subject(session, 'Algorithms')
    with pytest.raises(AppError) as exc_info:
        _subject(session, 'Algorithms', 'another')
    assert exc_info.value.kind == ErrorKind.CONFLICT
    assert exc_info.value.reason == ConflictReason.DUPLICATE_NAME
    assert exc_info.value.field == 'name'


def test_update_bumps_updated_at_only(session):
    subject = _subject(session, 'Graphs')
    created_at = subject.created_at
    svc = services.SubjectService(session)
    updated = svc.update_subject(subject.id, schemas.SubjectUpdate(description='paths'))
    assert updated.created_at == created_at
    assert updated.updated_at >= created_at
    assert updated.description == 'paths'
    assert updated.name == 'Graphs'


def test_update_lost_race_reports_not_found(session, monkeypatch):
    subject = _subject(session, 'Racy')
    svc = services.SubjectService(session)
    monkeypatch.setattr(svc.subject_repo, 'update', lambda *_args: None)
    with pytest.raises(AppError) as exc_info:
        svc.update_subject(subject.id, schemas.SubjectUpdate(name='Racier'))
    assert exc_info.value.kind == ErrorKind.NOT_FOUND


def test_delete_subject_returns_cascaded_count(session):
    subject = _subject(session)
    first_id = _competency(session, subject.id, 'Sorting', 7.5).id
    _competency(session, subject.id, 'Searching', 6)
    removed = services.SubjectService(session).delete_subject(subject.id)
    assert removed == 2
    repo = repositories.CompetencyRepository(session)
    assert repo.find_by_id(first_id) is None
    assert repo.count_by_subject(subject.id) == 0


def test_delete_missing_subject_not_found(session):
    with pytest.raises(AppError) as exc_info:
        services.SubjectService(session).delete_subject(5)
    assert exc_info.value.message == 'Subject with ID 5 not found'


def test_competency_for_missing_subject_not_found(session):
    with pytest.raises(AppError) as exc_info:
        _competency(session, 404, 'Nothing', 1)
    assert exc_info.value.kind == ErrorKind.NOT_FOUND
    assert repositories.CompetencyRepository(session).find_all() == []


def test_competency_update_uniqueness_scoped_to_subject(session):
    a = _subject(session, 'A subject')
    b = _subject(session, 'B subject')
    _competency(session, a.id, 'Shared', 1)
    other = _competency(session, b.id, 'Other', 1)
    svc = services.CompetencyService(session)
    renamed = svc.update_competency(other.id, schemas.CompetencyUpdate(name='Shared'))
    assert renamed.name == 'Shared'
    assert renamed.subject_id == b.id


def test_get_competencies_by_subject_requires_subject(session):
    with pytest.raises(AppError):
        services.CompetencyService(session).list_by_subject(9)


def test_repository_constraint_catches_duplicate_that_skipped_precheck(session):
    subject = _subject(session)
    repo = repositories.CompetencyRepository(session)
    repo.create(subject.id, 'Sorting', 7.5)
    with pytest.raises(AppError) as exc_info:
        repo.create(subject.id, 'Sorting', 3)
    assert exc_info.value.kind == ErrorKind.CONFLICT
    assert exc_info.value.reason == ConflictReason.DUPLICATE_NAME
    assert exc_info.value.message == 'Competency with this name already exists for this subject'
    assert repo.count_by_subject(subject.id) == 1


def test_repository_foreign_key_violation_is_missing_parent(session):
    repo = repositories.CompetencyRepository(session)
    with pytest.raises(AppError) as exc_info:
        repo.create(12345, 'Orphan', 2)
    assert exc_info.value.reason == ConflictReason.MISSING_PARENT


def test_repository_update_and_delete_sentinels(session):
    repo = repositories.SubjectRepository(session)
    assert repo.update(77, {'name': 'Ghost'}) is None
    assert repo.delete(77) is False
    assert repo.find_by_id(77) is None
    assert repo.find_by_name('Ghost') is None


def test_repository_update_without_changes_returns_current(session):
    subject = _subject(session, 'Static')
    same = repositories.SubjectRepository(session).update(subject.id, {})
    assert same.updated_at == subject.updated_at


def test_delete_by_subject_bulk(session):
    subject = _subject(session)
    for n in range(3):
        _competency(session, subject.id, f'Skill {n}', n)
    repo = repositories.CompetencyRepository(session)
    assert repo.delete_by_subject(subject.id) == 3
    assert repo.find_by_subject(subject.id) == []
    assert repositories.SubjectRepository(session).exists(subject.id)


def test_timestamp_columns_store_naive_utc(session):
    for table in (models.Subject.__table__, models.Competency.__table__):
        for name in ('created_at', 'updated_at'):
            column_type = table.c[name].type
            assert isinstance(column_type, DateTime)
            assert column_type.timezone is False
    subject = _subject(session, 'Clocks')
    competency = _competency(session, subject.id, 'Timing', 5)
    assert subject.created_at.tzinfo is None
    assert competency.created_at == competency.updated_at


def test_competency_service_checks_parent_through_subject_service(session, monkeypatch):
    subject = _subject(session)
    svc = services.CompetencyService(session)
    assert svc.subjects.subject_exists(subject.id)
    assert not svc.subjects.subject_exists(subject.id + 1)
    monkeypatch.setattr(svc.subjects, 'subject_exists', lambda _id: False)
    with pytest.raises(AppError) as exc_info:
        svc.list_by_subject(subject.id)
    assert exc_info.value.kind == ErrorKind.NOT_FOUND
