import httpx
import pytest

from evaluation.client import (
    GENERIC_ERROR,
    NETWORK_ERROR,
    ApiError,
    CompetencyStore,
    EvaluationClient,
    Notifier,
    SubjectStore,
)
from evaluation.errors import AppError


@pytest.fixture()
def api(client):
    return EvaluationClient(http_client=client)


def test_subject_store_mutations_update_local_list(api):
    store = SubjectStore(api)
    assert store.fetch() == []
    first = store.create({'name': 'Algorithms'})
    second = store.create({'name': 'Databases', 'description': 'SQL'})
    assert [s['id'] for s in store.items] == [second['id'], first['id']]

    updated = store.update(first['id'], {'description': 'Sorting'})
    assert store.items[1] == updated
    assert store.items[1]['description'] == 'Sorting'

    store.delete(second['id'])
    assert [s['id'] for s in store.items] == [first['id']]
    assert [n['level'] for n in store.notifier.history] == ['success'] * 4
    assert store.notifier.last['message'] == 'Subject deleted successfully'


def test_failed_mutation_keeps_state_and_reraises(api):
    seen = []
    store = SubjectStore(api, Notifier(on_notify=lambda level, msg: seen.append((level, msg))))
    store.create({'name': 'Algorithms'})
    before = list(store.items)
    with pytest.raises(ApiError) as exc_info:
        store.create({'name': 'Algorithms'})
    assert exc_info.value.status_code == 400
    assert store.items == before
    assert seen[-1] == ('error', 'Subject with this name already exists')


def test_local_validation_blocks_request(api):
    store = SubjectStore(api)
    with pytest.raises(AppError):
        store.create({'name': 'x'})
    assert store.notifier.last == {'level': 'error', 'message': 'Subject name must be at least 2 characters'}
    assert api.list_subjects() == []


def test_delete_missing_subject_surfaces_server_message(api):
    store = SubjectStore(api)
    with pytest.raises(ApiError):
        store.delete(99)
    assert store.notifier.last['message'] == 'Subject with ID 99 not found'


def test_competency_counts_one_lookup_per_subject(api):
    subjects = SubjectStore(api)
    a = subjects.create({'name': 'Maths'})
    b = subjects.create({'name': 'Physics'})
    comps = CompetencyStore(api, a['id'])
    comps.create({'subjectId': a['id'], 'name': 'Algebra', 'marks': 6})
    comps.create({'subjectId': a['id'], 'name': 'Geometry', 'marks': 8})
    assert subjects.fetch_competency_counts() == {a['id']: 2, b['id']: 0}


def test_competency_store_append_replace_remove(api):
    subject = api.create_subject({'name': 'Compilers'})
    store = CompetencyStore(api, subject['id'])
    assert store.fetch() == []
    lexing = store.create({'subjectId': subject['id'], 'name': 'Lexing', 'marks': 9})
    parsing = store.create({'subjectId': subject['id'], 'name': 'Parsing', 'marks': 4})
    assert [c['name'] for c in store.items] == ['Lexing', 'Parsing']

    store.update(parsing['id'], {'marks': 9.5})
    assert store.items[1]['marks'] == 9.5

    store.delete(lexing['id'])
    assert [c['id'] for c in store.items] == [parsing['id']]
    assert store.fetch()[0]['marks'] == 9.5


def test_competency_store_without_subject_does_not_fetch(api):
    store = CompetencyStore(api, None)
    assert store.fetch() == []
    assert store.loading is False


def test_fetch_failure_sets_error(api):
    store = CompetencyStore(api, 404)
    with pytest.raises(ApiError):
        store.fetch()
    assert store.error == 'Subject with ID 404 not found'
    assert store.loading is False


def test_network_failure_maps_to_network_error():
    def refuse(request):
        raise httpx.ConnectError('connection refused', request=request)

    http = httpx.Client(base_url='http://evaluation.invalid', transport=httpx.MockTransport(refuse))
    store = SubjectStore(EvaluationClient(http_client=http))
    with pytest.raises(ApiError) as exc_info:
        store.fetch()
    assert exc_info.value.message == NETWORK_ERROR
    assert store.error == NETWORK_ERROR


def test_non_json_response_is_generic_error():
    http = httpx.Client(
        base_url='http://evaluation.invalid',
        transport=httpx.MockTransport(lambda request: httpx.Response(502, text='bad gateway')),
    )
    with pytest.raises(ApiError) as exc_info:
        EvaluationClient(http_client=http).list_subjects()
    assert exc_info.value.message == GENERIC_ERROR
    assert exc_info.value.status_code == 502


def test_client_requires_a_target():
    with pytest.raises(ValueError):
        EvaluationClient()


def test_invalid_id_is_rejected_before_any_request():
    def handler(request):
        raise AssertionError(f'unexpected request {request.url}')

    api = EvaluationClient(http_client=httpx.Client(base_url='http://evaluation.invalid', transport=httpx.MockTransport(handler)))
    subjects = SubjectStore(api)
    with pytest.raises(AppError):
        subjects.delete(0)
    assert subjects.notifier.last == {'level': 'error', 'message': 'Invalid ID provided'}
    comps = CompetencyStore(api, 1)
    with pytest.raises(AppError):
        comps.update(-4, {'marks': 3})
    assert comps.notifier.last['message'] == 'Invalid ID provided'
