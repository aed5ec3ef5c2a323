# tests/test_gtasks_source.py

import httplib2
import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from gtasks_source import GoogleCredentialStore, GoogleTasksSource
from sync_errors import KIND_TRANSIENT, KIND_VALIDATION, AuthorizationError, SourceError
from task_models import TASK_COMPLETED, TASK_OPEN


class FakeRequest:
    def __init__(self, key, page, response=None, error=None):
        self.key = key
        self.page = page
        self.response = response
        self.error = error

    def execute(self):
        if self.error is not None:
            raise self.error
        return self.response


class FakeCollection:
    """
    Mimics a discovery collection with list/list_next pagination.

    pages maps a key (tasklist id, or None for tasklists) to the list of
    responses served one page at a time.
    """

    def __init__(self, pages, key_arg=None):
        self.pages = pages
        self.key_arg = key_arg
        self.list_calls = []
        self.errors = {}

    def list(self, **kwargs):
        self.list_calls.append(kwargs)
        key = kwargs.get(self.key_arg) if self.key_arg else None
        return FakeRequest(key, 0, self.pages[key][0], self.errors.get(key))

    def list_next(self, request, response):
        page = request.page + 1
        if page >= len(self.pages[request.key]):
            return None
        return FakeRequest(request.key, page, self.pages[request.key][page])


class FakeTasksService:
    def __init__(self, tasklist_pages, task_pages):
        self._tasklists = FakeCollection(tasklist_pages)
        self._tasks = FakeCollection(task_pages, key_arg='tasklist')

    def tasklists(self):
        return self._tasklists

    def tasks(self):
        return self._tasks


class FakeCredentialStore:
    def __init__(self):
        self.invalidated = 0

    def invalidate(self):
        self.invalidated += 1


def http_error(status):
    return HttpError(httplib2.Response({'status': status}), b'')


@pytest.fixture()
def service():
    return FakeTasksService(
        tasklist_pages={None: [
            {'items': [{'id': 'l-1', 'title': 'Work'}]},
            {'items': [{'id': 'l-2', 'title': 'Home'}]},
        ]},
        task_pages={
            'l-1': [
                {'items': [
                    {'id': 't-1', 'title': 'Report', 'status': 'needsAction',
                     'due': '2024-05-01T00:00:00.000Z'},
                    {'id': 't-2', 'title': 'Deleted', 'status': 'needsAction', 'deleted': True},
                ]},
                {'items': [
                    {'id': 't-3', 'title': 'Review', 'status': 'completed'},
                    {'id': 't-4', 'title': '   ', 'status': 'needsAction'},
                ]},
            ],
            'l-2': [{}],
        },
    )


def test_snapshot_reads_every_list_and_page(service) -> None:
    source = GoogleTasksSource(service=service)

    snapshot = source.fetch_snapshot()

    assert [(l.id, l.title) for l in snapshot] == [('l-1', 'Work'), ('l-2', 'Home')]
    work = snapshot[0].tasks
    assert [(t.id, t.title, t.status, t.due) for t in work] == [
        ('t-1', 'Report', TASK_OPEN, '2024-05-01T00:00:00.000Z'),
        ('t-3', 'Review', TASK_COMPLETED, None),
    ]
    assert all(t.task_list_title == 'Work' and t.task_list_id == 'l-1' for t in work)
    assert snapshot[1].tasks == []


def test_task_requests_include_completed_and_hidden_tasks(service) -> None:
    GoogleTasksSource(service=service).list_tasks('l-1', 'Work')

    call = service.tasks().list_calls[0]
    assert call['tasklist'] == 'l-1'
    assert call['showCompleted'] is True
    assert call['showHidden'] is True


def test_hidden_tasks_can_be_left_out(service) -> None:
    GoogleTasksSource(service=service, include_hidden=False).list_tasks('l-1')

    assert service.tasks().list_calls[0]['showHidden'] is False


def test_source_lists_filter_by_title(service) -> None:
    source = GoogleTasksSource(service=service, source_lists=['Home'])

    snapshot = source.fetch_snapshot()

    assert [l.title for l in snapshot] == ['Home']
    assert [c['tasklist'] for c in service.tasks().list_calls] == ['l-2']


@pytest.mark.parametrize("status, kind", [
    (503, KIND_TRANSIENT),
    (429, KIND_TRANSIENT),
    (400, KIND_VALIDATION),
])
def test_api_errors_become_source_errors(service, status, kind) -> None:
    service.tasks().errors['l-1'] = http_error(status)

    with pytest.raises(SourceError) as excinfo:
        GoogleTasksSource(service=service).fetch_snapshot()

    assert excinfo.value.kind == kind


def test_unauthorized_response_raises_authorization_error(service) -> None:
    store = FakeCredentialStore()
    service.tasklists().errors[None] = http_error(401)
    source = GoogleTasksSource(credential_store=store, service=service)

    with pytest.raises(AuthorizationError):
        source.fetch_snapshot()

    assert store.invalidated == 1


def test_refresh_failure_raises_authorization_error(service) -> None:
    store = FakeCredentialStore()
    service.tasks().errors['l-2'] = RefreshError('invalid_grant')
    source = GoogleTasksSource(credential_store=store, service=service)

    with pytest.raises(AuthorizationError):
        source.fetch_snapshot()

    assert store.invalidated == 1


def test_network_errors_are_transient(service) -> None:
    service.tasklists().errors[None] = TimeoutError("timed out")

    with pytest.raises(SourceError) as excinfo:
        GoogleTasksSource(service=service).list_task_lists()

    assert excinfo.value.kind == KIND_TRANSIENT


def test_credential_store_refuses_non_interactive_authorization(tmp_path) -> None:
    store = GoogleCredentialStore(
        credentials_file=str(tmp_path / 'credentials.json'),
        token_file=str(tmp_path / 'token.json'),
        interactive=False,
    )

    with pytest.raises(AuthorizationError):
        store.get_credentials()


def test_credential_store_requires_client_secrets_file(tmp_path) -> None:
    store = GoogleCredentialStore(
        credentials_file=str(tmp_path / 'credentials.json'),
        token_file=str(tmp_path / 'token.json'),
    )

    with pytest.raises(FileNotFoundError):
        store.get_credentials()
