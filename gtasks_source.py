"""
Google Tasks source provider.

Reads every task list and its tasks through the Google Tasks API v1.
Credentials are owned by a GoogleCredentialStore, which loads and refreshes
the OAuth token file and is injected into the provider.
"""

import logging
import os
from typing import Dict, List, Optional

import httplib2
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from sync_errors import (
    KIND_TRANSIENT, KIND_VALIDATION, AuthorizationError, SourceError,
)
from task_models import TASK_OPEN, Task, TaskList

logger = logging.getLogger(__name__)

# Google Tasks API scope (read-only is enough, the sync never writes tasks)
SCOPES = ['https://www.googleapis.com/auth/tasks.readonly']

PAGE_SIZE = 100


class GoogleCredentialStore:
    """Holds the Google OAuth credentials and their refresh lifecycle."""

    def __init__(self, credentials_file: str, token_file: str, scopes: Optional[List[str]] = None,
                 interactive: bool = True):
        self.credentials_file = credentials_file
        self.token_file = token_file
        self.scopes = scopes or SCOPES
        self.interactive = interactive
        self._creds = None

    def get_credentials(self) -> Credentials:
        """Return valid credentials, refreshing or authorizing when needed.

        Raises:
            AuthorizationError: the token cannot be refreshed and no new
                authorization is possible
        """
        creds = self._creds

        # Load existing token if available
        if creds is None and os.path.exists(self.token_file):
            try:
                creds = Credentials.from_authorized_user_file(self.token_file, self.scopes)
            except ValueError as e:
                logger.warning(f"Failed to load existing token: {e}")

        if creds and creds.valid:
            self._creds = creds
            return creds

        # Refresh or obtain new credentials
        if creds and creds.expired and creds.refresh_token:
            logger.info("Refreshing expired Google credentials")
            try:
                creds.refresh(Request())
            except RefreshError as e:
                raise AuthorizationError(f"Google token refresh failed: {e}") from e
        else:
            creds = self._authorize()

        self._save(creds)
        self._creds = creds
        return creds

    def _authorize(self) -> Credentials:
        if not self.interactive:
            raise AuthorizationError(
                f"No valid Google token in {self.token_file} and interactive authorization is disabled"
            )
        if not os.path.exists(self.credentials_file):
            raise FileNotFoundError(
                f"Google credentials file not found: {self.credentials_file}\n"
                "Please download from Google Cloud Console."
            )
        logger.info("Starting OAuth flow for Google Tasks")
        flow = InstalledAppFlow.from_client_secrets_file(self.credentials_file, self.scopes)
        return flow.run_local_server(port=0)

    def _save(self, creds: Credentials):
        with open(self.token_file, 'w') as token:
            token.write(creds.to_json())
        logger.info(f"Saved credentials to {self.token_file}")

    def invalidate(self):
        """Forget the cached credentials so the next call reloads them."""
        self._creds = None


class GoogleTasksSource:
    """Reads task lists and tasks from Google Tasks."""

    def __init__(self, credential_store: Optional[GoogleCredentialStore] = None,
                 source_lists: Optional[List[str]] = None, include_hidden: bool = True,
                 timeout: Optional[float] = 30, service=None):
        """
        Args:
            credential_store: Provides OAuth credentials (unused when service is given)
            source_lists: Titles of lists to read; empty reads every list
            include_hidden: Also read completed tasks that Google hides
            timeout: Per-request socket timeout in seconds
            service: Prebuilt API client (tests)
        """
        self.credential_store = credential_store
        self.source_lists = source_lists or []
        self.include_hidden = include_hidden
        self.timeout = timeout
        self._gtasks = service

    @property
    def gtasks(self):
        if self._gtasks is None:
            creds = self.credential_store.get_credentials()
            http = AuthorizedHttp(creds, http=httplib2.Http(timeout=self.timeout))
            self._gtasks = build('tasks', 'v1', http=http, cache_discovery=False)
        return self._gtasks

    def _execute(self, request, what: str) -> Dict:
        """Execute an API request, translating failures into sync errors."""
        try:
            return request.execute()
        except RefreshError as e:
            if self.credential_store is not None:
                self.credential_store.invalidate()
            self._gtasks = None
            raise AuthorizationError(f"Google authorization failed while fetching {what}: {e}") from e
        except HttpError as e:
            status = e.resp.status
            if status == 401:
                if self.credential_store is not None:
                    self.credential_store.invalidate()
                self._gtasks = None
                raise AuthorizationError(f"Google rejected credentials while fetching {what}") from e
            kind = KIND_TRANSIENT if status == 429 or status >= 500 else KIND_VALIDATION
            raise SourceError(f"Google Tasks API error {status} while fetching {what}: {e}", kind) from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise SourceError(f"Network error while fetching {what}: {e}", KIND_TRANSIENT) from e

    def list_task_lists(self) -> List[TaskList]:
        """Retrieve task lists, filtered to the configured source lists."""
        lists = []
        collection = self.gtasks.tasklists()
        request = collection.list(maxResults=PAGE_SIZE)
        while request is not None:
            response = self._execute(request, "task lists")
            for item in response.get('items', []):
                lists.append(TaskList(id=item['id'], title=item.get('title', '')))
            request = collection.list_next(request, response)

        logger.info(f"Found {len(lists)} task list(s)")
        if self.source_lists:
            lists = [l for l in lists if l.title in self.source_lists]
            logger.info(f"Reading {len(lists)} configured source list(s): {self.source_lists}")
        return lists

    def list_tasks(self, task_list_id: str, task_list_title: str = '') -> List[Task]:
        """Get the tasks of one list, including completed ones."""
        tasks = []
        collection = self.gtasks.tasks()
        request = collection.list(
            tasklist=task_list_id,
            showCompleted=True,
            showHidden=self.include_hidden,
            maxResults=PAGE_SIZE
        )
        while request is not None:
            response = self._execute(request, f"tasks of list '{task_list_title or task_list_id}'")
            for item in response.get('items', []):
                if item.get('deleted'):
                    continue
                title = item.get('title', '')
                if not title.strip():
                    logger.debug(f"Skipping untitled task {item.get('id')} in '{task_list_title}'")
                    continue
                tasks.append(Task(
                    id=item['id'],
                    title=title,
                    status=item.get('status', TASK_OPEN),
                    due=item.get('due'),
                    task_list_id=task_list_id,
                    task_list_title=task_list_title,
                ))
            request = collection.list_next(request, response)
        return tasks

    def fetch_snapshot(self) -> List[TaskList]:
        """Fetch every source list together with its tasks."""
        task_lists = self.list_task_lists()
        for task_list in task_lists:
            task_list.tasks = self.list_tasks(task_list.id, task_list.title)
            logger.debug(f"  '{task_list.title}': {len(task_list.tasks)} task(s)")
        total = sum(len(l.tasks) for l in task_lists)
        logger.info(f"Fetched {total} Google Task(s) from {len(task_lists)} list(s)")
        return task_lists
