"""
Notion database sink provider.

Each synchronized task is a page of one Notion database. The core works with
SinkRecord fields; this module maps them to the database properties:

    title           -> title property      (default 'Name')
    task_list_name  -> rich text property  (default 'TaskList')
    status          -> select property     (default 'Status')
    due_date        -> date property       (default 'Due Date')
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from notion_client import APIResponseError, Client
from notion_client.errors import HTTPResponseError, RequestTimeoutError
from notion_client.helpers import collect_paginated_api

from sync_errors import (
    KIND_NOT_FOUND, KIND_TRANSIENT, KIND_UNKNOWN, KIND_VALIDATION, AuthorizationError, SinkError,
)
from task_models import (
    FIELD_DUE_DATE, FIELD_STATUS, FIELD_TASK_LIST, FIELD_TITLE, SinkRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_PROPERTIES = {
    FIELD_TITLE: 'Name',
    FIELD_TASK_LIST: 'TaskList',
    FIELD_STATUS: 'Status',
    FIELD_DUE_DATE: 'Due Date',
}

# Notion API error codes -> failure kinds
ERROR_KINDS = {
    'rate_limited': KIND_TRANSIENT,
    'internal_server_error': KIND_TRANSIENT,
    'service_unavailable': KIND_TRANSIENT,
    'conflict_error': KIND_TRANSIENT,
    'validation_error': KIND_VALIDATION,
    'invalid_json': KIND_VALIDATION,
    'invalid_request': KIND_VALIDATION,
    'invalid_request_url': KIND_VALIDATION,
    'object_not_found': KIND_NOT_FOUND,
}
AUTH_ERROR_CODES = ('unauthorized', 'restricted_resource')


def plain_text(fragments: List[Dict]) -> str:
    """Join the text of a Notion rich text array."""
    parts = []
    for fragment in fragments:
        if 'plain_text' in fragment:
            parts.append(fragment['plain_text'])
        else:
            parts.append(fragment.get('text', {}).get('content', ''))
    return ''.join(parts)


def rich_text(content: str) -> List[Dict]:
    return [{'text': {'content': content}}]


class MalformedPageError(ValueError):
    """A database page lacks a property the sync relies on."""


class NotionSink:
    """Reads and writes the rows of one Notion database."""

    def __init__(self, token: Optional[str] = None, database_id: str = '',
                 properties: Optional[Dict[str, str]] = None, timeout: Optional[float] = 30,
                 client=None):
        """
        Args:
            token: Notion integration token (unused when client is given)
            database_id: ID of the target database
            properties: Overrides for the database property names
            timeout: Per-request timeout in seconds
            client: Prebuilt notion_client.Client (tests)
        """
        self.database_id = database_id
        self.properties = dict(DEFAULT_PROPERTIES)
        self.properties.update(properties or {})
        if client is None:
            options = {'auth': token}
            if timeout:
                options['timeout_ms'] = int(timeout * 1000)
            client = Client(**options)
        self.notion = client

    def _call(self, what: str, call, **kwargs) -> Any:
        """Call the Notion API, translating failures into sync errors."""
        try:
            return call(**kwargs)
        except APIResponseError as e:
            code = getattr(e.code, 'value', e.code)
            if code in AUTH_ERROR_CODES:
                raise AuthorizationError(f"Notion rejected credentials while trying to {what}: {e}") from e
            raise SinkError(f"Notion API error '{code}' while trying to {what}: {e}",
                            ERROR_KINDS.get(code, KIND_UNKNOWN)) from e
        except RequestTimeoutError as e:
            raise SinkError(f"Notion request timed out while trying to {what}", KIND_TRANSIENT) from e
        except HTTPResponseError as e:
            kind = KIND_TRANSIENT if e.status >= 500 else KIND_UNKNOWN
            raise SinkError(f"Notion HTTP error {e.status} while trying to {what}: {e}", kind) from e
        except httpx.HTTPError as e:
            raise SinkError(f"Network error while trying to {what}: {e}", KIND_TRANSIENT) from e

    def parse_page(self, page: Dict) -> SinkRecord:
        """Turn a Notion page into a SinkRecord.

        Raises:
            MalformedPageError: the title property is missing or empty
        """
        props = page.get('properties') or {}
        title_name = self.properties[FIELD_TITLE]
        title_prop = props.get(title_name)
        if not isinstance(title_prop, dict) or not isinstance(title_prop.get('title'), list):
            raise MalformedPageError(f"page {page.get('id')} has no '{title_name}' title property")
        title = plain_text(title_prop['title'])
        if not title:
            raise MalformedPageError(f"page {page.get('id')} has an empty '{title_name}' title")

        list_prop = props.get(self.properties[FIELD_TASK_LIST]) or {}
        status_prop = props.get(self.properties[FIELD_STATUS]) or {}
        due_prop = props.get(self.properties[FIELD_DUE_DATE]) or {}

        select = status_prop.get('select') or {}
        date = due_prop.get('date') or {}

        return SinkRecord(
            id=page['id'],
            title=title,
            task_list_name=plain_text(list_prop.get('rich_text') or []),
            status=select.get('name', ''),
            due_date=date.get('start'),
            archived=bool(page.get('archived') or page.get('in_trash')),
        )

    def build_properties(self, fields: Dict[str, str]) -> Dict[str, Dict]:
        """Translate sink fields into a Notion properties payload."""
        properties = {}
        for field_name, value in fields.items():
            name = self.properties.get(field_name)
            if field_name == FIELD_TITLE:
                properties[name] = {'title': rich_text(value)}
            elif field_name == FIELD_TASK_LIST:
                properties[name] = {'rich_text': rich_text(value)}
            elif field_name == FIELD_STATUS:
                properties[name] = {'select': {'name': value}}
            elif field_name == FIELD_DUE_DATE:
                properties[name] = {'date': {'start': value}}
            else:
                raise ValueError(f"Unknown sink field: {field_name}")
        return properties

    def query_records(self) -> List[SinkRecord]:
        """Fetch all live pages of the database.

        Pages without a usable title are skipped with a warning.
        """
        pages = self._call("query the database", collect_paginated_api,
                           function=self.notion.databases.query, database_id=self.database_id)
        records = []
        for page in pages:
            try:
                record = self.parse_page(page)
            except MalformedPageError as e:
                logger.warning(f"Skipping malformed Notion page: {e}")
                continue
            if record.archived:
                continue
            records.append(record)
        logger.info(f"Found {len(records)} Notion record(s)")
        return records

    def create_record(self, fields: Dict[str, str]) -> SinkRecord:
        page = self._call(f"create '{fields.get(FIELD_TITLE)}'", self.notion.pages.create,
                          parent={'database_id': self.database_id},
                          properties=self.build_properties(fields))
        return self._record_from_response(page, fields)

    def update_record(self, record_id: str, fields: Dict[str, str]) -> SinkRecord:
        page = self._call(f"update {record_id}", self.notion.pages.update,
                          page_id=record_id, properties=self.build_properties(fields))
        return self._record_from_response(page, fields)

    def archive_record(self, record_id: str) -> SinkRecord:
        page = self._call(f"archive {record_id}", self.notion.pages.update,
                          page_id=record_id, archived=True)
        record = self._record_from_response(page, {})
        record.archived = True
        return record

    def _record_from_response(self, page: Dict, fields: Dict[str, str]) -> SinkRecord:
        try:
            return self.parse_page(page)
        except MalformedPageError:
            return SinkRecord(
                id=page['id'],
                title=fields.get(FIELD_TITLE, ''),
                task_list_name=fields.get(FIELD_TASK_LIST, ''),
                status=fields.get(FIELD_STATUS, ''),
                due_date=fields.get(FIELD_DUE_DATE),
                archived=bool(page.get('archived')),
            )
