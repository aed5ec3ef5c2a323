#!/usr/bin/env python3
"""
Google Tasks to Notion Sync Tool

Mirrors Google Tasks into a Notion database, one page per task:
- tasks seen for the first time become new pages
- pages whose task disappeared are archived (never deleted)
- the Status select follows the task's completion state

Tasks and pages are matched on their title. Optionally a links file records
which page belongs to which task, so renamed tasks keep their page.

Requirements:
- pip install google-api-python-client google-auth-oauthlib google-auth-httplib2 notion-client python-dotenv

Setup:
1. Set up Google Tasks API credentials (OAuth2, desktop application) as credentials.json
2. Create a Notion integration, share the target database with it
3. Configure gtasks-notion-sync.conf or set NOTION_API_KEY / NOTION_DATABASE_ID
"""

import argparse
import logging
import os
import sys
import threading
import time
import traceback
from typing import Dict, Optional

from confparser import apply_env_overrides, as_list, create_default_config, load_config
from gtasks_source import GoogleCredentialStore, GoogleTasksSource
from notion_sink import NotionSink
from sync_errors import AuthorizationError
from task_links import TaskLinkStore
from task_matcher import match_tasks
from task_models import FIELD_DUE_DATE, FIELD_STATUS, FIELD_TASK_LIST, FIELD_TITLE, iter_tasks
from task_reconciler import CycleReport, Reconciler

DEFAULT_CONFIG_FILE = 'gtasks-notion-sync.conf'

DEFAULT_TEMPLATE = """# Google Tasks to Notion Sync Configuration

# Google API credentials - download from Google Cloud Console
# 1. Create a project and enable Google Tasks API
# 2. Create OAuth 2.0 credentials (Desktop application)
# 3. Download as credentials.json
google_credentials_file = credentials.json

# OAuth token file (auto-generated after first successful authentication)
google_token_file = token.json

# Notion integration token and target database
# (NOTION_API_KEY / NOTION_DATABASE_ID in the environment or .env take precedence)
notion_token =
notion_database_id =

# Google Tasks list names to sync (comma-separated, empty = all lists)
source_lists =

# Also read completed tasks that Google Tasks has hidden
include_hidden = true

# How often to sync in daemon mode (seconds)
sync_interval_seconds = 10

# Timeout for a single API request (seconds)
request_timeout_seconds = 30

# Remember which Notion page belongs to which task, so renamed tasks keep
# their page instead of being archived and recreated
use_task_links = false
links_file = gtasks-notion-sync-links.json

# Notion database property names
notion_title_property = Name
notion_list_property = TaskList
notion_status_property = Status
notion_due_property = Due Date
"""

DEFAULTS = {
    'google_credentials_file': 'credentials.json',
    'google_token_file': 'token.json',
    'notion_token': '',
    'notion_database_id': '',
    'source_lists': [],
    'include_hidden': True,
    'sync_interval_seconds': 10,
    'request_timeout_seconds': 30,
    'use_task_links': False,
    'links_file': 'gtasks-notion-sync-links.json',
    'notion_title_property': 'Name',
    'notion_list_property': 'TaskList',
    'notion_status_property': 'Status',
    'notion_due_property': 'Due Date',
}

ENV_OVERRIDES = {
    'NOTION_API_KEY': 'notion_token',
    'NOTION_DATABASE_ID': 'notion_database_id',
    'GOOGLE_CREDENTIALS_FILE': 'google_credentials_file',
    'GOOGLE_TOKEN_FILE': 'google_token_file',
    'SYNC_INTERVAL_SECONDS': 'sync_interval_seconds',
}


class StdoutFilter(logging.Filter):
    """Filter to allow only DEBUG, INFO and WARNING to stdout."""
    def filter(self, record):
        return record.levelno < logging.ERROR


class StderrFilter(logging.Filter):
    """Filter to allow only ERROR and CRITICAL to stderr."""
    def filter(self, record):
        return record.levelno >= logging.ERROR


def setup_logging(verbose=False):
    """Configure dual-stream logging (INFO/WARNING to stdout, ERROR/CRITICAL to stderr)."""
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    stdout_handler.addFilter(StdoutFilter())
    stdout_handler.setFormatter(formatter)
    logger.addHandler(stdout_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.addFilter(StderrFilter())
    stderr_handler.setFormatter(formatter)
    logger.addHandler(stderr_handler)

    # Discovery and HTTP client chatter is only useful when debugging those libraries
    for noisy in ('googleapiclient.discovery_cache', 'httpx', 'httpcore'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


class SyncManager:
    """Runs Google Tasks -> Notion reconciliation cycles."""

    def __init__(self, config_file: str = DEFAULT_CONFIG_FILE, dry_run: bool = False,
                 verbose: bool = False, config: Optional[Dict] = None, source=None, sink=None):
        """Initialize the sync manager.

        Args:
            config_file: Path to configuration file
            dry_run: If True, show what would be done without making changes
            verbose: Log tracebacks for failed cycles
            config: Ready configuration dictionary (skips reading config_file)
            source: Task source provider (default: Google Tasks)
            sink: Record sink provider (default: Notion)
        """
        self.config_file = os.path.abspath(config_file)
        self.base_dir = os.path.dirname(self.config_file)
        self.dry_run = dry_run
        self.verbose = verbose
        self.config = dict(DEFAULTS, **config) if config is not None else self._load_config()

        self.links = None
        if self.config.get('use_task_links'):
            self.links = TaskLinkStore(self._resolve_path(self.config.get('links_file')))
            self.links.load()

        self.source = source if source is not None else self._init_source()
        self.sink = sink if sink is not None else self._init_sink()
        self._cycle_lock = threading.Lock()

        if self.dry_run:
            logging.info("DRY-RUN MODE: No changes will be made")

    def _resolve_path(self, path: Optional[str]) -> Optional[str]:
        """Resolve paths relative to the config file directory for cron compatibility."""
        if not path:
            return path
        return path if os.path.isabs(path) else os.path.join(self.base_dir, path)

    def _load_config(self) -> Dict:
        """Load configuration from plain .conf file, environment and .env."""
        if not os.path.exists(self.config_file):
            logging.info(f"Config file not found, creating default: {self.config_file}")
            create_default_config(self.config_file, DEFAULT_TEMPLATE)
            logging.warning(f"Created default config. Please review {self.config_file}")

        config = load_config(self.config_file, DEFAULTS)
        apply_env_overrides(config, ENV_OVERRIDES, dotenv_path=os.path.join(self.base_dir, '.env'))
        logging.info(f"Loaded configuration from {self.config_file}")

        config['source_lists'] = as_list(config.get('source_lists'))
        for key in ('notion_token', 'notion_database_id'):
            config[key] = str(config.get(key) or '')
        return config

    def _init_source(self) -> GoogleTasksSource:
        """Initialize the Google Tasks source with its credential store."""
        store = GoogleCredentialStore(
            credentials_file=self._resolve_path(self.config['google_credentials_file']),
            token_file=self._resolve_path(self.config['google_token_file']),
        )
        return GoogleTasksSource(
            credential_store=store,
            source_lists=self.config['source_lists'],
            include_hidden=bool(self.config.get('include_hidden', True)),
            timeout=self.config.get('request_timeout_seconds') or None,
        )

    def _init_sink(self) -> NotionSink:
        """Initialize the Notion database sink."""
        properties = {
            FIELD_TITLE: self.config['notion_title_property'],
            FIELD_TASK_LIST: self.config['notion_list_property'],
            FIELD_STATUS: self.config['notion_status_property'],
            FIELD_DUE_DATE: self.config['notion_due_property'],
        }
        return NotionSink(
            token=self.config['notion_token'],
            database_id=self.config['notion_database_id'],
            properties=properties,
            timeout=self.config.get('request_timeout_seconds') or None,
        )

    def run_cycle(self) -> Optional[CycleReport]:
        """Run one reconciliation cycle unless another one is still in flight.

        Returns:
            The cycle report, or None when the cycle was skipped or aborted
            before any write
        """
        if not self._cycle_lock.acquire(blocking=False):
            logging.warning("Previous synchronization cycle still running, skipping this one")
            return None
        try:
            return self._run_cycle()
        finally:
            self._cycle_lock.release()

    def _log_failure(self, message: str, error: Exception):
        logging.error(f"{message}: {error}")
        if self.verbose:
            logging.error(f"Full traceback: {traceback.format_exc()}")

    def _run_cycle(self) -> Optional[CycleReport]:
        logging.info("=" * 50)
        logging.info("Starting synchronization cycle")
        logging.info("=" * 50)

        # A partial snapshot would archive or duplicate records, so any fetch failure ends the cycle
        try:
            task_lists = self.source.fetch_snapshot()
            records = self.sink.query_records()
        except AuthorizationError as e:
            logging.error(f"Authorization failed, skipping cycle until credentials are renewed: {e}")
            return None
        except Exception as e:
            self._log_failure("Error fetching tasks, aborting cycle", e)
            return None

        links = self.links.task_to_record if self.links is not None else None
        match = match_tasks(task_lists, records, links=links)
        logging.info(f"Compared tasks with Notion records: {match.summary()}")

        reconciler = Reconciler(self.sink, links=self.links, dry_run=self.dry_run)
        try:
            report = reconciler.apply(match)
        except AuthorizationError as e:
            logging.error(f"Authorization failed, aborting remainder of cycle: {e}")
            report = getattr(e, 'report', None) or CycleReport(aborted=True)
        except Exception as e:
            self._log_failure("Error during synchronization", e)
            return None

        if self.links is not None and not self.dry_run:
            if not report.aborted:
                self.links.prune(task.id for task in iter_tasks(task_lists))
            if self.links.dirty:
                self.links.save()

        logging.info(f"Sync results: {report.summary()}")
        for failure in report.failures:
            logging.warning(f"  Failed to {failure.action} '{failure.title}' "
                            f"[{failure.error_kind}], will retry next cycle")
        return report

    def run_once(self) -> Optional[CycleReport]:
        """Run a single sync cycle."""
        return self.run_cycle()

    def run_continuous_sync(self, interval_seconds: Optional[float] = None):
        """Run continuously, syncing at regular intervals.

        Args:
            interval_seconds: Override configured interval
        """
        if interval_seconds is None:
            interval_seconds = self.config.get('sync_interval_seconds', 10)

        logging.info(f"Starting continuous sync with {interval_seconds} second intervals")
        logging.info("Press Ctrl+C to stop")

        try:
            while True:
                self.run_cycle()
                logging.debug(f"Waiting {interval_seconds} seconds until next sync...")
                time.sleep(interval_seconds)
        except KeyboardInterrupt:
            logging.info("Synchronization stopped by user")


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Google Tasks to Notion Sync - mirrors Google Tasks into a Notion database'
    )
    parser.add_argument(
        '--daemon',
        action='store_true',
        help='Run continuously at regular intervals (default: run once and exit)'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--config',
        default=DEFAULT_CONFIG_FILE,
        help=f'Path to configuration file (default: {DEFAULT_CONFIG_FILE})'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be done without making any changes'
    )
    parser.add_argument(
        '--interval',
        type=float,
        help='Override sync interval in seconds (daemon mode only)'
    )

    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose)

    try:
        manager = SyncManager(config_file=args.config, dry_run=args.dry_run, verbose=args.verbose)
    except Exception as e:
        logging.error(f"Failed to initialize sync manager: {e}")
        if args.verbose:
            logging.error(f"Full traceback: {traceback.format_exc()}")
        return 1

    if not manager.config.get('notion_token') or not manager.config.get('notion_database_id'):
        logging.error(f"Notion token or database ID not configured. Please update {args.config}")
        return 1

    if args.daemon:
        manager.run_continuous_sync(interval_seconds=args.interval)
    else:
        manager.run_once()

    return 0


if __name__ == '__main__':
    sys.exit(main())
