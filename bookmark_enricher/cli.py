"""
Command-line interface for the Bookmark Enricher.

This module provides the CLI for queueing URLs, running AI enrichment,
editing and organizing the enriched records, exporting them, and syncing
them to Notion.
"""

import argparse
import asyncio
import json
import logging
import sys
from contextlib import AsyncExitStack
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from bookmark_enricher.config.pydantic_config import (
    ConfigurationManager,
    EnricherConfig,
    create_sample_config,
)
from bookmark_enricher.core.context_prefetcher import ContextPrefetcher
from bookmark_enricher.core.data_models import BookmarkRecord, BookmarkStatus
from bookmark_enricher.core.exporters import EXPORTERS, ExportError, get_exporter
from bookmark_enricher.core.gemini_api_client import GeminiAPIClient
from bookmark_enricher.core.notion_sync import NotionSyncClient
from bookmark_enricher.core.record_store import RecordStore
from bookmark_enricher.core.scheduler import QueueScheduler, RunReport
from bookmark_enricher.core.storage import JSONFileStore
from bookmark_enricher.core.url_normalizer import parse_import_text, read_import_file
from bookmark_enricher.utils.api_key_validator import APIKeyValidator
from bookmark_enricher.utils.error_handler import EnricherError
from bookmark_enricher.utils.logging_setup import setup_logging
from bookmark_enricher.utils.validation import (
    ValidationError,
    validate_batch_size,
    validate_config_file,
    validate_input_file,
    validate_output_path,
)

EXPORT_FORMATS = sorted(set(EXPORTERS) - {"md"})


class CLIInterface:
    """Command line interface for the enrichment pipeline."""

    def __init__(self):
        self.parser = self._create_parser()
        self.config_manager: Optional[ConfigurationManager] = None
        self.logger = logging.getLogger(__name__)

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser with one subcommand per operation."""
        parser = argparse.ArgumentParser(
            prog="bookmark-enricher",
            description=(
                "Bookmark Enricher - AI titles, summaries, keywords and dates "
                "for your bookmarks"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  bookmark-enricher add https://example.com/article https://x.com/user/status/123
  bookmark-enricher add --file chrome_bookmarks.html
  bookmark-enricher list --status error
  bookmark-enricher retry 3f2a
  bookmark-enricher tag 3f2a 9bc1 --keyword reading-list
  bookmark-enricher export netscape ~/Desktop --browser firefox
  bookmark-enricher notion-sync --database "Reading List"

Configuration:
  Settings are read from bookmark_enricher.toml in the current directory,
  ~/.bookmark_enricher/config.toml, or the file given with --config.
  Credentials may also come from environment variables:
  GEMINI_API_KEY, X_BEARER_TOKEN, CORS_PROXY_URL, NOTION_TOKEN.

  Run 'bookmark-enricher create-config' for a starting point.
            """,
        )

        parser.add_argument(
            "--version", "-V", action="version", version="%(prog)s 1.0.0"
        )
        parser.add_argument(
            "--config",
            "-c",
            help="Configuration file path (TOML or JSON format)",
        )
        parser.add_argument(
            "--store",
            help="Record store file (overrides storage.path from configuration)",
        )
        parser.add_argument(
            "--verbose",
            "-v",
            action="store_true",
            help="Enable verbose output with debug logging on the console",
        )

        subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

        add = subparsers.add_parser("add", help="Queue URLs and enrich them")
        add.add_argument("urls", nargs="*", help="URLs (or list lines) to add")
        add.add_argument(
            "--file",
            "-f",
            help="Read URLs from a text file or a browser bookmarks HTML export",
        )
        add.add_argument(
            "--no-process",
            action="store_true",
            help="Only queue the URLs; enrich later with 'process'",
        )
        add.add_argument("--batch-size", "-b", type=int, help="URLs per AI call")

        process = subparsers.add_parser("process", help="Enrich all queued bookmarks")
        process.add_argument("--batch-size", "-b", type=int, help="URLs per AI call")

        list_cmd = subparsers.add_parser("list", help="Show stored bookmarks")
        list_cmd.add_argument(
            "--status",
            choices=[status.value for status in BookmarkStatus],
            help="Only show bookmarks in this status",
        )
        list_cmd.add_argument(
            "--json", action="store_true", help="Print records as JSON"
        )

        edit = subparsers.add_parser("edit", help="Edit a bookmark")
        edit.add_argument("id", help="Bookmark id (or a unique prefix)")
        edit.add_argument("--title", help="New title")
        edit.add_argument("--summary", help="New summary")
        edit.add_argument(
            "--keywords", help="Replace keywords with this comma-separated list"
        )
        edit.add_argument(
            "--remove-keyword", action="append", default=[], help="Remove a keyword"
        )

        tag = subparsers.add_parser("tag", help="Add a keyword to several bookmarks")
        tag.add_argument("ids", nargs="+", help="Bookmark ids (or unique prefixes)")
        tag.add_argument("--keyword", "-k", required=True, help="Keyword to add")

        retry = subparsers.add_parser("retry", help="Re-run enrichment for a bookmark")
        retry.add_argument("id", help="Bookmark id (or a unique prefix)")

        delete = subparsers.add_parser("delete", help="Delete a bookmark")
        delete.add_argument("id", help="Bookmark id (or a unique prefix)")

        clear = subparsers.add_parser("clear", help="Delete all bookmarks")
        clear.add_argument("--yes", "-y", action="store_true", help="Do not ask")

        export = subparsers.add_parser("export", help="Export bookmarks to a file")
        export.add_argument("format", choices=EXPORT_FORMATS, help="Export format")
        export.add_argument("output", help="Output file or directory")
        export.add_argument(
            "--browser",
            choices=["chrome", "firefox", "safari", "edge"],
            help="Target browser for netscape exports (sets the file name)",
        )

        notion = subparsers.add_parser("notion-sync", help="Sync bookmarks to Notion")
        notion.add_argument(
            "--database", "-d", help="Database title or id to sync into"
        )
        notion.add_argument(
            "--list-databases",
            action="store_true",
            help="List databases shared with the integration and exit",
        )

        create_config = subparsers.add_parser(
            "create-config", help="Write a sample configuration file"
        )
        create_config.add_argument(
            "--format", choices=["toml", "json"], default="toml", help="File format"
        )
        create_config.add_argument(
            "--output", "-o", help="Output path (default: bookmark_enricher.<format>)"
        )

        return parser

    def parse_args(self, args=None) -> argparse.Namespace:
        """Parse command line arguments."""
        return self.parser.parse_args(args)

    # ============ Setup ============

    def _load_config(self, args: argparse.Namespace) -> EnricherConfig:
        config_path = validate_config_file(args.config)
        self.config_manager = ConfigurationManager(config_path)
        return self.config_manager.config

    def _open_store(self, args: argparse.Namespace, config: EnricherConfig) -> RecordStore:
        path = Path(args.store).expanduser() if args.store else config.storage.path
        return RecordStore(JSONFileStore(path), key=config.storage.key)

    def _resolve(self, store: RecordStore, reference: str) -> BookmarkRecord:
        """Find a record by full id or unique id prefix."""
        record = store.get(reference)
        if record is not None:
            return record

        matches = [r for r in store.all() if r.id.startswith(reference)]
        if not matches:
            raise ValidationError(f"No bookmark with id {reference}")
        if len(matches) > 1:
            raise ValidationError(
                f"Id prefix {reference} is ambiguous ({len(matches)} matches)"
            )
        return matches[0]

    def _check_credential(self, provider: str, secret: Optional[str]) -> None:
        """Log a warning when a configured credential does not look valid."""
        if not secret:
            return
        valid, error = APIKeyValidator.validate_format(provider, secret)
        if not valid:
            self.logger.warning(
                f"{provider.title()} credential {APIKeyValidator.sanitize_for_logging(secret)} "
                f"looks malformed: {error}"
            )

    # ============ Enrichment ============

    async def _run_queue(
        self,
        store: RecordStore,
        config: EnricherConfig,
        retry_id: Optional[str] = None,
    ) -> RunReport:
        """Run the scheduler with a live client, prefetcher and progress bar."""
        api_key = self.config_manager.get_secret("gemini")
        self._check_credential("gemini", api_key)
        client = GeminiAPIClient.from_config(config.ai, api_key)
        prefetcher = None
        if config.prefetch.enabled:
            prefetcher = ContextPrefetcher(
                x_bearer_token=self.config_manager.get_secret("x"),
                proxy_url=config.prefetch.proxy_url,
                timeout=config.prefetch.timeout,
            )

        total = len(store.by_status(BookmarkStatus.QUEUED)) + (1 if retry_id else 0)
        with tqdm(total=total, desc="Enriching", unit="bookmark") as progress:

            def on_progress(done: int, run_total: int) -> None:
                progress.total = run_total
                progress.update(done - progress.n)

            async with AsyncExitStack() as stack:
                await stack.enter_async_context(client)
                if prefetcher is not None:
                    await stack.enter_async_context(prefetcher)

                scheduler = QueueScheduler(
                    store,
                    client,
                    prefetcher=prefetcher,
                    config=config.scheduler,
                    progress_callback=on_progress,
                )
                if retry_id:
                    return await scheduler.retry(retry_id)
                return await scheduler.run()

    def _report_run(self, report: RunReport) -> int:
        if report.global_error:
            print("", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            print(f"✗ Enrichment stopped: {report.global_error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            return 1

        print(
            f"✓ Enriched {report.processed} bookmark(s): {report.succeeded} done, "
            f"{report.warnings} with warnings, {report.failed} failed"
        )
        return 0

    # ============ Commands ============

    def _cmd_add(self, args, config: EnricherConfig) -> int:
        lines: List[str] = list(args.urls)
        if args.file:
            lines.append(read_import_file(validate_input_file(args.file)))
        if not lines and not sys.stdin.isatty():
            lines.append(sys.stdin.read())
        if not lines:
            raise ValidationError("No URLs given (pass URLs, --file, or pipe them in)")

        entries = parse_import_text("\n".join(lines))
        store = self._open_store(args, config)
        admitted = store.admit(entries)

        skipped = len(entries) - len(admitted)
        print(f"Queued {len(admitted)} bookmark(s)" + (f", skipped {skipped}" if skipped else ""))

        if args.no_process or not admitted:
            return 0
        return self._cmd_process(args, config, store)

    def _cmd_process(self, args, config: EnricherConfig, store: Optional[RecordStore] = None) -> int:
        if getattr(args, "batch_size", None):
            config.scheduler.batch_size = validate_batch_size(args.batch_size)
        store = store or self._open_store(args, config)
        if not store.next_queued(1):
            print("Nothing queued.")
            return 0
        return self._report_run(asyncio.run(self._run_queue(store, config)))

    def _cmd_list(self, args, config: EnricherConfig) -> int:
        store = self._open_store(args, config)
        records = (
            store.by_status(BookmarkStatus(args.status)) if args.status else store.all()
        )

        if args.json:
            print(json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False))
            return 0

        if not records:
            print("No bookmarks.")
            return 0

        for record in records:
            print(f"[{record.status.value:<10}] {record.id[:8]}  {record.title}")
            print(f"             {record.url}")
            if record.summary:
                print(f"             {record.summary}")
            if record.keywords:
                print(f"             Keywords: {', '.join(record.keywords)}")
        stats = store.get_statistics()
        print(
            f"\n{stats['total']} bookmark(s): {stats['done']} done, "
            f"{stats['warning']} warning, {stats['error']} error, "
            f"{stats['queued'] + stats['processing']} pending"
        )
        return 0

    def _cmd_edit(self, args, config: EnricherConfig) -> int:
        store = self._open_store(args, config)
        record = self._resolve(store, args.id)

        changes = {}
        if args.title is not None:
            changes["title"] = args.title
        if args.summary is not None:
            changes["summary"] = args.summary
        if args.keywords is not None:
            changes["keywords"] = args.keywords.split(",")
        if changes:
            record = store.update(record.evolve(**changes))

        for keyword in args.remove_keyword:
            record = store.remove_keyword(record.id, keyword)

        print(f"✓ Updated {record.id[:8]}: {record.title}")
        return 0

    def _cmd_tag(self, args, config: EnricherConfig) -> int:
        store = self._open_store(args, config)
        ids = [self._resolve(store, reference).id for reference in args.ids]
        changed = store.add_keyword(ids, args.keyword)
        print(f"✓ Added '{args.keyword.strip()}' to {changed} bookmark(s)")
        return 0

    def _cmd_retry(self, args, config: EnricherConfig) -> int:
        store = self._open_store(args, config)
        record = self._resolve(store, args.id)
        report = asyncio.run(self._run_queue(store, config, retry_id=record.id))
        return self._report_run(report)

    def _cmd_delete(self, args, config: EnricherConfig) -> int:
        store = self._open_store(args, config)
        record = self._resolve(store, args.id)
        store.delete(record.id)
        print(f"✓ Deleted {record.url}")
        return 0

    def _cmd_clear(self, args, config: EnricherConfig) -> int:
        store = self._open_store(args, config)
        if not args.yes:
            response = input(f"Delete all {len(store)} bookmark(s)? (y/N): ")
            if response.lower() != "y":
                print("Cancelled.")
                return 1
        store.clear()
        print("✓ All bookmarks deleted")
        return 0

    def _cmd_export(self, args, config: EnricherConfig) -> int:
        store = self._open_store(args, config)
        output = validate_output_path(args.output)

        exporter_class = get_exporter(args.format)
        if args.format == "netscape":
            exporter = exporter_class(browser=args.browser)
        else:
            exporter = exporter_class()

        result = exporter.export(store.all(), output)
        for warning in result.warnings:
            print(f"⚠ {warning}", file=sys.stderr)
        print(f"✓ Exported {result.count} bookmark(s) to {result.path}")
        return 0

    async def _notion_sync(self, args, config: EnricherConfig, records) -> int:
        token = self.config_manager.get_secret("notion")
        if not token:
            raise ValidationError(
                "Notion token is not set. Configure notion.token or set NOTION_TOKEN."
            )
        self._check_credential("notion", token)

        async with NotionSyncClient(
            token, proxy_url=config.notion.proxy_url, timeout=config.notion.timeout
        ) as client:
            databases = await client.list_databases()
            if args.list_databases or not args.database:
                if not databases:
                    print("No databases are shared with this integration.")
                for database in databases:
                    print(f"{database.id}  {database.title}")
                return 0

            wanted = args.database.strip().lower()
            matches = [
                db for db in databases
                if db.id.replace("-", "") == wanted.replace("-", "")
                or db.title.lower() == wanted
            ]
            if not matches:
                raise ValidationError(f"No accessible Notion database named {args.database}")

            result = await client.sync(matches[0], records)

        print(f"✓ Synced to {matches[0].title}: {result.success} created, {result.failed} failed")
        return 0 if not result.failed else 1

    def _cmd_notion_sync(self, args, config: EnricherConfig) -> int:
        store = self._open_store(args, config)
        records = [r for r in store.all() if r.status.is_terminal and r.status != BookmarkStatus.ERROR]
        return asyncio.run(self._notion_sync(args, config, records))

    def _cmd_create_config(self, args) -> int:
        output_path = Path(args.output or f"bookmark_enricher.{args.format}")
        if output_path.exists():
            response = input(
                f"Configuration file '{output_path}' already exists. Overwrite? (y/N): "
            )
            if response.lower() != "y":
                print("Configuration creation cancelled.")
                return 1

        create_sample_config(output_path, args.format)
        print(f"✓ Created configuration file: {output_path}")
        print()
        print("Next steps:")
        print("1. Add your Gemini API key (https://aistudio.google.com/apikey)")
        print("2. Optionally add an X bearer token, a CORS relay URL and a Notion token")
        print("3. Remove any placeholder values you do not replace")
        return 0

    def run(self, args=None) -> int:
        """Execute CLI interface."""
        try:
            parsed_args = self.parse_args(args)
            if not parsed_args.command:
                self.parser.print_help()
                return 1

            if parsed_args.command == "create-config":
                return self._cmd_create_config(parsed_args)

            setup_logging(verbose=parsed_args.verbose)
            config = self._load_config(parsed_args)
            self.logger.info(f"Command: {parsed_args.command}")

            handler = getattr(self, f"_cmd_{parsed_args.command.replace('-', '_')}")
            return handler(parsed_args, config)

        except ValidationError as e:
            print(f"Validation Error: {e}", file=sys.stderr)
            return 1
        except (ValueError, FileNotFoundError) as e:
            print(f"Configuration Error: {e}", file=sys.stderr)
            return 1
        except (EnricherError, ExportError) as e:
            print(f"Error: {e}", file=sys.stderr)
            self.logger.error(f"Command failed: {e}")
            return 1
        except KeyboardInterrupt:
            print("\nInterrupted.", file=sys.stderr)
            return 130


def main(args=None):
    """Main entry point for the CLI."""
    cli = CLIInterface()
    return cli.run(args)


if __name__ == "__main__":
    sys.exit(main())
