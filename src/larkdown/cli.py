"""``larkdown`` command line.

Two subcommands::

    larkdown import notes.md --title "Notes" -v
    larkdown export https://example.feishu.cn/docx/AbC123 -o notes.md

Credentials come from ``FEISHU_APP_ID`` / ``FEISHU_APP_SECRET`` (or
``FEISHU_TENANT_ACCESS_TOKEN``).  Exit status is 1 when the import aborts
in phase 1 or on a configuration or API error, 0 otherwise; partial
diagram and table failures are reported in the summary only.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence

from larkdown.client import LarkdownClient
from larkdown.config import LarkdownConfig
from larkdown.errors import LarkdownError, LarkdownImportError
from larkdown.importer.stats import ConsoleReporter
from larkdown.observability import get_logger, set_log_level

log = get_logger("larkdown.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="larkdown",
        description="Import Markdown into Feishu documents and export them back.",
    )
    parser.add_argument("--debug-dump", action="store_true",
                        help="write redacted request/response payloads to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="create or append to a document from a Markdown file")
    imp.add_argument("file", help="Markdown file to import")
    imp.add_argument("--document-id", "-d", help="append to this document instead of creating one")
    imp.add_argument("--title", "-t", help="title of the new document (default: file name)")
    imp.add_argument("--folder", "-f", help="folder token for the new document")
    imp.add_argument("--upload-images", dest="upload_images", action="store_true", default=True,
                     help="upload local images (default)")
    imp.add_argument("--no-upload-images", dest="upload_images", action="store_false",
                     help="replace images with text placeholders")
    imp.add_argument("--verbose", "-v", action="store_true", help="print per-task progress")
    imp.add_argument("--diagram-workers", type=int, help="concurrent diagram imports")
    imp.add_argument("--table-workers", type=int, help="concurrent table fills")
    imp.add_argument("--diagram-retries", type=int, help="failure budget per diagram")
    imp.add_argument("--output", "-o", choices=("text", "json"), default="text",
                     help="summary format")

    exp = sub.add_parser("export", help="export a document to Markdown")
    exp.add_argument("document", help="document id or URL")
    exp.add_argument("--output", "-o", help="write to this file instead of stdout")
    exp.add_argument("--download-images", action="store_true",
                     help="download images and whiteboards into --assets-dir")
    exp.add_argument("--assets-dir", help="directory for downloaded assets")
    exp.add_argument("--front-matter", action="store_true", help="prepend YAML front matter")
    exp.add_argument("--highlight", action="store_true", help="keep text colours as <span> tags")
    exp.add_argument("--degrade-deep-headings", action="store_true",
                     help="render headings 7-9 as bold paragraphs")
    return parser


def _config_overrides(args: argparse.Namespace) -> dict:
    overrides: dict = {"debug_dump_payload": args.debug_dump or None}
    if args.command == "import":
        overrides.update(
            upload_images=args.upload_images,
            diagram_workers=args.diagram_workers,
            table_workers=args.table_workers,
            diagram_max_retries=args.diagram_retries,
        )
    else:
        overrides.update(
            download_images=args.download_images or None,
            assets_dir=args.assets_dir,
            front_matter=args.front_matter or None,
            highlight=args.highlight or None,
            degrade_deep_headings=args.degrade_deep_headings or None,
        )
    return overrides


def _run_import(client: LarkdownClient, args: argparse.Namespace) -> int:
    as_json = args.output == "json"
    reporter = ConsoleReporter(
        verbose=args.verbose,
        stream=sys.stderr if as_json else None,
    )
    summary = client.import_markdown(
        args.file,
        document_id=args.document_id,
        title=args.title,
        folder=args.folder,
        reporter=reporter,
    )
    if as_json:
        print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
    else:
        reporter.summary(summary)
    if summary.has_failures:
        print(
            "Import completed with failures; see the summary above.",
            file=sys.stderr,
        )
    return 0


def _run_export(client: LarkdownClient, args: argparse.Namespace) -> int:
    result = client.export_markdown(args.document, output=args.output)
    if args.output is None:
        sys.stdout.write(result.markdown)
    for warning in result.warnings:
        print(f"[warning] {warning.code}: {warning.message}", file=sys.stderr)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the ``larkdown`` console script."""
    args = build_parser().parse_args(argv)
    if getattr(args, "verbose", False):
        set_log_level("INFO")

    try:
        config = LarkdownConfig.from_env(**_config_overrides(args))
    except ValueError as exc:
        print(f"error: invalid configuration: {exc}", file=sys.stderr)
        return 1

    try:
        with LarkdownClient(config) as client:
            if args.command == "import":
                return _run_import(client, args)
            return _run_export(client, args)
    except LarkdownImportError as exc:
        print(f"error: import aborted: {exc}", file=sys.stderr)
        return 1
    except LarkdownError as exc:
        log.debug("command failed", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
