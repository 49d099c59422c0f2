#!/usr/bin/env python3
"""
ChatGPT Conversation to Markdown Exporter - Main CLI Entry Point

Fetches one conversation (or reads a saved JSON record), renders it as a
linear Markdown document with canvas edits applied and images downloaded,
and saves everything into an output directory.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import yaml

from chatgpt_client import ChatGPTClient, resolve_conversation_id
from config_loader import ConfigLoader, get_nested
from exporters import AssetWriter, ExportPipeline
from logger import LOGGER_NAME, log_config, log_section, setup_logging
from models import AssetFile, ExportError, ExportOptions

__version__ = "1.0.0"

DEFAULT_CONFIG_PATH = 'config.yaml'


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Export a ChatGPT conversation to Markdown with canvas documents and images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export by conversation URL (token from CHATGPT_ACCESS_TOKEN)
  python export_chat.py https://chatgpt.com/c/6740a1b2-...

  # Export a saved conversation JSON without network access
  python export_chat.py --input conversation.json

  # Include tool/system messages and timestamps
  python export_chat.py <id> --all-roles --show-timestamps

  # Preview the Markdown without writing files
  python export_chat.py <id> --dry-run
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        'conversation',
        nargs='?',
        help='Conversation id or URL (e.g. https://chatgpt.com/c/<id>)'
    )

    parser.add_argument(
        '--input',
        type=str,
        help='Read the conversation record from a JSON file instead of the API'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help=f'Path to configuration YAML file (default: {DEFAULT_CONFIG_PATH} if present)'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        help='Directory for the exported files'
    )

    parser.add_argument(
        '--base-url',
        type=str,
        help='ChatGPT base URL (default: https://chatgpt.com)'
    )

    parser.add_argument(
        '--show-timestamps',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Show message timestamps'
    )

    parser.add_argument(
        '--all-roles',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Include tool, system and other non-chat messages'
    )

    parser.add_argument(
        '--show-image-prompts',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Show image-generation prompts under images'
    )

    parser.add_argument(
        '--pending-scope',
        choices=['shared', 'per_document'],
        help='Match announced canvas edits to documents via one shared slot or per document'
    )

    parser.add_argument(
        '--dry-run',
        action=argparse.BooleanOptionalAction,
        default=False,
        help='Print the Markdown and the file list without writing files'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Also write logs to this file'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    return parser


def load_configuration(args: argparse.Namespace) -> Dict[str, Any]:
    """Load the config file (optional at the default path) and apply CLI overrides."""
    if args.config:
        config = ConfigLoader.load(args.config)
    elif Path(DEFAULT_CONFIG_PATH).exists():
        config = ConfigLoader.load(DEFAULT_CONFIG_PATH)
    else:
        config = ConfigLoader.defaults()

    config = ConfigLoader.merge_with_args(config, args)
    ConfigLoader.validate(config)
    return config


def load_record(args: argparse.Namespace, config: Dict[str, Any], logger: logging.Logger):
    """
    Obtain the raw conversation record and the client used for images.

    Returns:
        Tuple of (record_dict, conversation_id, client_or_None)
    """
    if args.input:
        logger.info(f"Reading conversation from {args.input}")
        with open(args.input, 'r', encoding='utf-8') as f:
            record = json.load(f)

        conversation_id = None
        if args.conversation:
            conversation_id = resolve_conversation_id(args.conversation)
        elif isinstance(record, dict):
            conversation_id = record.get('conversation_id') or record.get('id')

        client = None
        access_token = get_nested(config, 'chatgpt.access_token')
        if access_token and '${' not in access_token:
            client = ChatGPTClient.from_config(config)
        else:
            logger.warning("No access token configured - images will be skipped")
        return record, conversation_id, client

    conversation_id = resolve_conversation_id(args.conversation)
    client = ChatGPTClient.from_config(config)
    return client.fetch_conversation(conversation_id), conversation_id, client


def print_preview(markdown: str, assets: List[AssetFile]) -> None:
    """Print the rendered Markdown and the files that would be written."""
    print(markdown)
    print("\n" + "=" * 60)
    print("FILES (DRY RUN)")
    print("=" * 60)
    for asset in assets:
        print(f"  {asset.filename} ({len(asset.payload)} bytes, {asset.mime_type})")


def run_export(config: Dict[str, Any], args: argparse.Namespace, logger: logging.Logger) -> int:
    """Execute one export and return the process exit code."""
    log_section("ChatGPT Markdown Export")

    try:
        record, conversation_id, client = load_record(args, config, logger)

        pipeline = ExportPipeline(client=client)
        markdown, assets = pipeline.export(
            record,
            options=ExportOptions.from_config(config),
            conversation_id=conversation_id
        )

        if args.dry_run:
            print_preview(markdown, assets)
            logger.info("Dry-run complete. No files written.")
            return 0

        writer = AssetWriter(
            output_dir=Path(get_nested(config, 'export.output_directory')),
            show_progress=get_nested(config, 'export.progress_bars', True)
        )
        stats = writer.write_all(assets)

        if stats['failed']:
            logger.warning(f"Export finished with {stats['failed']} file(s) not saved")
            return 1

        print(f"Saved {stats['written']} file(s) to {writer.output_dir}")
        return 0

    except (ExportError, requests.exceptions.RequestException, json.JSONDecodeError) as e:
        logger.error(f"Export failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.error("Export interrupted by user")
        return 130


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.conversation and not args.input:
        parser.error("a conversation id/URL or --input is required")

    try:
        setup_logging(verbosity=args.verbose)
        config = load_configuration(args)

        setup_logging(
            verbosity=args.verbose,
            level=get_nested(config, 'logging.level'),
            log_file=get_nested(config, 'logging.file')
        )
        logger = logging.getLogger(LOGGER_NAME)
        log_config(config)

        return run_export(config, args, logger)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except yaml.YAMLError as e:
        print(f"ERROR: Invalid configuration file: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nExport interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
