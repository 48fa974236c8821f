#!/usr/bin/env python3
"""
Image Version Checker CLI

Command-line interface for checking cluster images against their registries.
"""

import argparse
import json
import logging
import sys

from .config import Config
from .errors import VersionCheckerError
from .factory import RegistryClientFactory
from .gatherer import dumps
from .image import parse_image
from .resolver import VersionResolver, latest_tag

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def check_command(args):
    """Check every pod container image in the cluster"""
    config = Config.load(args.config)
    if args.workers:
        config.max_workers = args.workers

    gatherer = config.new_data_gatherer()
    records = gatherer.fetch()

    if args.output_format == 'json':
        print(dumps(records))
    else:
        print(f"{'Namespace/Pod':<50} {'Image':<60} {'Current':<20} {'Latest':<20}")
        print("-" * 152)
        for record in records:
            metadata = record.pod.get('metadata') or {}
            pod = f"{metadata.get('namespace', '')}/{metadata.get('name', '')}"
            latest = record.result.latest_version or ('ERROR' if record.error else 'unknown')
            marker = '' if record.result.is_latest else ' *'
            print(f"{pod:<50} {record.result.image_url:<60} {record.result.current_version:<20} {latest:<20}{marker}")

    return 1 if args.fail_on_outdated and any(not r.result.is_latest for r in records) else 0


def list_tags_command(args):
    """List all tags for one image's repository"""
    config = Config.load(args.config) if args.config else Config()
    image = parse_image(args.image)
    client = RegistryClientFactory(config.registries, config.timeout).resolve(image.host)

    resolver = VersionResolver(client)
    tags = resolver.list_tags(image)
    latest = latest_tag(tags)

    if args.output_format == 'json':
        tag_list = [
            {
                'name': tag.name,
                'created': tag.created.isoformat() if tag.created else None,
                'digest': tag.digest,
                'latest': tag is latest,
            }
            for tag in tags
        ]
        print(json.dumps(tag_list, indent=2))
    else:
        print("tag,created,digest")
        for tag in tags:
            created_str = tag.created.isoformat() if tag.created else 'unknown'
            print(f"{tag.name},{created_str},{tag.digest or 'unknown'}")

    return 0


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description='Image Version Checker'
    )
    parser.add_argument('--log-level', default='WARNING',
                        help='Logging level (default: WARNING)')
    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # check command
    check_parser = subparsers.add_parser('check', help='Check all pod images in the cluster')
    check_parser.add_argument('--config', required=True, help='Path to the YAML config')
    check_parser.add_argument('--workers', type=int,
                              help='Concurrent registry checks (default: from config)')
    check_parser.add_argument('--output-format', choices=['table', 'json'], default='json',
                              help='Output format (default: json)')
    check_parser.add_argument('--fail-on-outdated', action='store_true',
                              help='Exit 1 if any image is not the latest')

    # list-tags command
    list_parser = subparsers.add_parser('list-tags', help='List all tags for an image repository')
    list_parser.add_argument('image', help='Image reference (e.g., quay.io/jetstack/cert-manager-controller)')
    list_parser.add_argument('--config', help='Path to the YAML config for registry credentials')
    list_parser.add_argument('--output-format', choices=['csv', 'json'], default='csv',
                             help='Output format (default: csv)')

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == 'check':
            return check_command(args)
        elif args.command == 'list-tags':
            return list_tags_command(args)
    except VersionCheckerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print(f"Error: Unknown command: {args.command}", file=sys.stderr)
    return 1


if __name__ == '__main__':
    sys.exit(main())
