#!/usr/bin/env python3
"""
WordPress JSON exporter
- Fetches posts, pages, media, categories, tags and users via the REST API
- Optionally brute forces ids to find content the listings leave out
- Downloads original media next to the export
- Writes everything to a single JSON document (export.json)

Usage:
  wp-export-json https://example.com [-o export/site] [--brute-force --max-id 5000] [--zip]
  wp-export-json https://example.com --scan-range posts 100 200

Notes:
- Works with the public REST API (site.com/wp-json/)
- Settings can also come from config.yaml or WPEXPORT_* environment variables
"""

import argparse
import json
import pathlib
import shutil
import sys
import threading
import zipfile
from datetime import datetime, timezone

from wp_api_client import ResourceKind, WordPressAPIError, WordPressClient, known_ids
from wp_bruteforce import BruteForceScanner, Found, UnsupportedKindError
from wp_config import ConfigError, load_config
from wp_logger import setup_logger
from wp_media import download_media

COLLECTIONS = (
    ResourceKind.POSTS,
    ResourceKind.PAGES,
    ResourceKind.MEDIA,
    ResourceKind.CATEGORIES,
    ResourceKind.TAGS,
    ResourceKind.USERS,
)


def build_client(config) -> WordPressClient:
    return WordPressClient(
        config.url,
        timeout=config.timeout,
        retries=config.retries,
        user_agent=config.user_agent,
        auth=config.auth(),
        sleep=config.sleep,
    )


def build_export_document(site, collections: dict, brute_force_found=0, media_downloaded=0,
                          exported_at: datetime = None) -> dict:
    """Assemble the export document written to export.json."""
    exported_at = exported_at or datetime.now(timezone.utc)
    document = {"site": site.to_dict()}
    for kind in COLLECTIONS:
        document[kind.value] = collections.get(kind, [])
    document["exported_at"] = exported_at.isoformat()
    document["stats"] = {
        **{f"total_{kind.value}": len(document[kind.value]) for kind in COLLECTIONS},
        "media_downloaded": media_downloaded,
        "brute_force_found": brute_force_found,
    }
    return document


def write_export(document: dict, output) -> pathlib.Path:
    """Write the document to output (a .json file) or output/export.json."""
    output = pathlib.Path(output)
    path = output if output.suffix == ".json" else output / "export.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def create_zip_archive(paths, zip_path) -> pathlib.Path:
    """Zip files and directories (recursively) into zip_path."""
    zip_path = pathlib.Path(zip_path)
    zip_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zipf:
        for path in map(pathlib.Path, paths):
            if path.is_file():
                zipf.write(path, path.name)
                continue
            for file_path in path.rglob("*"):
                if file_path.is_file():
                    zipf.write(file_path, file_path.relative_to(path.parent))
    return zip_path


class ScanProgress:
    """Prints a line every `every` checked ids of a kind."""

    def __init__(self, max_id, every=500):
        self.max_id = max_id
        self.every = every
        self.counts = {}

    def __call__(self, event):
        if isinstance(event, Found):
            return
        n = self.counts.get(event.kind, 0) + 1
        self.counts[event.kind] = n
        if n % self.every == 0:
            print(f"   … checked {n} {event.kind.value} id(s) (max id {self.max_id})")


def merge_scan_result(collections: dict, scan_result):
    for kind in (ResourceKind.POSTS, ResourceKind.PAGES, ResourceKind.MEDIA):
        found = sorted(scan_result.records(kind), key=lambda r: r.get("id", 0))
        collections[kind] = collections.get(kind, []) + found


def export_wordpress_content(config, client=None, cancel_event: threading.Event = None):
    """
    Core function to export a WordPress site. Can be called from the CLI or other code.

    Args:
        config (ExportConfig): validated configuration with output set
        client (WordPressClient): client to use, built from config if omitted
        cancel_event (threading.Event): set it to stop a running brute force scan

    Returns:
        tuple: (success: bool, output: str, message: str)
    """
    client = client or build_client(config)

    try:
        print(f"==> Starting WordPress export from: {config.url}")
        print(f"==> Output: {config.output}")
        if config.brute_force:
            print(f"==> Brute force enabled (max ID: {config.max_id})")
        if config.download_media:
            print(f"==> Media download enabled (concurrent: {config.concurrent})")

        site = client.fetch_site_info()
        print(f"==> Connected to: {site.name}")

        collections = {}
        for kind in COLLECTIONS:
            print(f"-- Fetching {kind.value} ...")
            collections[kind] = client.fetch_all(kind)
            print(f"   … found {len(collections[kind])} {kind.value}")

        brute_force_found = 0
        if config.brute_force:
            print("-- Performing brute force content discovery ...")
            scanner = BruteForceScanner(client, concurrency=config.concurrent,
                                        delay=config.scan_delay, cancel_event=cancel_event,
                                        verbose=config.verbose)
            known = {kind: known_ids(collections[kind]) for kind in
                     (ResourceKind.POSTS, ResourceKind.PAGES, ResourceKind.MEDIA)}
            result = scanner.scan(known, config.max_id,
                                  on_event=ScanProgress(config.max_id))
            merge_scan_result(collections, result)
            brute_force_found = result.found
            print(f"   … brute force found {brute_force_found} additional item(s)")

        media_downloaded = 0
        if config.download_media and collections[ResourceKind.MEDIA]:
            print("-- Downloading media ...")
            media_downloaded, paths = download_media(
                client.session, collections[ResourceKind.MEDIA], config.media_dir(),
                concurrency=config.concurrent, retries=config.retries, timeout=config.timeout)
            for media in collections[ResourceKind.MEDIA]:
                if media.get("id") in paths:
                    media["local_path"] = paths[media["id"]]
            print(f"   … downloaded {media_downloaded} media file(s)")

        document = build_export_document(site, collections, brute_force_found, media_downloaded)
        path = write_export(document, config.output)
        print(f"==> Wrote {path}")

        output = str(path if config.output_is_file else pathlib.Path(config.output))
        if config.create_zip:
            sources = [pathlib.Path(config.output)]
            if config.output_is_file and config.media_dir().exists():
                sources.append(config.media_dir())
            out = pathlib.Path(config.output)
            zip_name = out.with_suffix(".zip") if config.output_is_file else out.with_name(out.name + ".zip")
            zip_path = create_zip_archive(sources, zip_name)
            print(f"==> ZIP archive created: {zip_path}")
            if config.no_files:
                for source in sources:
                    if source.is_dir():
                        shutil.rmtree(source)
                    else:
                        source.unlink()
                print("==> Export files removed")
            output = str(zip_path)

        return True, output, "Export completed successfully"

    except WordPressAPIError as e:
        return False, config.output, f"Error during export: {e}"
    except OSError as e:
        return False, config.output, f"Could not write export: {e}"


def run_scan_range(config, kind, start_id, end_id, client=None):
    """Scan a single id range and print what answered."""
    client = client or build_client(config)
    scanner = BruteForceScanner(client, concurrency=1, delay=config.scan_delay,
                                verbose=config.verbose)
    records = scanner.scan_range(kind, start_id, end_id)
    for record in records:
        print(f"{record.get('id')}\t{record.get('link', '')}")
    print(f"==> Found {len(records)} item(s) between {start_id} and {end_id}")
    return records


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="Export WordPress content to JSON via the REST API")
    ap.add_argument("url", nargs="?", help="Site base URL, e.g. https://example.com")
    ap.add_argument("--config", help="YAML config file (default: ./config.yaml, ~/.wpexportjson/config.yaml)")
    ap.add_argument("--output", "-o", help="Output directory or .json file (default: export/{domain}.{date}{time})")
    ap.add_argument("--brute-force", action="store_true", default=None, help="Try every id to find unlisted content")
    ap.add_argument("--max-id", type=int, help="Highest id to try (default: 10000)")
    ap.add_argument("--no-media", dest="download_media", action="store_false", default=None,
                    help="Skip media download")
    ap.add_argument("--concurrent", "-c", type=int, help="Concurrent requests (default: 5)")
    ap.add_argument("--timeout", type=float, help="Request timeout in seconds (default: 30)")
    ap.add_argument("--retries", type=int, help="Retries per request (default: 3)")
    ap.add_argument("--sleep", type=float, help="Delay between listing pages (seconds)")
    ap.add_argument("--zip", dest="create_zip", action="store_true", default=None, help="Create a ZIP archive")
    ap.add_argument("--no-files", action="store_true", default=None,
                    help="Remove export files after zipping (requires --zip)")
    ap.add_argument("--username", help="WordPress username for HTTP Basic Auth")
    ap.add_argument("--password", help="WordPress application password")
    ap.add_argument("--scan-range", nargs=3, metavar=("KIND", "START", "END"),
                    help="Only try ids START..END of KIND (posts, pages, media)")
    ap.add_argument("--verbose", "-v", action="store_true", default=None, help="Show verbose output")
    return ap.parse_args(argv)


def main(argv=None):
    """CLI entry point that handles argument parsing and calls the core function."""
    args = parse_args(argv)
    overrides = {
        "url": args.url,
        "output": args.output,
        "brute_force": args.brute_force,
        "max_id": args.max_id,
        "download_media": args.download_media,
        "concurrent": args.concurrent,
        "timeout": args.timeout,
        "retries": args.retries,
        "sleep": args.sleep,
        "create_zip": args.create_zip,
        "no_files": args.no_files,
        "username": args.username,
        "password": args.password,
        "verbose": args.verbose,
    }

    try:
        config = load_config(args.config, overrides)
        config.generate_default_output()
        config.validate()
    except ConfigError as e:
        print(f"[!] Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logger(level="DEBUG" if config.verbose else "INFO")

    if args.scan_range:
        kind, start, end = args.scan_range
        try:
            run_scan_range(config, kind, int(start), int(end))
        except (UnsupportedKindError, ValueError) as e:
            print(f"[!] {e}", file=sys.stderr)
            sys.exit(1)
        return

    success, output, message = export_wordpress_content(config)
    if not success:
        print(f"[!] {message}", file=sys.stderr)
        sys.exit(1)
    print(f"==> Done. See: {output}")


if __name__ == "__main__":
    main()
