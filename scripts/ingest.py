#!/usr/bin/env python
"""Ingest documents into the vector store snapshot from the command line.

Usage:
    python scripts/ingest.py report.pdf notes.txt     # Add files to the store
    python scripts/ingest.py --rebuild docs/*.docx    # Start from an empty store
    python scripts/ingest.py --verbose report.pdf     # Show detailed progress
"""
import argparse
import asyncio
import sys
import uuid
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from docqa import config
from docqa.rag.embedder import EmbeddingClient
from docqa.rag.ingest import IngestPipeline
from docqa.rag.store import VectorStore
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, file_path: Path):
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {file_path.name[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict, snapshot_path: Path):
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Ingestion Complete!")
        print(f"{'=' * 60}\n")
        print(f"  📁 Files processed:      {stats['files_processed']}")
        print(f"  ❌ Files failed:         {stats['files_failed']}")
        print(f"  📝 Chunks stored:        {stats['chunks_created']}")
        print(f"  📚 Documents in store:   {stats['total_documents']}")
        print(f"  ⏱️  Time elapsed:         {elapsed_seconds:.1f}s")

        if stats["chunks_created"] > 0 and elapsed_seconds > 0:
            rate = stats["chunks_created"] / elapsed_seconds
            print(f"  ⚡ Ingestion rate:       {rate:.1f} chunks/sec")

        print(f"\n{'=' * 60}\n")

        if stats["files_failed"] > 0:
            print(f"⚠️  Warning: {stats['files_failed']} file(s) failed to ingest.")
            print("   Check logs for details.\n")

        if stats["files_processed"] > 0:
            print(f"✅ Snapshot saved at: {snapshot_path}\n")


async def ingest_files(
    files, pipeline: IngestPipeline, progress: ProgressReporter = None
) -> dict:
    """Ingest files one after another and summarize the run.

    Failures are recorded per file and do not stop the run.
    """
    stats = {"files_processed": 0, "files_failed": 0, "chunks_created": 0}

    for i, file_path in enumerate(files, 1):
        metadata = await pipeline.process_document(str(uuid.uuid4()), Path(file_path))

        if metadata is None:
            stats["files_failed"] += 1
        else:
            stats["files_processed"] += 1
            stats["chunks_created"] += metadata.chunk_count

        if progress:
            progress.update(i, len(files), Path(file_path))

    stats["total_documents"] = pipeline.store.get_stats()["total_documents"]
    return stats


async def main():
    """Main entry point for the ingest script."""
    parser = argparse.ArgumentParser(
        description="Ingest PDF, DOCX and text files into the vector store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/ingest.py report.pdf notes.txt
  python scripts/ingest.py --rebuild docs/*.docx
        """,
    )

    parser.add_argument("files", nargs="+", type=Path, help="Files to ingest")

    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Start from an empty store instead of the existing snapshot",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )

    parser.add_argument(
        "--snapshot",
        type=Path,
        default=None,
        help=f"Snapshot file (default: {config.SNAPSHOT_PATH})",
    )

    args = parser.parse_args()
    config.configure_logging("DEBUG" if args.verbose else "WARNING")

    progress = ProgressReporter(verbose=args.verbose)
    snapshot_path = args.snapshot or config.SNAPSHOT_PATH

    try:
        print("\n📋 Configuration:")
        print(f"   Snapshot:         {snapshot_path}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
        print(f"   Chunk budget:     {config.CHUNK_MAX_TOKENS} tokens")

        missing = [f for f in args.files if not f.is_file()]
        if missing:
            raise FileNotFoundError(f"No such file: {missing[0]}")

        embedder = EmbeddingClient()
        store = VectorStore(embedder=embedder)

        store.load_snapshot(snapshot_path)

        if args.rebuild:
            print(f"\n⚠️  Rebuild mode: dropping {store.get_stats()['total_documents']} stored document(s)")
            store.clear()

        # One snapshot write at the end instead of one per document
        pipeline = IngestPipeline(
            store,
            embedder=embedder,
            snapshot_path=snapshot_path,
            autosave=False,
        )

        action = "Rebuilding" if args.rebuild else "Ingesting"
        progress.start(f"{action} {len(args.files)} file(s)")

        stats = await ingest_files(args.files, pipeline, progress)
        await pipeline.save()

        progress.finish(stats, snapshot_path)

        if stats["files_failed"] > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\n⚠️  Ingestion cancelled by user.\n")
        sys.exit(1)

    except FileNotFoundError as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)

    except Exception as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("ingest_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
