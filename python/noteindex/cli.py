"""
Command line entry point.

Resolves the embedding backend from the persisted settings, then hands
the core an already-configured embedding function.
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .config import IndexerConfig, get_config, set_config
from .embedders import resolve_embedder
from .errors import IndexingError
from .filters import DocumentFilter
from .orchestrator import Orchestrator
from .settings import SettingsStore, format_model_value
from .source import VaultSource
from .vector_store import VectorStore
from .watcher import ChangeType, NoteWatcher


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="noteindex", description="Semantic index for a notes vault")
    parser.add_argument("--vault", help="Notes directory (default: $NOTEINDEX_VAULT or cwd)")
    parser.add_argument("--settings", help="Settings file (default: ~/.noteindex/settings.json)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("index", help="Index the active note group")

    index_note = commands.add_parser("index-note", help="Index a single note")
    index_note.add_argument("path", help="Note path (absolute or vault-relative)")

    search = commands.add_parser("search", help="Find notes similar to a text")
    search.add_argument("text")
    search.add_argument("-k", type=int, default=10)

    similar = commands.add_parser("similar", help="Find notes similar to an indexed note")
    similar.add_argument("path")
    similar.add_argument("-k", type=int, default=10)

    commands.add_parser("clear", help="Delete all stored vectors")

    model = commands.add_parser("set-model", help="Switch the embedding model (clears vectors)")
    model.add_argument("provider")
    model.add_argument("model")

    commands.add_parser("watch", help="Index, then re-index as notes change")
    return parser


class App:
    """Wires settings, store, source and orchestrator for one CLI invocation."""

    def __init__(self, config: IndexerConfig):
        self.config = config
        self.settings_store = SettingsStore(config.settings_path)
        self.settings = self.settings_store.load()
        self.store = self.settings.vector_store()
        self.filter = DocumentFilter(config)
        self.source = VaultSource(config.vault_root, self.filter, config)
        self._embedder = None

    @property
    def embedder(self):
        if self._embedder is None:
            self._embedder = resolve_embedder(
                self.settings,
                api_key=os.environ.get("OPENAI_API_KEY"),
                base_url=os.environ.get("OPENAI_BASE_URL"),
            )
        return self._embedder

    def save(self, store: VectorStore) -> None:
        self.settings_store.save_store(self.settings, store)

    def orchestrator(self) -> Orchestrator:
        def report(completed: int) -> None:
            logger.debug(f"Indexed {completed} notes so far")

        return Orchestrator(
            self.store,
            self.embedder,
            self.filter,
            self.config,
            on_progress=report,
            persist=self.save,
        )

    def identity(self, path: str) -> str:
        candidate = Path(path)
        if candidate.is_absolute():
            return self.source.identity_for(candidate)
        return candidate.as_posix()

    async def close(self) -> None:
        if self._embedder is not None:
            await self._embedder.aclose()


async def _run(args: argparse.Namespace, app: App) -> int:
    if args.command == "index":
        stats = await app.orchestrator().index_group(app.source, app.settings.active_group())
        if stats is not None:
            print(f"Indexed {stats.documents_indexed} notes")
        return 0

    if args.command == "index-note":
        document = app.source.document(app.identity(args.path))
        if document is None:
            print(f"Cannot read note: {args.path}", file=sys.stderr)
            return 1
        stats = await app.orchestrator().index_document(document)
        if stats is not None:
            print(f"Indexed {stats.documents_indexed} notes")
        return 0

    if args.command == "search":
        vector = await app.embedder(args.text)
        _print_results(app.store.query_similar(vector, args.k))
        return 0

    if args.command == "similar":
        _print_results(app.store.query_similar_to(app.identity(args.path), args.k))
        return 0

    if args.command == "clear":
        count = len(app.store)
        app.store.clear()
        app.save(app.store)
        print(f"Cleared {count} vectors")
        return 0

    if args.command == "set-model":
        app.settings.embeddings_model_version = format_model_value(args.provider, args.model)
        app.settings.embeddings_model_provider_id = args.provider
        app.settings.embeddings_enabled = True
        if app.store.switch_model(args.model):
            print("Embedding model changed; stored vectors were cleared")
        app.save(app.store)
        return 0

    if args.command == "watch":
        await _watch(app)
        return 0

    raise ValueError(f"Unknown command: {args.command}")


async def _watch(app: App) -> None:
    orchestrator = app.orchestrator()
    group = app.settings.active_group()
    watcher = NoteWatcher(app.source.root, app.filter, app.config)

    await orchestrator.index_group(app.source, group)
    watcher.start()
    try:
        async for batch in watcher.changes():
            for change in batch:
                if change.change_type is ChangeType.DELETED:
                    app.store.remove(change.identity)
                elif change.change_type is ChangeType.MOVED and change.old_identity:
                    app.store.remove(change.old_identity)
            await orchestrator.index_group(app.source, group)
    finally:
        orchestrator.stop()
        watcher.stop()


def _print_results(results) -> None:
    for result in results:
        print(f"{result.score:.3f}  {result.identity}")


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s"
    )

    config = get_config()
    if args.vault:
        config.vault_root = Path(args.vault)
    if args.settings:
        config.settings_path = Path(args.settings)
    config.__post_init__()
    set_config(config)

    async def _main() -> int:
        app = App(config)
        try:
            return await _run(args, app)
        finally:
            await app.close()

    try:
        return asyncio.run(_main())
    except KeyboardInterrupt:
        print("\nStopped.")
        return 130
    except (IndexingError, KeyError, ValueError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
