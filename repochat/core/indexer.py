# repochat/core/indexer.py
from typing import Callable, Optional

from loguru import logger

from .github_source import GitHubSource, calculate_repo_stats, parse_repository_reference
from .models import IndexedRepository, IndexingProgress, Stage

ProgressCallback = Callable[[IndexingProgress], None]

class RepositoryIndexer:
    """Runs one indexing pass: reference → metadata → tree → key files → stats."""

    def __init__(self, source: GitHubSource, progress_callback: Optional[ProgressCallback] = None):
        self.source = source
        self.progress_callback = progress_callback
        self.progress: Optional[IndexingProgress] = None

    def _emit_progress(self, stage: Stage, percentage: int, message: str):
        if self.progress is not None and percentage < self.progress.percentage:
            raise ValueError(f"Progress went backwards: {self.progress.percentage} -> {percentage}")
        self.progress = IndexingProgress(stage=stage, percentage=percentage, message=message)
        logger.debug(f"[{percentage:>3}%] {stage.value}: {message}")
        if self.progress_callback:
            try: self.progress_callback(self.progress)
            except Exception as e: logger.error(f"Error in progress callback: {e}")

    async def index(self, reference_text: str) -> IndexedRepository:
        self.progress = None
        self._emit_progress(Stage.FETCHING, 10, "Validating repository URL...")
        reference = parse_repository_reference(reference_text)

        self._emit_progress(Stage.FETCHING, 20, "Fetching repository information...")
        repo = await self.source.get_repository(reference.owner, reference.name)

        self._emit_progress(Stage.FETCHING, 40, "Loading file structure...")
        file_tree = await self.source.get_tree(reference.owner, reference.name, repo.default_branch)

        self._emit_progress(Stage.ANALYZING, 60, "Analyzing key files...")
        key_files = await self.source.fetch_key_files(reference.owner, reference.name, file_tree)

        self._emit_progress(Stage.ANALYZING, 80, "Calculating repository statistics...")
        total_files, total_size = calculate_repo_stats(file_tree)

        self._emit_progress(Stage.BUILDING, 95, "Building context...")
        indexed = IndexedRepository(repo=repo, file_tree=file_tree, key_files=key_files,
                                    total_files=total_files, total_size=total_size)

        self._emit_progress(Stage.COMPLETE, 100, "Repository indexed successfully!")
        logger.info(f"Indexed {repo.full_name}: {total_files} files, {len(key_files)} key files.")
        return indexed
