# repochat/core/tree_reducer.py
from typing import List, Optional, Sequence

from loguru import logger

from .github_source import calculate_repo_stats
from .models import FileNode, FileContent

DIR_GLYPH = "📁"
FILE_GLYPH = "📄"
TRUNCATION_MARKER = "..."

class TreeReducer:
    """
    Reduces a repository listing plus key-file bodies to a single text blob
    suitable for a model's system prompt.

    The outline is capped at `max_depth` levels (root level is depth 0) and
    `max_siblings` entries per directory. Key files whose content is at least
    `truncate_threshold` characters long are cut to `truncate_length`
    characters. Nothing else bounds the output.
    """

    def __init__(self, max_depth: int = 3, max_siblings: int = 50,
                 truncate_threshold: int = 10000, truncate_length: int = 5000):
        self.max_depth = max_depth
        self.max_siblings = max_siblings
        self.truncate_threshold = truncate_threshold
        self.truncate_length = truncate_length

    @classmethod
    def from_config(cls, context_config) -> "TreeReducer":
        return cls(max_depth=context_config.max_depth, max_siblings=context_config.max_siblings,
                   truncate_threshold=context_config.truncate_threshold,
                   truncate_length=context_config.truncate_length)

    def render_outline(self, nodes: Sequence[FileNode], depth: int = 0) -> List[str]:
        """One line per node, in the tree's own order."""
        if depth > self.max_depth:
            return []

        lines: List[str] = []
        for node in list(nodes)[:self.max_siblings]:
            glyph = DIR_GLYPH if node.is_dir else FILE_GLYPH
            lines.append(f"{'  ' * depth}{glyph} {node.name}")
            if node.children and depth < self.max_depth:
                lines.extend(self.render_outline(node.children, depth + 1))
        return lines

    def render_key_file(self, key_file: FileContent) -> str:
        if len(key_file.content) < self.truncate_threshold:
            return f"--- {key_file.path} ---\n{key_file.content}\n\n"
        logger.debug(f"Truncating key file {key_file.path} ({len(key_file.content)} chars) to {self.truncate_length}")
        return (f"--- {key_file.path} (truncated) ---\n"
                f"{key_file.content[:self.truncate_length]}{TRUNCATION_MARKER}\n\n")

    def reduce(self, tree: Sequence[FileNode], key_files: Sequence[FileContent],
               total_files: Optional[int] = None) -> str:
        if total_files is None:
            total_files, _ = calculate_repo_stats(tree)

        parts = [f"File Structure ({total_files} files):\n"]
        outline = self.render_outline(tree)
        parts.extend(f"{line}\n" for line in outline)

        if key_files:
            parts.append("\n\nKey Files Content:\n\n")
            parts.extend(self.render_key_file(f) for f in key_files)

        context = "".join(parts)
        logger.debug(f"Reduced {total_files} files to {len(outline)} outline lines, "
                     f"{len(key_files)} key files, {len(context)} chars.")
        return context

def reduce_tree(tree: Sequence[FileNode], key_files: Sequence[FileContent],
                total_files: Optional[int] = None) -> str:
    """Reduces with the default limits."""
    return TreeReducer().reduce(tree, key_files, total_files)
