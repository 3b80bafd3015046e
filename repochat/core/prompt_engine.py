# repochat/core/prompt_engine.py
from typing import Dict, List, Optional, Sequence

from loguru import logger

from .models import ChatMessage, IndexedRepository, Role
from .tree_reducer import TreeReducer

INSTRUCTIONS = (
    "Answer questions about this repository's code, structure, functionality, and "
    "implementation details. When referencing code, use proper markdown formatting with "
    "syntax highlighting. Be specific and reference actual files when possible."
)

class PromptEngine:
    """Builds the outbound message list: system turn first, then the conversation."""

    def __init__(self, reducer: Optional[TreeReducer] = None):
        self.reducer = reducer or TreeReducer()

    def build_system_prompt(self, repository: IndexedRepository) -> str:
        context = self.reducer.reduce(repository.file_tree, repository.key_files,
                                      total_files=repository.total_files)
        repo = repository.repo
        lines = [
            "You are an expert code analyst assistant. You have access to the following GitHub repository:",
            "",
            f"Repository: {repo.full_name}",
            f"Description: {repo.description}",
            f"Primary Language: {repo.language}",
            "",
            context,
            "",
            INSTRUCTIONS,
        ]
        return "\n".join(lines)

    def build_messages(self, history: Sequence[ChatMessage], repository: IndexedRepository) -> List[Dict[str, str]]:
        messages = [{"role": Role.SYSTEM.value, "content": self.build_system_prompt(repository)}]
        messages.extend(m.to_payload() for m in history)
        logger.debug(f"Built {len(messages)} outbound messages for {repository.repo.full_name}.")
        return messages
