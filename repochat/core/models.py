# repochat/core/models.py
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List

NODE_FILE = "file"
NODE_DIR = "dir"

@dataclass
class FileNode:
    """Represents a file or directory in a repository listing."""
    name: str
    path: str # Full slash-delimited path, unique within a tree
    type: str # NODE_FILE or NODE_DIR
    size: Optional[int] = None # Unknown for directories
    children: Optional[List['FileNode']] = None # Only set for directories with entries

    @property
    def is_dir(self) -> bool:
        return self.type == NODE_DIR

@dataclass
class FileContent:
    """A fetched key file body."""
    path: str
    content: str
    size: int = 0

@dataclass
class Repository:
    """Repository metadata as reported by the hosting service."""
    owner: str
    name: str
    full_name: str
    description: str = "No description available"
    stars: int = 0
    forks: int = 0
    language: str = "Unknown"
    updated_at: str = ""
    url: str = ""
    default_branch: str = "main"

@dataclass(frozen=True)
class RepositoryReference:
    owner: str
    name: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

@dataclass(frozen=True)
class IndexedRepository:
    """Everything known about a repository for one chat session."""
    repo: Repository
    file_tree: List[FileNode]
    key_files: List[FileContent]
    total_files: int
    total_size: int

class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

class TurnState(str, Enum):
    PENDING = "pending"
    STREAMING = "streaming"
    SETTLED = "settled"
    ERRORED = "errored"

@dataclass
class ChatMessage:
    """One transcript turn. Assistant turns carry a streaming state."""
    id: int
    role: Role
    content: str = ""
    timestamp: float = field(default_factory=time.time)
    state: TurnState = TurnState.SETTLED

    @property
    def in_flight(self) -> bool:
        return self.state in (TurnState.PENDING, TurnState.STREAMING)

    def append(self, token: str) -> None:
        """Appends a streamed token. Only valid while the turn is in flight."""
        if not self.in_flight:
            raise RuntimeError(f"Cannot append to message {self.id} in state '{self.state.value}'")
        self.state = TurnState.STREAMING
        self.content += token

    def settle(self) -> None:
        self.state = TurnState.SETTLED

    def fail(self, message: str) -> None:
        self.content = f"Error: {message}"
        self.state = TurnState.ERRORED

    def to_payload(self) -> dict:
        """Minimal role/content pair sent to completion providers."""
        return {"role": self.role.value, "content": self.content}

class Stage(str, Enum):
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    BUILDING = "building"
    COMPLETE = "complete"

@dataclass(frozen=True)
class IndexingProgress:
    stage: Stage
    percentage: int # 0-100, non-decreasing within a run
    message: str
