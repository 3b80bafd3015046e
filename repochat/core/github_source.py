# repochat/core/github_source.py
import asyncio
import base64
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx
from loguru import logger

from ..config.schema import GitHubConfig
from .errors import (InvalidRepositoryError, RateLimitError, RepositoryFetchError,
                     RepositoryNotFoundError, UnauthorizedError)
from .models import (NODE_DIR, NODE_FILE, FileContent, FileNode, Repository,
                     RepositoryReference)

_REFERENCE_PATTERNS = [
    re.compile(r"github\.com/([^/\s]+)/([^/\s#?]+)"),
    re.compile(r"^([^/\s]+)/([^/\s]+)$"),
]

def parse_repository_reference(text: str) -> RepositoryReference:
    """
    Accepts 'https://github.com/owner/name[...]', 'github.com/owner/name' or
    'owner/name'. A trailing '.git' is dropped.
    """
    text = (text or "").strip()
    for pattern in _REFERENCE_PATTERNS:
        match = pattern.search(text)
        if match:
            owner, name = match.group(1), match.group(2)
            name = name[:-4] if name.endswith(".git") else name
            if owner and name:
                return RepositoryReference(owner=owner, name=name)
    raise InvalidRepositoryError()

def build_tree(items: Sequence[Dict[str, Any]]) -> List[FileNode]:
    """
    Builds a FileNode forest from the flat, parent-first item list of the
    git trees API. Items whose parent is not listed are dropped.
    """
    roots: List[FileNode] = []
    by_path: Dict[str, FileNode] = {}
    orphans = 0

    for item in items:
        path = item["path"]
        node = FileNode(
            name=path.rsplit("/", 1)[-1],
            path=path,
            type=NODE_DIR if item.get("type") == "tree" else NODE_FILE,
            size=item.get("size"),
        )
        by_path[path] = node

        parent_path = path.rsplit("/", 1)[0] if "/" in path else ""
        if not parent_path:
            roots.append(node)
            continue
        parent = by_path.get(parent_path)
        if parent is None:
            orphans += 1
            continue
        if parent.children is None:
            parent.children = []
        parent.children.append(node)

    if orphans:
        logger.debug(f"Dropped {orphans} tree entries with no listed parent.")
    return roots

def calculate_repo_stats(file_tree: Sequence[FileNode]) -> Tuple[int, int]:
    """Returns (total_files, total_size) over files at any depth."""
    total_files = 0
    total_size = 0
    stack = list(file_tree)
    while stack:
        node = stack.pop()
        if node.is_dir:
            stack.extend(node.children or [])
        else:
            total_files += 1
            total_size += node.size or 0
    return total_files, total_size

def find_key_files(nodes: Sequence[FileNode], names: Sequence[str], max_size: int,
                   max_depth: int = 3, depth: int = 0) -> List[FileNode]:
    """Key-file candidates in listing order, searched no deeper than `max_depth`."""
    if depth > max_depth:
        return []

    found: List[FileNode] = []
    for node in nodes:
        if not node.is_dir and node.name in names and (node.size or 0) < max_size:
            found.append(node)
        elif node.is_dir and node.children:
            found.extend(find_key_files(node.children, names, max_size, max_depth, depth + 1))
    return found

def format_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    size = float(num_bytes)
    for unit in ("Bytes", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            break
        size /= 1024
    return f"{round(size, 2):g} {unit}"

class GitHubSource:
    """Read-only client for the GitHub REST API."""

    def __init__(self, config: GitHubConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.api_url, headers=self._headers(), timeout=config.timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json", "User-Agent": "repochat"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token.strip()}"
        return headers

    async def __aenter__(self) -> "GitHubSource":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get(self, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.get(url, **kwargs)
        except httpx.TransportError as e:
            logger.error(f"GitHub request failed for {url}: {e}")
            raise RepositoryFetchError() from e

    @staticmethod
    def _json(response: httpx.Response, error: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"GitHub returned a non-JSON body for {response.request.url}: {e}")
            raise RepositoryFetchError(error) from e

    async def get_repository(self, owner: str, name: str) -> Repository:
        response = await self._get(f"/repos/{owner}/{name}")

        if not response.is_success:
            logger.warning(f"GitHub returned {response.status_code} for {owner}/{name}")
            if response.status_code == 404:
                raise RepositoryNotFoundError()
            if response.status_code == 403:
                raise RateLimitError()
            if response.status_code == 401:
                raise UnauthorizedError()
            raise RepositoryFetchError()

        data = self._json(response, "Failed to fetch repository information.")
        return Repository(
            owner=data["owner"]["login"],
            name=data["name"],
            full_name=data["full_name"],
            description=data.get("description") or "No description available",
            stars=data.get("stargazers_count") or 0,
            forks=data.get("forks_count") or 0,
            language=data.get("language") or "Unknown",
            updated_at=data.get("updated_at") or "",
            url=data.get("html_url") or "",
            default_branch=data.get("default_branch") or "main",
        )

    async def get_tree(self, owner: str, name: str, branch: str) -> List[FileNode]:
        response = await self._get(f"/repos/{owner}/{name}/git/trees/{quote(branch, safe='')}",
                                   params={"recursive": "1"})
        if not response.is_success:
            logger.warning(f"GitHub returned {response.status_code} for tree of {owner}/{name}@{branch}")
            raise RepositoryFetchError("Failed to fetch repository file tree.")

        data = self._json(response, "Failed to fetch repository file tree.")
        if data.get("truncated"):
            logger.warning("Repository is very large. File tree may be incomplete.")
        return build_tree(data.get("tree") or [])

    async def get_file_body(self, owner: str, name: str, path: str) -> str:
        response = await self._get(f"/repos/{owner}/{name}/contents/{quote(path)}")
        if not response.is_success:
            raise RepositoryFetchError(f"Failed to fetch file: {path}")

        data = self._json(response, f"Failed to fetch file: {path}")
        content = data.get("content") if isinstance(data, dict) else None
        if not content:
            return ""
        return base64.b64decode(content.replace("\n", "")).decode("utf-8", errors="replace")

    async def fetch_key_files(self, owner: str, name: str, file_tree: Sequence[FileNode]) -> List[FileContent]:
        """Fetches the key files concurrently. Files that fail to load are skipped."""
        candidates = find_key_files(file_tree, self.config.key_file_names, self.config.max_key_file_size,
                                    max_depth=self.config.key_file_search_depth)
        to_fetch = candidates[:self.config.max_key_files]
        logger.info(f"Fetching {len(to_fetch)} key files ({len(candidates)} candidates).")

        async def fetch_one(node: FileNode) -> Optional[FileContent]:
            try:
                content = await self.get_file_body(owner, name, node.path)
            except (RepositoryFetchError, ValueError) as e:
                logger.error(f"Failed to fetch {node.path}: {e}")
                return None
            return FileContent(path=node.path, content=content, size=node.size or 0)

        results = await asyncio.gather(*(fetch_one(node) for node in to_fetch))
        return [r for r in results if r is not None]
