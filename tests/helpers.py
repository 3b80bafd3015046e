# tests/helpers.py
import json
from typing import Iterable, List

import httpx

from repochat.core.models import NODE_DIR, NODE_FILE, FileNode


def file_node(path: str, size: int = 0) -> FileNode:
    return FileNode(name=path.rsplit("/", 1)[-1], path=path, type=NODE_FILE, size=size)


def dir_node(path: str, children: List[FileNode]) -> FileNode:
    return FileNode(name=path.rsplit("/", 1)[-1], path=path, type=NODE_DIR, children=children)


def sse(*events) -> bytes:
    """Encodes events as `data: ` lines separated by blank lines."""
    lines = []
    for event in events:
        data = event if isinstance(event, str) else json.dumps(event, ensure_ascii=False)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode("utf-8")


def openai_delta(text: str) -> dict:
    return {"choices": [{"delta": {"content": text}}]}


def anthropic_delta(text: str) -> dict:
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}


def streaming_response(chunks: Iterable[bytes], status_code: int = 200) -> httpx.Response:
    async def body():
        for chunk in chunks:
            yield chunk
    return httpx.Response(status_code, content=body(), headers={"content-type": "text/event-stream"})
