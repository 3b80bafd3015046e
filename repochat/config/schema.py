# repochat/config/schema.py
from pydantic import BaseModel, Field
from typing import List, Optional

class GitHubConfig(BaseModel):
    api_url: str = "https://api.github.com"
    token: Optional[str] = None # Raises the anonymous rate limit when set
    timeout: float = 30.0
    max_key_file_size: int = 50000 # Bytes, files at or above are never fetched
    max_key_files: int = 10
    key_file_search_depth: int = 3
    key_file_names: List[str] = Field(default_factory=lambda: [
        # Docs
        "README.md",
        # JavaScript / TypeScript
        "package.json", "tsconfig.json",
        "vite.config.ts", "vite.config.js", "next.config.js",
        "package-lock.json", "yarn.lock", "pnpm-lock.yaml",
        # Python
        "pyproject.toml", "setup.py", "setup.cfg", "requirements.txt",
    ])

class OpenAIConfig(BaseModel):
    api_key: Optional[str] = None
    api_url: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o-mini"
    temperature: Optional[float] = 0.7
    max_tokens: int = 2000

class AnthropicConfig(BaseModel):
    api_key: Optional[str] = None
    api_url: str = "https://api.anthropic.com/v1/messages"
    api_version: str = "2023-06-01"
    model: str = "claude-3-5-sonnet-20241022"
    temperature: Optional[float] = None # Provider default
    max_tokens: int = 2000

class ContextConfig(BaseModel):
    max_depth: int = 3
    max_siblings: int = 50
    truncate_threshold: int = 10000 # Characters; bodies at or above are cut
    truncate_length: int = 5000
    token_warning: int = 100000 # Log a warning when the reduced context exceeds this

class AppConfig(BaseModel):
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    anthropic: AnthropicConfig = Field(default_factory=AnthropicConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    completion_timeout: Optional[float] = None # None: wait as long as the provider streams
    suggested_prompts: List[str] = Field(default_factory=lambda: [
        "What does this project do?",
        "Explain the main architecture",
        "Show me the entry point",
        "What are the dependencies?",
        "How is the code organized?",
    ])
