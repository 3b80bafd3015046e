# tests/conftest.py
from typing import List

import pytest

from repochat.config import loader
from repochat.config.schema import AppConfig
from repochat.core.models import FileContent, FileNode, IndexedRepository, Repository

from helpers import dir_node, file_node


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keeps tests away from the real user config, log dir and credentials."""
    monkeypatch.setenv("REPOCHAT_HOME", str(tmp_path / "home"))
    for name in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GITHUB_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    loader.reset_config_cache()
    yield
    loader.reset_config_cache()


@pytest.fixture(autouse=True)
def offline_token_counter(mocker):
    # tiktoken downloads encodings on first use
    mocker.patch("repochat.core.token_counter._get_cached_encoder", return_value=None)


@pytest.fixture
def sample_tree() -> List[FileNode]:
    return [
        file_node("README.md", 120),
        dir_node("src", [
            file_node("src/main.py", 300),
            dir_node("src/app", [file_node("src/app/views.py", 80)]),
        ]),
        file_node("pyproject.toml", 40),
    ]


@pytest.fixture
def repository() -> Repository:
    return Repository(owner="octo", name="demo", full_name="octo/demo",
                      description="A demo project", language="Python",
                      url="https://github.com/octo/demo", default_branch="main")


@pytest.fixture
def indexed_repo(repository, sample_tree) -> IndexedRepository:
    return IndexedRepository(
        repo=repository,
        file_tree=sample_tree,
        key_files=[FileContent(path="README.md", content="# Demo\nHello.", size=120)],
        total_files=4,
        total_size=540,
    )


@pytest.fixture
def openai_config() -> AppConfig:
    config = AppConfig()
    config.openai.api_key = "sk-test"
    return config


@pytest.fixture
def anthropic_config() -> AppConfig:
    config = AppConfig()
    config.anthropic.api_key = "ak-test"
    return config
