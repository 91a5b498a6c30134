#!/usr/bin/env python3

"""
Pytest configuration and shared fixtures for crates-mirror test suite.
"""

import os
import sys
import shutil
import tempfile
import subprocess
import pytest
from unittest.mock import Mock
from pathlib import Path

# Add the project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from crates_mirror.config.manager import ConfigManager, MirrorConfig
from crates_mirror.state.store import MemoryStateStore

GIT_AVAILABLE = shutil.which("git") is not None

requires_git = pytest.mark.skipif(not GIT_AVAILABLE, reason="git executable not available")


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that gets cleaned up after test"""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir

    # Cleanup
    if os.path.exists(temp_dir):
        shutil.rmtree(temp_dir)


@pytest.fixture
def sample_mirror_config(temp_dir):
    """Provide a mirror configuration rooted in the temporary directory"""
    return MirrorConfig(
        base_path=temp_dir,
        delay_ms=0,
        log_level="INFO"
    )


@pytest.fixture
def mock_config_manager(sample_mirror_config, temp_dir):
    """Provide a mock ConfigManager with sample data"""
    mock_manager = Mock(spec=ConfigManager)
    mock_manager.get_config.return_value = sample_mirror_config
    mock_manager.config_path = os.path.join(temp_dir, "config.yaml")

    def get_destination_path(name):
        return os.path.join(sample_mirror_config.output_path, name)

    mock_manager.get_destination_path.side_effect = get_destination_path

    return mock_manager


@pytest.fixture
def real_config_manager(temp_dir):
    """Provide a real ConfigManager whose paths live in the temporary directory"""
    config_path = os.path.join(temp_dir, "test_config.yaml")
    with open(config_path, 'w') as f:
        f.write(f"base_path: {temp_dir}\ndelay_ms: 0\n")

    manager = ConfigManager(config_path)
    manager.load_config()

    return manager


@pytest.fixture
def memory_store():
    """Provide an empty in-memory state store"""
    return MemoryStateStore()


@pytest.fixture
def git_source_repo(temp_dir):
    """Provide a local git repository with a single commit"""
    repo_path = os.path.join(temp_dir, "source-repo")
    os.makedirs(repo_path)
    run_git(repo_path, "init", "-q")

    with open(os.path.join(repo_path, "README.md"), 'w') as f:
        f.write("# sample crate\n")

    commit_all(repo_path, "initial commit")
    return repo_path


def run_git(repo_path: str, *args: str) -> None:
    subprocess.run(
        ["git", "-C", repo_path, "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        check=True,
        capture_output=True,
        text=True
    )


def commit_all(repo_path: str, message: str) -> None:
    run_git(repo_path, "add", "-A")
    run_git(repo_path, "commit", "-q", "-m", message)


@pytest.fixture(autouse=True)
def setup_logging():
    """Set up logging for tests"""
    import logging

    logging.basicConfig(
        level=logging.WARNING,  # Only show warnings and errors in tests
        format="%(name)s - %(levelname)s - %(message)s"
    )


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test names"""
    for item in items:
        # Add integration marker to integration test classes
        if "Integration" in item.cls.__name__ if item.cls else False:
            item.add_marker(pytest.mark.integration)

        # Add slow marker to timing tests
        if any(keyword in item.name for keyword in ["wall_clock", "slow"]):
            item.add_marker(pytest.mark.slow)
