#!/usr/bin/env python3

import os
import shutil
import logging
import subprocess
from typing import Dict

from ..sync.models import CloneError

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"

def partial_path_for(destination: str) -> str:
    """Hidden sibling a clone is written to before being renamed into place"""
    parent, name = os.path.split(os.path.normpath(destination))
    return os.path.join(parent, f".{name}{PARTIAL_SUFFIX}")

class CloneExecutor:
    """Full-history git clones, published to the destination only on success.

    Interrupting a clone leaves at most a hidden ``.<name>.partial``
    directory behind, never a directory at the destination itself.
    """

    def __init__(self, git_binary: str = "git"):
        self.git_binary = git_binary

    def _environment(self) -> Dict[str, str]:
        env = os.environ.copy()
        # Fail on repositories that require credentials instead of prompting
        env['GIT_TERMINAL_PROMPT'] = '0'
        env.setdefault('GIT_SSH_COMMAND', 'ssh -o BatchMode=yes')
        return env

    def clone(self, url: str, destination: str) -> None:
        staging = partial_path_for(destination)
        if os.path.exists(staging):
            shutil.rmtree(staging, ignore_errors=True)

        os.makedirs(os.path.dirname(staging) or ".", exist_ok=True)

        command = [self.git_binary, "clone", "--quiet", "--", url, staging]
        logger.debug(f"Running: {' '.join(command)}")

        try:
            subprocess.run(
                command,
                check=True,
                capture_output=True,
                text=True,
                env=self._environment()
            )
            os.rename(staging, destination)
        except FileNotFoundError as e:
            self._discard(staging)
            raise CloneError(url, f"git executable not found: {e}") from e
        except subprocess.CalledProcessError as e:
            self._discard(staging)
            raise CloneError(url, self._diagnostic(e)) from e
        except ValueError as e:
            # subprocess rejects arguments it cannot pass to exec, e.g. NUL bytes
            self._discard(staging)
            raise CloneError(url, f"invalid repository URL: {e}") from e
        except OSError as e:
            self._discard(staging)
            raise CloneError(url, f"could not move clone into place: {e}") from e

    def _diagnostic(self, error: subprocess.CalledProcessError) -> str:
        stderr = (error.stderr or "").strip()
        if not stderr:
            return f"git exited with status {error.returncode}"
        # The last lines carry the reason (fatal: ...)
        return " | ".join(stderr.splitlines()[-3:])

    def _discard(self, staging: str) -> None:
        if os.path.exists(staging):
            shutil.rmtree(staging, ignore_errors=True)
