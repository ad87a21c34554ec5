"""
Runs module entrypoints with bash.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from .base import ProcedureRunner, run_command


class BashRunner(ProcedureRunner):
    """Executes ``bash <module>/setup.sh`` with stdout/stderr passed through."""

    def __init__(self, shell: str = "bash"):
        self.shell = shell

    def run(self, name: str, entrypoint: Path, env: Mapping[str, str]) -> int:
        child_env = dict(os.environ)
        child_env.update(env)
        result = run_command(
            [self.shell, str(entrypoint)],
            env=child_env,
            capture=False,
        )
        return result.returncode
