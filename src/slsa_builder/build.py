from __future__ import annotations

import logging
import os
import shutil
import subprocess
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from slsa_builder.config import (
    BuildConfig,
    Step,
    is_under_wd,
    split_env_entry,
    validate_env_name,
    validate_env_value,
)
from slsa_builder.errors import ConfigError, InvalidEnvironmentVariableError, SubprocessError

_logger = logging.getLogger(__name__)


class ResolvedBuild(BaseModel):
    command: List[str]
    env: List[str]
    dir: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    def env_mapping(self) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for entry in self.env:
            name, value = split_env_entry(entry)
            out[name] = value or ""
        return out


class BuildExecutor:
    """Runs the single compiler step of a build configuration."""

    def __init__(
        self,
        config: BuildConfig,
        compiler: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        if len(config.steps) != 1:
            raise ConfigError(f"exactly one build step is supported, found {len(config.steps)}")
        self.step: Step = config.steps[0]
        self.environ: Mapping[str, str] = os.environ if environ is None else environ
        self.compiler = compiler or self._lookup_compiler(self.step.command[0])
        self.arg_env: Dict[str, str] = {}

    @staticmethod
    def _lookup_compiler(name: str) -> str:
        path = shutil.which(name)
        if path is None:
            raise SubprocessError(f"compiler not found on PATH: {name}")
        return path

    def set_arg_env(self, encoded: str) -> None:
        """Apply `NAME:VALUE,NAME:VALUE` assignments passed on the command line.

        Only names the step declares as bare references may be assigned.
        """
        if encoded.strip() == "":
            return
        declared = set(self.step.declared_names())
        for raw in encoded.split(","):
            entry = raw.strip()
            parts = entry.split(":", 1)
            if len(parts) != 2:
                raise InvalidEnvironmentVariableError(f"malformed environment argument: {entry!r}")
            name = validate_env_name(parts[0].strip())
            value = validate_env_value(name, parts[1].strip())
            if name not in declared:
                raise InvalidEnvironmentVariableError(
                    f"environment variable {name} is not declared by the build step"
                )
            _logger.info("argument env: %s=%s", name, value)
            self.arg_env[name] = value

    def resolve(self) -> ResolvedBuild:
        env: List[str] = []
        for entry in self.step.env:
            name, value = split_env_entry(entry)
            if value is None:
                value = self.arg_env.get(name)
                if value is None:
                    value = self.environ.get(name)
                if value is None:
                    raise InvalidEnvironmentVariableError(
                        f"environment variable {name} is not set"
                    )
                validate_env_value(name, value)
            env.append(f"{name}={value}")
        workdir = str(is_under_wd(self.step.dir)) if self.step.dir is not None else None
        return ResolvedBuild(
            command=[self.compiler, *self.step.command[1:]],
            env=env,
            dir=workdir,
        )

    def run(self, dry_run: bool = False) -> ResolvedBuild:
        resolved = self.resolve()
        if dry_run:
            _logger.info("dry run: %s", " ".join(resolved.command))
            return resolved

        process_env = dict(self.environ)
        process_env.update(resolved.env_mapping())
        _logger.info("running: %s", " ".join(resolved.command))
        try:
            completed = subprocess.run(  # nosec B603 - argv list, no shell
                resolved.command,
                env=process_env,
                cwd=resolved.dir,
                check=False,
            )
        except OSError as exc:
            raise SubprocessError(f"failed to start compiler: {exc}") from exc
        if completed.returncode != 0:
            raise SubprocessError(
                f"compiler exited with status {completed.returncode}",
                returncode=completed.returncode,
            )
        return resolved
