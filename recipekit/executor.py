"""Runs the task steps defined in a recipe's install section."""

from __future__ import annotations

import getpass
import logging
import os
import re
import subprocess
import sys
import tempfile
from typing import Any, Callable, Mapping, Sequence

import yaml

from recipekit.models import (
    DiscoveryManifest,
    InputVariable,
    InstallInterrupted,
    OpenInstallationRecipe,
    Profile,
)

log = logging.getLogger(__name__)

_TEMPLATE = re.compile(r"\{\{\s*\.([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
_INTERRUPT_EXIT_CODE = 130

Prompt = Callable[[InputVariable], str]


def _render(text: str, variables: Mapping[str, str]) -> str:
    return _TEMPLATE.sub(lambda m: variables.get(m.group(1), ""), text)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class _TaskRunner:
    """Runs tasks from a parsed task file."""

    def __init__(self, taskfile: Mapping[str, Any], overrides: Mapping[str, str], workdir: str):
        tasks = taskfile.get("tasks") or {}
        if not isinstance(tasks, dict):
            raise RuntimeError("could not set up task executor: tasks must be a mapping")
        self.tasks = tasks
        self.workdir = workdir
        self.silent = bool(taskfile.get("silent", False))
        self.variables = self._resolve_vars(taskfile.get("vars") or {}, {})
        self.variables.update(overrides)
        self.env = self._resolve_env(taskfile.get("env") or {}, self.variables)

    def _shell(self, command: str, env: Mapping[str, str] | None = None) -> str:
        result = subprocess.run(
            command, shell=True, capture_output=True, text=True, cwd=self.workdir, env=env
        )
        if result.returncode != 0:
            raise RuntimeError(f"task: command error on {command}: exit status {result.returncode}")
        return result.stdout.rstrip("\n")

    def _resolve_vars(self, spec: Mapping[str, Any], base: Mapping[str, str]) -> dict[str, str]:
        resolved: dict[str, str] = {}
        for key, value in spec.items():
            context = {**base, **resolved}
            if isinstance(value, dict) and "sh" in value:
                resolved[key] = self._shell(_render(_to_text(value["sh"]), context))
            else:
                resolved[key] = _render(_to_text(value), context)
        return resolved

    def _resolve_env(self, spec: Mapping[str, Any], variables: Mapping[str, str]) -> dict[str, str]:
        return {key: _render(_to_text(value), variables) for key, value in spec.items()}

    @staticmethod
    def _normalise(task: Any) -> dict[str, Any]:
        if isinstance(task, str):
            return {"cmds": [task]}
        if isinstance(task, list):
            return {"cmds": task}
        if isinstance(task, dict):
            return task
        return {}

    def run(self, name: str, call_vars: Mapping[str, str] | None = None) -> None:
        if name not in self.tasks:
            raise RuntimeError(f'task: Task "{name}" not found')
        task = self._normalise(self.tasks[name])

        variables = dict(self.variables)
        variables.update(self._resolve_vars(task.get("vars") or {}, variables))
        variables.update(call_vars or {})

        for dep in task.get("deps") or []:
            if isinstance(dep, dict):
                self.run(dep["task"], self._resolve_vars(dep.get("vars") or {}, variables))
            else:
                self.run(str(dep))

        env = {**os.environ, **self.env, **self._resolve_env(task.get("env") or {}, variables)}
        directory = _render(_to_text(task.get("dir", "")), variables)
        cwd = os.path.join(self.workdir, directory) if directory else self.workdir
        silent = bool(task.get("silent", self.silent))

        for cmd in task.get("cmds") or []:
            if isinstance(cmd, dict):
                if "task" in cmd:
                    self.run(cmd["task"], self._resolve_vars(cmd.get("vars") or {}, variables))
                    continue
                self._run_command(
                    name,
                    _render(_to_text(cmd.get("cmd", "")), variables),
                    env,
                    cwd,
                    bool(cmd.get("silent", silent)),
                    bool(cmd.get("ignore_error", task.get("ignore_error", False))),
                )
            else:
                self._run_command(
                    name,
                    _render(_to_text(cmd), variables),
                    env,
                    cwd,
                    silent,
                    bool(task.get("ignore_error", False)),
                )

    @staticmethod
    def _run_command(
        name: str, command: str, env: Mapping[str, str], cwd: str, silent: bool, ignore_error: bool
    ) -> None:
        if not silent:
            print(f"task: [{name}] {command}", file=sys.stderr)
        try:
            result = subprocess.run(command, shell=True, env=dict(env), cwd=cwd)
        except KeyboardInterrupt as err:
            raise InstallInterrupted() from err
        if result.returncode == 0 or ignore_error:
            return
        if result.returncode == _INTERRUPT_EXIT_CODE:
            raise InstallInterrupted()
        raise RuntimeError(f'task: Failed to run task "{name}": exit status {result.returncode}')


class TaskRecipeExecutor:
    """Executes the task file embedded in a recipe's install section."""

    def __init__(self, profile: Profile | None = None, prompt: Prompt | None = None) -> None:
        self.profile = profile
        self.prompt = prompt or var_from_prompt

    def prepare(
        self,
        manifest: DiscoveryManifest,
        recipe: OpenInstallationRecipe,
        assume_yes: bool,
        license_key: str,
    ) -> dict[str, str]:
        """Collect the variables the recipe runs with; later sources win."""
        log.debug("preparing recipe %s", recipe.name)
        system_vars = vars_from_system_info(manifest)
        profile_vars = vars_from_profile(self.profile, license_key)
        input_vars = vars_from_input(recipe.input_vars, assume_yes, self.prompt)
        return {**system_vars, **profile_vars, **recipe.variables, **input_vars}

    def execute(
        self,
        manifest: DiscoveryManifest,
        recipe: OpenInstallationRecipe,
        recipe_vars: Mapping[str, str],
    ) -> None:
        """Run the recipe's default task with the given variables."""
        log.debug("executing recipe %s", recipe.name)
        try:
            taskfile = yaml.safe_load(recipe.install)
        except yaml.YAMLError as err:
            raise RuntimeError(f"could not unmarshal taskfile: {err}") from err
        if not isinstance(taskfile, dict):
            raise RuntimeError("could not set up task executor: task file is not a mapping")

        runner = _TaskRunner(taskfile, dict(recipe_vars), tempfile.gettempdir())
        try:
            runner.run("default")
        except KeyboardInterrupt as err:
            raise InstallInterrupted() from err


def vars_from_profile(profile: Profile | None, license_key: str) -> dict[str, str]:
    """Account variables; the license key is required."""
    if not license_key:
        raise ValueError("license key not found")
    profile = profile or Profile()
    return {
        "NEW_RELIC_LICENSE_KEY": license_key,
        "NEW_RELIC_ACCOUNT_ID": str(profile.account_id),
        "NEW_RELIC_API_KEY": profile.api_key,
        "NEW_RELIC_REGION": profile.region,
    }


def vars_from_system_info(manifest: DiscoveryManifest) -> dict[str, str]:
    return {
        "HOSTNAME": manifest.hostname,
        "OS": manifest.os,
        "PLATFORM": manifest.platform,
        "PLATFORM_FAMILY": manifest.platform_family,
        "PLATFORM_VERSION": manifest.platform_version,
        "KERNEL_ARCH": manifest.kernel_arch,
        "KERNEL_VERSION": manifest.kernel_version,
    }


def vars_from_input(
    input_vars: Sequence[InputVariable], assume_yes: bool, prompt: Prompt | None = None
) -> dict[str, str]:
    """Values for a recipe's input variables from the environment, defaults or the user."""
    prompt = prompt or var_from_prompt
    result = {"NEW_RELIC_ASSUME_YES": "true" if assume_yes else "false"}

    for variable in input_vars:
        value = os.environ.get(variable.name, "")
        if value:
            result[variable.name] = value
            continue

        if assume_yes:
            if not variable.default:
                raise ValueError(
                    f"no default value for environment variable {variable.name} and none provided"
                )
            log.debug("required env var %s not found, using default", variable.name)
            value = variable.default
        else:
            log.debug("required environment variable %s not found", variable.name)
            try:
                value = prompt(variable)
            except (KeyboardInterrupt, InstallInterrupted) as err:
                raise InstallInterrupted() from err
            except Exception as err:
                raise RuntimeError(f"prompt failed: {err}") from err

        result[variable.name] = value

    return result


def var_from_prompt(variable: InputVariable) -> str:
    """Ask the user for a variable's value on the terminal."""
    message = variable.prompt or f"value for {variable.name} required"
    if variable.secret:
        return getpass.getpass(f"{message} ")
    if variable.default:
        answer = input(f"{message} ({variable.default}) ")
        return answer or variable.default
    return input(f"{message} ")