"""Host discovery: system facts, running processes and log files."""

from __future__ import annotations

import dataclasses
import glob
import logging
import platform as _platform
import re
import socket
from typing import Any, Sequence

import psutil

from recipekit.models import (
    PLATFORM_FAMILIES,
    PLATFORMS,
    DiscoveryManifest,
    LogMatch,
    MatchedProcess,
    OpenInstallationRecipe,
    ProcessFilterer,
    RecipeFetcher,
)

log = logging.getLogger(__name__)

_LINUX_PLATFORM_ALIASES = {
    "amzn": "amazon",
    "rhel": "redhat",
    "sles": "suse",
    "opensuse": "suse",
    "opensuse-leap": "suse",
    "opensuse-tumbleweed": "suse",
}

_LINUX_FAMILIES = {
    "debian": "debian",
    "ubuntu": "debian",
    "linuxmint": "debian",
    "raspbian": "debian",
    "redhat": "rhel",
    "centos": "rhel",
    "fedora": "rhel",
    "amazon": "rhel",
    "oracle": "rhel",
    "ol": "rhel",
    "almalinux": "rhel",
    "rocky": "rhel",
    "suse": "suse",
}


class PSUtilProcess:
    """A running process as seen through psutil."""

    def __init__(self, process: psutil.Process) -> None:
        self._process = process

    @property
    def pid(self) -> int:
        return self._process.pid

    def name(self) -> str:
        return self._process.name()

    def cmdline(self) -> str:
        return " ".join(self._process.cmdline())


def _linux_family(platform_id: str, id_like: str) -> str:
    family = _LINUX_FAMILIES.get(platform_id)
    if family:
        return family
    for candidate in id_like.split():
        family = _LINUX_FAMILIES.get(_LINUX_PLATFORM_ALIASES.get(candidate, candidate))
        if family:
            return family
    return ""


def _host_manifest() -> DiscoveryManifest:
    system = _platform.system().lower()
    m = DiscoveryManifest(
        hostname=socket.gethostname(),
        kernel_arch=_platform.machine(),
        kernel_version=_platform.release(),
        os=system,
    )
    if system == "linux":
        try:
            release = _platform.freedesktop_os_release()
        except OSError:
            release = {}
        raw_id = release.get("ID", "").lower()
        m.platform = _LINUX_PLATFORM_ALIASES.get(raw_id, raw_id)
        m.platform_version = release.get("VERSION_ID", "")
        m.platform_family = _linux_family(m.platform, release.get("ID_LIKE", "").lower())
    elif system == "windows":
        m.platform = f"Microsoft Windows {_platform.release()}".strip()
        m.platform_version = _platform.version()
    elif system == "darwin":
        m.platform = "darwin"
        m.platform_family = "Standalone Workstation"
        m.platform_version = _platform.mac_ver()[0]
    return m


def is_valid_platform(platform: str) -> bool:
    return any(p.lower() == platform.lower() for p in PLATFORMS)


def is_valid_platform_family(platform_family: str) -> bool:
    return any(f.lower() == platform_family.lower() for f in PLATFORM_FAMILIES)


def filter_values(manifest: DiscoveryManifest) -> DiscoveryManifest:
    """Return a copy with unrecognised platform values blanked out."""
    changes = {}
    if not is_valid_platform(manifest.platform):
        changes["platform"] = ""
    if not is_valid_platform_family(manifest.platform_family):
        changes["platform_family"] = ""
    return dataclasses.replace(manifest, **changes)


class PSUtilDiscoverer:
    """Discovers host facts and matching processes using psutil."""

    def __init__(self, process_filterer: ProcessFilterer) -> None:
        self.process_filterer = process_filterer

    def discover(self) -> DiscoveryManifest:
        manifest = filter_values(_host_manifest())

        processes = []
        for pid in psutil.pids():
            try:
                processes.append(PSUtilProcess(psutil.Process(pid)))
            except psutil.NoSuchProcess:
                continue
            except psutil.Error as err:
                log.debug("cannot read pid %d: %s", pid, err)

        for matched in self.process_filterer.filter(processes, manifest):
            manifest.add_matched_process(matched)
        return manifest


def match(recipe: OpenInstallationRecipe, matched_process: MatchedProcess) -> bool:
    """Record and report the first recipe pattern found in the process command."""
    for pattern in recipe.process_match:
        try:
            found = re.search(pattern, matched_process.command)
        except re.error:
            log.debug(
                "could not execute pattern %s against process invocation %s",
                pattern,
                matched_process.command,
            )
            continue
        if found:
            matched_process.matching_pattern = pattern
            log.debug(
                "Process matching pattern %s with %s for recipe %s.",
                pattern,
                matched_process.command,
                recipe.display_name,
            )
            return True
    return False


def get_matched_processes(processes: Sequence[Any]) -> list[MatchedProcess]:
    """Wrap every process whose command line is readable and non-empty."""
    result = []
    for process in processes:
        try:
            command = process.cmdline()
        except (psutil.Error, OSError):
            continue
        if command:
            result.append(MatchedProcess(command=command, process=process))
    return result


class RegexProcessFilterer:
    """Matches processes against the process patterns of known recipes."""

    def __init__(self, recipe_fetcher: RecipeFetcher) -> None:
        self.recipe_fetcher = recipe_fetcher

    def filter(
        self, processes: Sequence[Any], manifest: DiscoveryManifest
    ) -> list[MatchedProcess]:
        candidates = get_matched_processes(processes)
        log.debug("Filtering recipes with %d processes...", len(candidates))

        try:
            recipes = self.recipe_fetcher.fetch_recipes(manifest)
        except Exception as err:
            raise RuntimeError(f"could not retrieve process filter criteria: {err}") from err

        matches = []
        for candidate in candidates:
            for recipe in recipes:
                if match(recipe, candidate):
                    matches.append(dataclasses.replace(candidate))

        log.debug("Filtering recipes with processes done, found %d matches.", len(matches))
        return matches


class NoOpProcessFilterer:
    """A process filterer that deliberately matches no process."""

    def filter(
        self, processes: Sequence[Any], manifest: DiscoveryManifest
    ) -> list[MatchedProcess]:
        matches: list[MatchedProcess] = []
        log.debug(
            "process matching disabled; ignoring %d processes on %s",
            len(processes),
            manifest.hostname or "unknown host",
        )
        return matches


def match_log_files(matcher: LogMatch) -> list[str]:
    """Paths that currently exist for the log match's glob pattern."""
    return glob.glob(matcher.file)


class GlobFileFilterer:
    """Keeps the recipe log matches whose glob patterns find files."""

    def filter(self, recipes: Sequence[OpenInstallationRecipe]) -> list[LogMatch]:
        return [lm for r in recipes for lm in r.log_match if match_log_files(lm)]