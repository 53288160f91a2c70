import os
import platform
import socket

import psutil
import pytest

from recipekit.discovery import (
    GlobFileFilterer,
    NoOpProcessFilterer,
    PSUtilDiscoverer,
    PSUtilProcess,
    RegexProcessFilterer,
    filter_values,
    get_matched_processes,
    is_valid_platform,
    is_valid_platform_family,
    match,
    match_log_files,
)
from recipekit.models import (
    DiscoveryManifest,
    LogMatch,
    MatchedProcess,
    OpenInstallationRecipe,
)


class _FakeProcess:
    def __init__(self, command, fail=False):
        self._command = command
        self._fail = fail

    def cmdline(self):
        if self._fail:
            raise OSError("unreadable")
        return self._command


class _FakeFetcher:
    def __init__(self, recipes=None, error=None):
        self.recipes = recipes or []
        self.error = error

    def fetch_recipes(self, manifest):
        if self.error:
            raise self.error
        return self.recipes


class _FixedFilterer:
    def __init__(self, matches):
        self.matches = matches

    def filter(self, processes, manifest):
        return list(self.matches)


@pytest.fixture
def log_dir(tmp_path):
    (tmp_path / "one.log").write_text("a")
    (tmp_path / "two.log").write_text("b")
    (tmp_path / "three.nopelog").write_text("c")
    return tmp_path


def test_glob_file_filter(log_dir):
    found = LogMatch(file=str(log_dir / "*.log"))
    recipes = [
        OpenInstallationRecipe(id="test", log_match=[found]),
        OpenInstallationRecipe(
            id="nginx", log_match=[LogMatch(file=str(log_dir / "nope" / "*.log"))]
        ),
    ]
    assert GlobFileFilterer().filter(recipes) == [found]


def test_match_log_files_from_recipe(log_dir):
    files = match_log_files(LogMatch(file=str(log_dir / "*.log")))
    assert sorted(os.path.basename(f) for f in files) == ["one.log", "two.log"]
    assert match_log_files(LogMatch(file=str(log_dir / "*.missing"))) == []


def test_is_valid_platform():
    assert is_valid_platform("AMAZON")
    assert is_valid_platform("amazon")
    assert not is_valid_platform("invalidValue")


def test_is_valid_platform_family():
    assert is_valid_platform_family("SUSE")
    assert is_valid_platform("suse")
    assert not is_valid_platform_family("invalidValue")


def test_filter_values_valid_platform():
    m = filter_values(
        DiscoveryManifest(os="WINDOWS", platform="AMAZON", platform_family="DEBIAN")
    )
    assert m.platform == "AMAZON"
    assert m.platform_family == "DEBIAN"


def test_filter_values_invalid_platform():
    original = DiscoveryManifest(
        os="WINDOWS", platform="invalidValue", platform_family="invalidValue"
    )
    m = filter_values(original)
    assert m.platform == ""
    assert m.platform_family == ""
    assert original.platform == "invalidValue"


def test_match_sets_pattern():
    recipe = OpenInstallationRecipe(process_match=["nginx", "java"])
    mp = MatchedProcess(command="/usr/bin/java -jar app.jar")
    assert match(recipe, mp) is True
    assert mp.matching_pattern == "java"


def test_match_skips_invalid_patterns():
    recipe = OpenInstallationRecipe(process_match=["(", "mysql"])
    mp = MatchedProcess(command="mysqld --port 3306")
    assert match(recipe, mp) is True
    assert mp.matching_pattern == "mysql"
    assert match(OpenInstallationRecipe(process_match=["redis"]), mp) is False


def test_get_matched_processes_skips_empty_and_unreadable():
    good = _FakeProcess("java -jar app.jar")
    result = get_matched_processes([good, _FakeProcess(""), _FakeProcess("x", fail=True)])
    assert [(m.command, m.process) for m in result] == [("java -jar app.jar", good)]


def test_regex_process_filterer_matches():
    fetcher = _FakeFetcher([OpenInstallationRecipe(name="java", process_match=["java"])])
    processes = [_FakeProcess("java -jar app.jar"), _FakeProcess("bash")]
    matches = RegexProcessFilterer(fetcher).filter(processes, DiscoveryManifest())
    assert [m.command for m in matches] == ["java -jar app.jar"]
    assert matches[0].matching_pattern == "java"


def test_regex_process_filterer_fetch_error():
    fetcher = _FakeFetcher(error=ValueError("boom"))
    with pytest.raises(RuntimeError, match="could not retrieve process filter criteria: boom"):
        RegexProcessFilterer(fetcher).filter([_FakeProcess("java")], DiscoveryManifest())


def test_noop_process_filterer():
    assert NoOpProcessFilterer().filter([_FakeProcess("java")], DiscoveryManifest()) == []


def test_psutil_process_current():
    proc = PSUtilProcess(psutil.Process(os.getpid()))
    assert proc.pid == os.getpid()
    assert proc.name() == psutil.Process(os.getpid()).name()


def test_psutil_discoverer_basic_facts():
    m = PSUtilDiscoverer(NoOpProcessFilterer()).discover()
    assert m.os == platform.system().lower()
    assert m.hostname == socket.gethostname()
    assert m.processes == []
    assert m.platform == "" or is_valid_platform(m.platform)
    assert m.platform_family == "" or is_valid_platform_family(m.platform_family)


def test_psutil_discoverer_adds_matches():
    found = MatchedProcess(command="java", matching_pattern="java")
    m = PSUtilDiscoverer(_FixedFilterer([found])).discover()
    assert m.processes == [found]