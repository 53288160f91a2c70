import pytest

from recipekit.context import InstallerContext
from recipekit.models import (
    INFRA_AGENT_RECIPE_NAME,
    DiscoveryManifest,
    OpenInstallationRecipe,
)
from recipekit.status import InstallStatus, StatusSubscriber
from recipekit.targeted import TargetedInstallMixin

MANIFEST = DiscoveryManifest(os="linux")


class Recorder(StatusSubscriber):
    def __init__(self):
        self.available = None
        self.selected = None

    def recipes_available(self, status, recipes):
        self.available = [r.name for r in recipes]

    def recipes_selected(self, status, recipes):
        self.selected = [r.name for r in recipes]


class Fetcher:
    def __init__(self, recipes, error=None, aliases=None):
        self.recipes = {r.name: r for r in recipes}
        self.aliases = aliases or {}
        self.error = error

    def fetch_recipe(self, manifest, name):
        if self.error is not None:
            raise self.error
        return self.recipes.get(self.aliases.get(name, name))

    def fetch_recipes(self, manifest):
        return list(self.recipes.values())

    def fetch_recommendations(self, manifest):
        return []


class FileFetcher:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def fetch_recipe_file(self, url):
        self.calls.append(("url", url))
        if self.error is not None:
            raise self.error
        return OpenInstallationRecipe(name="Test Recipe")

    def load_recipe_file(self, path):
        self.calls.append(("path", path))
        if self.error is not None:
            raise self.error
        return OpenInstallationRecipe(name="Test Recipe")


class Host(TargetedInstallMixin):
    def __init__(self, context, fetcher, file_fetcher=None):
        self.context = context
        self.recipe_fetcher = fetcher
        self.recipe_file_fetcher = file_fetcher or FileFetcher()
        self.recorder = Recorder()
        self.status = InstallStatus([self.recorder])
        self.installed = None

    def fetch_recipe_and_report_available(self, manifest, name):
        recipe = self.recipe_fetcher.fetch_recipe(manifest, name)
        if recipe is None:
            raise RuntimeError(f"recipe {name} not found")
        self.status.recipe_available(recipe)
        return recipe

    def install_recipes(self, manifest, recipes):
        self.installed = [r.name for r in recipes]


def test_recipe_from_url_uses_fetch():
    file_fetcher = FileFetcher()
    host = Host(InstallerContext(), Fetcher([]), file_fetcher)
    recipe = host.recipe_from_path("http://recipe/URL")
    assert recipe.name == "Test Recipe"
    assert file_fetcher.calls == [("url", "http://recipe/URL")]


def test_recipe_from_file_uses_load():
    file_fetcher = FileFetcher()
    host = Host(InstallerContext(), Fetcher([]), file_fetcher)
    recipe = host.recipe_from_path("file.txt")
    assert recipe.name == "Test Recipe"
    assert file_fetcher.calls == [("path", "file.txt")]


def test_recipe_from_path_wraps_errors():
    host = Host(InstallerContext(), Fetcher([]), FileFetcher(error=OSError("missing")))
    with pytest.raises(RuntimeError, match="could not load file file.txt: missing"):
        host.recipe_from_path("file.txt")
    with pytest.raises(RuntimeError, match="could not fetch file http://recipe/URL"):
        host.recipe_from_path("http://recipe/URL")


def test_targeted_install_of_infra_agent():
    infra = OpenInstallationRecipe(name=INFRA_AGENT_RECIPE_NAME)
    host = Host(InstallerContext(recipe_names=[INFRA_AGENT_RECIPE_NAME]), Fetcher([infra]))
    host.targeted_install(MANIFEST)
    assert host.installed == [INFRA_AGENT_RECIPE_NAME]
    assert host.status.is_targeted_install() is True
    assert host.recorder.selected == [INFRA_AGENT_RECIPE_NAME]


def test_targeted_install_includes_dependency_first():
    recipe = OpenInstallationRecipe(name="testRecipe", dependencies=[INFRA_AGENT_RECIPE_NAME])
    infra = OpenInstallationRecipe(name=INFRA_AGENT_RECIPE_NAME)
    host = Host(InstallerContext(recipe_names=["testRecipe"]), Fetcher([recipe, infra]))
    host.targeted_install(MANIFEST)
    assert host.installed == [INFRA_AGENT_RECIPE_NAME, "testRecipe"]
    assert host.recorder.available == [INFRA_AGENT_RECIPE_NAME, "testRecipe"]


def test_targeted_install_skip_infra():
    infra = OpenInstallationRecipe(name=INFRA_AGENT_RECIPE_NAME)
    host = Host(
        InstallerContext(recipe_names=[INFRA_AGENT_RECIPE_NAME], skip_infra=True),
        Fetcher([infra]),
    )
    host.targeted_install(MANIFEST)
    assert host.installed == []


def test_targeted_install_skip_infra_dependency():
    recipe = OpenInstallationRecipe(name="testRecipe", dependencies=[INFRA_AGENT_RECIPE_NAME])
    infra = OpenInstallationRecipe(name=INFRA_AGENT_RECIPE_NAME)
    host = Host(
        InstallerContext(recipe_names=["testRecipe"], skip_infra=True),
        Fetcher([recipe, infra]),
    )
    host.targeted_install(MANIFEST)
    assert host.installed == ["testRecipe"]


def test_collect_recipes_skips_mismatched_and_missing_names():
    wanted = OpenInstallationRecipe(name="mysql")
    other = OpenInstallationRecipe(name="postgres")
    host = Host(
        InstallerContext(recipe_names=["mysql", "pg", "absent"]),
        Fetcher([wanted, other], aliases={"pg": "postgres"}),
    )
    assert [r.name for r in host.collect_recipes(MANIFEST)] == ["mysql"]


def test_collect_recipes_prefers_paths():
    file_fetcher = FileFetcher()
    host = Host(
        InstallerContext(recipe_paths=["a.yml", "b.yml"], recipe_names=["mysql"]),
        Fetcher([OpenInstallationRecipe(name="mysql")]),
        file_fetcher,
    )
    recipes = host.collect_recipes(MANIFEST)
    assert [r.name for r in recipes] == ["Test Recipe", "Test Recipe"]
    assert file_fetcher.calls == [("path", "a.yml"), ("path", "b.yml")]


def test_collect_recipes_path_error_propagates():
    host = Host(
        InstallerContext(recipe_paths=["a.yml"]), Fetcher([]), FileFetcher(error=OSError("nope"))
    )
    with pytest.raises(RuntimeError, match="could not load file a.yml"):
        host.collect_recipes(MANIFEST)


def test_resolve_dependencies_error_propagates():
    recipe = OpenInstallationRecipe(name="testRecipe", dependencies=["missing"])
    host = Host(InstallerContext(), Fetcher([recipe]))
    with pytest.raises(RuntimeError, match="missing"):
        host.resolve_recipe_dependencies(recipe, MANIFEST)


def test_resolve_dependencies_without_dependencies():
    host = Host(InstallerContext(), Fetcher([]))
    assert host.resolve_recipe_dependencies(OpenInstallationRecipe(name="x"), MANIFEST) == []


def test_fetch_warn_returns_none_on_error():
    host = Host(InstallerContext(), Fetcher([], error=RuntimeError("down")))
    assert host.fetch_warn(MANIFEST, "mysql") is None


def test_fetch_warn_returns_recipe():
    recipe = OpenInstallationRecipe(name="mysql")
    host = Host(InstallerContext(), Fetcher([recipe]))
    assert host.fetch_warn(MANIFEST, "mysql") is recipe
    assert host.fetch_warn(MANIFEST, "absent") is None