"""Targeted installation of recipes named or supplied by the user."""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from recipekit.context import InstallerContext
from recipekit.models import (
    INFRA_AGENT_RECIPE_NAME,
    DiscoveryManifest,
    OpenInstallationRecipe,
    RecipeFetcher,
    RecipeFileFetcher,
)
from recipekit.status import InstallStatus

log = logging.getLogger(__name__)


class TargetedInstallMixin:
    """Installs exactly the recipes requested, with their dependencies.

    The host class supplies ``context``, ``status``, ``recipe_fetcher`` and
    ``recipe_file_fetcher``, together with ``fetch_recipe_and_report_available``
    and ``install_recipes``.
    """

    context: InstallerContext
    status: InstallStatus
    recipe_fetcher: RecipeFetcher
    recipe_file_fetcher: RecipeFileFetcher

    def resolve_recipe_dependencies(
        self, recipe: OpenInstallationRecipe, manifest: DiscoveryManifest
    ) -> list[OpenInstallationRecipe]:
        """Fetch every dependency of the recipe and report it as available."""
        dependencies = []
        for name in recipe.dependencies:
            dependency = self.fetch_recipe_and_report_available(manifest, name)
            if dependency is not None:
                dependencies.append(dependency)
        return dependencies

    def collect_recipes(self, manifest: DiscoveryManifest) -> list[OpenInstallationRecipe]:
        """The recipes given by path, or else by name."""
        recipes: list[OpenInstallationRecipe] = []

        if self.context.recipe_paths_provided():
            for path in self.context.recipe_paths:
                if self.context.skip_infra and path == INFRA_AGENT_RECIPE_NAME:
                    continue
                log.debug("Attempting to match recipePath %s.", path)
                try:
                    recipe = self.recipe_from_path(path)
                except Exception as err:
                    log.debug("Error while building recipe from path, detail:%s.", err)
                    raise
                log.debug(
                    "found recipe at path %s: name=%s display_name=%s",
                    path,
                    recipe.name,
                    recipe.display_name,
                )
                recipes.append(recipe)
        elif self.context.recipe_names_provided():
            for name in self.context.recipe_names:
                if self.context.skip_infra and name == INFRA_AGENT_RECIPE_NAME:
                    continue
                log.debug("Attempting to match recipeName %s.", name)
                recipe = self.fetch_warn(manifest, name)
                if recipe is None:
                    continue
                if recipe.name == name:
                    log.debug("Found recipe from name %s.", name)
                    recipes.append(recipe)
                else:
                    log.debug("Skipping recipe, name %s does not match.", recipe.name)

        return recipes

    def targeted_install(self, manifest: DiscoveryManifest) -> None:
        """Install the requested recipes, each preceded by its dependencies."""
        self.status.set_targeted_install()

        recipes: list[OpenInstallationRecipe] = []
        for recipe in self.collect_recipes(manifest):
            for dependency in self.resolve_recipe_dependencies(recipe, manifest):
                if self.context.skip_infra and dependency.name == INFRA_AGENT_RECIPE_NAME:
                    continue
                recipes.append(dependency)
            recipes.append(recipe)

        self.status.recipes_available(recipes)
        self.status.recipes_selected(recipes)

        log.debug("Installing integrations")
        self.install_recipes(manifest, recipes)
        log.debug("Done installing integrations.")

    def recipe_from_path(self, recipe_path: str) -> OpenInstallationRecipe:
        """Fetch the recipe from a URL, or load it from a local file."""
        if urlparse(recipe_path).scheme:
            try:
                return self.recipe_file_fetcher.fetch_recipe_file(recipe_path)
            except Exception as err:
                raise RuntimeError(f"could not fetch file {recipe_path}: {err}") from err

        try:
            return self.recipe_file_fetcher.load_recipe_file(recipe_path)
        except Exception as err:
            raise RuntimeError(f"could not load file {recipe_path}: {err}") from err

    def fetch_warn(
        self, manifest: DiscoveryManifest, recipe_name: str
    ) -> OpenInstallationRecipe | None:
        """Fetch a recipe by name, warning instead of failing when it is unavailable."""
        try:
            recipe = self.recipe_fetcher.fetch_recipe(manifest, recipe_name)
        except Exception as err:
            log.warning("Could not install %s. Error retrieving recipe: %s", recipe_name, err)
            return None

        if recipe is None:
            log.warning("Recipe %s not found. Skipping installation.", recipe_name)
        return recipe