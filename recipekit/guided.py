"""Guided installation: infrastructure agent, logging and recommended integrations."""

from __future__ import annotations

import logging
from typing import Sequence

from recipekit.context import InstallerContext
from recipekit.models import (
    INFRA_AGENT_RECIPE_NAME,
    LOGGING_RECIPE_NAME,
    DiscoveryManifest,
    FileFilterer,
    InstallInterrupted,
    LogMatch,
    OpenInstallationRecipe,
    Prompter,
    RecipeFetcher,
    RecipeStatusEvent,
)
from recipekit.status import InstallStatus

log = logging.getLogger(__name__)

_GUIDED_INTRO = (
    "The guided installation will begin by installing the latest version of the "
    "New Relic Infrastructure agent, which is required for additional instrumentation.\n\n"
)
_MULTI_SELECT_PROMPT = (
    "Please choose from the additional recommended instrumentation to be installed:"
)


class GuidedInstallMixin:
    """Walks the user through an installation, prompting for input when needed.

    The host class supplies ``context``, ``status``, ``prompter``,
    ``recipe_fetcher`` and ``file_filterer``, together with
    ``fetch_recipe_and_report_available``, ``execute_and_validate_with_progress``,
    ``fail_message`` and ``install_recipes``.
    """

    context: InstallerContext
    status: InstallStatus
    prompter: Prompter
    recipe_fetcher: RecipeFetcher
    file_filterer: FileFilterer

    def guided_install(self, manifest: DiscoveryManifest) -> None:
        """Install the infra agent, logging and selected integrations.

        Only failures of the infra agent or logging recipes are raised; a failing
        integration is logged as a warning and the install carries on.
        """
        recommended: list[OpenInstallationRecipe] = []

        infra_recipe = self.fetch_recipe_and_report_available(manifest, INFRA_AGENT_RECIPE_NAME)
        recipes_for_installation = [infra_recipe]

        logging_recipe = self.fetch_recipe_and_report_available(manifest, LOGGING_RECIPE_NAME)

        if self.context.skip_infra:
            raise ValueError(
                "--skipInfra is only applicable to targeted installation. "
                "Run newrelic install --help for usage"
            )

        if self.context.skip_logging_install:
            self.status.recipe_skipped(RecipeStatusEvent(recipe=logging_recipe))
        else:
            recommended.append(logging_recipe)

        if not self.context.skip_discovery:
            additional = self.fetch_recommendations(manifest)
            if not additional:
                log.debug("no additional integrations found")
            recommended.extend(additional)

        selected = self.filter_integrations(recommended)

        self.status.recipes_available(selected)

        recipes_for_installation.extend(selected)
        self.status.recipes_selected(recipes_for_installation)

        # Logging is installed explicitly below.
        selected = self.remove_recipes(selected, logging_recipe)

        log.debug("Installing infrastructure agent")
        try:
            entity_guid = self.execute_and_validate_with_progress(manifest, infra_recipe)
        except Exception:
            log.error("%s", self.fail_message(INFRA_AGENT_RECIPE_NAME))
            raise
        log.debug("Done installing infrastructure agent.")

        for recipe in recommended:
            if recipe.has_application_target_type():
                self.status.recipe_recommended(
                    RecipeStatusEvent(recipe=recipe, entity_guid=entity_guid)
                )

        if self.context.should_install_logging():
            log.debug("Installing logging")
            try:
                self.install_logging(manifest, logging_recipe, recipes_for_installation)
            except Exception:
                log.error("%s", self.fail_message(LOGGING_RECIPE_NAME))
                raise
            log.debug("Done installing logging.")

        if self.context.should_install_integrations():
            log.debug("Installing integrations")
            try:
                self.install_recipes(manifest, selected)
            except InstallInterrupted:
                raise
            except Exception:
                return
            log.debug("Done installing integrations.")

    def install_logging(
        self,
        manifest: DiscoveryManifest,
        recipe: OpenInstallationRecipe,
        recipes: Sequence[OpenInstallationRecipe],
    ) -> None:
        """Install the logging recipe with the log files the user agreed to watch."""
        log.debug("filtering log matches for %d recipes", len(recipes))
        matches = self.file_filterer.filter(recipes)
        log.debug("filtered log matches: %d possible", len(matches))

        accepted = [m for m in matches if self.user_accepts_log_file(m)]
        log.debug("matches accepted: %s", accepted)

        discovered = ",".join(m.file for m in accepted)
        recipe.set_recipe_var("NR_DISCOVERED_LOG_FILES", discovered)
        log.debug("discovered log files: %s", discovered)

        self.execute_and_validate_with_progress(manifest, recipe)

    def fetch_recommendations(self, manifest: DiscoveryManifest) -> list[OpenInstallationRecipe]:
        """Recommended recipes for the host, without the explicitly handled ones."""
        log.debug("fetching recommended recipes")
        try:
            recommendations = self.recipe_fetcher.fetch_recommendations(manifest)
        except InstallInterrupted:
            raise
        except Exception as err:
            raise RuntimeError(f"error retrieving recipe recommendations: {err}") from err

        recommendations = self.filter_recommendations(recommendations)
        log.debug(
            "recommended integrations: %s (%d)",
            [r.name for r in recommendations],
            len(recommendations),
        )
        return recommendations

    def filter_recommendations(
        self, recipes: Sequence[OpenInstallationRecipe]
    ) -> list[OpenInstallationRecipe]:
        """Drop the infra agent and logging recipes, which are installed explicitly."""
        result = []
        for recipe in recipes:
            if recipe.name in (INFRA_AGENT_RECIPE_NAME, LOGGING_RECIPE_NAME):
                log.debug("skipping redundant recipe %s", recipe.name)
                continue
            result.append(recipe)
        return result

    def user_accepts(self, message: str) -> bool:
        if self.context.assume_yes:
            return True
        return self.prompter.prompt_yes_no(message)

    def user_accepts_log_file(self, match: LogMatch) -> bool:
        return self.user_accepts(
            f"Files have been found at the following pattern: {match.file} "
            "Do you want to watch them?"
        )

    def recipe_in_recipes(
        self, recipe: OpenInstallationRecipe, recipes: Sequence[OpenInstallationRecipe]
    ) -> bool:
        return any(r.name == recipe.name for r in recipes)

    def remove_recipes(
        self, recipes: Sequence[OpenInstallationRecipe], *args: OpenInstallationRecipe
    ) -> list[OpenInstallationRecipe]:
        """The recipes whose names match none of the ones to remove."""
        removed = {r.name for r in args}
        return [r for r in recipes if r.name not in removed]

    def filter_integrations(
        self, recommended: Sequence[OpenInstallationRecipe]
    ) -> list[OpenInstallationRecipe]:
        """Select the integrations to install from flags and the user's choice.

        Recipes excluded by flags or left unselected are reported as skipped;
        application-targeted recipes that are not APM are left out silently.
        Leaving out the logging recipe turns logging installation off.
        """
        candidates = []
        for recipe in recommended:
            if recipe.has_application_target_type() and not recipe.is_apm():
                continue
            if self.context.skip_integrations or (self.context.skip_apm and recipe.is_apm()):
                self.status.recipe_skipped(RecipeStatusEvent(recipe=recipe))
            else:
                candidates.append(recipe)

        candidate_names = [r.display_name for r in candidates]

        selected_names: list[str] = []
        if self.context.assume_yes:
            selected_names = candidate_names
        elif candidate_names:
            print(_GUIDED_INTRO, end="")
            selected_names = list(self.prompter.multi_select(_MULTI_SELECT_PROMPT, candidate_names))
            print()

        for_install = [
            recipe
            for name in selected_names
            for recipe in recommended
            if recipe.display_name == name
        ]

        log.debug("skipping recipes that were not selected")
        for recipe in candidates:
            if not self.recipe_in_recipes(recipe, for_install):
                self.status.recipe_skipped(RecipeStatusEvent(recipe=recipe))
                if recipe.name == LOGGING_RECIPE_NAME:
                    self.context.skip_logging_install = True

        return for_install