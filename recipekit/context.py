"""Options that steer an installation run."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class InstallerContext:
    """Flags and recipe selections supplied by the user."""

    assume_yes: bool = False
    recipe_names: list[str] = field(default_factory=list)
    recipe_paths: list[str] = field(default_factory=list)
    local_recipes: str = ""
    skip_discovery: bool = False
    skip_integrations: bool = False
    skip_logging_install: bool = False
    skip_apm: bool = False
    skip_infra: bool = False

    def should_run_discovery(self) -> bool:
        return not self.skip_discovery

    def should_install_infra_agent(self) -> bool:
        return not self.recipes_provided() and not self.skip_infra

    def should_install_logging(self) -> bool:
        return not self.recipes_provided() and not self.skip_logging_install

    def should_install_integrations(self) -> bool:
        return self.recipes_provided() or not self.skip_integrations

    def should_install_apm(self) -> bool:
        return self.recipes_provided() or not self.skip_apm

    def recipe_paths_provided(self) -> bool:
        return bool(self.recipe_paths)

    def recipe_names_provided(self) -> bool:
        return bool(self.recipe_names)

    def recipes_provided(self) -> bool:
        return self.recipe_paths_provided() or self.recipe_names_provided()