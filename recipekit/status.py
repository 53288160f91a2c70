"""Installation status tracking and the links shown once an install finishes."""

from __future__ import annotations

import base64
import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol, Sequence, runtime_checkable

from recipekit.models import (
    DiscoveryManifest,
    OpenInstallationRecipe,
    Profile,
    RecipeStatusEvent,
    SuccessLinkConfig,
)

log = logging.getLogger(__name__)

DEFAULT_LOG_FILE_PATH = os.path.join(os.path.expanduser("~"), ".newrelic", "newrelic-cli.log")

HOSTNAME_STAGING = "staging-one.newrelic.com"
HOSTNAME_US = "one.newrelic.com"
HOSTNAME_EU = "one.eu.newrelic.com"


def _timestamp() -> int:
    return int(time.time())


class RecipeStatusType(str, Enum):
    """The lifecycle states a recipe moves through."""

    AVAILABLE = "AVAILABLE"
    CANCELED = "CANCELED"
    INSTALLING = "INSTALLING"
    FAILED = "FAILED"
    INSTALLED = "INSTALLED"
    SKIPPED = "SKIPPED"
    RECOMMENDED = "RECOMMENDED"


@dataclass
class StatusError:
    """An error message attached to a status."""

    message: str = ""
    details: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "details": self.details}


@dataclass
class RecipeStatus:
    """The current state of one recipe."""

    name: str = ""
    display_name: str = ""
    status: RecipeStatusType = RecipeStatusType.AVAILABLE
    error: StatusError = field(default_factory=StatusError)
    entity_guid: str = ""
    validation_duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "displayName": self.display_name,
            "error": self.error.to_dict(),
            "name": self.name,
            "status": self.status.value,
        }
        if self.entity_guid:
            doc["entityGuid"] = self.entity_guid
        if self.validation_duration_ms:
            doc["validationDurationMilliseconds"] = self.validation_duration_ms
        return doc


class StatusSubscriber:
    """Notified during the lifecycle of an installation.

    Subclasses override the hooks they care about; the others only log
    that the notification was not acted on.
    """

    def _unhandled(self, hook: str, subject: str = "") -> None:
        log.debug("%s does not act on %s %s", type(self).__name__, hook, subject)

    def install_canceled(self, status: InstallStatus) -> None:
        self._unhandled("install_canceled", status.document_id)

    def install_complete(self, status: InstallStatus) -> None:
        self._unhandled("install_complete", status.document_id)

    def discovery_complete(self, status: InstallStatus, manifest: DiscoveryManifest) -> None:
        self._unhandled("discovery_complete", manifest.hostname)

    def recipe_available(self, status: InstallStatus, recipe: OpenInstallationRecipe) -> None:
        self._unhandled("recipe_available", recipe.name)

    def recipe_failed(self, status: InstallStatus, event: RecipeStatusEvent) -> None:
        self._unhandled("recipe_failed", event.recipe.name)

    def recipe_installed(self, status: InstallStatus, event: RecipeStatusEvent) -> None:
        self._unhandled("recipe_installed", event.recipe.name)

    def recipe_installing(self, status: InstallStatus, event: RecipeStatusEvent) -> None:
        self._unhandled("recipe_installing", event.recipe.name)

    def recipe_recommended(self, status: InstallStatus, event: RecipeStatusEvent) -> None:
        self._unhandled("recipe_recommended", event.recipe.name)

    def recipe_skipped(self, status: InstallStatus, event: RecipeStatusEvent) -> None:
        self._unhandled("recipe_skipped", event.recipe.name)

    def recipes_available(
        self, status: InstallStatus, recipes: Sequence[OpenInstallationRecipe]
    ) -> None:
        self._unhandled("recipes_available", ",".join(r.name for r in recipes))

    def recipes_selected(
        self, status: InstallStatus, recipes: Sequence[OpenInstallationRecipe]
    ) -> None:
        self._unhandled("recipes_selected", ",".join(r.name for r in recipes))


@runtime_checkable
class SuccessLinkGenerator(Protocol):
    """Builds links to the user's data."""

    def generate_explorer_link(self, filter_: str) -> str: ...

    def generate_entity_link(self, entity_guid: str) -> str: ...

    def generate_redirect_url(self, status: InstallStatus) -> str: ...


def platform_hostname(profile: Profile | None) -> str:
    """The platform host for the profile's region, defaulting to the US."""
    if profile is None:
        return HOSTNAME_US
    region = profile.region.lower()
    if region == "staging":
        return HOSTNAME_STAGING
    if region == "eu":
        return HOSTNAME_EU
    return HOSTNAME_US


class ConcreteSuccessLinkGenerator:
    """Generates links into the platform UI for the given profile."""

    def __init__(self, profile: Profile | None = None) -> None:
        self.profile = profile

    def generate_explorer_link(self, filter_: str) -> str:
        encoded = base64.b64encode(filter_.encode("utf-8")).decode("ascii")
        account_id = self.profile.account_id if self.profile else 0
        return (
            f"https://{platform_hostname(self.profile)}/launcher/nr1-core.explorer"
            f"?platform[filters]={encoded}&platform[accountId]={account_id}"
        )

    def generate_entity_link(self, entity_guid: str) -> str:
        return f"https://{platform_hostname(self.profile)}/redirect/entity/{entity_guid}"

    def generate_redirect_url(self, status: InstallStatus) -> str:
        """Where the user should go after the install; empty if nothing was installed."""
        if not status.has_any_recipe_status(RecipeStatusType.INSTALLED):
            return ""
        if status.success_link_config.type.lower() == "explorer":
            return self.generate_explorer_link(status.success_link_config.filter)
        return self.generate_entity_link(status.host_entity_guid())


def _manifest_to_dict(manifest: DiscoveryManifest) -> dict[str, str]:
    return {
        "hostname": manifest.hostname,
        "kernelArch": manifest.kernel_arch,
        "kernelVersion": manifest.kernel_version,
        "os": manifest.os,
        "platform": manifest.platform,
        "platformFamily": manifest.platform_family,
        "platformVersion": manifest.platform_version,
    }


class InstallStatus:
    """Rolls up the state of an installation and notifies subscribers of changes."""

    def __init__(
        self,
        subscribers: Sequence[StatusSubscriber] | None = None,
        success_link_generator: SuccessLinkGenerator | None = None,
        *,
        log_file_path: str = DEFAULT_LOG_FILE_PATH,
    ) -> None:
        self.complete = False
        self.discovery_manifest = DiscoveryManifest()
        self.entity_guids: list[str] = []
        self.error = StatusError()
        self.log_file_path = log_file_path
        self.statuses: list[RecipeStatus] = []
        self.timestamp = _timestamp()
        self.cli_version = ""
        self.has_installed_recipes = False
        self.has_canceled_recipes = False
        self.has_skipped_recipes = False
        self.has_failed_recipes = False
        self.recipes_skipped: list[RecipeStatus] = []
        self.recipes_canceled: list[RecipeStatus] = []
        self.recipes_failed: list[RecipeStatus] = []
        self.recipes_installed: list[RecipeStatus] = []
        self.redirect_url = ""
        self.document_id = str(uuid.uuid4())
        self.success_link_config = SuccessLinkConfig()
        self.success_link_generator = success_link_generator
        self.subscribers = list(subscribers or [])
        self._targeted_install = False

    def _notify(self, call: Callable[[StatusSubscriber], Any], message: str) -> None:
        for subscriber in self.subscribers:
            try:
                call(subscriber)
            except Exception as err:  # a failing subscriber must not stop the install
                log.error("%s: %s", message, err)

    def discovery_complete(self, manifest: DiscoveryManifest) -> None:
        self._with_discovery_info(manifest)
        self._notify(
            lambda s: s.discovery_complete(self, manifest), "Could not report discovery info"
        )

    def recipe_available(self, recipe: OpenInstallationRecipe) -> None:
        self._with_available_recipe(recipe)
        self._notify(
            lambda s: s.recipe_available(self, recipe),
            "Could not report recipe execution status",
        )

    def recipes_available(self, recipes: Sequence[OpenInstallationRecipe]) -> None:
        self.with_available_recipes(recipes)
        self._notify(
            lambda s: s.recipes_available(self, recipes),
            "Could not report recipe execution status",
        )

    def recipes_selected(self, recipes: Sequence[OpenInstallationRecipe]) -> None:
        self._notify(
            lambda s: s.recipes_selected(self, recipes),
            "Could not report recipe execution status",
        )

    def _recipe_message(self, event: RecipeStatusEvent) -> str:
        return f"Error writing recipe status for recipe {event.recipe.name}"

    def recipe_installed(self, event: RecipeStatusEvent) -> None:
        self.with_recipe_event(event, RecipeStatusType.INSTALLED)
        self._notify(lambda s: s.recipe_installed(self, event), self._recipe_message(event))

    def recipe_recommended(self, event: RecipeStatusEvent) -> None:
        """Record a recipe the user should consider but that will not be installed."""
        self.with_recipe_event(event, RecipeStatusType.RECOMMENDED)
        self._notify(lambda s: s.recipe_recommended(self, event), self._recipe_message(event))

    def recipe_installing(self, event: RecipeStatusEvent) -> None:
        self.with_recipe_event(event, RecipeStatusType.INSTALLING)
        self._notify(lambda s: s.recipe_installing(self, event), self._recipe_message(event))

    def recipe_failed(self, event: RecipeStatusEvent) -> None:
        self.with_recipe_event(event, RecipeStatusType.FAILED)
        self._notify(lambda s: s.recipe_failed(self, event), self._recipe_message(event))

    def recipe_skipped(self, event: RecipeStatusEvent) -> None:
        self.with_recipe_event(event, RecipeStatusType.SKIPPED)
        self._notify(lambda s: s.recipe_skipped(self, event), self._recipe_message(event))

    def install_complete(self, error: BaseException | None) -> None:
        self._completed(error)
        self._notify(lambda s: s.install_complete(self), "Error writing execution status")

    def install_canceled(self) -> None:
        self._canceled()
        self._notify(lambda s: s.install_canceled(self), "Error writing execution status")

    def recommendations(self) -> list[RecipeStatus]:
        return [s for s in self.statuses if s.status == RecipeStatusType.RECOMMENDED]

    def has_any_recipe_status(self, status: RecipeStatusType) -> bool:
        return any(s.status == status for s in self.statuses)

    def set_targeted_install(self) -> None:
        self._targeted_install = True

    def is_targeted_install(self) -> bool:
        return self._targeted_install

    def host_entity_guid(self) -> str:
        """The last GUID for targeted installs, otherwise the first."""
        if not self.entity_guids:
            return ""
        return self.entity_guids[-1] if self._targeted_install else self.entity_guids[0]

    def get_status(self, recipe: OpenInstallationRecipe) -> RecipeStatus | None:
        return next((s for s in self.statuses if s.name == recipe.name), None)

    def with_entity_guid(self, entity_guid: str) -> None:
        if entity_guid in self.entity_guids:
            return
        log.debug("new GUID %s", entity_guid)
        self.entity_guids.append(entity_guid)

    def with_available_recipes(self, recipes: Sequence[OpenInstallationRecipe]) -> None:
        for recipe in recipes:
            self._with_available_recipe(recipe)

    def _with_available_recipe(self, recipe: OpenInstallationRecipe) -> None:
        self.with_recipe_event(RecipeStatusEvent(recipe=recipe), RecipeStatusType.AVAILABLE)

    def _with_discovery_info(self, manifest: DiscoveryManifest) -> None:
        self.discovery_manifest = manifest
        self.timestamp = _timestamp()
        version = os.environ.get("NEW_RELIC_CLI_VERSION", "")
        if version:
            self.cli_version = version

    def with_recipe_event(self, event: RecipeStatusEvent, status: RecipeStatusType) -> None:
        """Apply an event to the recipe's status, creating the status if needed."""
        if event.entity_guid:
            self.with_entity_guid(event.entity_guid)

        self.success_link_config = event.recipe.success_link_config
        status_error = StatusError(message=event.msg)
        self.error = status_error

        log.debug(
            "recipe event: name=%s status=%s error=%s guid=%s duration=%d",
            event.recipe.name,
            status.value,
            status_error.message,
            event.entity_guid,
            event.validation_duration_ms,
        )

        found = self.get_status(event.recipe)
        if found is None:
            found = RecipeStatus(
                name=event.recipe.name,
                display_name=event.recipe.display_name,
                status=status,
                error=status_error,
            )
            self.statuses.append(found)
        else:
            found.status = status

        if event.entity_guid:
            found.entity_guid = event.entity_guid
        if event.validation_duration_ms > 0:
            found.validation_duration_ms = event.validation_duration_ms

        self.timestamp = _timestamp()

    def _completed(self, error: BaseException | None) -> None:
        self.complete = True
        self.timestamp = _timestamp()
        if error is not None:
            self.error = StatusError(message=str(error))
        log.debug("completed at %d", self.timestamp)
        self._update_final_installation_statuses(canceled=False)
        if self.success_link_generator is not None:
            self.redirect_url = self.success_link_generator.generate_redirect_url(self)

    def _canceled(self) -> None:
        self.timestamp = _timestamp()
        log.debug("canceled at %d", self.timestamp)
        self._update_final_installation_statuses(canceled=True)

    def _update_final_installation_statuses(self, canceled: bool) -> None:
        """Resolve pending recipes and collect the final per-status lists."""
        pending = (RecipeStatusType.AVAILABLE, RecipeStatusType.INSTALLING)
        for recipe_status in self.statuses:
            if recipe_status.status in pending:
                recipe_status.status = (
                    RecipeStatusType.CANCELED if canceled else RecipeStatusType.FAILED
                )
                log.debug(
                    "marking recipe %s %s",
                    recipe_status.name,
                    "canceled" if canceled else "failed",
                )

            if recipe_status.status == RecipeStatusType.INSTALLED:
                self.recipes_installed.append(recipe_status)
                self.has_installed_recipes = True
            elif recipe_status.status == RecipeStatusType.SKIPPED:
                self.recipes_skipped.append(recipe_status)
                self.has_skipped_recipes = True
            elif recipe_status.status == RecipeStatusType.CANCELED:
                self.recipes_canceled.append(recipe_status)
                self.has_canceled_recipes = True
            elif recipe_status.status == RecipeStatusType.FAILED:
                self.recipes_failed.append(recipe_status)
                self.has_failed_recipes = True

    def to_dict(self) -> dict[str, Any]:
        """The status as a JSON-ready document."""
        return {
            "complete": self.complete,
            "discoveryManifest": _manifest_to_dict(self.discovery_manifest),
            "entityGuids": list(self.entity_guids),
            "error": self.error.to_dict(),
            "logFilePath": self.log_file_path,
            "recipes": [s.to_dict() for s in self.statuses],
            "timestamp": self.timestamp,
            "cliVersion": self.cli_version,
            "hasInstalledRecipes": self.has_installed_recipes,
            "hasCanceledRecipes": self.has_canceled_recipes,
            "hasSkippedRecipes": self.has_skipped_recipes,
            "hasFailedRecipes": self.has_failed_recipes,
            "recipesSkipped": [s.to_dict() for s in self.recipes_skipped],
            "recipesCanceled": [s.to_dict() for s in self.recipes_canceled],
            "recipesFailed": [s.to_dict() for s in self.recipes_failed],
            "recipesInstalled": [s.to_dict() for s in self.recipes_installed],
            "redirectUrl": self.redirect_url,
            "DocumentID": self.document_id,
        }