"""Core data types and collaborator protocols shared by the installer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, runtime_checkable

INFRA_AGENT_RECIPE_NAME = "infrastructure-agent-installer"
LOGGING_RECIPE_NAME = "logs-integration"

TARGET_TYPE_HOST = "HOST"
TARGET_TYPE_APPLICATION = "APPLICATION"

OPERATING_SYSTEMS = ("LINUX", "WINDOWS")
PLATFORMS = ("AMAZON", "CENTOS", "DEBIAN", "REDHAT", "SUSE", "UBUNTU")
PLATFORM_FAMILIES = ("DEBIAN", "RHEL", "SUSE")


class InstallInterrupted(Exception):
    """Raised when the user interrupts an installation."""

    def __init__(self, message: str = "operation canceled") -> None:
        super().__init__(message)


@dataclass
class Profile:
    """Account credentials used while installing."""

    account_id: int = 0
    api_key: str = ""
    region: str = ""
    license_key: str = ""


@dataclass
class LogMatch:
    """A log file pattern a recipe knows how to forward."""

    name: str = ""
    file: str = ""
    pattern: str = ""
    systemd: str = ""
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass
class InputVariable:
    """A variable a recipe needs from the environment or the user."""

    name: str = ""
    prompt: str = ""
    secret: bool = False
    default: str = ""


@dataclass
class InstallTarget:
    """Describes where a recipe can be installed."""

    type: str = ""
    os: str = ""
    platform: str = ""
    platform_family: str = ""
    platform_version: str = ""
    kernel_version: str = ""
    kernel_arch: str = ""


@dataclass
class SuccessLinkConfig:
    """How to link the user to their data after an install."""

    type: str = ""
    filter: str = ""


@dataclass
class OpenInstallationRecipe:
    """An installation recipe."""

    name: str = ""
    display_name: str = ""
    id: str = ""
    description: str = ""
    keywords: list[str] = field(default_factory=list)
    process_match: list[str] = field(default_factory=list)
    log_match: list[LogMatch] = field(default_factory=list)
    install: str = ""
    input_vars: list[InputVariable] = field(default_factory=list)
    pre_install: str = ""
    post_install: str = ""
    install_targets: list[InstallTarget] = field(default_factory=list)
    success_link_config: SuccessLinkConfig = field(default_factory=SuccessLinkConfig)
    validation_nrql: str = ""
    dependencies: list[str] = field(default_factory=list)
    variables: dict[str, str] = field(default_factory=dict)

    def pre_install_message(self) -> str:
        """Message shown before the recipe runs."""
        return self.pre_install

    def post_install_message(self) -> str:
        """Message shown after the recipe succeeds."""
        return self.post_install

    def has_application_target_type(self) -> bool:
        return any(t.type == TARGET_TYPE_APPLICATION for t in self.install_targets)

    def is_apm(self) -> bool:
        return any(k.lower() == "apm" for k in self.keywords)

    def set_recipe_var(self, key: str, value: str) -> None:
        """Set a variable passed to this recipe when it executes."""
        self.variables[key] = value


@dataclass
class MatchedProcess:
    """A running process whose command line matched a recipe pattern."""

    command: str = ""
    process: Any = None
    matching_pattern: str = ""


@dataclass
class DiscoveryManifest:
    """What was discovered about the host system."""

    hostname: str = ""
    kernel_arch: str = ""
    kernel_version: str = ""
    os: str = ""
    platform: str = ""
    platform_family: str = ""
    platform_version: str = ""
    processes: list[MatchedProcess] = field(default_factory=list)

    def add_matched_process(self, process: MatchedProcess) -> None:
        self.processes.append(process)


@dataclass
class RecipeStatusEvent:
    """An event in a recipe's execution."""

    recipe: OpenInstallationRecipe = field(default_factory=OpenInstallationRecipe)
    msg: str = ""
    entity_guid: str = ""
    validation_duration_ms: int = 0


@runtime_checkable
class Discoverer(Protocol):
    """Discovers information about the host system."""

    def discover(self) -> DiscoveryManifest: ...


@runtime_checkable
class FileFilterer(Protocol):
    """Determines which recipe log files exist on the filesystem."""

    def filter(self, recipes: Sequence[OpenInstallationRecipe]) -> list[LogMatch]: ...


@runtime_checkable
class ProcessFilterer(Protocol):
    """Selects the processes that are relevant to known recipes."""

    def filter(
        self, processes: Sequence[Any], manifest: DiscoveryManifest
    ) -> list[MatchedProcess]: ...


@runtime_checkable
class RecipeExecutor(Protocol):
    """Runs the steps defined in a recipe."""

    def prepare(
        self,
        manifest: DiscoveryManifest,
        recipe: OpenInstallationRecipe,
        assume_yes: bool,
        license_key: str,
    ) -> dict[str, str]: ...

    def execute(
        self,
        manifest: DiscoveryManifest,
        recipe: OpenInstallationRecipe,
        recipe_vars: dict[str, str],
    ) -> None: ...


@runtime_checkable
class NerdStorageClient(Protocol):
    """Writes status documents to remote storage."""

    def write_document_with_user_scope(self, document: dict[str, Any]) -> Any: ...

    def write_document_with_entity_scope(
        self, entity_guid: str, document: dict[str, Any]
    ) -> Any: ...


@runtime_checkable
class RecipeFetcher(Protocol):
    """Retrieves recipes from a recipe source."""

    def fetch_recipe(
        self, manifest: DiscoveryManifest, name: str
    ) -> OpenInstallationRecipe | None: ...

    def fetch_recipes(self, manifest: DiscoveryManifest) -> list[OpenInstallationRecipe]: ...

    def fetch_recommendations(
        self, manifest: DiscoveryManifest
    ) -> list[OpenInstallationRecipe]: ...


@runtime_checkable
class RecipeFileFetcher(Protocol):
    """Loads recipe files from URLs or local paths."""

    def fetch_recipe_file(self, url: str) -> OpenInstallationRecipe: ...

    def load_recipe_file(self, path: str) -> OpenInstallationRecipe: ...


@runtime_checkable
class RecipeValidator(Protocol):
    """Confirms that an installed recipe is reporting data."""

    def validate_recipe(
        self, manifest: DiscoveryManifest, recipe: OpenInstallationRecipe
    ) -> str: ...


@runtime_checkable
class Prompter(Protocol):
    """Asks the user questions."""

    def prompt_yes_no(self, message: str) -> bool: ...

    def multi_select(self, message: str, options: Sequence[str]) -> list[str]: ...


@runtime_checkable
class ProgressIndicator(Protocol):
    """Shows progress of a long-running step."""

    def start(self, message: str) -> None: ...

    def stop(self) -> None: ...

    def success(self, message: str) -> None: ...

    def fail(self, message: str) -> None: ...