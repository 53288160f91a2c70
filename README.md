# recipekit

`recipekit` is a set of building blocks for installing instrumentation
recipes on a host: it discovers the host, checks that it can be supported,
selects recipes (guided or targeted), runs each recipe's task definition and
keeps a running installation status that subscribers are told about.

## Installation

```
pip install recipekit
```

To run the test suite:

```
pip install "recipekit[test]"
pytest
```

## Modules

| Module | Contents |
| --- | --- |
| `recipekit.models` | Data classes (`OpenInstallationRecipe`, `DiscoveryManifest`, `LogMatch`, `InputVariable`, `InstallTarget`, `SuccessLinkConfig`, `MatchedProcess`, `RecipeStatusEvent`, `Profile`), the `InstallInterrupted` exception and the collaborator protocols (`Discoverer`, `FileFilterer`, `ProcessFilterer`, `RecipeExecutor`, `RecipeFetcher`, `RecipeFileFetcher`, `RecipeValidator`, `Prompter`, `ProgressIndicator`, `NerdStorageClient`). |
| `recipekit.context` | `InstallerContext`: the flags and recipe selections of one run. |
| `recipekit.validators` | `OsValidator`, `OsVersionValidator`, `ManifestValidator` and `ValidationError`. |
| `recipekit.discovery` | `PSUtilDiscoverer`, `RegexProcessFilterer`, `NoOpProcessFilterer`, `GlobFileFilterer` and helpers. |
| `recipekit.status` | `InstallStatus`, `RecipeStatus`, `RecipeStatusType`, `StatusSubscriber`, `ConcreteSuccessLinkGenerator`. |
| `recipekit.executor` | `TaskRecipeExecutor` and the variable helpers. |
| `recipekit.guided` | `GuidedInstallMixin`: infrastructure agent, logging, then chosen integrations. |
| `recipekit.targeted` | `TargetedInstallMixin`: exactly the requested recipes plus their dependencies. |

## Deciding what an install will do

```python
from recipekit.context import InstallerContext

ctx = InstallerContext(recipe_names=["my-recipe"])
ctx.recipes_provided()             # True
ctx.should_install_infra_agent()   # False: a targeted install skips it
ctx.should_install_integrations()  # True
```

## Discovering a host

`PSUtilDiscoverer(process_filterer).discover()` returns a `DiscoveryManifest`
with the hostname, kernel architecture and version, OS, platform, platform
family and platform version. Platform and platform family values that are not
recognised are blanked (`filter_values`). Every readable process is handed to
the process filterer; `RegexProcessFilterer(recipe_fetcher)` keeps the
processes whose command line matches a `process_match` pattern of a recipe
returned by `recipe_fetcher.fetch_recipes(manifest)`.

`GlobFileFilterer().filter(recipes)` returns the recipes' `LogMatch` entries
whose `file` glob currently matches at least one path.

## Validating a host

```python
from recipekit.models import DiscoveryManifest
from recipekit.validators import ManifestValidator, ValidationError

manifest = DiscoveryManifest(os="linux", platform="ubuntu", platform_version="12.04")

try:
    ManifestValidator().execute(manifest)
except ValidationError as exc:
    print(exc)
    # Installation requirements error: This version of linux/ubuntu is no longer supported
```

The default checks accept only Linux and Windows, require Windows 6.2 or later
and Ubuntu 16.04 or later. `find_all_validation_errors` returns every failure
as a list instead of raising.

## Running a recipe

```python
from recipekit.executor import TaskRecipeExecutor
from recipekit.models import DiscoveryManifest, OpenInstallationRecipe, Profile

recipe = OpenInstallationRecipe(
    name="hello",
    install="""
version: "3"
tasks:
  default:
    cmds:
      - echo "installing on {{.HOSTNAME}}"
""",
)
manifest = DiscoveryManifest(hostname="example-host", os="linux")

executor = TaskRecipeExecutor(profile=Profile(account_id=1, api_key="placeholder"))
variables = executor.prepare(manifest, recipe, assume_yes=True, license_key="placeholder")
executor.execute(manifest, recipe, variables)
```

`prepare` merges host variables (`HOSTNAME`, `OS`, `PLATFORM`, ...), profile
variables (`NEW_RELIC_LICENSE_KEY`, `NEW_RELIC_ACCOUNT_ID`, ...), the recipe's
own `variables` and its input variables, later sources winning. An empty
license key raises `ValueError`. Input variables come from the environment;
otherwise from their default when `assume_yes` is set (a missing default raises
`ValueError`), or else from a terminal prompt.

`execute` reads the recipe's `install` text as a YAML task file and runs its
`default` task through the shell in the temporary directory, substituting
`{{.NAME}}` placeholders. Task `vars` (including `sh:` values), `env`, `deps`,
`dir`, `silent`, `ignore_error` and calls to other tasks are supported. A
command exiting with status 130, or a keyboard interrupt, raises
`InstallInterrupted`; other failures raise `RuntimeError`.

## Tracking status

```python
from recipekit.models import OpenInstallationRecipe, RecipeStatusEvent
from recipekit.status import (
    ConcreteSuccessLinkGenerator,
    InstallStatus,
    RecipeStatusType,
    StatusSubscriber,
)


class PrintInstalled(StatusSubscriber):
    def recipe_installed(self, status, event):
        print(f"installed {event.recipe.name}")


status = InstallStatus([PrintInstalled()], ConcreteSuccessLinkGenerator())
recipe = OpenInstallationRecipe(name="my-recipe", display_name="My Recipe")

status.recipes_available([recipe])
status.recipe_installed(RecipeStatusEvent(recipe=recipe, entity_guid="guid-1"))
status.install_complete(None)

status.has_any_recipe_status(RecipeStatusType.INSTALLED)  # True
status.host_entity_guid()                                # "guid-1"
status.redirect_url  # "https://one.newrelic.com/redirect/entity/guid-1"
```

`StatusSubscriber` hooks that are not overridden do nothing but log. An
exception raised by a subscriber is logged and does not stop the others.
When an install completes or is canceled, every recipe still `AVAILABLE` or
`INSTALLING` becomes `FAILED` (completed) or `CANCELED` (canceled), and the
per-status lists and `has_*_recipes` flags are filled in. `to_dict()` gives the
status as a JSON-ready document.

## Guided and targeted installs

`GuidedInstallMixin` and `TargetedInstallMixin` hold the selection logic but
are mixins: the class that uses them must provide `context`, `status`,
`prompter`, `recipe_fetcher`, `recipe_file_fetcher` and `file_filterer`
attributes and the methods `fetch_recipe_and_report_available`,
`execute_and_validate_with_progress`, `fail_message` and `install_recipes`.

- `guided_install(manifest)` fetches the infrastructure agent and logging
  recipes, adds recommendations unless discovery is skipped, lets the user pick
  integrations (or takes all with `assume_yes`), installs the agent, reports
  application-targeted recipes as recommended, installs logging with the log
  files the user accepts, then installs the chosen integrations. Agent and
  logging failures are raised; integration failures are not, except
  `InstallInterrupted`. `skip_infra` raises `ValueError` here.
- `targeted_install(manifest)` loads recipes from `recipe_paths` (URLs are
  fetched, other paths loaded) or else fetches them by `recipe_names`, puts each
  recipe's dependencies before it (dropping the infrastructure agent when
  `skip_infra` is set) and installs them in order.

## What this package does not do

- It has no ready-made installer class that wires discovery, validation, the
  mixins, execution and status together, and no command-line program.
- It ships no `RecipeFetcher`, `RecipeFileFetcher`, `RecipeValidator`,
  `Prompter`, `ProgressIndicator` or `NerdStorageClient` implementation; it
  does not talk to any recipe service, data-validation service or remote
  storage. Supply your own objects meeting the protocols in `recipekit.models`.
- It includes no status subscribers that print to the terminal or write status
  documents; subclass `StatusSubscriber` for that.
- It does not look up license keys or account profiles; pass a `Profile` and a
  license key in yourself.