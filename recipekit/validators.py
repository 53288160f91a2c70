"""Checks that the discovered host meets installation requirements."""

from __future__ import annotations

import re
from typing import Protocol, Sequence

from recipekit.models import DiscoveryManifest

ERROR_PREFIX = "Installation requirements error:"
NO_OPERATING_SYSTEM_DETECTED = "failed to identify a valid operating system"
OS_NOT_SUPPORTED_PREFIX = "operating system"
OS_NOT_SUPPORTED_SUFFIX = "is not supported"
VERSION_NO_LONGER_SUPPORTED = "This version of {} is no longer supported"
NO_VERSION_MESSAGE = "Failed to identified a valid version of {}"

_INTEGER = re.compile(r"[+-]?[0-9]+")


class ValidationError(Exception):
    """The host does not meet an installation requirement."""


class _Validator(Protocol):
    def execute(self, manifest: DiscoveryManifest) -> None: ...


def _parse_int(text: str) -> int | None:
    return int(text) if _INTEGER.fullmatch(text) else None


class OsValidator:
    """Accepts only Linux and Windows hosts."""

    def execute(self, manifest: DiscoveryManifest) -> None:
        if not manifest.os:
            raise ValidationError(NO_OPERATING_SYSTEM_DETECTED)
        if manifest.os.lower() not in ("linux", "windows"):
            raise ValidationError(
                f"{OS_NOT_SUPPORTED_PREFIX} {manifest.os} {OS_NOT_SUPPORTED_SUFFIX}"
            )


class OsVersionValidator:
    """Enforces a minimum platform version for one OS (and optional platform)."""

    def __init__(self, os: str, platform: str, min_major: int, min_minor: int) -> None:
        self.os = os
        self.platform = platform
        self.min_major = min_major
        self.min_minor = min_minor

    def execute(self, manifest: DiscoveryManifest) -> None:
        if self.os != manifest.os:
            return
        if self.platform and manifest.platform != self.platform:
            return

        parts = manifest.platform_version.split(".")
        major = _parse_int(parts[0])
        if major is not None:
            if len(parts) == 1:
                self._ensure_minimum(major, self.min_minor - 1, manifest)
                return
            minor = _parse_int(parts[1])
            if minor is not None:
                self._ensure_minimum(major, minor, manifest)
                return

        raise self._error(NO_VERSION_MESSAGE, manifest)

    def _ensure_minimum(self, major: int, minor: int, manifest: DiscoveryManifest) -> None:
        if (major, minor) < (self.min_major, self.min_minor):
            raise self._error(VERSION_NO_LONGER_SUPPORTED, manifest)

    @staticmethod
    def _error(message: str, manifest: DiscoveryManifest) -> ValidationError:
        target = manifest.os
        if manifest.platform:
            target = f"{target}/{manifest.platform}"
        return ValidationError(message.format(target))


class ManifestValidator:
    """Runs every requirement check and reports all failures together."""

    def __init__(self, validators: Sequence[_Validator] | None = None) -> None:
        if validators is None:
            validators = [
                OsValidator(),
                OsVersionValidator("windows", "", 6, 2),
                OsVersionValidator("linux", "ubuntu", 16, 4),
            ]
        self.validators = list(validators)

    def execute(self, manifest: DiscoveryManifest) -> None:
        errors = self.find_all_validation_errors(manifest)
        if errors:
            joined = ", ".join(str(e) for e in errors)
            raise ValidationError(f"{ERROR_PREFIX} {joined}")

    def find_all_validation_errors(self, manifest: DiscoveryManifest) -> list[ValidationError]:
        errors = []
        for validator in self.validators:
            try:
                validator.execute(manifest)
            except ValidationError as err:
                errors.append(err)
        return errors