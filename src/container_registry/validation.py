"""Input constraints checked before anything reaches the record store."""

import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel

from container_registry.utils.exceptions import ValidationFailedError

NAME_MAX_LENGTH = 64
TEMPLATE_MAX_LENGTH = 32

CPU_MIN = 1
CPU_MAX = 128
MEMORY_MIN = 64 * 1024 * 1024  # 64 MiB
MEMORY_MAX = 1024**4  # 1 TiB
DISK_MIN = 100 * 1024 * 1024  # 100 MiB
DISK_MAX = 10 * 1024**4  # 10 TiB

_NAME_START = re.compile(r"[a-z0-9]")
_NAME_CHARS = re.compile(r"[a-z0-9.\-]*")
_TEMPLATE_CHARS = re.compile(r"[a-z0-9\-]*")


@dataclass(frozen=True)
class Violation:
    """One failed constraint."""

    field: str
    reason: str


def _validate_name(name: str) -> List[Violation]:
    if not name:
        return [Violation("name", "Container name cannot be empty")]

    violations = []
    if len(name) > NAME_MAX_LENGTH:
        violations.append(
            Violation("name", f"Container name must be {NAME_MAX_LENGTH} characters or fewer")
        )
    if not _NAME_START.match(name[0]):
        violations.append(
            Violation("name", "Container name must start with a lowercase letter or digit")
        )
    if not _NAME_CHARS.fullmatch(name):
        violations.append(
            Violation(
                "name",
                "Container name can only contain lowercase alphanumerics, hyphens and dots",
            )
        )
    return violations


def _validate_template(template: str) -> List[Violation]:
    if not template:
        return [Violation("template", "Template cannot be empty")]

    violations = []
    if len(template) > TEMPLATE_MAX_LENGTH:
        violations.append(
            Violation("template", f"Template must be {TEMPLATE_MAX_LENGTH} characters or fewer")
        )
    if not _TEMPLATE_CHARS.fullmatch(template):
        violations.append(
            Violation("template", "Template can only contain lowercase alphanumerics and hyphens")
        )
    return violations


def _validate_range(
    field: str, value: Any, minimum: int, maximum: int, label: str
) -> List[Violation]:
    # bool is an int subclass but never a meaningful limit
    if isinstance(value, bool) or not isinstance(value, int):
        return [Violation(field, f"{label} must be an integer")]
    if value < minimum or value > maximum:
        return [Violation(field, f"{label} must be between {minimum} and {maximum}")]
    return []


def validate(
    name: str,
    template: str,
    cpu: Optional[int] = None,
    memory: Optional[int] = None,
    disk: Optional[int] = None,
) -> List[Violation]:
    """
    Check a candidate container against every constraint.

    Args:
        name: Container name
        template: Template tag
        cpu: CPU limit in cores, if set
        memory: Memory limit in bytes, if set
        disk: Disk limit in bytes, if set

    Returns:
        Every violation found; empty when the input is valid
    """
    violations = _validate_name(name) + _validate_template(template)
    if cpu is not None:
        violations += _validate_range("config.cpu_limit", cpu, CPU_MIN, CPU_MAX, "CPU limit")
    if memory is not None:
        violations += _validate_range(
            "config.memory_limit", memory, MEMORY_MIN, MEMORY_MAX, "Memory limit (bytes)"
        )
    if disk is not None:
        violations += _validate_range(
            "config.disk_limit", disk, DISK_MIN, DISK_MAX, "Disk limit (bytes)"
        )
    return violations


def validate_config(
    name: str, template: str, config: BaseModel | Mapping[str, Any] | None
) -> List[Violation]:
    """Validate name and template plus the limits carried by ``config``."""
    if config is None:
        limits: Mapping[str, Any] = {}
    elif isinstance(config, BaseModel):
        limits = config.model_dump()
    else:
        limits = config
    return validate(
        name,
        template,
        cpu=limits.get("cpu_limit"),
        memory=limits.get("memory_limit"),
        disk=limits.get("disk_limit"),
    )


def ensure_valid(
    name: str, template: str, config: BaseModel | Mapping[str, Any] | None = None
) -> None:
    """
    Raise if the candidate container violates any constraint.

    Raises:
        ValidationFailedError: Carrying every violation found
    """
    violations = validate_config(name, template, config)
    if violations:
        raise ValidationFailedError(violations)
