"""Rule- and set-level checks for mapping configurations.

Every check runs on the string form of a configuration (the pydantic models)
so that a single pass can report every defect, including paths and transforms
that do not parse. Nothing here raises for bad input.
"""

import logging
from typing import Collection, Iterable

from .data.mapping import parse_optional_transform
from .direction import MAPPING_KEYS, Direction, RouteMode
from .errors import ParseError
from .expression import default_registry, function_names
from .model.mapping import MappingConfig as MappingConfigModel
from .model.validation import Severity, ValidationIssue, ValidationReport
from .path_expression import Constant, parse_path

logger = logging.getLogger(__name__)


def builtin_function_names() -> list[str]:
    return default_registry().names()


def _error(location: str, message: str) -> ValidationIssue:
    return ValidationIssue(severity=Severity.ERROR, location=location, message=message)


def _warning(location: str, message: str) -> ValidationIssue:
    return ValidationIssue(severity=Severity.WARNING, location=location, message=message)


def check_rule(
    rule,
    location: str = "rule",
    known_functions: Collection[str] | None = None,
) -> list[ValidationIssue]:
    """Check one rule; `rule` needs source_path, target_path, transform and default_value."""
    if known_functions is None:
        known_functions = builtin_function_names()

    issues = []
    source = None

    if not rule.source_path:
        issues.append(_error(f"{location}.sourcePath", "sourcePath must not be empty"))
    else:
        try:
            source = parse_path(rule.source_path)
        except ParseError as e:
            issues.append(_error(f"{location}.sourcePath", f"{e.reason} (at offset {e.offset})"))

    if not rule.target_path or not rule.target_path.strip():
        issues.append(_error(f"{location}.targetPath", "targetPath must not be empty"))

    try:
        transform = parse_optional_transform(rule.transform)
    except ParseError as e:
        issues.append(_error(f"{location}.transform", f"{e.reason} (at offset {e.offset})"))
    else:
        if transform is not None:
            for name in function_names(transform):
                if name not in known_functions:
                    issues.append(_warning(f"{location}.transform", f"unknown function '{name}'"))

    if isinstance(source, Constant) and rule.default_value is not None:
        issues.append(
            _warning(
                f"{location}.defaultValue",
                "defaultValue is unreachable because sourcePath is a constant",
            )
        )

    return issues


def check_duplicate_targets(rules: Iterable, key: str) -> list[ValidationIssue]:
    issues = []
    seen: dict[str, int] = {}
    for i, rule in enumerate(rules):
        if not rule.target_path:
            continue
        if rule.target_path in seen:
            issues.append(
                _error(
                    f"{key}[{i}].targetPath",
                    f"targetPath '{rule.target_path}' is already mapped by {key}[{seen[rule.target_path]}]",
                )
            )
        else:
            seen[rule.target_path] = i
    return issues


def check_config(
    config: MappingConfigModel,
    known_functions: Collection[str] | None = None,
) -> list[ValidationIssue]:
    if known_functions is None:
        known_functions = builtin_function_names()

    issues = []

    if not config.route_id:
        issues.append(_error("routeId", "routeId is required"))

    mode = (config.mode or RouteMode.PASSIVE.value).upper()
    if mode not in {m.value for m in RouteMode}:
        issues.append(_error("mode", f"mode must be ACTIVE or PASSIVE, got '{config.mode}'"))
    elif mode == RouteMode.ACTIVE and not config.endpoint:
        issues.append(_error("endpoint", "endpoint is required when mode is ACTIVE"))

    for direction, key in MAPPING_KEYS.items():
        rules = config.request_mappings if direction == Direction.REQUEST else config.response_mappings
        for i, rule in enumerate(rules):
            issues.extend(check_rule(rule, f"{key}[{i}]", known_functions))
        issues.extend(check_duplicate_targets(rules, key))

    return issues


def build_report(issues: list[ValidationIssue]) -> ValidationReport:
    errors = [i for i in issues if i.severity == Severity.ERROR]
    warnings = [i for i in issues if i.severity == Severity.WARNING]

    if errors:
        message = "Configuration is invalid: " + "; ".join(str(i) for i in issues)
    elif warnings:
        message = f"Configuration is valid with {len(warnings)} warning(s): " + "; ".join(
            str(i) for i in warnings
        )
    else:
        message = "Configuration is valid"

    return ValidationReport(valid=not errors, message=message, issues=issues)
