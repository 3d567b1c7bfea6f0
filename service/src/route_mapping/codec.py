"""
Textual form of a route's mapping configuration.

`generate` and `parse` are exact inverses on MappingSet:
``parse(generate(m)) == m``. The document is YAML:

    routeId: pacs008-route
    name: Credit transfer
    inputFormat: XML
    outputFormat: ISO_XML
    mode: ACTIVE
    endpoint: https://core.example/api
    requestMappings:
      - id: 1
        sourcePath: source.TSQuerySingleRequest.SessionID
        targetPath: GrpHdr/MsgId
        transform: concat('999999',substring(SessionID,-15))
    responseMappings: []

Plain scalars are always read as strings, so values such as ``00`` or
``yes`` keep their exact text. Besides the layout above, `parse` accepts the
runtime loader layout (``inboundFormat``, ``mappings.request``, ``from``/``to``)
and legacy rule keys (``source``, ``target``, ``default``, ``transformation``).
"""

import logging
from typing import Any, Collection

import yaml
from pydantic import ValidationError as PydanticValidationError

from .data.mapping import MappingRule, MappingSet
from .errors import ParseError, ParseErrorKind
from .expression import render
from .helpers import byte_offset
from .model.mapping import MappingConfig as MappingConfigModel
from .model.validation import Severity, ValidationIssue, ValidationReport
from .path_expression import render_path
from .validation import build_report, check_config

logger = logging.getLogger(__name__)

_NULL_TAG = "tag:yaml.org,2002:null"


class _StringLoader(yaml.SafeLoader):
    """SafeLoader that only resolves null implicitly; all other plain scalars stay strings."""


_StringLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag == _NULL_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

# YAML line breaks that a plain or single-quoted scalar would fold on reload
_LINE_SEPARATORS = ("\x85", "\u2028", "\u2029")


class _Dumper(yaml.SafeDumper):
    pass


def _represent_str(dumper: _Dumper, data: str):
    if any(sep in data for sep in _LINE_SEPARATORS):
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style='"')
    return dumper.represent_str(data)


_Dumper.add_representer(str, _represent_str)

_RULE_KEY_ALIASES = {
    "from": "sourcePath",
    "source": "sourcePath",
    "to": "targetPath",
    "target": "targetPath",
    "default": "defaultValue",
    "transformation": "transform",
}


def _dump(data: dict) -> str:
    return yaml.dump(
        data,
        Dumper=_Dumper,
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
        width=4096,
    )


def _rule_document(rule: MappingRule) -> dict:
    doc: dict[str, Any] = {}
    if rule.id is not None:
        doc["id"] = rule.id
    doc["sourcePath"] = render_path(rule.source_path)
    doc["targetPath"] = rule.target_path
    if rule.transform is not None:
        doc["transform"] = render(rule.transform)
    if rule.default_value is not None:
        doc["defaultValue"] = rule.default_value
    if rule.required:
        doc["required"] = True
    return doc


def _namespace_document(mapping_set: MappingSet) -> dict | None:
    if mapping_set.namespace is None:
        return None
    return mapping_set.namespace.model_dump(by_alias=True, exclude_none=True)


def generate(mapping_set: MappingSet) -> str:
    doc: dict[str, Any] = {
        "routeId": mapping_set.route_id,
        "name": mapping_set.name,
    }
    if mapping_set.description is not None:
        doc["description"] = mapping_set.description
    doc["inputFormat"] = mapping_set.input_format
    doc["outputFormat"] = mapping_set.output_format
    doc["mode"] = mapping_set.mode.value
    if mapping_set.endpoint is not None:
        doc["endpoint"] = mapping_set.endpoint
    if (namespace := _namespace_document(mapping_set)) is not None:
        doc["namespace"] = namespace
    doc["requestMappings"] = [_rule_document(r) for r in mapping_set.request_mappings]
    doc["responseMappings"] = [_rule_document(r) for r in mapping_set.response_mappings]

    logger.debug(
        "generated document for route %s (%d rules)", mapping_set.route_id, len(mapping_set)
    )
    return _dump(doc)


def generate_runtime(mapping_set: MappingSet) -> str:
    """Emit the layout read by the translation runtime's mapping loader."""

    def runtime_rule(rule: MappingRule) -> dict:
        doc = {"from": render_path(rule.source_path), "to": rule.target_path}
        if rule.transform is not None:
            doc["transform"] = render(rule.transform)
        # the runtime treats an empty default as no default
        if rule.default_value:
            doc["defaultValue"] = rule.default_value
        return doc

    doc: dict[str, Any] = {
        "routeId": mapping_set.route_id,
        "inboundFormat": mapping_set.input_format,
        "outboundFormat": mapping_set.output_format,
        "mode": mapping_set.mode.value,
    }
    if mapping_set.endpoint:
        doc["endpoint"] = mapping_set.endpoint
    if (namespace := _namespace_document(mapping_set)) is not None:
        doc["namespace"] = namespace
    doc["mappings"] = {
        "request": [runtime_rule(r) for r in mapping_set.request_mappings],
        "response": [runtime_rule(r) for r in mapping_set.response_mappings],
    }
    return _dump(doc)


def _normalize_rule(rule) -> Any:
    if not isinstance(rule, dict):
        return rule
    out = {}
    for key, value in rule.items():
        target = _RULE_KEY_ALIASES.get(key, key)
        # the current key wins over its legacy spelling
        if target in out and target != key:
            continue
        out[target] = value
    return out


def _normalize(data: dict) -> dict:
    data = dict(data)

    if "inboundFormat" in data:
        data.setdefault("inputFormat", data.pop("inboundFormat"))
    if "outboundFormat" in data:
        data.setdefault("outputFormat", data.pop("outboundFormat"))

    fmt = data.pop("format", None)
    if isinstance(fmt, dict):
        data.setdefault("inputFormat", fmt.get("input"))
        data.setdefault("outputFormat", fmt.get("output"))

    mappings = data.pop("mappings", None)
    if isinstance(mappings, dict):
        data.setdefault("requestMappings", mappings.get("request"))
        data.setdefault("responseMappings", mappings.get("response"))
    elif isinstance(mappings, list):
        data.setdefault("requestMappings", mappings)

    for key in ("requestMappings", "responseMappings"):
        rules = data.get(key)
        if rules is None:
            data[key] = []
        elif isinstance(rules, list):
            data[key] = [_normalize_rule(r) for r in rules]

    if data.get("name") is None:
        data["name"] = ""
    if data.get("routeId") is None:
        data["routeId"] = ""

    return data


def _format_pydantic_error(e: PydanticValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def load_config(text: str) -> MappingConfigModel:
    """Read a document into its string-level model, without checking paths or transforms."""
    try:
        data = yaml.load(text, Loader=_StringLoader)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        offset = byte_offset(text, mark.index) if mark is not None else 0
        reason = getattr(e, "problem", None) or str(e)
        raise ParseError(f"invalid YAML: {reason}", offset, ParseErrorKind.INVALID_DOCUMENT)

    if data is None:
        raise ParseError("document is empty", 0, ParseErrorKind.INVALID_DOCUMENT)
    if not isinstance(data, dict):
        raise ParseError("document must be a mapping", 0, ParseErrorKind.INVALID_DOCUMENT)

    try:
        return MappingConfigModel.model_validate(_normalize(data))
    except PydanticValidationError as e:
        raise ParseError(
            f"invalid document: {_format_pydantic_error(e)}", 0, ParseErrorKind.INVALID_DOCUMENT
        )


def parse(text: str) -> MappingSet:
    mapping_set = MappingSet.from_model(load_config(text))
    logger.debug("parsed document for route %s (%d rules)", mapping_set.route_id, len(mapping_set))
    return mapping_set


def validate(text: str, known_functions: Collection[str] | None = None) -> ValidationReport:
    """Parse and check a document; failures are reported, never raised."""
    try:
        config = load_config(text)
    except ParseError as e:
        logger.warning("validation failed: %s", e)
        issue = ValidationIssue(
            severity=Severity.ERROR,
            location=e.location or "document",
            message=f"{e.reason} (at offset {e.offset})",
        )
        return build_report([issue])

    report = build_report(check_config(config, known_functions))
    if not report.valid:
        logger.warning("validation of route %s failed: %s", config.route_id, report.message)
    return report
