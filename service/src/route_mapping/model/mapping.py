"""
Pydantic models for the mapping configuration API and document.

Paths and transforms are carried as plain strings here; the parsed forms live
in `data.mapping`. Field names are snake_case in Python and camelCase on the
wire (`sourcePath`, `requestMappings`, ...), both spellings are accepted.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..direction import Direction


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NamespaceConfig(CamelModel):
    """XML namespace applied to the generated output document."""
    uri: str | None = None
    prefix: str | None = None
    root_element_prefix: str | None = None


class MappingRule(CamelModel):
    """A single source -> target field correspondence."""
    id: int | None = None
    route_id: str | None = None
    direction: Direction | None = None
    source_path: str = ""  # "constant:<value>" or dotted path
    target_path: str = ""
    transform: str | None = None
    default_value: str | None = None
    required: bool = False


class MappingRuleCreate(CamelModel):
    """Payload for creating a new rule."""
    route_id: str
    direction: Direction = Direction.REQUEST
    source_path: str
    target_path: str
    transform: str | None = None
    default_value: str | None = None
    required: bool = False


class MappingRuleUpdate(CamelModel):
    """Partial update; only fields that are set are applied, explicit null clears."""
    direction: Direction | None = None
    source_path: str | None = None
    target_path: str | None = None
    transform: str | None = None
    default_value: str | None = None
    required: bool | None = None


class RouteInfo(CamelModel):
    """Route-level metadata of a mapping configuration."""
    route_id: str
    name: str = ""
    description: str | None = None
    input_format: str | None = None
    output_format: str | None = None
    mode: str | None = None
    endpoint: str | None = None
    namespace: NamespaceConfig | None = None


class MappingConfig(CamelModel):
    """Complete mapping configuration of one route (the textual document)."""
    route_id: str = ""
    name: str = ""
    description: str | None = None
    input_format: str | None = None
    output_format: str | None = None
    mode: str | None = None
    endpoint: str | None = None
    namespace: NamespaceConfig | None = None
    request_mappings: list[MappingRule] = []
    response_mappings: list[MappingRule] = []


class YamlInput(BaseModel):
    yaml: str


class YamlOutput(BaseModel):
    yaml: str


class TransformPreviewInput(CamelModel):
    transform: str
    record: dict[str, str] = {}
    default_value: str | None = None
    required: bool = False


class TransformPreviewOutput(BaseModel):
    transform: str
    value: str
