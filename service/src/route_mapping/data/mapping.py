from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from ..direction import MAPPING_KEYS, Direction, RouteMode
from ..errors import ParseError, ParseErrorKind
from ..expression import Node, parse_transform, render
from ..model.mapping import MappingConfig as MappingConfigModel
from ..model.mapping import MappingRule as MappingRuleModel
from ..model.mapping import NamespaceConfig
from ..path_expression import Constant, PathExpression, parse_path, render_path

logger = logging.getLogger(__name__)

DEFAULT_INPUT_FORMAT = "XML"
DEFAULT_OUTPUT_FORMAT = "ISO_XML"


def parse_optional_transform(text: str | None) -> Node | None:
    # blank transforms are treated as absent, like the runtime does
    if text is None or not text.strip():
        return None
    return parse_transform(text)


def parse_mode(value: str | RouteMode | None) -> RouteMode:
    if value is None or value == "":
        return RouteMode.PASSIVE
    try:
        return RouteMode(str(value).upper())
    except ValueError:
        raise ParseError(
            f"mode must be ACTIVE or PASSIVE, got '{value}'",
            kind=ParseErrorKind.INVALID_DOCUMENT,
            location="mode",
        )


@dataclass
class MappingRule:
    source_path: PathExpression
    target_path: str
    transform: Node | None = None
    default_value: str | None = None
    required: bool = False
    direction: Direction = Direction.REQUEST
    id: int | None = None
    route_id: str | None = None

    @property
    def is_constant(self) -> bool:
        return isinstance(self.source_path, Constant)

    @staticmethod
    def from_model(
        model: MappingRuleModel,
        direction: Direction | None = None,
        route_id: str | None = None,
        location: str = "rule",
    ) -> MappingRule:
        try:
            source = parse_path(model.source_path)
        except ParseError as e:
            raise e.at(f"{location}.sourcePath")

        try:
            transform = parse_optional_transform(model.transform)
        except ParseError as e:
            raise e.at(f"{location}.transform")

        return MappingRule(
            source_path=source,
            target_path=model.target_path,
            transform=transform,
            default_value=model.default_value,
            required=model.required,
            direction=direction or model.direction or Direction.REQUEST,
            id=model.id,
            route_id=route_id if route_id is not None else model.route_id,
        )

    def to_model(self) -> MappingRuleModel:
        return MappingRuleModel(
            id=self.id,
            route_id=self.route_id,
            direction=self.direction,
            source_path=render_path(self.source_path),
            target_path=self.target_path,
            transform=render(self.transform) if self.transform is not None else None,
            default_value=self.default_value,
            required=self.required,
        )


@dataclass
class MappingSet:
    """All rules of one route, partitioned by direction, in insertion order.

    Rules are adopted on construction: their `route_id` and `direction` are
    set from the owning set (on copies, the caller's objects are untouched).
    """
    route_id: str
    name: str = ""
    description: str | None = None
    input_format: str = DEFAULT_INPUT_FORMAT
    output_format: str = DEFAULT_OUTPUT_FORMAT
    mode: RouteMode = RouteMode.PASSIVE
    endpoint: str | None = None
    namespace: NamespaceConfig | None = None
    request_mappings: list[MappingRule] = field(default_factory=list)
    response_mappings: list[MappingRule] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.mode = parse_mode(self.mode)
        if isinstance(self.namespace, dict):
            self.namespace = NamespaceConfig.model_validate(self.namespace)
        elif self.namespace is not None:
            # same fields set on both sides of a round trip
            self.namespace = NamespaceConfig(**self.namespace.model_dump())
        self.request_mappings = [self._adopt(r, Direction.REQUEST) for r in self.request_mappings]
        self.response_mappings = [self._adopt(r, Direction.RESPONSE) for r in self.response_mappings]

    def _adopt(self, rule: MappingRule, direction: Direction) -> MappingRule:
        if rule.route_id == self.route_id and rule.direction == direction:
            return rule
        return replace(rule, route_id=self.route_id, direction=direction)

    def rules(self, direction: Direction) -> list[MappingRule]:
        if direction == Direction.REQUEST:
            return self.request_mappings
        return self.response_mappings

    def __iter__(self):
        yield from self.request_mappings
        yield from self.response_mappings

    def __len__(self) -> int:
        return len(self.request_mappings) + len(self.response_mappings)

    @staticmethod
    def from_model(model: MappingConfigModel) -> MappingSet:
        directions = {}
        for direction, key in MAPPING_KEYS.items():
            rules = model.request_mappings if direction == Direction.REQUEST else model.response_mappings
            directions[direction] = [
                MappingRule.from_model(r, direction, model.route_id, f"{key}[{i}]")
                for i, r in enumerate(rules)
            ]

        return MappingSet(
            route_id=model.route_id,
            name=model.name,
            description=model.description,
            input_format=DEFAULT_INPUT_FORMAT if model.input_format is None else model.input_format,
            output_format=DEFAULT_OUTPUT_FORMAT if model.output_format is None else model.output_format,
            mode=parse_mode(model.mode),
            endpoint=model.endpoint,
            namespace=model.namespace,
            request_mappings=directions[Direction.REQUEST],
            response_mappings=directions[Direction.RESPONSE],
        )

    def to_model(self) -> MappingConfigModel:
        return MappingConfigModel(
            route_id=self.route_id,
            name=self.name,
            description=self.description,
            input_format=self.input_format,
            output_format=self.output_format,
            mode=self.mode.value,
            endpoint=self.endpoint,
            namespace=self.namespace,
            request_mappings=[r.to_model() for r in self.request_mappings],
            response_mappings=[r.to_model() for r in self.response_mappings],
        )
