"""
Registry of mapping rules, the entry point used by the admin API and the
runtime loader.

Rules live in an arena of per-route entries. Every mutation of a route's
rules holds that route's lock, which keeps the per-direction targetPath
uniqueness intact under concurrent writers without serializing unrelated
routes. The registry-wide lock only guards the arena dict, the id index and
the id counter.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import List

from .. import codec
from ..data.config import ServiceConfig
from ..data.mapping import MappingRule, MappingSet, parse_mode
from ..direction import Direction
from ..errors import ConflictError, NotFoundError, ParseError, ValidationError
from ..model.mapping import MappingConfig as MappingConfigModel
from ..model.mapping import MappingRule as MappingRuleModel
from ..model.mapping import MappingRuleCreate as MappingRuleCreateModel
from ..model.mapping import MappingRuleUpdate as MappingRuleUpdateModel
from ..model.mapping import RouteInfo as RouteInfoModel
from ..model.validation import Severity, ValidationReport
from ..validation import builtin_function_names, check_config, check_rule

logger = logging.getLogger(__name__)


@dataclass
class _RouteEntry:
    route_id: str
    info: RouteInfoModel | None = None
    rules: List[MappingRule] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)


class MappingRegistry:
    def __init__(self, config: ServiceConfig | None = None) -> None:
        self.config = config if config is not None else ServiceConfig()
        self._routes: dict[str, _RouteEntry] = {}
        self._index: dict[int, str] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def known_functions(self) -> list[str]:
        return builtin_function_names() + list(self.config.extra_functions)

    def _entry(self, route_id: str, create: bool = False) -> _RouteEntry | None:
        with self._lock:
            entry = self._routes.get(route_id)
            if entry is None and create:
                entry = _RouteEntry(route_id)
                self._routes[route_id] = entry
            return entry

    def _next_id(self) -> int:
        with self._lock:
            return next(self._ids)

    def _route_of(self, rule_id: int) -> _RouteEntry:
        with self._lock:
            route_id = self._index.get(rule_id)
            entry = self._routes.get(route_id) if route_id is not None else None
        if entry is None:
            raise NotFoundError(f"Mapping rule {rule_id} not found")
        return entry

    @staticmethod
    def _find(entry: _RouteEntry, rule_id: int) -> int:
        i = next((i for i, r in enumerate(entry.rules) if r.id == rule_id), None)
        if i is None:
            raise NotFoundError(f"Mapping rule {rule_id} not found")
        return i

    def _check(self, data) -> None:
        issues = check_rule(data, "rule", self.known_functions)
        errors = [i for i in issues if i.severity == Severity.ERROR]
        for warning in (i for i in issues if i.severity == Severity.WARNING):
            logger.warning("%s", warning)
        if errors:
            raise ValidationError(errors)

    @staticmethod
    def _check_unique(entry: _RouteEntry, rule: MappingRule) -> None:
        for other in entry.rules:
            if other.id == rule.id:
                continue
            if other.direction == rule.direction and other.target_path == rule.target_path:
                raise ConflictError(
                    f"targetPath '{rule.target_path}' is already mapped in the "
                    f"{rule.direction.value.lower()} mappings of route '{entry.route_id}' "
                    f"(rule {other.id})"
                )

    # === RULES ===

    def create(self, data: MappingRuleCreateModel) -> MappingRule:
        """Validate and append a new rule to its route; assigns a new id."""
        if not data.route_id:
            raise ValidationError(message="routeId is required")
        self._check(data)

        rule = MappingRule.from_model(
            MappingRuleModel.model_validate(data.model_dump()),
            data.direction,
            data.route_id,
        )

        entry = self._entry(data.route_id, create=True)
        with entry.lock:
            self._check_unique(entry, rule)
            rule.id = self._next_id()
            entry.rules.append(rule)
            with self._lock:
                self._index[rule.id] = entry.route_id

        logger.debug(
            "created rule %s on route %s (%s -> %s)",
            rule.id, rule.route_id, data.source_path, rule.target_path,
        )
        return replace(rule)

    def update(self, rule_id: int, data: MappingRuleUpdateModel) -> MappingRule:
        """Apply the fields set in `data`; id and routeId never change."""
        entry = self._route_of(rule_id)

        with entry.lock:
            i = self._find(entry, rule_id)
            current = entry.rules[i].to_model()
            changes = data.model_dump(include=data.model_fields_set)
            # required and direction have no "cleared" state
            for key in ("required", "direction"):
                if changes.get(key, "") is None:
                    del changes[key]
            merged = current.model_copy(update=changes)

            self._check(merged)
            rule = MappingRule.from_model(merged, merged.direction, entry.route_id)
            rule.id = rule_id
            self._check_unique(entry, rule)
            entry.rules[i] = rule

        logger.debug("updated rule %s on route %s: %s", rule_id, entry.route_id, sorted(changes))
        return replace(rule)

    def delete(self, rule_id: int) -> None:
        entry = self._route_of(rule_id)

        with entry.lock:
            i = self._find(entry, rule_id)
            del entry.rules[i]
            with self._lock:
                self._index.pop(rule_id, None)

        logger.debug("deleted rule %s from route %s", rule_id, entry.route_id)

    def get(self, rule_id: int) -> MappingRule:
        entry = self._route_of(rule_id)
        with entry.lock:
            return replace(entry.rules[self._find(entry, rule_id)])

    def list(self, route_id: str | None = None) -> List[MappingRule]:
        """Rules of one route, or of all routes, in insertion order."""
        if route_id is not None:
            entries = [e for e in [self._entry(route_id)] if e is not None]
        else:
            with self._lock:
                entries = list(self._routes.values())

        rules = []
        for entry in entries:
            with entry.lock:
                rules.extend(replace(r) for r in entry.rules)
        return rules

    # === ROUTES ===

    def put_route(self, info: RouteInfoModel) -> RouteInfoModel:
        """Store route metadata used when assembling the route's MappingSet."""
        if info.mode is not None:
            try:
                parse_mode(info.mode)
            except ParseError as e:
                raise ValidationError(message=str(e))

        entry = self._entry(info.route_id, create=True)
        with entry.lock:
            entry.info = info
        logger.debug("stored metadata for route %s", info.route_id)
        return info

    def assemble(self, route_id: str) -> MappingSet:
        entry = self._entry(route_id)
        if entry is None:
            raise NotFoundError(f"Route '{route_id}' not found")

        with entry.lock:
            info = entry.info or RouteInfoModel(route_id=route_id)
            rules = [replace(r) for r in entry.rules]

        return MappingSet(
            route_id=route_id,
            name=info.name,
            description=info.description,
            input_format=info.input_format or self.config.default_input_format,
            output_format=info.output_format or self.config.default_output_format,
            mode=parse_mode(info.mode or self.config.default_mode),
            endpoint=info.endpoint,
            namespace=info.namespace,
            request_mappings=[r for r in rules if r.direction == Direction.REQUEST],
            response_mappings=[r for r in rules if r.direction == Direction.RESPONSE],
        )

    # === TEXT ===

    def generate_text(self, target: str | MappingSet | MappingConfigModel) -> str:
        if isinstance(target, str):
            target = self.assemble(target)
        elif isinstance(target, MappingConfigModel):
            target = MappingSet.from_model(target)
        logger.info("Generating YAML for route: %s", target.route_id)
        return codec.generate(target)

    def validate_text(self, text: str) -> ValidationReport:
        return codec.validate(text, self.known_functions)

    def parse_text(self, text: str) -> MappingSet:
        return codec.parse(text)

    def import_text(self, text: str) -> MappingSet:
        """Replace a route's metadata and rules with the content of a document.

        All or nothing: the document must parse and pass every check before
        anything is stored. Rule ids already owned by the route are kept,
        all others are reassigned.
        """
        config = codec.load_config(text)
        issues = check_config(config, self.known_functions)
        errors = [i for i in issues if i.severity == Severity.ERROR]
        if errors:
            raise ValidationError(errors)
        mapping_set = MappingSet.from_model(config)

        entry = self._entry(mapping_set.route_id, create=True)
        with entry.lock:
            owned = {r.id for r in entry.rules}
            rules = []
            for rule in mapping_set:
                rule = replace(rule)
                if rule.id not in owned:
                    rule.id = self._next_id()
                owned.discard(rule.id)
                rules.append(rule)

            with self._lock:
                for old in entry.rules:
                    self._index.pop(old.id, None)
                for rule in rules:
                    self._index[rule.id] = entry.route_id

            entry.rules = rules
            entry.info = RouteInfoModel(
                route_id=mapping_set.route_id,
                name=mapping_set.name,
                description=mapping_set.description,
                input_format=mapping_set.input_format,
                output_format=mapping_set.output_format,
                mode=mapping_set.mode.value,
                endpoint=mapping_set.endpoint,
                namespace=mapping_set.namespace,
            )

        logger.info("Imported %d rules for route: %s", len(rules), mapping_set.route_id)
        return self.assemble(mapping_set.route_id)
