import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from .data.config import ServiceConfig
from .data.mapping import MappingSet
from .errors import (
    ConflictError,
    EvaluationError,
    NotFoundError,
    ParseError,
    ValidationError,
)
from .expression import Evaluator, parse_transform, resolve_value
from .handler.registry import MappingRegistry
from .model.error import Error as ErrorModel
from .model.mapping import MappingConfig as MappingConfigModel
from .model.mapping import MappingRule as MappingRuleModel
from .model.mapping import MappingRuleCreate as MappingRuleCreateModel
from .model.mapping import MappingRuleUpdate as MappingRuleUpdateModel
from .model.mapping import RouteInfo as RouteInfoModel
from .model.mapping import TransformPreviewInput, TransformPreviewOutput, YamlInput, YamlOutput
from .model.validation import ValidationReport

logger = logging.getLogger(__name__)

config: ServiceConfig = ServiceConfig.load()
registry: MappingRegistry = MappingRegistry(config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global registry

    # Set up
    registry = MappingRegistry(config)

    # Let the app do its job
    yield


app = FastAPI(title="Route Mapping", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def ping():
    return "pong"


@app.get("/mappings", tags=["Mappings"])
async def get_mappings(route_id: str | None = None) -> list[MappingRuleModel]:
    """
    Returns all mapping rules, optionally restricted to one route, in
    insertion order.
    """
    return [r.to_model() for r in registry.list(route_id)]


@app.post(
    "/mappings",
    tags=["Mappings"],
    status_code=201,
    responses={400: {}, 409: {}},
)
async def post_mapping(
    data: MappingRuleCreateModel, response: Response
) -> MappingRuleModel | ErrorModel:
    """
    Creates a new mapping rule on the given route and direction.
    Rejected with 409 if the target path is already mapped in that direction.
    """
    try:
        return registry.create(data).to_model()

    except ValidationError as e:
        response.status_code = 400
        return ErrorModel.from_except(e)

    except ConflictError as e:
        response.status_code = 409
        return ErrorModel.from_except(e)


@app.get("/mappings/{rule_id}", tags=["Mappings"], responses={404: {}})
async def get_mapping(rule_id: int, response: Response) -> MappingRuleModel | ErrorModel:
    try:
        return registry.get(rule_id).to_model()

    except NotFoundError as e:
        response.status_code = 404
        return ErrorModel.from_except(e)


@app.put("/mappings/{rule_id}", tags=["Mappings"], responses={400: {}, 404: {}, 409: {}})
async def put_mapping(
    rule_id: int, data: MappingRuleUpdateModel, response: Response
) -> MappingRuleModel | ErrorModel:
    """
    Updates the fields present in the body. `id` and `routeId` cannot change.
    """
    try:
        return registry.update(rule_id, data).to_model()

    except NotFoundError as e:
        response.status_code = 404
        return ErrorModel.from_except(e)

    except ValidationError as e:
        response.status_code = 400
        return ErrorModel.from_except(e)

    except ConflictError as e:
        response.status_code = 409
        return ErrorModel.from_except(e)


@app.delete("/mappings/{rule_id}", tags=["Mappings"], status_code=204, responses={404: {}})
async def delete_mapping(rule_id: int, response: Response):
    try:
        registry.delete(rule_id)

    except NotFoundError as e:
        response.status_code = 404
        return ErrorModel.from_except(e)


@app.post("/mappings/generate-yaml", tags=["YAML"], responses={400: {}})
async def generate_yaml(data: MappingConfigModel, response: Response) -> YamlOutput | ErrorModel:
    logger.info("Generating YAML for route: %s", data.route_id)
    try:
        return YamlOutput(yaml=registry.generate_text(data))

    except ParseError as e:
        response.status_code = 400
        return ErrorModel.from_except(e)


@app.post("/mappings/validate-yaml", tags=["YAML"], responses={400: {}})
async def validate_yaml(data: YamlInput, response: Response) -> ValidationReport:
    """
    Validates a configuration document. Always answers with a report listing
    every problem found; 400 only if no document was sent.
    """
    if not data.yaml:
        response.status_code = 400
        return ValidationReport(valid=False, message="YAML content is required")

    return registry.validate_text(data.yaml)


@app.post("/mappings/parse-yaml", tags=["YAML"], responses={400: {}})
async def parse_yaml(data: YamlInput, response: Response) -> MappingConfigModel | ErrorModel:
    try:
        return registry.parse_text(data.yaml).to_model()

    except ParseError as e:
        logger.error("Failed to parse YAML: %s", e)
        response.status_code = 400
        return ErrorModel.from_except(e)


@app.post("/mappings/download-yaml", tags=["YAML"], responses={400: {}})
async def download_yaml(data: MappingConfigModel):
    logger.info("Generating YAML file for download: %s", data.route_id)
    try:
        content = registry.generate_text(data)

    except ParseError as e:
        return Response(
            content=ErrorModel.from_except(e).model_dump_json(),
            status_code=400,
            media_type="application/json",
        )

    return Response(
        content=content,
        media_type="application/x-yaml",
        headers={"Content-Disposition": f'attachment; filename="{data.route_id or "mapping"}.yaml"'},
    )


@app.post(
    "/mappings/preview-transform",
    tags=["Mappings"],
    responses={400: {}},
)
async def preview_transform(
    data: TransformPreviewInput, response: Response
) -> TransformPreviewOutput | ErrorModel:
    """
    Evaluates a transform expression against a sample record, applying the
    default value the same way the runtime does.
    """
    try:
        node = parse_transform(data.transform)
        value = resolve_value(
            Evaluator(), node, data.record, data.default_value, data.required
        )

    except (ParseError, EvaluationError) as e:
        response.status_code = 400
        return ErrorModel.from_except(e)

    return TransformPreviewOutput(transform=node.render(), value=value)


@app.put("/routes/{route_id}", tags=["Routes"], responses={400: {}})
async def put_route(
    route_id: str, data: RouteInfoModel, response: Response
) -> RouteInfoModel | ErrorModel:
    try:
        return registry.put_route(data.model_copy(update={"route_id": route_id}))

    except ValidationError as e:
        response.status_code = 400
        return ErrorModel.from_except(e)


@app.get("/routes/{route_id}/mapping-set", tags=["Routes"], responses={404: {}})
async def get_mapping_set(route_id: str, response: Response) -> MappingConfigModel | ErrorModel:
    try:
        return registry.assemble(route_id).to_model()

    except NotFoundError as e:
        response.status_code = 404
        return ErrorModel.from_except(e)


@app.get("/routes/{route_id}/yaml", tags=["Routes"], responses={404: {}})
async def get_route_yaml(route_id: str, response: Response) -> YamlOutput | ErrorModel:
    try:
        return YamlOutput(yaml=registry.generate_text(route_id))

    except NotFoundError as e:
        response.status_code = 404
        return ErrorModel.from_except(e)


@app.post("/routes/{route_id}/import", tags=["Routes"], responses={400: {}})
async def import_route(
    route_id: str, data: YamlInput, response: Response
) -> MappingConfigModel | ErrorModel:
    """
    Replaces the route's rules and metadata with the posted document. The
    document's routeId must match the path.
    """
    try:
        parsed = registry.parse_text(data.yaml)
        if parsed.route_id != route_id:
            raise ValidationError(
                message=f"document routeId '{parsed.route_id}' does not match '{route_id}'"
            )
        imported: MappingSet = registry.import_text(data.yaml)

    except (ParseError, ValidationError) as e:
        response.status_code = 400
        return ErrorModel.from_except(e)

    return imported.to_model()


def serve():
    logging.basicConfig(
        level=config.log_level.upper(),
        format='%(levelname)s:%(name)s: %(message)s'
    )
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    serve()
