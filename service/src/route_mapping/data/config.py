import logging
import os
from pathlib import Path

from pydantic import BaseModel, ValidationError

from ..direction import RouteMode
from ..errors import InitializationError

logger = logging.getLogger(__name__)

CONFIG_ENV = "ROUTE_MAPPING_CONFIG"


class ServiceConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    default_input_format: str = "XML"
    default_output_format: str = "ISO_XML"
    default_mode: RouteMode = RouteMode.PASSIVE
    # functions provided by the runtime on top of the built-ins
    extra_functions: list[str] = []
    _file_path: Path | None = None

    @staticmethod
    def from_json(file: str | Path) -> "ServiceConfig":
        file = Path(file)

        try:
            content = file.read_text(encoding="utf-8")
            config = ServiceConfig.model_validate_json(content)

        except (OSError, ValidationError) as e:
            msg = f"failed to load config from {str(file)}"
            logger.error(msg)
            logger.error(e.errors() if isinstance(e, ValidationError) else str(e))
            raise InitializationError(msg)

        else:
            config._file_path = file
            return config

    @staticmethod
    def load() -> "ServiceConfig":
        """Read the file named by ROUTE_MAPPING_CONFIG, or fall back to defaults."""
        path = os.environ.get(CONFIG_ENV)
        if not path:
            return ServiceConfig()
        return ServiceConfig.from_json(path)

