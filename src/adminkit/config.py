"""
Server configuration.

Loaded from a JSON file and validated with pydantic.
"""

from pathlib import Path
from typing import Union

from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import MAX_PASSWORD_BYTES
from .errors import ConfigError


class Config(BaseModel):
    """
    Server configuration file.

    Attributes:
        host: Interface to listen on
        port: Port to listen on
        debug: Verbose logging
        server: Server name, also the admin's first name
        storage: Path to the store's database file
        admin_email: Email of the bootstrap admin account
        admin_pass: Password of the bootstrap admin account
        page_limit: Records per page in listings
        log_file: Rotating log file path
    """
    host: str = "0.0.0.0"
    port: int = Field(default=8080, gt=0, lt=65536)
    debug: bool = False
    server: str = "adminkit"
    storage: str = "adminkit.db"
    admin_email: str
    admin_pass: str = Field(min_length=1)
    page_limit: int = Field(default=20, gt=0)
    log_file: str = "log/server.log"

    @field_validator("admin_pass")
    @classmethod
    def check_admin_pass(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


def load_config(path: Union[str, Path]) -> Config:
    """
    Load the server configuration file.

    Raises:
        ConfigError: If the file cannot be read or fails validation
    """
    path = Path(path)
    try:
        data = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e

    try:
        config = Config.model_validate_json(data)
    except ValidationError as e:
        logger.error(f"Failed to load server config: {e}")
        raise ConfigError(str(e)) from e

    logger.debug(f"Config loaded from {path}")
    return config
