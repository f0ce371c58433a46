"""
Run configuration for the GA4 -> BigQuery loader.

Values come from keyword arguments or from GA4_BQ_* environment variables,
e.g. GA4_BQ_PROPERTY_ID, GA4_BQ_START_DATE. Nothing here is global: build a
PipelineConfig and pass it to ga.run().
"""
import sys
from datetime import date
from typing import Literal, Optional

from loguru import logger
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bq_tables import full_table_id
from ga4_dates import DateSpan
from ga4_fetch import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from pipeline_errors import ConfigurationError

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}"


class PipelineConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GA4_BQ_", frozen=True)

    # GA4
    property_id: str
    credentials_path: Optional[str] = None
    page_size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    # BigQuery
    project_id: str
    dataset_id: str
    table_id: str
    temp_table_id: Optional[str] = None

    # Date range, both inclusive
    start_date: date
    end_date: date

    # Run behaviour
    fetch_mode: Literal["range", "daily"] = "range"
    dedup_strategy: Literal["delete", "merge"] = "delete"
    insert_method: Literal["stream", "load"] = "load"
    log_level: str = "INFO"

    @field_validator("property_id")
    @classmethod
    def property_id_is_numeric(cls, value):
        value = value.strip()
        if not value.isdigit():
            raise ValueError("GA4 property id must be numeric")
        return value

    @field_validator("project_id", "dataset_id", "table_id")
    @classmethod
    def not_blank(cls, value):
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @property
    def destination(self):
        return full_table_id(self.project_id, self.dataset_id, self.table_id)

    @property
    def staging_destination(self):
        return full_table_id(
            self.project_id,
            self.dataset_id,
            self.temp_table_id or f"{self.table_id}_staging",
        )

    @property
    def span(self):
        return DateSpan(self.start_date, self.end_date)


def load_config(**overrides) -> PipelineConfig:
    """Builds and validates a PipelineConfig, raising ConfigurationError on any problem."""
    try:
        config = PipelineConfig(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e
    # InvalidRangeError when end_date < start_date
    DateSpan(config.start_date, config.end_date)
    return config


def configure_logging(level="INFO"):
    logger.remove()  # Remove default handler
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
    return logger
