"""Runtime settings of the extraction pipeline."""

import logging

import dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

dotenv.load_dotenv()


class ExtractionSettings(BaseSettings):
    """Settings of the extraction pipeline.

    Every field can be overridden by an environment variable with the `STRATA_` prefix, e.g.
    `STRATA_MIN_CONFIDENCE_THRESHOLD=0.6`.
    """

    model_config = SettingsConfigDict(env_prefix="STRATA_", frozen=True)

    ###########################################################
    # Logging
    ###########################################################
    logging_level: int = logging.INFO

    ###########################################################
    # Confidence
    ###########################################################
    min_confidence_threshold: float = 0.5
    high_confidence_threshold: float = 0.8

    ###########################################################
    # Validation
    ###########################################################
    auto_validate: bool = True

    ###########################################################
    # Fallback
    ###########################################################
    enable_guided_correction: bool = True
    enable_template_matching: bool = True
    fallback_min_confidence: float = 0.3
    partial_extraction_threshold: float = 0.5
