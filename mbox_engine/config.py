"""Engine configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars,
e.g. ``MBOX_PARSER_PROGRESS_INTERVAL=50`` or ``MBOX_EXPORT_LINE_ENDING=crlf``.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class ParserConfig(BaseSettings):
    """Settings for framing and parsing a container."""

    model_config = {"env_prefix": "MBOX_PARSER_"}

    progress_interval: int = Field(
        default=10,
        gt=0,
        description="Emit a progress notification every N records",
    )
    subject_placeholder: str = Field(
        default="(No Subject)",
        description="Subject used when a message has no (or a blank) Subject header",
    )
    uid_prefix: str = Field(default="mbox", description="Prefix for generated message uids")
    generated_id_domain: str = Field(
        default="mbox-engine",
        description="Domain part of synthesized Message-IDs",
    )
    encoding: str = Field(default="utf-8", description="Encoding used to decode byte containers")
    fallback_encoding: str = Field(
        default="utf-8",
        description="Encoding used (with replacement) for records that fail to decode",
    )
    max_error_context: int = Field(
        default=200,
        gt=0,
        description="Maximum characters of source text kept on a ParseError",
    )


class ExportConfig(BaseSettings):
    """Settings for re-serializing messages into a container."""

    model_config = {"env_prefix": "MBOX_EXPORT_"}

    default_sender: str = Field(
        default="MAILER-DAEMON",
        description="Envelope sender used when a delimiter line must be synthesized",
    )
    line_ending: Literal["lf", "crlf", "preserve"] = Field(
        default="lf",
        description="Line ending of exported containers; 'preserve' reuses the parsed convention",
    )


class EngineConfig(BaseSettings):
    """Root configuration for the command-line entry point.

    Nested configs are populated from their own env-var prefixes.
    """

    model_config = {"env_prefix": "MBOX_"}

    log_level: str = Field(default="INFO", description="Root log level name")
    log_json: bool = Field(default=False, description="Emit JSON log lines instead of console output")

    parser: ParserConfig = Field(default_factory=ParserConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
