"""Configuration: frozen dataclass loaded from YAML, env vars and CLI args."""

import argparse
import dataclasses
import logging
import os
import re
from dataclasses import dataclass

import yaml

logger = logging.getLogger(__name__)

EPHEMERAL_SUFFIX = "ephemeral"

_ENDPOINT_RE = re.compile(r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}:\d{1,5}", re.ASCII)

USAGE = """
Usage:
    stdin-nsq-shipper --help     obtain help
    stdin-nsq-shipper --endpoint NSQ endpoint
    stdin-nsq-shipper --app      name of the application
    stdin-nsq-shipper --svc      name of the service
    stdin-nsq-shipper --topic    topic for logging (defaults to 'log.raw#ephemeral')

    stdin-nsq-shipper --app <your_app_name> --svc <your_service_name> --endpoint 127.0.0.1:4150
"""


class ConfigError(ValueError):
    """Raised when startup configuration fails validation."""


@dataclass(frozen=True)
class Config:
    topic: str = "log.raw#ephemeral"
    endpoint: str = ""
    app: str = ""
    svc: str = ""
    max_retries: int = 0
    timeout: float = 5.0
    log_level: str = "INFO"


_ENV_VARS = {
    "topic": "NSQ_TOPIC",
    "endpoint": "NSQ_ENDPOINT",
    "app": "APP_NAME",
    "svc": "SERVICE_NAME",
    "max_retries": "MAX_RETRIES",
    "timeout": "NSQ_TIMEOUT",
    "log_level": "LOG_LEVEL",
}

_CASTS = {
    "max_retries": int,
    "timeout": float,
}


def _coerce(key: str, value):
    cast = _CASTS.get(key, str)
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key}: '{value}' is not a valid {cast.__name__}") from None


def load_yaml(path: str) -> dict:
    """Load a YAML config file and return only the keys Config knows about."""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"config file {path}: {e.strerror}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"config file {path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    known = {f.name for f in dataclasses.fields(Config)}
    return {k: _coerce(k, v) for k, v in data.items() if k in known and v is not None}


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="stdin-nsq-shipper",
        description="Publish stdin log lines to an NSQ topic as JSON envelopes.",
        epilog=USAGE,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--topic", type=str, default=None,
                        help="NSQ topic (default: log.raw#ephemeral)")
    parser.add_argument("--endpoint", type=str, default=None,
                        help="NSQ endpoint 'host:port'")
    parser.add_argument("--app", type=str, default=None, help="Application name")
    parser.add_argument("--svc", type=str, default=None, help="Service name")
    parser.add_argument("--max-retries", type=int, default=None,
                        help="Publish retries per line (default: 0, fire-and-forget)")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Socket timeout in seconds for the NSQ connection")
    parser.add_argument("--log-level", type=str, default=None,
                        help="Logging level (default: INFO)")
    parser.add_argument("--config", type=str, default=None,
                        help="Path to a YAML config file")
    return parser


def load_config(argv: list[str] | None = None) -> Config:
    """Build Config from defaults <- YAML file <- env vars <- CLI args.

    Pass argv for testability; when None, argparse reads sys.argv.
    """
    args = build_parser().parse_args(argv)

    kwargs: dict = {}

    config_path = args.config or os.environ.get("CONFIG_PATH")
    if config_path:
        kwargs.update(load_yaml(config_path))

    for key, env_name in _ENV_VARS.items():
        value = os.environ.get(env_name)
        if value is not None:
            kwargs[key] = _coerce(key, value)

    for key in _ENV_VARS:
        value = getattr(args, key)
        if value is not None:
            kwargs[key] = value

    return Config(**kwargs)


def normalize_topic(topic: str) -> str:
    """Force the topic to carry the '#ephemeral' suffix.

    A different '#' suffix is replaced; a missing one is appended.
    """
    name, sep, suffix = topic.partition("#")
    if sep and suffix != EPHEMERAL_SUFFIX:
        renamed = f"{name}#{EPHEMERAL_SUFFIX}"
        logger.warning("%s has been renamed to %s", topic, renamed)
        topic = renamed

    if not topic.endswith(f"#{EPHEMERAL_SUFFIX}"):
        renamed = f"{topic}#{EPHEMERAL_SUFFIX}"
        logger.warning("%s has been renamed to %s", topic, renamed)
        topic = renamed

    return topic


def is_valid_endpoint(endpoint: str) -> bool:
    return _ENDPOINT_RE.fullmatch(endpoint) is not None


def parse_endpoint(endpoint: str) -> tuple[str, int]:
    """Split a validated 'host:port' endpoint."""
    host, _, port = endpoint.rpartition(":")
    return host, int(port)


def validate_config(config: Config) -> Config:
    """Check the endpoint and return a copy with the topic normalized.

    Raises ConfigError if the endpoint is not 'd.d.d.d:port'.
    """
    if not is_valid_endpoint(config.endpoint):
        raise ConfigError(f"endpoint: '{config.endpoint}' is invalid")
    if config.max_retries < 0:
        raise ConfigError(f"max_retries: {config.max_retries} must not be negative")
    if config.timeout <= 0:
        raise ConfigError(f"timeout: {config.timeout} must be positive")
    return dataclasses.replace(config, topic=normalize_topic(config.topic))
