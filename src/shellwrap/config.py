"""YAML configuration for shellwrap.

A config file declares the tools to expose and, optionally, the security
policy to run them under:

    security:
      level: moderate
      allowedCommands: [ls, grep]
    tools:
      list_files:
        description: List files in a directory
        input:
          type: object
          properties:
            path: {type: string}
        cmd: ls -la {{ path }}

Loading is two-pass: structural validation through pydantic models, then
semantic checks (template syntax, reserved names, unsafe usage). Problems
from both passes are reported together in one ConfigError.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Literal, NoReturn, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    PositiveInt,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from shellwrap.errors import ConfigError, ConfigProblem
from shellwrap.logging import Loggers
from shellwrap.security.models import SecurityLevel, SecurityType
from shellwrap.security.policy import SECURITY_POLICIES, PolicyManager
from shellwrap.security.validator import Validator
from shellwrap.templating import RAW_NAMESPACE, get_engine

logger = Loggers.config()

PLATFORM_KEYS = ("win", "macos", "unix", "default")


class _CamelModel(BaseModel):
    """Base for config sections written with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class SecurityConfig(_CamelModel):
    """The ``security`` block. Absent fields keep the level's baseline."""

    level: SecurityLevel | None = None
    default_security_type: SecurityType | None = None
    allow_unsafe: bool | None = None
    allowed_commands: list[str] | None = None
    blocked_patterns: list[str] | None = None
    allowed_paths: list[str] | None = None
    max_execution_timeout: PositiveFloat | None = None
    max_input_length: PositiveInt | None = None
    audit_logging: bool | None = None
    fail_on_warnings: bool | None = None


class _PropertyBase(BaseModel):
    # Other JSON-schema keywords pass through to clients untouched
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    description: str | None = None
    default: Any = None
    enum: list[Any] | None = None
    # Checked against the policy in the semantic pass
    security: str | None = None


class StringProperty(_PropertyBase):
    type: Literal["string"]
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None


class NumberProperty(_PropertyBase):
    type: Literal["number"]
    minimum: float | None = None
    maximum: float | None = None


class IntegerProperty(_PropertyBase):
    type: Literal["integer"]
    minimum: int | None = None
    maximum: int | None = None


class BooleanProperty(_PropertyBase):
    type: Literal["boolean"]


class ArrayProperty(_PropertyBase):
    type: Literal["array"]
    items: dict[str, Any] | None = None


class ObjectProperty(_PropertyBase):
    type: Literal["object"]
    properties: dict[str, Any] | None = None


PropertySchema = Annotated[
    Union[
        StringProperty,
        NumberProperty,
        IntegerProperty,
        BooleanProperty,
        ArrayProperty,
        ObjectProperty,
    ],
    Field(discriminator="type"),
]


class InputSchema(BaseModel):
    """JSON schema of a tool's arguments. Always an object."""

    model_config = ConfigDict(extra="allow")

    type: Literal["object"]
    properties: dict[str, PropertySchema] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    description: str | None = None

    @model_validator(mode="after")
    def required_are_declared(self) -> "InputSchema":
        missing = [name for name in self.required if name not in self.properties]
        if missing:
            raise ValueError(f"Required properties are not declared: {', '.join(missing)}")
        return self

    def to_json_schema(self) -> dict[str, Any]:
        """Dump as the JSON schema advertised to clients."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class PlatformCommands(BaseModel):
    """Command templates per platform; ``default`` applies when none match."""

    model_config = ConfigDict(extra="forbid")

    win: str | None = None
    macos: str | None = None
    unix: str | None = None
    default: str | None = None

    @model_validator(mode="before")
    @classmethod
    def normalize_string(cls, data: Any) -> Any:
        """A bare string is the default command."""
        if isinstance(data, str):
            return {"default": data}
        return data

    @field_validator("win", "macos", "unix", "default")
    @classmethod
    def not_empty(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("Platform command cannot be empty")
        return v

    @model_validator(mode="after")
    def at_least_one(self) -> "PlatformCommands":
        if not self.templates():
            raise ValueError(
                "At least one platform command must be defined (win, macos, unix, or default)"
            )
        return self

    def templates(self) -> dict[str, str]:
        """Defined templates keyed by platform."""
        return {key: getattr(self, key) for key in PLATFORM_KEYS if getattr(self, key) is not None}


class ToolDefinition(BaseModel):
    """One tool exposed over MCP.

    Attributes:
        name: Display name; defaults to the config key.
        description: Shown to clients.
        input: Argument schema.
        cmd: Command template(s).
        timeout: Execution timeout in seconds, overriding the policy.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    description: str = Field(min_length=1)
    input: InputSchema
    cmd: PlatformCommands
    timeout: PositiveFloat | None = None

    def display_name(self, key: str) -> str:
        return self.name or key


class WrapperConfig(BaseModel):
    """A loaded configuration file."""

    model_config = ConfigDict(extra="forbid")

    tools: dict[str, ToolDefinition] = Field(default_factory=dict)
    security: SecurityConfig | None = None

    def policy_manager(self) -> PolicyManager:
        """Build the PolicyManager for this config's security block."""
        return PolicyManager.from_config(self.security)


def load_config(path: str | Path, *, allow_missing_file: bool = False) -> WrapperConfig:
    """Load and validate a YAML configuration file.

    Args:
        path: Path to the YAML file.
        allow_missing_file: Return an empty config instead of failing
            when the file does not exist.

    Returns:
        Validated WrapperConfig.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or fails
            validation. Every problem found is listed.
    """
    path = Path(path)
    if not path.exists():
        if allow_missing_file:
            logger.info("config_missing_allowed", path=str(path))
            return WrapperConfig()
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in config file: {e}") from e

    config = parse_config(raw)
    logger.info("config_loaded", path=str(path), tools=len(config.tools))
    return config


def parse_config(raw: Any) -> WrapperConfig:
    """Validate already-parsed configuration data.

    Raises:
        ConfigError: With every structural and semantic problem found.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigError.from_problems(
            [ConfigProblem("<root>", "Configuration must be a mapping", type(raw).__name__)]
        )

    try:
        config = WrapperConfig.model_validate(raw)
    except ValidationError as e:
        _raise_problems(_problems_from_validation(e) + _semantic_problems(raw))

    problems = _semantic_problems(raw)
    if problems:
        _raise_problems(problems)
    return config


def _raise_problems(problems: list[ConfigProblem]) -> NoReturn:
    for problem in problems:
        logger.debug("config_problem", field=problem.field, message=problem.message)
    raise ConfigError.from_problems(problems)


def _problems_from_validation(error: ValidationError) -> list[ConfigProblem]:
    problems = []
    for err in error.errors():
        field = ".".join(str(part) for part in err["loc"]) or "<root>"
        problems.append(ConfigProblem(field, err["msg"], err.get("input")))
    return problems


def _resolve_allow_unsafe(security: Any) -> bool:
    """Whether unsafe is allowed, from raw (possibly invalid) security data."""
    if not isinstance(security, Mapping):
        security = {}

    level = SecurityLevel.MODERATE
    try:
        level = SecurityLevel(security.get("level", "moderate"))
    except (ValueError, TypeError):
        pass

    allow = security.get("allowUnsafe", security.get("allow_unsafe"))
    if isinstance(allow, bool):
        return allow
    return SECURITY_POLICIES[level].allow_unsafe


def _semantic_problems(raw: Mapping[str, Any]) -> list[ConfigProblem]:
    """Checks that need more than the shape of the data."""
    problems: list[ConfigProblem] = []
    security = raw.get("security")
    allow_unsafe = _resolve_allow_unsafe(security)

    if isinstance(security, Mapping):
        default_type = security.get("defaultSecurityType", security.get("default_security_type"))
        if default_type == SecurityType.UNSAFE.value and not allow_unsafe:
            problems.append(
                ConfigProblem(
                    "security.defaultSecurityType",
                    "Default security type 'unsafe' requires allowUnsafe",
                    default_type,
                )
            )

    tools = raw.get("tools")
    if not isinstance(tools, Mapping) or not tools:
        problems.append(ConfigProblem("tools", "At least one tool must be defined"))
        return problems

    engine = get_engine()
    validator = Validator(PolicyManager.from_level(SecurityLevel.PERMISSIVE, allow_unsafe=allow_unsafe))

    for tool_name, tool in tools.items():
        if not isinstance(tool, Mapping):
            continue
        prefix = f"tools.{tool_name}"

        cmd = tool.get("cmd")
        if isinstance(cmd, str):
            cmd = {"default": cmd}
        if isinstance(cmd, Mapping):
            for platform, template in cmd.items():
                if not isinstance(template, str):
                    continue
                for message in engine.validate(template):
                    problems.append(
                        ConfigProblem(f"{prefix}.cmd.{platform}", f"Template validation failed: {message}", template)
                    )

        schema = tool.get("input")
        properties = schema.get("properties") if isinstance(schema, Mapping) else None
        if not isinstance(properties, Mapping):
            continue

        if RAW_NAMESPACE in properties:
            problems.append(
                ConfigProblem(
                    f"{prefix}.input.properties.{RAW_NAMESPACE}",
                    f"Property name '{RAW_NAMESPACE}' is reserved for unsanitized values",
                )
            )

        annotated = {
            name: prop for name, prop in properties.items() if isinstance(prop, Mapping)
        }
        try:
            validator.extract_validation_rules({"properties": annotated})
        except ConfigError as e:
            problems.extend(
                ConfigProblem(f"{prefix}.input.{p.field}", p.message, p.value) for p in e.problems
            )

    return problems
