"""Configuration models and loading logic."""

from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, ValidationInfo, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from archbundle.models import DEFAULT_ALLOWED_ARCHITECTURES, BuildTarget, Platform, slice_token_problem

DEFAULT_SETTINGS_FILE = Path("configs/settings.yaml")
SETTINGS_FILE_ENV = "ARCHBUNDLE_SETTINGS_FILE"


class ProjectConfig(BaseModel):
    """Project metadata settings."""

    name: str = "archbundle"
    env: str = "dev"
    log_level: str = "INFO"


class PathsConfig(BaseModel):
    """Filesystem paths used by the build and bundle stages."""

    source_root: Path = Path(".")
    work_root: Path = Path("./build/work")
    output_root: Path = Path("./build")
    artifacts_root: Path = Path("./artifacts")
    logs_root: Path = Path("./logs")

    def resolved(self, project_root: Path) -> "PathsConfig":
        """Return a copy with project-relative paths resolved to absolute paths."""

        updates: dict[str, Path] = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            updates[field_name] = value if value.is_absolute() else (project_root / value).resolve()
        return self.model_copy(update=updates)


class ToolchainConfig(BaseModel):
    """External toolchain invocation settings."""

    command: list[str] = Field(
        default_factory=lambda: [
            "cargo",
            "build",
            "--release",
            "--target",
            "{triple}",
            "-p",
            "{package}",
        ]
    )
    variables: dict[str, str] = Field(
        default_factory=lambda: {"package": "mdns-peer", "library_stem": "mdns_peer"}
    )
    output_path: str = "{source_root}/target/{triple}/release/lib{library_stem}.a"
    triples: dict[str, str] = Field(
        default_factory=lambda: {
            "device-arm64": "aarch64-apple-ios",
            "simulator-arm64": "aarch64-apple-ios-sim",
            "simulator-x86_64": "x86_64-apple-ios",
            "desktop-arm64": "aarch64-apple-darwin",
            "desktop-x86_64": "x86_64-apple-darwin",
        }
    )
    min_os_env: str | None = "IPHONEOS_DEPLOYMENT_TARGET"
    env: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float | None = Field(default=1800.0, gt=0.0)
    max_workers: int | None = Field(default=None, ge=1)


class BundleConfig(BaseModel):
    """Bundle naming and publish settings."""

    name: str = "mdns_peer"
    identifier: str | None = None
    version: str | None = None
    library_name: str | None = None
    emit_xcframework_plist: bool = False
    apple_platform: Literal["ios", "macos", "tvos", "watchos", "xros"] = "ios"
    lock_timeout_seconds: float = Field(default=60.0, gt=0.0)

    @property
    def directory_name(self) -> str:
        """Directory name of the published bundle."""

        return self.name if self.name.endswith(".bundle") else f"{self.name}.bundle"


class ValidationConfig(BaseModel):
    """Bundle validation policy."""

    allowed_architectures: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ARCHITECTURES),
        min_length=1,
    )


class TargetConfig(BaseModel):
    """One declared build target."""

    architecture: str
    platform: Platform
    variant: str | None = None
    min_os_version: str | None = None

    @field_validator("architecture", "variant")
    @classmethod
    def _safe_path_token(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        problem = slice_token_problem(info.field_name, stripped)
        if problem is not None:
            raise ValueError(problem)
        return stripped

    def to_build_target(self) -> BuildTarget:
        return BuildTarget(
            architecture=self.architecture,
            platform=self.platform,
            variant=self.variant,
            min_os_version=self.min_os_version,
        )


class AppSettings(BaseSettings):
    """Top-level application settings."""

    _yaml_file_override: ClassVar[Path | None] = None

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    toolchain: ToolchainConfig = Field(default_factory=ToolchainConfig)
    bundle: BundleConfig = Field(default_factory=BundleConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    targets: list[TargetConfig] = Field(default_factory=list)

    model_config = SettingsConfigDict(
        env_prefix="ARCHBUNDLE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Use YAML defaults while allowing env vars to override values."""

        yaml_file = resolve_settings_file(cls._yaml_file_override)
        yaml_settings = YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    def as_dict(self) -> dict[str, object]:
        """Return settings as a standard nested dictionary."""

        return self.model_dump(mode="json")

    def build_targets(self) -> list[BuildTarget]:
        """Return declared targets as immutable build targets."""

        return [target.to_build_target() for target in self.targets]

    def default_destination(self) -> Path:
        """Published bundle path under the output root."""

        return self.paths.output_root / self.bundle.directory_name


def find_project_root(start: Path | None = None) -> Path:
    """Locate the project root by traversing upward for config markers."""

    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / "configs/settings.yaml").exists():
            return candidate
    return current


def resolve_settings_file(override: Path | None = None) -> Path:
    """Resolve settings file from explicit override, env var, or default."""

    chosen = override
    if chosen is None:
        env_value = os.getenv(SETTINGS_FILE_ENV)
        if env_value:
            chosen = Path(env_value)
    if chosen is None:
        chosen = DEFAULT_SETTINGS_FILE

    if not chosen.is_absolute():
        chosen = (find_project_root() / chosen).resolve()
    return chosen


def load_settings(config_file: Path | None = None) -> AppSettings:
    """Load settings with YAML defaults and environment variable overrides."""

    settings_file = resolve_settings_file(config_file)
    project_root = settings_file.parent.parent.resolve()
    AppSettings._yaml_file_override = settings_file
    try:
        settings = AppSettings()
    finally:
        AppSettings._yaml_file_override = None
    resolved_paths = settings.paths.resolved(project_root=project_root)
    return settings.model_copy(update={"paths": resolved_paths})
