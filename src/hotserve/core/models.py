from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from hotserve.config.loader import load_yaml_document
from hotserve.utils.diagnostics import ConfigurationError


PlatformFamily = Literal["windows", "linux"]


class SessionSettings(BaseSettings):
    """
    Development session tunables, read from HOTSERVE_* environment variables.
    """
    model_config = SettingsConfigDict(env_prefix='HOTSERVE_', extra='ignore')

    debounce_ms: int = Field(default=1000, ge=0)
    poll_interval_ms: int = Field(default=200, ge=10)
    stop_timeout_seconds: float = Field(default=30.0, gt=0)
    queue_size: int = Field(default=32, ge=1)
    output_dir: str = "server"


class AddonSpec(BaseModel):
    """
    A plugin or mod requested by server.yaml, resolved from a local file.
    """
    model_config = ConfigDict(extra='forbid', frozen=True)

    path: str
    filename: Optional[str] = None

    def target_filename(self) -> str:
        return self.filename or PurePosixPath(self.path).name


class LauncherSettings(BaseModel):
    """
    How the server jar is launched (the 'launcher' section in server.yaml).
    """
    model_config = ConfigDict(extra='forbid')

    executable: str = "java"
    memory: Optional[str] = None
    jvm_args: List[str] = Field(default_factory=list)
    game_args: List[str] = Field(default_factory=list)
    nogui: bool = True

    def get_arguments(self, jar_path: str, platform: PlatformFamily) -> List[str]:
        """Build launcher arguments for a jar; the platform only changes path formatting."""
        if platform == "windows":
            jar = str(PureWindowsPath(jar_path))
        else:
            jar = str(PurePosixPath(jar_path))

        arguments = list(self.jvm_args)
        if self.memory:
            arguments.extend([f"-Xms{self.memory}", f"-Xmx{self.memory}"])
        arguments.extend(["-jar", jar])
        if self.nogui:
            arguments.append("nogui")
        arguments.extend(self.game_args)
        return arguments

    def get_command(self, artifact_name: str, platform: PlatformFamily) -> List[str]:
        """Full argv (executable included) for launching `artifact_name`."""
        return [self.executable, *self.get_arguments(artifact_name, platform)]


class ServerConfig(BaseModel):
    """
    Main server configuration (server.yaml).
    """
    model_config = ConfigDict(extra='forbid')

    name: str = "server"
    jar: str
    launcher: LauncherSettings = Field(default_factory=LauncherSettings)
    variables: Dict[str, str] = Field(default_factory=dict)
    plugins: List[AddonSpec] = Field(default_factory=list)
    mods: List[AddonSpec] = Field(default_factory=list)

    @classmethod
    def load_from(cls, path: Path) -> "ServerConfig":
        if not path.exists():
            raise ConfigurationError("Server configuration not found.", path=str(path))

        document = load_yaml_document(path)
        try:
            return cls.model_validate(document)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid server configuration: {exc}", path=str(path)) from exc


class ServerPaths(BaseModel):
    """
    Well-known locations inside a server project root.
    """
    model_config = ConfigDict(frozen=True)

    root_dir: Path
    output_dir: Path

    @classmethod
    def from_root(cls, root_dir: Path, output_dir: str = "server") -> "ServerPaths":
        root = root_dir.expanduser().resolve()
        return cls(root_dir=root, output_dir=root / output_dir)

    @property
    def config_dir(self) -> Path:
        return self.root_dir / "config"

    @property
    def server_config(self) -> Path:
        return self.root_dir / "server.yaml"

    @property
    def hot_reload_config(self) -> Path:
        return self.root_dir / "hotreload.yaml"

    @property
    def lockfile(self) -> Path:
        return self.output_dir / ".hotserve-lock.json"
