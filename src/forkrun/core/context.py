from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
from forkrun.cli.formatter import OutputFormatter
from forkrun.core.models import ArtifactManifest, ForkSettings, FrameworkSettings, WebAppConfig


class ForkrunContext(BaseModel):
    """
    The launcher-side handle passed explicitly to every component.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Project root: working directory of the child and base for relative paths
    root_dir: Path = Field(default_factory=Path.cwd)

    # Framework Settings (Maps to 'forkrun' section)
    settings: FrameworkSettings = Field(default_factory=FrameworkSettings)

    # Web application layout (Maps to 'webapp' section)
    webapp: WebAppConfig = Field(default_factory=WebAppConfig)

    # Child process settings (Maps to 'fork' section)
    fork: ForkSettings = Field(default_factory=ForkSettings)

    # Declared artifacts (Maps to 'artifacts' section)
    artifacts: ArtifactManifest = Field(default_factory=ArtifactManifest)

    # Logging handle
    formatter: OutputFormatter = Field(default_factory=OutputFormatter, exclude=True)

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None, **data: Any):
        """
        Initialize the context, optionally with a configuration dictionary.
        """
        if config_dict:
            # Seed fields from config_dict if not explicitly provided in data
            if 'settings' not in data:
                data['settings'] = FrameworkSettings(**(config_dict.get('forkrun') or {}))
            if 'webapp' not in data:
                data['webapp'] = WebAppConfig(**(config_dict.get('webapp') or {}))
            if 'fork' not in data:
                data['fork'] = ForkSettings(**(config_dict.get('fork') or {}))
            if 'artifacts' not in data:
                data['artifacts'] = ArtifactManifest(**(config_dict.get('artifacts') or {}))

        super().__init__(**data)

    def model_post_init(self, __context: Any) -> None:
        self.root_dir = self.root_dir.expanduser().resolve()
        self.formatter.log_level = self.settings.log_level

    @property
    def project_name(self) -> str:
        return self.settings.project_name or self.root_dir.name

    @property
    def target_dir(self) -> Path:
        return self.resolve_path(self.fork.target_dir)

    def resolve_path(self, value: Path | str) -> Path:
        """Resolve a configured path against the project root."""
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = self.root_dir / path
        return path
