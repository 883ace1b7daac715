"""Configuration management for RNA-seq exploratory analysis."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml


class AnalysisDefaults(BaseModel):
    """Default analysis parameters."""

    sample_key: str = "sample"
    min_count: int = Field(default=10, ge=0)
    min_samples: int = Field(default=1, ge=1)
    pseudocount: float = Field(default=1.0, ge=0.0)
    log_base: float = Field(default=2.0, gt=1.0)
    correlation_method: str = Field(default="spearman", pattern="^(pearson|spearman|kendall)$")
    pca_top_genes: Optional[int] = Field(default=500, ge=2)
    pca_scale: bool = False
    join_how: str = Field(default="outer", pattern="^(outer|left|inner)$")


class PathConfig(BaseModel):
    """Path configurations."""

    user_home: Path = Field(default_factory=lambda: Path.home() / ".rnaseq_eda")
    data_dir: Optional[Path] = None

    @field_validator("user_home", "data_dir")
    @classmethod
    def _expand_user(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None

    @model_validator(mode="after")
    def _derive_paths(self) -> "PathConfig":
        # Set derived paths if not provided
        if self.data_dir is None:
            self.data_dir = self.user_home / "data"
        return self

    def create_directories(self):
        """Create all necessary directories."""
        for path in [self.user_home, self.data_dir]:
            path.mkdir(parents=True, exist_ok=True)


class PlotConfig(BaseModel):
    """Figure defaults."""

    template: str = "plotly_white"
    width: int = Field(default=900, ge=200)
    height: int = Field(default=600, ge=200)
    heatmap_colorscale: str = "RdBu_r"


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(env_prefix="RNASEQ_EDA_", env_nested_delimiter="__")

    defaults: AnalysisDefaults = Field(default_factory=AnalysisDefaults)
    paths: PathConfig = Field(default_factory=PathConfig)
    plots: PlotConfig = Field(default_factory=PlotConfig)

    # App settings
    app_title: str = "RNA-seq Explorer"
    app_version: str = "0.1.0"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8050

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path):
        """Save configuration to YAML file."""
        data = self.model_dump(mode="json")

        with open(path, 'w') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def initialize(self):
        """Initialize the configuration (create directories, etc.)."""
        self.paths.create_directories()

        # Create default config file if it doesn't exist
        config_file = self.paths.user_home / "config.yaml"
        if not config_file.exists():
            self.to_yaml(config_file)


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        default_config_path = Path.home() / ".rnaseq_eda" / "config.yaml"
        if default_config_path.exists():
            _config = Config.from_yaml(default_config_path)
        else:
            _config = Config()
            _config.initialize()
    return _config


def set_config(config: Config):
    """Set the global configuration instance."""
    global _config
    _config = config


# Example config.yaml template
CONFIG_TEMPLATE = """
# RNA-seq Explorer Configuration

defaults:
  sample_key: sample            # Sample identifier column in the sample table
  min_count: 10                 # Minimum read count for a gene to count as detected
  min_samples: 1                # Samples in which a gene must be detected
  pseudocount: 1.0              # Added before log transform
  log_base: 2.0
  correlation_method: spearman  # pearson, spearman or kendall
  pca_top_genes: 500            # Most variable genes used for PCA (null = all)
  pca_scale: false              # Scale genes to unit variance before PCA
  join_how: outer               # outer keeps samples missing from either table

paths:
  user_home: ~/.rnaseq_eda
  # data_dir: ~/.rnaseq_eda/data

plots:
  template: plotly_white
  width: 900
  height: 600
  heatmap_colorscale: RdBu_r

# Application settings
app_title: RNA-seq Explorer
app_version: 0.1.0
debug: false
host: 127.0.0.1
port: 8050
"""
