"""
Configuration management for SheetLens.

Handles storage locations, analysis window sizes, web server settings
and export rendering options.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
import os
from pathlib import Path
import yaml


DEFAULT_DATA_DIR = os.path.join(os.getcwd(), "sheetlens_data")


@dataclass
class StorageConfig:
    """Persistence configuration for analyses and uploaded files."""
    database_url: Optional[str] = None
    upload_dir: Optional[str] = None

    def __post_init__(self):
        if not self.database_url:
            self.database_url = os.environ.get(
                "SHEETLENS_DATABASE_URL",
                f"sqlite:///{os.path.join(DEFAULT_DATA_DIR, 'sheetlens.db')}",
            )
        if not self.upload_dir:
            self.upload_dir = os.environ.get(
                "SHEETLENS_UPLOAD_DIR", os.path.join(DEFAULT_DATA_DIR, "uploads")
            )


@dataclass
class AnalysisConfig:
    """Bucket and ranking sizes used by the view builders."""
    window_months: int = 12  # Trailing months in the overview chart
    weekly_buckets: int = 12  # Trailing weeks in the overview chart
    top_products: int = 10
    recent_sales: int = 10


@dataclass
class ServerConfig:
    """Web server configuration."""
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    max_upload_bytes: int = 10 * 1024 * 1024  # 10MB
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    secret_key: Optional[str] = None

    def __post_init__(self):
        if not self.secret_key:
            self.secret_key = os.environ.get("SHEETLENS_SECRET_KEY", "sheetlens-dev-key")


@dataclass
class ExportConfig:
    """Chart image rendering for PNG exports."""
    chart_width: float = 10.0  # inches
    chart_height: float = 6.0
    chart_dpi: int = 120


@dataclass
class SheetLensConfig:
    """Main configuration container."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    verbose: bool = False

    @classmethod
    def from_yaml(cls, path: str) -> "SheetLensConfig":
        """Load configuration from YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "SheetLensConfig":
        """Create config from dictionary."""
        storage_data = data.get("storage", {}) or {}
        analysis_data = data.get("analysis", {}) or {}
        server_data = data.get("server", {}) or {}
        export_data = data.get("export", {}) or {}

        return cls(
            storage=StorageConfig(
                database_url=storage_data.get("database_url"),
                upload_dir=storage_data.get("upload_dir"),
            ),
            analysis=AnalysisConfig(
                window_months=analysis_data.get("window_months", 12),
                weekly_buckets=analysis_data.get("weekly_buckets", 12),
                top_products=analysis_data.get("top_products", 10),
                recent_sales=analysis_data.get("recent_sales", 10),
            ),
            server=ServerConfig(
                host=server_data.get("host", "127.0.0.1"),
                port=server_data.get("port", 8000),
                debug=server_data.get("debug", False),
                max_upload_bytes=server_data.get("max_upload_bytes", 10 * 1024 * 1024),
                cors_origins=server_data.get("cors_origins", ["*"]),
                secret_key=server_data.get("secret_key"),
            ),
            export=ExportConfig(
                chart_width=export_data.get("chart_width", 10.0),
                chart_height=export_data.get("chart_height", 6.0),
                chart_dpi=export_data.get("chart_dpi", 120),
            ),
            verbose=data.get("verbose", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (secrets omitted)."""
        return {
            "storage": {
                "database_url": self.storage.database_url,
                "upload_dir": self.storage.upload_dir,
            },
            "analysis": {
                "window_months": self.analysis.window_months,
                "weekly_buckets": self.analysis.weekly_buckets,
                "top_products": self.analysis.top_products,
                "recent_sales": self.analysis.recent_sales,
            },
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "max_upload_bytes": self.server.max_upload_bytes,
            },
        }


def create_default_config(
    data_dir: Optional[str] = None,
    database_url: Optional[str] = None,
    host: str = "127.0.0.1",
    port: int = 8000,
) -> SheetLensConfig:
    """Factory function to create a default configuration rooted at data_dir."""
    upload_dir = None
    if data_dir:
        base = Path(data_dir)
        upload_dir = str(base / "uploads")
        if not database_url:
            database_url = f"sqlite:///{base / 'sheetlens.db'}"

    return SheetLensConfig(
        storage=StorageConfig(database_url=database_url, upload_dir=upload_dir),
        analysis=AnalysisConfig(),
        server=ServerConfig(host=host, port=port),
        export=ExportConfig(),
    )
