"""Configuration management."""

import os
from pathlib import Path
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _workspace() -> Path:
    return Path(os.getenv("SCENELINE_WORKSPACE", "."))


class Config(BaseModel):
    """Application configuration."""

    # Render service
    render_endpoint: str = Field(
        default_factory=lambda: os.getenv("SCENELINE_RENDER_ENDPOINT", ""),
        description="Base URL of the external render service"
    )
    render_api_key: str = Field(
        default_factory=lambda: os.getenv("SCENELINE_RENDER_API_KEY", ""),
        description="API key sent to the render service"
    )

    # Assets
    asset_base_url: str = Field(
        default_factory=lambda: os.getenv("SCENELINE_ASSET_BASE_URL", ""),
        description="Base URL used to absolutize relative storage locators"
    )

    # Paths
    workspace: Path = Field(
        default_factory=_workspace,
        description="Workspace directory"
    )
    job_store_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("SCENELINE_JOB_STORE", str(_workspace() / "render_jobs.json"))
        ),
        description="JSON file holding render job records"
    )

    # Render job lifecycle
    max_render_retries: int = Field(
        default_factory=lambda: int(os.getenv("SCENELINE_MAX_RENDER_RETRIES", "3")),
        description="Automatic retries after a renderer failure",
        ge=0
    )
    retry_base_delay_sec: float = Field(
        default_factory=lambda: float(os.getenv("SCENELINE_RETRY_BASE_DELAY", "30")),
        description="Base delay before an automatic retry (exponential backoff)"
    )
    retry_max_delay_sec: float = Field(
        default_factory=lambda: float(os.getenv("SCENELINE_RETRY_MAX_DELAY", "600")),
        description="Upper bound for the retry delay"
    )
    stuck_job_minutes: int = Field(
        default_factory=lambda: int(os.getenv("SCENELINE_STUCK_MINUTES", "30")),
        description="Minutes without progress before an in-flight job counts as timed out"
    )

    # Reachability probing
    probe_timeout_sec: float = Field(
        default_factory=lambda: float(os.getenv("SCENELINE_PROBE_TIMEOUT", "5")),
        description="Per-request timeout for asset reachability probes"
    )
    probe_max_workers: int = Field(
        default_factory=lambda: int(os.getenv("SCENELINE_PROBE_WORKERS", "8")),
        description="Maximum concurrent reachability probes",
        ge=1
    )

    class Config:
        """Pydantic config."""
        frozen = False

    def validate_render_required(self) -> None:
        """Validate that the render service settings are present.

        Raises:
            ValueError: If any required render configuration is missing.
        """
        missing: list[str] = []

        if not self.render_endpoint:
            missing.append("SCENELINE_RENDER_ENDPOINT")

        if missing:
            raise ValueError(
                f"Missing required render configuration: {', '.join(missing)}. "
                "Set the corresponding environment variables."
            )

        if not self.render_endpoint.startswith(("http://", "https://")):
            raise ValueError(
                f"SCENELINE_RENDER_ENDPOINT must be an http(s) URL. "
                f"Got: {self.render_endpoint}"
            )


# Global config instance
config = Config()
