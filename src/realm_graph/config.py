"""Configuration module for the Realm Graph engine."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from realm_graph import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the default database
_USER_ENV = Path.home() / ".realm_graph" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


class RealmGraphConfig(BaseModel):
    """Configuration for the Realm Graph engine and server."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("REALM_GRAPH_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("REALM_GRAPH_DATABASE_PATH", "data/db/realm_graph.db")
        )
    )
    # When True, uses in-memory SQLite (contents are lost on exit)
    in_memory_db: bool = Field(
        default_factory=lambda: os.getenv("REALM_GRAPH_IN_MEMORY_DB", "false").lower()
        in ("true", "1", "yes")
    )
    # Log directory (None means ~/.realm_graph/logs)
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("REALM_GRAPH_LOG_DIR"))
            if os.getenv("REALM_GRAPH_LOG_DIR")
            else None
        )
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("REALM_GRAPH_SERVER_NAME", "realm-graph"))
    server_version: str = Field(default=__version__)

    # Strength scoring weights. The shared-connection weight takes the
    # remainder so the three terms sum to 1.0 by default.
    content_weight: float = Field(
        default_factory=lambda: float(os.getenv("REALM_GRAPH_CONTENT_WEIGHT", "0.3"))
    )
    tag_weight: float = Field(
        default_factory=lambda: float(os.getenv("REALM_GRAPH_TAG_WEIGHT", "0.2"))
    )
    shared_connection_weight: float = Field(
        default_factory=lambda: float(
            os.getenv("REALM_GRAPH_SHARED_CONNECTION_WEIGHT", "0.5")
        )
    )
    # Bonus added to strength for explicit (user-created) links
    direct_link_bonus: float = Field(
        default_factory=lambda: float(os.getenv("REALM_GRAPH_DIRECT_LINK_BONUS", "0.5"))
    )
    # Suggestions must score strictly above this
    suggestion_threshold: float = Field(
        default_factory=lambda: float(
            os.getenv("REALM_GRAPH_SUGGESTION_THRESHOLD", "0.2")
        )
    )

    # Traversal bounds
    cycle_check_depth: int = Field(
        default_factory=lambda: int(os.getenv("REALM_GRAPH_CYCLE_CHECK_DEPTH", "5"))
    )
    max_path_depth: int = Field(
        default_factory=lambda: int(os.getenv("REALM_GRAPH_MAX_PATH_DEPTH", "5"))
    )
    max_subgraph_depth: int = Field(
        default_factory=lambda: int(os.getenv("REALM_GRAPH_MAX_SUBGRAPH_DEPTH", "3"))
    )
    subgraph_node_limit: int = Field(
        default_factory=lambda: int(os.getenv("REALM_GRAPH_SUBGRAPH_NODE_LIMIT", "50"))
    )
    search_result_limit: int = Field(
        default_factory=lambda: int(os.getenv("REALM_GRAPH_SEARCH_RESULT_LIMIT", "20"))
    )
    hub_note_limit: int = Field(
        default_factory=lambda: int(os.getenv("REALM_GRAPH_HUB_NOTE_LIMIT", "10"))
    )

    # Optimistic-concurrency retry policy for relationship mutations
    max_write_retries: int = Field(
        default_factory=lambda: int(os.getenv("REALM_GRAPH_MAX_WRITE_RETRIES", "3"))
    )
    write_retry_delay: float = Field(
        default_factory=lambda: float(
            os.getenv("REALM_GRAPH_WRITE_RETRY_DELAY", "0.05")
        )
    )

    @model_validator(mode="after")
    def _validate_engine_config(self) -> "RealmGraphConfig":
        """Validate scoring weights and traversal bounds."""
        for name in (
            "content_weight",
            "tag_weight",
            "shared_connection_weight",
            "direct_link_bonus",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        for name in (
            "cycle_check_depth",
            "max_path_depth",
            "max_subgraph_depth",
            "subgraph_node_limit",
            "search_result_limit",
            "hub_note_limit",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.max_write_retries < 0:
            raise ValueError("max_write_retries must be >= 0")

        weight_sum = self.content_weight + self.tag_weight + self.shared_connection_weight
        if weight_sum > 1.0 + 1e-9:
            logger.warning(
                "Strength weights sum to %.2f; scores will saturate at 1.0 more often.",
                weight_sum,
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.in_memory_db:
            return "sqlite:///:memory:"
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = RealmGraphConfig()
