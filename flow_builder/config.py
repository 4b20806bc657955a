"""
Configuration for Flow Builder.
"""

from enum import Enum
from functools import lru_cache
from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class NodeCategory(str, Enum):
    """Node category types."""

    FLOW = "flow"
    CHANNELS = "channels"
    TICKETING = "ticketing"
    CRM = "crm"


class NodeType(str, Enum):
    """Available node types."""

    # Flow
    START = "start"
    MESSAGE = "message"
    CONDITION = "condition"
    API_CALL = "api_call"
    DTMF = "dtmf"
    ASSISTANT = "assistant"
    TRANSFER = "transfer"
    END = "end"

    # Channels
    WHATSAPP = "whatsapp"
    SLACK = "slack"
    TELEGRAM = "telegram"
    TEAMS = "teams"

    # Ticketing
    ZENDESK = "zendesk"
    FRESHDESK = "freshdesk"

    # CRM
    SALESFORCE = "salesforce"
    HUBSPOT = "hubspot"
    ZOHO_CRM = "zoho_crm"


CHANNEL_NODE_TYPES = frozenset(
    {NodeType.WHATSAPP, NodeType.SLACK, NodeType.TELEGRAM, NodeType.TEAMS}
)
TICKET_NODE_TYPES = frozenset({NodeType.ZENDESK, NodeType.FRESHDESK})
CRM_NODE_TYPES = frozenset({NodeType.SALESFORCE, NodeType.HUBSPOT, NodeType.ZOHO_CRM})
INTEGRATION_NODE_TYPES = CHANNEL_NODE_TYPES | TICKET_NODE_TYPES | CRM_NODE_TYPES


class FlowStatus(str, Enum):
    """Flow status values."""

    DRAFT = "draft"
    PUBLISHED = "published"


class EdgeLabel(str, Enum):
    """Labels carried by a condition node's outgoing edges."""

    YES = "Yes"
    NO = "No"


class ConnectHandle(str, Enum):
    """Output handle a connection gesture starts from."""

    DEFAULT = "default"
    YES = "yes"
    NO = "no"


class ConditionOperator(str, Enum):
    """Comparison operators for condition nodes."""

    EQUALS = "equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class Channel(str, Enum):
    """Test channel a run simulates."""

    CHAT = "chat"
    VOICE = "voice"


class EventCategory(str, Enum):
    """Category of a run log event."""

    BOT = "bot"
    USER = "user"
    SYSTEM = "system"
    VOICE = "voice"
    DTMF = "dtmf"
    ERROR = "error"


class EventStatus(str, Enum):
    """Status marker of a run log event."""

    SUCCESS = "success"
    ERROR = "error"
    PENDING = "pending"
    PROCESSING = "processing"


class RunState(str, Enum):
    """Lifecycle state of a test run."""

    IDLE = "idle"
    RUNNING = "running"
    WAITING_FOR_INPUT = "waiting_for_input"
    WAITING_FOR_DTMF = "waiting_for_dtmf"
    ENDED = "ended"


class RunResult(str, Enum):
    """How an ended run terminated."""

    SUCCESS = "success"
    ERROR = "error"


class RunOutcome(str, Enum):
    """Post-run badge."""

    PASSED = "passed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"


class CanvasConfig(BaseSettings):
    """Canvas configuration."""

    model_config = SettingsConfigDict(env_prefix="CANVAS_")

    start_position: Dict[str, float] = Field(
        default_factory=lambda: {"x": 400.0, "y": 50.0},
        description="Position of the start node in new flows",
    )
    duplicate_offset: float = Field(
        default=40.0, description="Offset applied to duplicated nodes"
    )
    max_nodes_per_flow: int = Field(default=500, description="Max nodes per flow")


class VersioningConfig(BaseSettings):
    """Versioning configuration."""

    model_config = SettingsConfigDict(env_prefix="VERSIONING_")

    initial_version: str = Field(default="0.1", description="Version label of new flows")
    default_author: str = Field(default="system", description="Author of published versions")


class SimulationConfig(BaseSettings):
    """Simulated execution configuration."""

    model_config = SettingsConfigDict(env_prefix="SIMULATION_")

    # Latencies (seconds)
    latency_scale: float = Field(
        default=1.0, ge=0.0, description="Multiplier applied to every simulated latency"
    )
    step_delay_s: float = Field(default=0.4, description="Pause after each processing event")
    call_connect_s: float = Field(default=1.5, description="Voice call setup")
    message_s: float = Field(default=0.8, description="Pause after a message")
    input_eval_s: float = Field(default=0.3, description="Input evaluation")
    api_call_s: float = Field(default=1.2, description="Simulated API round trip")
    assistant_s: float = Field(default=1.8, description="AI assistant thinking time")
    voice_transfer_s: float = Field(default=1.5, description="Voice transfer")
    chat_transfer_s: float = Field(default=0.8, description="Chat transfer")
    channel_send_s: float = Field(default=0.8, description="Channel delivery")
    ticket_s: float = Field(default=1.0, description="Ticketing action")
    crm_s: float = Field(default=1.0, description="CRM action")
    call_end_s: float = Field(default=0.5, description="Voice call teardown")

    # Behaviour
    api_failure_rate: float = Field(
        default=0.1, ge=0.0, le=1.0, description="Probability of a simulated API failure"
    )
    max_steps: int = Field(default=1000, ge=1, description="Max node dispatches per run")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service configuration
    service_name: str = Field(default="flow-builder", description="Service name")
    host: str = Field(default="0.0.0.0", description="Host to bind")
    port: int = Field(default=8091, ge=1024, le=65535, description="Port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="info", description="Log level")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        description="Origins allowed by CORS",
    )

    # Sub-configurations
    canvas: CanvasConfig = Field(default_factory=CanvasConfig)
    versioning: VersioningConfig = Field(default_factory=VersioningConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
