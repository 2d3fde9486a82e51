from dataclasses import dataclass

from jira_shared.platform_manager import get_parameters

# Constants that don't change
INVOKE_LAMBDA_NAME = "jira_agent"
INVOKE_LAMBDA_HANDLER = "agent_lambda_handler"
INVOKE_LAMBDA_MODULE = "jira_agent.agent_handler"  # <-- Unused in AWS deployment; required for FastAPI

REDIS_NAMESPACE = "jira:agent"
EVENT_IDEMPOTENCY_TTL = 7 * 24 * 3600  # 7 days

PARAMETERS_PATH = "/apps/prod/jira-agent/"
SECRETS_PATH = "/apps/prod/jira-agent/secrets/"


@dataclass
class AgentAPISettings:
    """Events API configuration settings loaded from parameter store."""

    # Slack settings
    slack_signing_secret: str
    slack_bot_token: str

    # Redis settings
    redis_host: str
    redis_port: str
    redis_password: str
    redis_url: str


class Config:
    """Singleton configuration manager for the Jira agent events API."""

    _instance = None
    _settings = None

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def get_settings(self) -> AgentAPISettings:
        """Get API settings, loading from parameter store if not already cached."""
        if self._settings is None:
            self._settings = self._load_settings()
        return self._settings

    def reset(self) -> None:
        """Drop cached settings so the next access reloads them."""
        self._settings = None

    def _load_settings(self) -> AgentAPISettings:
        """Load settings from the parameter store."""

        # Load secrets (encrypted)
        secrets = get_parameters(
            ["slack_signing_secret", "slack_bot_token", "redis_password"],
            SECRETS_PATH,
            decrypt=True,
        )

        # Load parameters (not encrypted)
        parameters = get_parameters(["redis_host", "redis_port"], PARAMETERS_PATH)

        redis_host = parameters["redis_host"] or ""
        redis_port = parameters["redis_port"] or "6379"
        redis_password = secrets["redis_password"] or ""

        # Build Redis URL
        auth = f":{redis_password}@" if redis_password else ""
        redis_url = f"redis://{auth}{redis_host}:{redis_port}" if redis_host else ""

        settings = AgentAPISettings(
            slack_signing_secret=secrets["slack_signing_secret"] or "",
            slack_bot_token=secrets["slack_bot_token"] or "",
            redis_host=redis_host,
            redis_port=redis_port,
            redis_password=redis_password,
            redis_url=redis_url,
        )

        # Validate settings
        self._validate_settings(settings)

        return settings

    def _validate_settings(self, settings: AgentAPISettings) -> None:
        """Validate that all required settings have valid values."""
        required_fields = [
            "slack_signing_secret",
            "slack_bot_token",
            "redis_host",
            "redis_url",
        ]

        for field in required_fields:
            if not getattr(settings, field):
                raise ValueError(f"Configuration value is invalid: {field.upper()}")


# Create singleton instance
config = Config()


# Convenience functions
def get_settings() -> AgentAPISettings:
    """Get events API settings from the singleton config."""
    return config.get_settings()
