from dataclasses import dataclass

from jira_shared.platform_manager import get_parameters

# Constants that don't change
REDIS_NAMESPACE = "jira:agent"
REDIS_CONVERSATION_TTL = 7 * 24 * 3600  # 7 days
DEFAULT_MODEL = "gpt-5-mini"

# Agent Lambda timeout and the headroom kept for locking, Slack replies and persistence
AGENT_LAMBDA_TIMEOUT = 120
LAMBDA_TIMEOUT_MARGIN = 5

PARAMETERS_PATH = "/apps/prod/jira-agent/"
SECRETS_PATH = "/apps/prod/jira-agent/secrets/"


@dataclass
class AgentSettings:
    """Agent configuration settings loaded from parameter store."""

    # Model settings
    openai_api_key: str
    openai_model: str

    # Jira settings
    jira_domain: str
    jira_email: str
    jira_api_token: str

    # Development agent settings
    development_agent_url: str
    development_agent_api_key: str

    # Slack settings
    slack_bot_token: str

    # Redis settings (optional: no persistence without them)
    redis_url: str | None = None

    # Limits (seconds unless stated otherwise)
    model_timeout: float = 30.0
    jira_timeout: float = 15.0
    delegate_timeout: float = 45.0
    max_rounds: int = 6
    loop_budget: float = 40.0
    thread_lock_ttl: int = 150
    thread_lock_wait: float = 5.0

    # Keep answering without persistence when the store is unreachable
    store_degraded_mode: bool = False


def _as_float(value: str | None, default: float) -> float:
    return float(value) if value else default


def _as_int(value: str | None, default: int) -> int:
    return int(value) if value else default


class Config:
    """Singleton configuration manager for the Jira agent."""

    _instance = None
    _settings = None

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def get_settings(self) -> AgentSettings:
        """Get agent settings, loading from parameter store if not already cached."""
        if self._settings is None:
            self._settings = self._load_settings()
        return self._settings

    def reset(self) -> None:
        """Drop cached settings so the next access reloads them."""
        self._settings = None

    def _load_settings(self) -> AgentSettings:
        """Load settings from the parameter store."""
        # Load secrets (encrypted)
        secrets = get_parameters(
            [
                "openai_api_key",
                "jira_api_token",
                "development_agent_api_key",
                "slack_bot_token",
                "redis_password",
            ],
            SECRETS_PATH,
            decrypt=True,
        )

        # Load agent parameters (not encrypted)
        params = get_parameters(
            [
                "openai_model",
                "jira_domain",
                "jira_email",
                "development_agent_url",
                "redis_host",
                "redis_port",
                "model_timeout",
                "jira_timeout",
                "delegate_timeout",
                "max_rounds",
                "loop_budget",
                "thread_lock_ttl",
                "thread_lock_wait",
                "store_degraded_mode",
            ],
            PARAMETERS_PATH,
        )

        # Build Redis URL
        redis_url = None
        if params["redis_host"]:
            password = secrets["redis_password"]
            auth = f":{password}@" if password else ""
            redis_url = f"redis://{auth}{params['redis_host']}:{params['redis_port'] or '6379'}"

        settings = AgentSettings(
            openai_api_key=secrets["openai_api_key"] or "",
            openai_model=params["openai_model"] or DEFAULT_MODEL,
            jira_domain=params["jira_domain"] or "",
            jira_email=params["jira_email"] or "",
            jira_api_token=secrets["jira_api_token"] or "",
            development_agent_url=params["development_agent_url"] or "",
            development_agent_api_key=secrets["development_agent_api_key"] or "",
            slack_bot_token=secrets["slack_bot_token"] or "",
            redis_url=redis_url,
            model_timeout=_as_float(params["model_timeout"], 30.0),
            jira_timeout=_as_float(params["jira_timeout"], 15.0),
            delegate_timeout=_as_float(params["delegate_timeout"], 45.0),
            max_rounds=_as_int(params["max_rounds"], 6),
            loop_budget=_as_float(params["loop_budget"], 40.0),
            thread_lock_ttl=_as_int(params["thread_lock_ttl"], 150),
            thread_lock_wait=_as_float(params["thread_lock_wait"], 5.0),
            store_degraded_mode=(params["store_degraded_mode"] or "").lower() == "true",
        )

        # Validate settings
        self._validate_settings(settings)

        return settings

    def _validate_settings(self, settings: AgentSettings) -> None:
        """Validate that all required settings have valid values."""
        required_fields = [
            "openai_api_key",
            "jira_domain",
            "jira_email",
            "jira_api_token",
            "development_agent_url",
            "development_agent_api_key",
            "slack_bot_token",
        ]

        for field in required_fields:
            if not getattr(settings, field):
                raise ValueError(f"Configuration value is invalid: {field.upper()}")

        if settings.max_rounds < 1:
            raise ValueError("Configuration value is invalid: MAX_ROUNDS")

        # A step that starts just before the budget runs out may still take a full
        # model call or delegation, so the whole run must fit in the Lambda timeout
        worst_case = settings.loop_budget + settings.model_timeout + settings.delegate_timeout
        if settings.loop_budget <= 0 or worst_case > AGENT_LAMBDA_TIMEOUT - LAMBDA_TIMEOUT_MARGIN:
            raise ValueError("Configuration value is invalid: LOOP_BUDGET")


# Create singleton instance
config = Config()


# Convenience functions
def get_settings() -> AgentSettings:
    """Get agent settings from the singleton config."""
    return config.get_settings()
