"""Known inference providers and their static properties."""

from dataclasses import dataclass, field

from maria_autostart.providers.models import PriorityMode, ProviderKind


@dataclass(frozen=True)
class ProviderSpec:
    """Static specification for a known provider."""

    provider_id: str
    kind: ProviderKind
    display_name: str
    base_url: str
    models_path: str
    weights: dict[PriorityMode, int]
    port: int | None = None
    api_key_envs: tuple[str, ...] = ()
    placeholder_key: str = ""
    auth_style: str = "bearer"  # "bearer", or the name of a raw-key header
    free_tier: bool = False
    default_model: str = ""
    env_provider_name: str = ""  # Value written to AI_PROVIDER
    description: str = ""
    aliases: tuple[str, ...] = field(default_factory=tuple)

    @property
    def models_url(self) -> str:
        return self.base_url.rstrip("/") + self.models_path

    @property
    def env_name(self) -> str:
        return self.env_provider_name or self.provider_id


def _weights(privacy: int, performance: int, cost: int) -> dict[PriorityMode, int]:
    return {
        PriorityMode.PRIVACY_FIRST: privacy,
        PriorityMode.PERFORMANCE: performance,
        PriorityMode.COST_EFFECTIVE: cost,
    }


PROVIDERS: dict[str, ProviderSpec] = {
    "lmstudio": ProviderSpec(
        provider_id="lmstudio",
        kind=ProviderKind.LOCAL_PROCESS,
        display_name="LM Studio",
        base_url="http://localhost:1234",
        models_path="/v1/models",
        port=1234,
        weights=_weights(0, 2, 3),
        description="Local GPT-OSS 20B/120B models, highest accuracy",
    ),
    "vllm": ProviderSpec(
        provider_id="vllm",
        kind=ProviderKind.LOCAL_SERVER,
        display_name="vLLM",
        base_url="http://localhost:8000",
        models_path="/v1/models",
        port=8000,
        weights=_weights(1, 3, 2),
        default_model="stabilityai/japanese-stablelm-2-instruct-1_6b",
        description="Local OpenAI-compatible server, fast Japanese model",
    ),
    "ollama": ProviderSpec(
        provider_id="ollama",
        kind=ProviderKind.LOCAL_PROCESS,
        display_name="Ollama",
        base_url="http://localhost:11434",
        models_path="/api/tags",
        port=11434,
        weights=_weights(2, 0, 1),
        default_model="qwen2.5-vl:7b",
        description="Local Qwen models with vision support",
    ),
    "gemini": ProviderSpec(
        provider_id="gemini",
        kind=ProviderKind.CLOUD_API,
        display_name="Gemini",
        base_url="https://generativelanguage.googleapis.com",
        models_path="/v1beta/models",
        weights=_weights(3, 4, 0),
        api_key_envs=("GEMINI_API_KEY", "GOOGLE_API_KEY"),
        placeholder_key="your-gemini-api-key-here",
        auth_style="x-goog-api-key",
        free_tier=True,
        env_provider_name="google",
        description="Google Gemini API, free tier available",
        aliases=("google",),
    ),
    "groq": ProviderSpec(
        provider_id="groq",
        kind=ProviderKind.CLOUD_API,
        display_name="Groq",
        base_url="https://api.groq.com",
        models_path="/openai/v1/models",
        weights=_weights(4, 1, 4),
        api_key_envs=("GROQ_API_KEY",),
        placeholder_key="gsk_your-groq-api-key-here",
        free_tier=True,
        description="Ultra-fast cloud inference",
    ),
    "grok": ProviderSpec(
        provider_id="grok",
        kind=ProviderKind.CLOUD_API,
        display_name="Grok",
        base_url="https://api.x.ai",
        models_path="/v1/models",
        weights=_weights(5, 5, 5),
        api_key_envs=("GROK_API_KEY", "XAI_API_KEY"),
        placeholder_key="xai-your-grok-api-key-here",
        description="xAI Grok API",
        aliases=("xai",),
    ),
}

LOCAL_PROVIDER_IDS: list[str] = [pid for pid, spec in PROVIDERS.items() if spec.kind.is_local]


def get_provider_spec(provider_id: str) -> ProviderSpec | None:
    """Find a provider by id or alias."""
    key = provider_id.strip().lower()
    if key in PROVIDERS:
        return PROVIDERS[key]
    for spec in PROVIDERS.values():
        if key in spec.aliases:
            return spec
    return None
