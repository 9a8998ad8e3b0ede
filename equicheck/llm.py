import logging

from openai import AsyncAzureOpenAI

from equicheck.config import settings
from equicheck.errors import ConfigurationError

log = logging.getLogger(__name__)

_client: AsyncAzureOpenAI | None = None
_deployment: str = settings.azure_openai.deployment

# Deployments provisioned on the Azure OpenAI endpoint that accept PDF file input.
AVAILABLE_MODELS = [
    "gpt-4o",
    "gpt-4o-mini",
    "gpt-4.1",
    "gpt-4.1-mini",
    "gpt-5-mini",
]

# Models that require max_completion_tokens instead of max_tokens.
_USES_MAX_COMPLETION_TOKENS = {"gpt-5", "gpt-5-mini", "gpt-5-nano", "gpt-5.1", "gpt-5.2",
                                "o1", "o1-mini", "o1-pro", "o3", "o3-mini", "o4-mini"}


def _needs_max_completion_tokens(deployment: str) -> bool:
    """Check if a deployment uses the newer max_completion_tokens parameter."""
    d = deployment.lower()
    for prefix in _USES_MAX_COMPLETION_TOKENS:
        if d == prefix or d.startswith(prefix + "-"):
            return True
    return False


def get_client() -> AsyncAzureOpenAI:
    global _client
    if _client is None:
        cfg = settings.azure_openai
        if not cfg.is_configured:
            raise ConfigurationError(
                "Configuration Error: EQUICHECK_AZURE_OPENAI__ENDPOINT and "
                "EQUICHECK_AZURE_OPENAI__API_KEY must be set"
            )
        _client = AsyncAzureOpenAI(
            azure_endpoint=cfg.endpoint,
            api_key=cfg.api_key,
            api_version=cfg.api_version,
            # A single attempt per analysis; failures surface to the caller.
            max_retries=0,
        )
    return _client


def get_deployment() -> str:
    return _deployment


def set_deployment(name: str) -> None:
    global _deployment
    _deployment = name
    log.info("Deployment changed to: %s", name)


async def structured_chat(system_prompt: str, content: list[dict], response_format: dict) -> str | None:
    """Send one chat completion constrained to a JSON schema.

    Returns the raw message content, which may be None or empty if the model
    produced nothing.
    """
    client = get_client()
    cfg = settings.azure_openai

    kwargs: dict = {
        "model": _deployment,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": content},
        ],
        "response_format": response_format,
    }

    if _needs_max_completion_tokens(_deployment):
        # gpt-5 / o-series: max_completion_tokens, no temperature control
        kwargs["max_completion_tokens"] = cfg.max_tokens
    else:
        kwargs["max_tokens"] = cfg.max_tokens
        kwargs["temperature"] = cfg.temperature

    resp = await client.chat.completions.create(**kwargs)
    if not resp.choices:
        return None
    choice = resp.choices[0]
    log.info("Analysis completion finished (model=%s, finish_reason=%s)", _deployment, choice.finish_reason)
    return choice.message.content
