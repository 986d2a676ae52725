import warnings
from typing import Any

import litellm
from litellm import completion as litellm_completion

warnings.filterwarnings("ignore", message="Pydantic serializer warnings")
litellm.drop_params = True


def completion(
    model: str,
    messages: list[dict],
    temperature: float = 0.0,
    max_tokens: int = 4096,
    timeout: float | None = None,
    **kwargs,
) -> Any:
    params = {
        "model": model,
        "messages": messages,
        "stream": False,
        "temperature": temperature,
        "max_tokens": max_tokens,
        **kwargs,
    }
    if timeout is not None:
        params["timeout"] = timeout

    return litellm_completion(**params)


def response_text(response: Any) -> str:
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, KeyError, TypeError):
        return ""
    return content or ""


def is_timeout_error(exc: BaseException) -> bool:
    return isinstance(exc, litellm.Timeout)
