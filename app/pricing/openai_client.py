import json
import logging
import time
from typing import Any, Optional

import httpx

from app.core.config import settings
from app.core.errors import ExternalServiceFailure


class OpenAIError(ExternalServiceFailure):
    pass


logger = logging.getLogger("cotacao.openai")


def _get_api_key() -> str:
    api_key = settings.OPENAI_API_KEY
    if not api_key:
        raise OpenAIError("OPENAI_API_KEY nao configurada")
    return api_key


def _extract_json_candidate(raw_text: str) -> str:
    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ValueError("JSON nao encontrado no texto")
    return raw_text[start : end + 1]


def _extract_error_message(res: httpx.Response) -> str:
    try:
        payload = res.json()
    except Exception:
        return res.text
    if isinstance(payload, dict):
        err = payload.get("error") or {}
        if isinstance(err, dict) and err.get("message"):
            return err["message"]
        return payload.get("message") or res.text
    return res.text


def _request_with_retry(
    client: httpx.Client,
    url: str,
    body: dict,
    max_attempts: int = 2,
) -> dict:
    last_exc: Exception | None = None
    for attempt in range(max_attempts):
        try:
            res = client.post(url, json=body)
            if res.status_code >= 400:
                message = _extract_error_message(res)
                raise OpenAIError(f"OpenAI erro HTTP {res.status_code}: {message}", status_code=res.status_code)
            return res.json()
        except Exception as exc:
            last_exc = exc
            if attempt + 1 >= max_attempts:
                break
            time.sleep(0.4)
    raise OpenAIError(str(last_exc) if last_exc else "Falha na chamada OpenAI")


def _extract_text(payload: dict) -> str:
    choices = payload.get("choices") or []
    if choices:
        message = (choices[0] or {}).get("message") or {}
        content = message.get("content")
        if isinstance(content, str) and content.strip():
            return content
        if isinstance(content, list):
            for part in content:
                text = part.get("text") if isinstance(part, dict) else None
                if isinstance(text, str) and text.strip():
                    return text
    raise OpenAIError("Resposta sem texto")


def parse_json_object(raw_text: str) -> dict:
    if not raw_text or not raw_text.strip():
        raise OpenAIError("Resposta vazia do modelo")
    try:
        data = json.loads(raw_text)
    except ValueError:
        try:
            data = json.loads(_extract_json_candidate(raw_text))
        except ValueError as exc:
            raise OpenAIError(f"Resposta nao e JSON valido: {exc}") from exc
    if not isinstance(data, dict):
        raise OpenAIError("Resposta JSON nao e um objeto")
    return data


def request_chat_completion(
    system_prompt: str,
    user_prompt: str,
    temperature: float = 0.2,
    json_mode: bool = False,
    model: Optional[str] = None,
) -> tuple[str, dict[str, Any]]:
    api_key = _get_api_key()
    model = model or settings.OPENAI_MODEL
    start = time.perf_counter()
    body: dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": temperature,
    }
    if json_mode:
        body["response_format"] = {"type": "json_object"}

    headers = {"Authorization": f"Bearer {api_key}"}
    with httpx.Client(headers=headers, timeout=settings.OPENAI_TIMEOUT_SECONDS) as client:
        payload = _request_with_retry(client, f"{settings.OPENAI_BASE_URL}/chat/completions", body)

    text = _extract_text(payload)
    usage = payload.get("usage") or {}
    meta = {
        "model": payload.get("model", model),
        "input_tokens": usage.get("prompt_tokens"),
        "output_tokens": usage.get("completion_tokens"),
        "latency_ms": int((time.perf_counter() - start) * 1000),
    }
    logger.info("openai completion model=%s latency_ms=%s", meta["model"], meta["latency_ms"])
    return text, meta
