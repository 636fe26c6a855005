"""
LLM client for OpenAI-compatible chat completion endpoints.

The API key is either configured directly (AI_API_KEY) or requested from
a credentials service: log in for a JWT, then exchange it for a key.
All calls return None on failure; callers decide what that means.
"""
import json
import logging
from typing import Any, Dict, Optional

import requests

from .config import PipelineSettings, get_settings

logger = logging.getLogger(__name__)

AUTH_TIMEOUT_SECONDS = 10


def generate_jwt(settings: PipelineSettings) -> Optional[str]:
    """Log in to the credentials service and return the JWT."""
    try:
        resp = requests.post(
            f"{settings.ai_auth_url}/api/v1/User/Login",
            json={"username": settings.ai_auth_username, "password": settings.ai_auth_password},
            timeout=AUTH_TIMEOUT_SECONDS,
        )
        resp.raise_for_status()
        token = resp.text.strip()
        if not token:
            logger.error("JWT token generation failed: empty response")
            return None
        return token
    except Exception as e:
        logger.error(f"JWT token generation failed: {e}")
        return None


def fetch_api_key(settings: PipelineSettings) -> Optional[str]:
    """Exchange a JWT for an API key at the credentials service."""
    jwt = generate_jwt(settings)
    if jwt is None:
        return None
    try:
        resp = requests.post(
            f"{settings.ai_auth_url}/api/v1/ApiKey/GetApiKey",
            headers={"Authorization": f"Bearer {jwt}"},
            json={"mailAddress": settings.ai_auth_mail},
            timeout=AUTH_TIMEOUT_SECONDS,
        )
        resp.raise_for_status()
        key_object: Any = resp.json()["apiKey"]
        # The service wraps the key in a JSON document serialized as a string
        if isinstance(key_object, str):
            try:
                key_object = json.loads(key_object)
            except json.JSONDecodeError:
                return key_object
        return key_object["apiKey"]
    except Exception as e:
        logger.error(f"API key request failed: {e}")
        return None


def resolve_api_key(settings: PipelineSettings) -> Optional[str]:
    if settings.ai_api_key:
        return settings.ai_api_key
    if settings.ai_auth_url:
        return fetch_api_key(settings)
    return None


def complete(
    prompt: str,
    model: Optional[str] = None,
    temperature: float = 0.0,
    settings: Optional[PipelineSettings] = None,
) -> Optional[str]:
    """
    Send a single user prompt to the chat completion endpoint.

    Args:
        prompt: User message content
        model: Model to use (defaults to AI_MODEL)
        temperature: Sampling temperature

    Returns:
        Concatenated content of all choices, or None if the request failed
    """
    settings = settings or get_settings()

    headers = {"Content-Type": "application/json"}
    api_key = resolve_api_key(settings)
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"

    try:
        payload: Dict[str, Any] = {
            "model": model or settings.ai_model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        resp = requests.post(
            f"{settings.ai_base_url}/chat/completions",
            headers=headers,
            json=payload,
            timeout=settings.ai_timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        # {"choices": [{"message": {"content": "..."}}]}
        return "".join(
            choice.get("message", {}).get("content") or "" for choice in data.get("choices", [])
        )
    except Exception as e:
        logger.error(f"LLM completion request failed: {e}")
        return None
