"""Completion capability used only to phrase explanations.

The pipeline never asks this capability for facts: the prompt carries the
already-decided status, citations and amounts, and whatever comes back is
checked by the composer before use.

Failures map onto the semantic-capability taxonomy:
  429                 -> CapabilityRateLimited
  timeout             -> CapabilityTimeout
  other non-200 / IO  -> CapabilityUnavailable
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from fair_charge import config
from fair_charge.errors import CapabilityRateLimited, CapabilityTimeout, CapabilityUnavailable

logger = logging.getLogger(__name__)


class CompletionClient:
    name = 'base'

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        raise NotImplementedError


class HuggingFaceCompletionClient(CompletionClient):
    name = 'huggingface'

    def __init__(self, token: str, url: str = config.HUGGINGFACE_API_URL, timeout: float = config.COMPLETION_TIMEOUT_SECONDS):
        self.token = token
        self.url = url
        self.timeout = timeout
        self.session = requests.Session()

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        headers = {"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"}
        parameters: dict = {"max_new_tokens": max_tokens, "return_full_text": False}
        if temperature > 0:
            parameters.update({"temperature": temperature, "do_sample": True})
        else:
            parameters["do_sample"] = False
        payload = {"inputs": prompt, "parameters": parameters, "options": {"wait_for_model": False}}
        try:
            r = self.session.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise CapabilityTimeout(f"completion timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise CapabilityUnavailable(f"completion request failed: {e}") from e
        if r.status_code == 429:
            raise CapabilityRateLimited("completion rate limited")
        if r.status_code != 200:
            raise CapabilityUnavailable(f"completion HTTP {r.status_code}: {r.text[:200]}")
        try:
            body = r.json()
        except ValueError as e:
            raise CapabilityUnavailable("completion returned non-JSON body") from e
        return self._extract_text(body)

    @staticmethod
    def _extract_text(body: Any) -> str:
        if isinstance(body, list) and body:
            body = body[0]
        if isinstance(body, dict):
            for key in ("generated_text", "summary_text", "text"):
                if isinstance(body.get(key), str):
                    return body[key].strip()
        raise CapabilityUnavailable("completion response had no generated text")


def build_completion_client(
    backend: str = config.COMPLETION_BACKEND,
    token: str = config.HUGGINGFACE_API_TOKEN,
    url: str = config.HUGGINGFACE_API_URL,
) -> Optional[CompletionClient]:
    if backend in ('', 'none'):
        return None
    if backend == 'huggingface':
        if not token:
            logger.warning("[completion] HUGGINGFACE_API_TOKEN not set; using template explanations")
            return None
        return HuggingFaceCompletionClient(token=token, url=url)
    raise ValueError(f"Unknown completion backend: {backend}")


__all__ = ['CompletionClient', 'HuggingFaceCompletionClient', 'build_completion_client']
