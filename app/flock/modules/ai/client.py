from __future__ import annotations

import json
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any


class AiClientError(RuntimeError):
    pass


class AiRateLimited(AiClientError):
    pass


@dataclass(frozen=True)
class ChatResult:
    content: str
    model: str
    tokens_in: int
    tokens_out: int


@dataclass(frozen=True)
class OpenAIClient:
    """Minimal chat-completions client over plain HTTP."""

    api_key: str
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    timeout_seconds: int = 60

    def request_json(self, path: str, body: dict[str, Any], *, retries: int = 2) -> dict[str, Any]:
        url = self.base_url.rstrip("/") + path
        data = json.dumps(body).encode("utf-8")

        last_err: Exception | None = None
        for attempt in range(retries + 1):
            try:
                req = urllib.request.Request(url, data=data, method="POST")
                req.add_header("Authorization", f"Bearer {self.api_key}")
                req.add_header("Content-Type", "application/json")
                req.add_header("Accept", "application/json")
                with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                    raw = resp.read()
                    try:
                        return json.loads(raw.decode("utf-8"))
                    except ValueError as e:
                        raise AiClientError(f"Invalid JSON from AI provider ({path})") from e
            except urllib.error.HTTPError as e:
                if e.code == 429:
                    time.sleep(min(2 * (attempt + 1), 10))
                    last_err = AiRateLimited("Rate limited (429)")
                    continue
                try:
                    detail = e.read().decode("utf-8", errors="ignore")
                except OSError:
                    detail = ""
                raise AiClientError(f"HTTP {e.code} from AI provider: {detail[:300]}") from e
            except (urllib.error.URLError, TimeoutError) as e:
                last_err = e
                time.sleep(min(1 * (attempt + 1), 5))
                continue
        raise AiClientError(f"AI request failed after retries: {last_err}")

    def chat(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        json_response: bool = False,
    ) -> ChatResult:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_response:
            body["response_format"] = {"type": "json_object"}
        j = self.request_json("/chat/completions", body)
        choices = j.get("choices") or []
        if not choices:
            raise AiClientError("AI provider returned no choices")
        content = ((choices[0] or {}).get("message") or {}).get("content") or ""
        usage = j.get("usage") or {}
        return ChatResult(
            content=content,
            model=j.get("model") or self.model,
            tokens_in=int(usage.get("prompt_tokens") or 0),
            tokens_out=int(usage.get("completion_tokens") or 0),
        )
