"""Ollama provider client for local models"""

import http.client
import json
import os
import socket
import urllib.error
import urllib.request

from aicommit.llm.base import LLMClient, LLMResponse, ProviderError, RETRY_SUFFIX, SYSTEM_PROMPT, validate_commit_message


class OllamaClient(LLMClient):
    """Ollama client for local models. Requires: ollama serve"""

    key = "ollama"

    DEFAULT_MODEL = "mistral:7b"
    DEFAULT_HOST = "http://localhost:11434"
    DEFAULT_TIMEOUT = 300  # CPU inference can be slow; the circuit breaker enforces its own deadline
    MAX_RETRIES = 2

    def __init__(self, model: str | None = None, host: str | None = None, timeout: float | None = None):
        self.model = model or self.DEFAULT_MODEL
        self.host = host or os.environ.get("OLLAMA_HOST", self.DEFAULT_HOST)
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._verify_connection()

    @property
    def name(self) -> str:
        return f"Ollama ({self.model})"

    def _verify_connection(self) -> None:
        """Fail fast if Ollama isn't reachable."""
        try:
            with urllib.request.urlopen(f"{self.host}/api/tags", timeout=5):
                pass
        except (urllib.error.URLError, OSError):
            raise ProviderError("Ollama not running. Start with: ollama serve")

    def _call_api(self, prompt: str) -> dict:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "system": SYSTEM_PROMPT,
            "stream": False,
            "keep_alive": "10m",
            "options": {"temperature": 0.4, "num_predict": 1000},
        }
        req = urllib.request.Request(
            f"{self.host}/api/generate",
            data=json.dumps(payload).encode('utf-8'),
            headers={"Content-Type": "application/json"},
        )
        with urllib.request.urlopen(req, timeout=self.timeout) as response:
            return json.loads(response.read().decode('utf-8'))

    def generate(self, prompt: str) -> LLMResponse:
        last_error = ""
        for attempt in range(self.MAX_RETRIES + 1):
            request_prompt = prompt if attempt == 0 else prompt + RETRY_SUFFIX.format(error=last_error)
            try:
                result = self._call_api(request_prompt)
            except urllib.error.HTTPError as e:
                if e.code == 404:
                    raise ProviderError(f"Model '{self.model}' not found. Run: ollama pull {self.model}")
                raise ProviderError(f"Ollama error ({e.code}): {e.reason}")
            except urllib.error.URLError as e:
                if isinstance(e.reason, socket.timeout):
                    raise ProviderError(f"Ollama request timed out after {self.timeout}s")
                raise ProviderError(f"Ollama request failed: {e}")
            except socket.timeout:
                raise ProviderError(f"Ollama request timed out after {self.timeout}s")
            except json.JSONDecodeError:
                raise ProviderError("Invalid response from Ollama.")
            except http.client.HTTPException as e:
                raise ProviderError(f"Incomplete response from Ollama: {e}")
            except OSError as e:
                raise ProviderError(f"Connection to Ollama lost: {e}")

            content = result.get("response", "").strip()
            is_valid, error = validate_commit_message(content)
            if not is_valid and attempt < self.MAX_RETRIES:
                last_error = error
                continue

            return LLMResponse(
                content=content,
                model=self.model,
                tokens_used=result.get("eval_count", 0)
            )
