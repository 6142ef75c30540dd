from typing import Any, Optional
import json

from pydantic import ValidationError

from .models import ProviderError


def _redact(params: dict[str, Any]) -> dict[str, Any]:
    return {k: ("***" if "key" in k.lower() else v) for k, v in params.items()}


class ConfigValidationError(Exception):
    def __init__(self, source: str, errors: list[dict[str, Any]], original: ValidationError | None = None):
        self.source = source
        self.errors = errors
        self.original = original
        msg = f"Configuration '{source}' failed validation with {len(errors)} error(s)"

        super().__init__(msg)

    @classmethod
    def from_validation_error(cls, source: str, err: ValidationError) -> "ConfigValidationError":
        return cls(source, [dict(e) for e in err.errors()], original=err)

    def summary(self, limit: int = 5) -> str:
        """Human-readable summary of the first few validation issues."""
        lines = []
        for err in self.errors[:limit]:
            loc = ".".join(str(p) for p in err.get("loc", []))
            lines.append(f"- {loc}: {err.get('msg')} ({err.get('type')})")
        if len(self.errors) > limit:
            lines.append(f"... ({len(self.errors) - limit} more)")
        return "\n".join(lines)


class ProviderFetchError(Exception):
    """
    Raised by the transport and adapter fetch layer.

    Always caught inside `ProviderAdapter.search` and converted into a
    `ProviderError` record on the provider's outcome.
    """

    def __init__(
        self,
        endpoint: str,
        message: str,
        http_status: Optional[int] = None,
        error_label: str = "exception",
        body_snippet: str = "",
        params: Optional[dict[str, Any]] = None,
    ):
        self.endpoint = endpoint
        self.message = message
        self.http_status = http_status
        self.error_label = error_label
        self.body_snippet = body_snippet
        self.params = params or {}
        super().__init__(f"{endpoint}: {message}")

    def to_error(self, provider: str) -> ProviderError:
        return ProviderError(
            provider=provider,
            endpoint=self.endpoint,
            http_status=self.http_status,
            params_json=json.dumps(_redact(self.params), default=str)[:500],
            body_snippet=self.body_snippet[:200],
            error_label=self.error_label,
            api_message=self.message[:500],
        )
