"""Immutable configuration handed to the client at construction.

Settings are resolved once, then frozen; nothing downstream reads the
environment again.
"""

from dataclasses import dataclass

from pos_client.core.types import PayloadClass, RetryState


@dataclass(frozen=True, slots=True)
class FrozenConfig:
    """Resolved client configuration."""

    base_url: str = "http://localhost:5000"
    api_version: str = "v1"
    timeout_seconds: float = 30.0
    max_retries: int = 3
    base_delay_ms: int = 1000
    cap_delay_ms: int = 10000
    retry_jitter: float = 0.0
    install_default_interceptors: bool = True
    slow_response_ms: float = 1000.0
    field_debounce_ms: int = 300
    quantity_debounce_ms: int = 200
    binary_debounce_ms: int = 500

    @property
    def api_url(self) -> str:
        """Prefix every request path is joined to."""
        return f"{self.base_url}/api/{self.api_version}"

    def retry_state(self) -> RetryState:
        """Initial retry state for one request."""
        return RetryState(
            attempt=0,
            max_attempts=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            cap_delay_ms=self.cap_delay_ms,
        )

    def debounce_for(self, payload_class: PayloadClass) -> int:
        """Debounce window in milliseconds for a payload class."""
        match payload_class:
            case PayloadClass.FIELD:
                return self.field_debounce_ms
            case PayloadClass.QUANTITY:
                return self.quantity_debounce_ms
            case PayloadClass.BINARY:
                return self.binary_debounce_ms
