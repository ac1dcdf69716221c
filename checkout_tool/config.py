"""Runtime configuration, read from environment variables."""
import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_STATE_DIR = Path.home() / ".config" / "checkout-tool"


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


@dataclass
class CheckoutConfig:
    """Settings for the storefront backend, payment gateway and poller."""
    api_base_url: str = "http://localhost:8000/api"
    api_timeout: float = 10.0
    access_token: str | None = None
    storefront_url: str = "http://localhost:5173"
    gateway_mode: str = "sandbox"  # sandbox | production
    gateway_timeout: float = 900.0
    headless: bool = False
    poll_interval: float = 2.0
    poll_retries: int = 5
    default_gst_rate: float = 18.0
    state_dir: Path = field(default_factory=lambda: DEFAULT_STATE_DIR)

    @classmethod
    def from_env(cls) -> "CheckoutConfig":
        """Build a config from CHECKOUT_* / CASHFREE_* environment variables."""
        return cls(
            api_base_url=os.environ.get("CHECKOUT_API_URL", cls.api_base_url),
            api_timeout=_env_float("CHECKOUT_API_TIMEOUT", cls.api_timeout),
            access_token=os.environ.get("CHECKOUT_ACCESS_TOKEN") or None,
            storefront_url=os.environ.get("CHECKOUT_STOREFRONT_URL", cls.storefront_url),
            gateway_mode=os.environ.get("CASHFREE_MODE", cls.gateway_mode),
            gateway_timeout=_env_float("CHECKOUT_GATEWAY_TIMEOUT", cls.gateway_timeout),
            headless=os.environ.get("CHECKOUT_HEADLESS", "false").lower() == "true",
            poll_interval=_env_float("CHECKOUT_POLL_INTERVAL", cls.poll_interval),
            poll_retries=_env_int("CHECKOUT_POLL_RETRIES", cls.poll_retries),
            default_gst_rate=_env_float("CHECKOUT_DEFAULT_GST_RATE", cls.default_gst_rate),
            state_dir=Path(os.environ.get("CHECKOUT_STATE_DIR", str(DEFAULT_STATE_DIR))),
        )

    @property
    def store_path(self) -> Path:
        return self.state_dir / "store.enc"

    @property
    def key_path(self) -> Path:
        return self.state_dir / "store.key"
