"""
Profile System: loads profile.yaml and provides validated configuration.

The profile is the single source of truth for operator-configurable settings:
service identity, request guard limits, routing-table location, key/value
storage, OAuth retry policy, and provider credentials.

Usage:
    from profile_config import get_profile
    profile = get_profile()
    print(profile.system.name)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

# ── Profile Path Resolution ──
_PROJECT_ROOT = Path(__file__).parent.parent
_BACKEND_DIR = Path(__file__).parent
_DEFAULT_PROFILE_PATH = _PROJECT_ROOT / "profile.yaml"


# ── Dataclasses ──

@dataclass
class SystemConfig:
    name: str = "AIVELLE"
    base_url: str = ""  # empty: derive from the incoming request
    domains: list[str] = field(default_factory=lambda: ["api.aivelle.com"])
    agent_signature: str = "AIVELLE-Agent"


@dataclass
class WebConfig:
    cors_origins: list[str] = field(default_factory=lambda: [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ])


@dataclass
class GuardConfig:
    max_depth: int = 3
    retry_after_seconds: int = 60
    exempt_paths: list[str] = field(default_factory=lambda: [
        "/health", "/docs", "/redoc", "/openapi.json",
    ])


@dataclass
class RoutingConfig:
    rules_path: str = str(_PROJECT_ROOT / "rules" / "routing-rules.json")
    workflow_root: str = str(_BACKEND_DIR)
    default_priority: int = 100


@dataclass
class StorageConfig:
    backend: str = "sqlite"  # sqlite | memory
    sqlite_path: str = str(_BACKEND_DIR / "aivelle_kv.db")


@dataclass
class OAuthConfig:
    state_ttl_seconds: int = 300
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    http_timeout: float = 10.0


@dataclass
class ProviderConfig:
    client_id: str = ""
    client_secret: str = ""
    scope: str = ""


@dataclass
class ProvidersConfig:
    google: ProviderConfig = field(default_factory=lambda: ProviderConfig(
        scope="https://www.googleapis.com/auth/calendar "
              "https://www.googleapis.com/auth/userinfo.email"))
    notion: ProviderConfig = field(default_factory=ProviderConfig)


@dataclass
class Profile:
    system: SystemConfig = field(default_factory=SystemConfig)
    web: WebConfig = field(default_factory=WebConfig)
    guard: GuardConfig = field(default_factory=GuardConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)

    def get_provider(self, name: str) -> Optional[ProviderConfig]:
        """Get a provider config by name."""
        return getattr(self.providers, name, None)

    def get_provider_names(self) -> list[str]:
        return ["google", "notion"]


# ── Parsing ──

def _parse_dict(data: dict, cls, **overrides):
    """Create a dataclass instance from a dict, ignoring unknown keys."""
    import dataclasses
    field_names = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in data.items() if k in field_names}
    filtered.update(overrides)
    return cls(**filtered)


def _resolve_path(value: str) -> str:
    """Relative paths in the profile are relative to the project root."""
    path = Path(value)
    if not path.is_absolute():
        path = _PROJECT_ROOT / path
    return str(path)


def _load_profile_from_dict(raw: dict) -> Profile:
    """Parse a raw YAML dict into a Profile dataclass."""
    profile = Profile()

    if "system" in raw and isinstance(raw["system"], dict):
        profile.system = _parse_dict(raw["system"], SystemConfig)

    if "web" in raw and isinstance(raw["web"], dict):
        profile.web = _parse_dict(raw["web"], WebConfig)

    if "guard" in raw and isinstance(raw["guard"], dict):
        profile.guard = _parse_dict(raw["guard"], GuardConfig)

    # Routing
    if "routing" in raw and isinstance(raw["routing"], dict):
        routing = _parse_dict(raw["routing"], RoutingConfig)
        routing.rules_path = _resolve_path(routing.rules_path)
        routing.workflow_root = _resolve_path(routing.workflow_root)
        profile.routing = routing

    # Storage
    if "storage" in raw and isinstance(raw["storage"], dict):
        storage = _parse_dict(raw["storage"], StorageConfig)
        storage.sqlite_path = _resolve_path(storage.sqlite_path)
        profile.storage = storage

    if "oauth" in raw and isinstance(raw["oauth"], dict):
        profile.oauth = _parse_dict(raw["oauth"], OAuthConfig)

    # Providers
    if "providers" in raw and isinstance(raw["providers"], dict):
        providers = ProvidersConfig()
        for name in ("google", "notion"):
            prov_raw = raw["providers"].get(name, {})
            if isinstance(prov_raw, dict):
                default = getattr(providers, name)
                setattr(providers, name, _parse_dict(
                    prov_raw, ProviderConfig,
                    scope=prov_raw.get("scope", default.scope),
                ))
        profile.providers = providers

    return profile


def _apply_env_overrides(profile: Profile) -> Profile:
    """Secrets are never read from the YAML file when the env var is set."""
    base_url = os.environ.get("AIVELLE_BASE_URL")
    if base_url:
        profile.system.base_url = base_url
    for name in profile.get_provider_names():
        provider = profile.get_provider(name)
        prefix = f"AIVELLE_{name.upper()}"
        provider.client_id = os.environ.get(f"{prefix}_CLIENT_ID", provider.client_id)
        provider.client_secret = os.environ.get(f"{prefix}_CLIENT_SECRET", provider.client_secret)
    return profile


def _load_profile() -> Profile:
    """Load profile from YAML file. Falls back to defaults if missing."""
    env_path = os.environ.get("PROFILE_PATH")
    profile_path = Path(env_path) if env_path else _DEFAULT_PROFILE_PATH

    if not profile_path.exists():
        logger.info("No profile.yaml found at %s, using defaults", profile_path)
        return _apply_env_overrides(Profile())

    try:
        raw = yaml.safe_load(profile_path.read_text()) or {}
        if not isinstance(raw, dict):
            logger.warning("profile.yaml is not a valid YAML mapping, using defaults")
            return _apply_env_overrides(Profile())
        profile = _load_profile_from_dict(raw)
        logger.info("Profile loaded: system=%s, storage=%s, rules=%s",
                    profile.system.name, profile.storage.backend,
                    profile.routing.rules_path)
        return _apply_env_overrides(profile)
    except (OSError, yaml.YAMLError, TypeError) as e:
        logger.error("Failed to load profile.yaml: %s, using defaults", e)
        return _apply_env_overrides(Profile())


# ── Singleton ──

_profile: Optional[Profile] = None


def get_profile() -> Profile:
    """Return the validated profile singleton. Loads on first call."""
    global _profile
    if _profile is None:
        _profile = _load_profile()
    return _profile


def reload_profile() -> Profile:
    """Force reload of the profile from disk."""
    global _profile
    _profile = _load_profile()
    return _profile
