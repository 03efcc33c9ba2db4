"""
Simple feature flags implementation for the Lingua Tutor backend.
"""
import os
from typing import Dict

__all__ = ["FEATURE_FLAGS", "init_feature_flags", "is_feature_enabled", "set_feature_flag"]

# Global feature flags dictionary
FEATURE_FLAGS: Dict[str, bool] = {
    "use_embeddings": True,
    "store_embeddings": True,
}

def init_feature_flags() -> None:
    """Initialize feature flags from environment variables."""
    for flag_name in FEATURE_FLAGS:
        env_var_name = f"ENABLE_{flag_name.upper()}"
        FEATURE_FLAGS[flag_name] = os.getenv(env_var_name, "true").lower() == "true"

def is_feature_enabled(feature_name: str) -> bool:
    """Check if a feature is enabled."""
    return FEATURE_FLAGS.get(feature_name, False)

def set_feature_flag(feature_name: str, enabled: bool) -> None:
    """Override a flag at runtime (tests, admin tooling)."""
    FEATURE_FLAGS[feature_name] = enabled
