import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "default_base": None,  # None = detect; set to a branch name to always target it
    "enable_stacking": True,
    "require_test_plan": True,
    "create_as_draft": False,
    "show_stacking_warnings": True,
    "linear_enabled": False,
    "default_reviewers": [],  # handles always suggested, e.g. "@alice", "@acme/platform"
    "remote": "origin",
    "max_retries": 3,
    "base_delay": 1.0,
    "max_delay": 30.0,
    "timeout": 30,
    "circuit_max_failures": 5,
    "circuit_reset_timeout": 60.0,
    "cache": "noop",  # "noop" | "sqlite"
    "cache_path": ".prstack-cache.db",
    "cache_ttl": 3600,
}


def load_config(config_path: str = ".prstack.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prstack.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "default_reviewers": list(DEFAULT_CONFIG["default_reviewers"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"{config_path} must contain a mapping, got {type(file_config).__name__}")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")

    return config
