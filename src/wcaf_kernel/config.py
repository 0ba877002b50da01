"""wcaf-kernel configuration: Pydantic model and environment loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, SecretStr, ValidationError, field_validator

from .errors import ConfigError
from .signing import ED25519, RSA_SHA256

ENV_PREFIX = "WCAF_"


def _read_key_file(path: str, var: str) -> str:
    try:
        return Path(path).expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"{var}: cannot read key file {path}: {exc}") from exc


class ForensicsConfig(BaseModel):
    """Default signing identity and storage location."""

    key_id: str | None = None
    private_key_pem: SecretStr | None = None
    public_key_pem: str | None = None
    algorithm: str | None = None
    sqlite_path: Path | None = None

    @field_validator("algorithm", mode="before")
    @classmethod
    def normalize_algorithm(cls, v: Any) -> str | None:
        if v is None:
            return None
        name = str(v).strip()
        if "ed25519" in name.lower():
            return ED25519
        if name.upper() in ("RSA-SHA256", "RSA", "RSA_SHA256"):
            return RSA_SHA256
        raise ValueError(f"Unsupported algorithm {name!r}. Use RSA-SHA256 or Ed25519.")

    @property
    def private_key(self) -> str | None:
        if self.private_key_pem is None:
            return None
        return self.private_key_pem.get_secret_value()

    @property
    def can_sign(self) -> bool:
        return bool(self.key_id and self.private_key_pem)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ForensicsConfig:
        """
        Build a config from WCAF_* environment variables.

        WCAF_KEY_ID, WCAF_PRIVATE_KEY_FILE, WCAF_PUBLIC_KEY_FILE,
        WCAF_ALGORITHM, WCAF_SQLITE_PATH. Unset variables keep defaults.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}

        if env.get(f"{ENV_PREFIX}KEY_ID"):
            data["key_id"] = env[f"{ENV_PREFIX}KEY_ID"]
        if env.get(f"{ENV_PREFIX}PRIVATE_KEY_FILE"):
            data["private_key_pem"] = _read_key_file(
                env[f"{ENV_PREFIX}PRIVATE_KEY_FILE"], f"{ENV_PREFIX}PRIVATE_KEY_FILE"
            )
        if env.get(f"{ENV_PREFIX}PUBLIC_KEY_FILE"):
            data["public_key_pem"] = _read_key_file(
                env[f"{ENV_PREFIX}PUBLIC_KEY_FILE"], f"{ENV_PREFIX}PUBLIC_KEY_FILE"
            )
        if env.get(f"{ENV_PREFIX}ALGORITHM"):
            data["algorithm"] = env[f"{ENV_PREFIX}ALGORITHM"]
        if env.get(f"{ENV_PREFIX}SQLITE_PATH"):
            data["sqlite_path"] = env[f"{ENV_PREFIX}SQLITE_PATH"]

        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc
