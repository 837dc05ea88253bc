"""Settings for an interceptor registry."""

from __future__ import annotations

import os
from typing import List, Literal

from pydantic import BaseModel, field_validator


ClientName = Literal["requests", "httpx"]

SUPPORTED_CLIENTS: tuple[str, ...] = ("requests", "httpx")


class ProxyConfig(BaseModel):
    """Which HTTP clients get patched and where the WSGI app is mounted."""

    clients: List[ClientName] = list(SUPPORTED_CLIENTS)
    script_name: str = ""

    @field_validator("clients")
    @classmethod
    def dedupe_clients(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @field_validator("script_name")
    @classmethod
    def normalize_script_name(cls, value: str) -> str:
        value = value.rstrip("/")
        if value and not value.startswith("/"):
            raise ValueError("script_name must start with '/'")
        return value

    @classmethod
    def from_env(cls) -> "ProxyConfig":
        """Build a config from ``INPROC_PROXY_*`` environment variables."""

        values: dict = {}
        clients = os.getenv("INPROC_PROXY_CLIENTS")
        if clients:
            values["clients"] = [c.strip() for c in clients.split(",") if c.strip()]
        script_name = os.getenv("INPROC_PROXY_SCRIPT_NAME")
        if script_name is not None:
            values["script_name"] = script_name
        return cls(**values)
