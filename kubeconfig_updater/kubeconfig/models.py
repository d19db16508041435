"""Data models for kubeconfig files.

In memory, clusters, contexts and users are kept as maps keyed by name. On
disk they use the kubectl layout of named lists (``clusters[].cluster``,
``contexts[].context``, ``users[].user``). Keys without a dedicated field are
preserved as extra attributes so a load/save cycle loses nothing.
"""

import base64
import binascii
from collections.abc import Mapping
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


RANCHER_PROXY_PATH = "/k8s/clusters/"


class Cluster(BaseModel):
    """Connection information for a Kubernetes cluster."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    server: str = ""
    certificate_authority_data: bytes | None = Field(
        None, alias="certificate-authority-data"
    )
    certificate_authority: str | None = Field(None, alias="certificate-authority")
    insecure_skip_tls_verify: bool | None = Field(
        None, alias="insecure-skip-tls-verify"
    )
    tls_server_name: str | None = Field(None, alias="tls-server-name")
    proxy_url: str | None = Field(None, alias="proxy-url")
    disable_compression: bool | None = Field(None, alias="disable-compression")

    @field_validator("certificate_authority_data", mode="before")
    @classmethod
    def decode_certificate_authority_data(cls, v: Any) -> Any:
        """Decode base64 certificate data read from a kubeconfig file."""
        if isinstance(v, str):
            try:
                return base64.b64decode("".join(v.split()), validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"Invalid base64 certificate data: {e}") from e
        return v

    @field_serializer("certificate_authority_data")
    def serialize_certificate_authority_data(self, v: bytes | None) -> str | None:
        if v is None:
            return None
        return base64.b64encode(v).decode("ascii")

    @property
    def is_proxied(self) -> bool:
        """Whether the server address routes through the Rancher proxy."""
        return RANCHER_PROXY_PATH in self.server

    @property
    def is_direct(self) -> bool:
        """Whether the server address points directly at the cluster."""
        return bool(self.server) and not self.is_proxied

    @property
    def extra_attributes(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class Context(BaseModel):
    """Pairs a cluster with a user by name."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    cluster: str = ""
    user: str = ""
    namespace: str | None = None


class AuthInfo(BaseModel):
    """Credentials of a kubeconfig user."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    token: str | None = None


def _named_list_to_map(value: Any, key: str) -> Any:
    """Convert kubectl's ``[{name: ..., <key>: {...}}]`` layout to a map."""
    if value is None:
        return {}
    if isinstance(value, list):
        result: dict[str, Any] = {}
        for item in value:
            if not isinstance(item, dict) or not item.get("name"):
                raise ValueError(f"Each entry needs a 'name' and a '{key}' mapping")
            result[str(item["name"])] = item.get(key) or {}
        return result
    return value


class Kubeconfig(BaseModel):
    """A kubeconfig: named clusters, contexts and users plus the current context."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    api_version: str = Field("v1", alias="apiVersion")
    kind: str = "Config"
    preferences: dict[str, Any] = Field(default_factory=dict)
    clusters: dict[str, Cluster] | None = Field(default_factory=dict)
    contexts: dict[str, Context] | None = Field(default_factory=dict)
    auth_infos: dict[str, AuthInfo] | None = Field(default_factory=dict, alias="users")
    current_context: str = Field("", alias="current-context")
    extensions: list[Any] | None = None

    @field_validator("clusters", mode="before")
    @classmethod
    def parse_clusters(cls, v: Any) -> Any:
        return _named_list_to_map(v, "cluster")

    @field_validator("contexts", mode="before")
    @classmethod
    def parse_contexts(cls, v: Any) -> Any:
        return _named_list_to_map(v, "context")

    @field_validator("auth_infos", mode="before")
    @classmethod
    def parse_auth_infos(cls, v: Any) -> Any:
        return _named_list_to_map(v, "user")

    @field_validator("preferences", mode="before")
    @classmethod
    def parse_preferences(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("current_context", mode="before")
    @classmethod
    def parse_current_context(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def is_empty(self) -> bool:
        """Whether the kubeconfig holds no clusters, contexts or users."""
        return not (self.clusters or self.contexts or self.auth_infos)

    def find_dangling_references(self) -> list[str]:
        """List contexts whose cluster or user reference does not resolve.

        Returns:
            Human-readable descriptions, empty if the kubeconfig is consistent
        """
        clusters = self.clusters or {}
        auth_infos = self.auth_infos or {}
        problems: list[str] = []
        for name, context in sorted((self.contexts or {}).items()):
            if context.cluster and context.cluster not in clusters:
                problems.append(
                    f"context {name}: cluster {context.cluster} not found"
                )
            if context.user and context.user not in auth_infos:
                problems.append(f"context {name}: user {context.user} not found")
        return problems

    def to_dict(self) -> dict[str, Any]:
        """Convert to the kubectl file layout."""

        def named(entries: Mapping[str, BaseModel] | None, key: str) -> list[Any]:
            return [
                {
                    "name": name,
                    key: entry.model_dump(
                        mode="json", by_alias=True, exclude_none=True
                    ),
                }
                for name, entry in sorted((entries or {}).items())
            ]

        data: dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "preferences": self.preferences,
            "clusters": named(self.clusters, "cluster"),
            "contexts": named(self.contexts, "context"),
            "users": named(self.auth_infos, "user"),
            "current-context": self.current_context,
        }
        if self.extensions is not None:
            data["extensions"] = self.extensions
        data.update(self.model_extra or {})
        return data

    def to_yaml(self) -> str:
        """Serialize to kubectl-compatible YAML."""
        return yaml.safe_dump(
            self.to_dict(),
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )

    @classmethod
    def from_yaml(cls, text: str) -> "Kubeconfig":
        """Parse kubeconfig YAML; empty documents yield an empty kubeconfig.

        Raises:
            yaml.YAMLError: If the text is not valid YAML
            pydantic.ValidationError: If the document is not a kubeconfig
        """
        data = yaml.safe_load(text)
        if data is None:
            return cls()
        return cls.model_validate(data)
