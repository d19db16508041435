"""Data models for the Rancher API."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, SecretStr


LOCAL_LOGIN_PATH = "/v3-public/localProviders/local?action=login"
LDAP_LOGIN_PATH = "/v3-public/openLdapProviders/openldap?action=login"


class AuthType(str, Enum):
    """Rancher authentication provider."""

    LOCAL = "local"
    LDAP = "ldap"

    @property
    def login_path(self) -> str:
        if self is AuthType.LDAP:
            return LDAP_LOGIN_PATH
        return LOCAL_LOGIN_PATH


class RancherClientConfig(BaseModel):
    """Connection settings for a Rancher client."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    username: str = ""
    password: SecretStr = SecretStr("")
    auth_type: AuthType = AuthType.LOCAL
    insecure_skip_tls_verify: bool = False
    timeout: float = Field(default=30.0, gt=0)


class LoginResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: str = ""


class RancherCluster(BaseModel):
    """Cluster managed by Rancher."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""


class ClusterCollection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: list[RancherCluster] = Field(default_factory=list)


class GeneratedKubeconfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    config: str


class TokenInfo(BaseModel):
    """Token information returned by ``/v3/tokens/<name>``.

    A ``ttl`` of zero means the token never expires.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    ttl: int = 0
    expires_at: str = Field("", alias="expiresAt")
    expired: bool = False
    created: str = ""
    enabled: bool = True
