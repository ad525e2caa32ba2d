# pushgate/services/providers.py
"""
Provider settings, read from env the same way for every S3-compatible backend.
Each field takes the first non-empty env var from its alias list.
"""
from __future__ import annotations

from typing import ClassVar, Dict, List, Optional, Type

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pushgate.core.errors import ConfigError


def _env(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class ProviderSettings(BaseSettings):
    provider: ClassVar[str] = "s3-compatible"
    bucket: str = Field("", validation_alias=_env("S3_BUCKET", "S3_BUCKET_NAME"))
    region: str = Field("us-east-1", validation_alias=_env("S3_REGION", "REGION"))
    access_key_id: Optional[str] = Field(None, validation_alias=_env("S3_ACCESS_KEY_ID", "ACCESS_KEY_ID"))
    secret_access_key: Optional[str] = Field(
        None, validation_alias=_env("S3_SECRET_ACCESS_KEY", "SECRET_ACCESS_KEY")
    )
    session_token: Optional[str] = None
    endpoint: Optional[str] = Field(None, validation_alias=_env("S3_ENDPOINT", "S3_COMPATIBLE_ENDPOINT"))
    custom_domain: Optional[str] = Field(None, validation_alias=_env("S3_CUSTOM_DOMAIN"))
    force_path_style: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
        env_ignore_empty=True,
    )

    # fields that must be set before the provider can sign anything
    required_fields: ClassVar[List[str]] = ["bucket", "endpoint", "access_key_id", "secret_access_key"]

    def missing_fields(self) -> List[str]:
        return [f for f in self.required_fields if not getattr(self, f, None)]

    def require_complete(self) -> "ProviderSettings":
        missing = self.missing_fields()
        if missing:
            raise ConfigError(
                f"Provider configuration invalid: missing {', '.join(missing)}",
                code="CONFIG_MISSING",
                context={"provider": self.provider, "missing": missing},
            )
        return self


class AwsProviderSettings(ProviderSettings):
    provider: ClassVar[str] = "aws"
    bucket: str = Field("", validation_alias=_env("AWS_S3_BUCKET", "S3_BUCKET", "S3_BUCKET_NAME"))
    region: str = Field("us-east-1", validation_alias=_env("AWS_REGION", "S3_REGION"))
    access_key_id: Optional[str] = Field(None, validation_alias=_env("AWS_ACCESS_KEY_ID", "S3_ACCESS_KEY_ID"))
    secret_access_key: Optional[str] = Field(
        None, validation_alias=_env("AWS_SECRET_ACCESS_KEY", "S3_SECRET_ACCESS_KEY")
    )
    session_token: Optional[str] = Field(None, validation_alias=_env("AWS_SESSION_TOKEN"))
    force_path_style: bool = False

    # credentials may come from the default boto3 chain (profile / IAM role)
    required_fields: ClassVar[List[str]] = ["bucket", "region"]


class CloudflareR2Settings(ProviderSettings):
    provider: ClassVar[str] = "cloudflare-r2"
    account_id: Optional[str] = Field(None, validation_alias=_env("CLOUDFLARE_ACCOUNT_ID", "R2_ACCOUNT_ID"))
    bucket: str = Field("", validation_alias=_env("CLOUDFLARE_R2_BUCKET", "R2_BUCKET"))
    region: str = "auto"
    access_key_id: Optional[str] = Field(
        None, validation_alias=_env("CLOUDFLARE_R2_ACCESS_KEY_ID", "R2_ACCESS_KEY_ID")
    )
    secret_access_key: Optional[str] = Field(
        None, validation_alias=_env("CLOUDFLARE_R2_SECRET_ACCESS_KEY", "R2_SECRET_ACCESS_KEY")
    )
    endpoint: Optional[str] = Field(None, validation_alias=_env("CLOUDFLARE_R2_ENDPOINT", "R2_ENDPOINT"))
    custom_domain: Optional[str] = Field(None, validation_alias=_env("R2_CUSTOM_DOMAIN"))
    force_path_style: bool = True

    @model_validator(mode="after")
    def derive_endpoint(self):
        if not self.endpoint and self.account_id:
            self.endpoint = f"https://{self.account_id}.r2.cloudflarestorage.com"
        return self


class DigitalOceanSpacesSettings(ProviderSettings):
    provider: ClassVar[str] = "digitalocean-spaces"
    region: str = Field("nyc3", validation_alias=_env("DO_SPACES_REGION", "DIGITALOCEAN_SPACES_REGION"))
    bucket: str = Field("", validation_alias=_env("DO_SPACES_BUCKET", "DIGITALOCEAN_SPACES_BUCKET"))
    access_key_id: Optional[str] = Field(
        None, validation_alias=_env("DO_SPACES_ACCESS_KEY_ID", "DIGITALOCEAN_SPACES_ACCESS_KEY_ID")
    )
    secret_access_key: Optional[str] = Field(
        None, validation_alias=_env("DO_SPACES_SECRET_ACCESS_KEY", "DIGITALOCEAN_SPACES_SECRET_ACCESS_KEY")
    )
    endpoint: Optional[str] = Field(None, validation_alias=_env("DO_SPACES_ENDPOINT", "DIGITALOCEAN_SPACES_ENDPOINT"))
    custom_domain: Optional[str] = Field(None, validation_alias=_env("DO_SPACES_CUSTOM_DOMAIN"))
    force_path_style: bool = False

    @model_validator(mode="after")
    def derive_endpoint(self):
        if not self.endpoint:
            self.endpoint = f"https://{self.region}.digitaloceanspaces.com"
        return self


class MinioSettings(ProviderSettings):
    provider: ClassVar[str] = "minio"
    endpoint: Optional[str] = Field("localhost:9000", validation_alias=_env("MINIO_ENDPOINT"))
    bucket: str = Field("", validation_alias=_env("MINIO_BUCKET"))
    access_key_id: Optional[str] = Field(None, validation_alias=_env("MINIO_ACCESS_KEY_ID", "MINIO_ACCESS_KEY"))
    secret_access_key: Optional[str] = Field(
        None, validation_alias=_env("MINIO_SECRET_ACCESS_KEY", "MINIO_SECRET_KEY")
    )
    region: str = Field("us-east-1", validation_alias=_env("MINIO_REGION"))
    custom_domain: Optional[str] = Field(None, validation_alias=_env("MINIO_CUSTOM_DOMAIN"))
    use_ssl: bool = Field(False, validation_alias=_env("MINIO_USE_SSL"))
    port: Optional[int] = Field(None, validation_alias=_env("MINIO_PORT"))
    force_path_style: bool = True

    @model_validator(mode="after")
    def derive_endpoint(self):
        if self.endpoint and "://" not in self.endpoint:
            scheme = "https" if self.use_ssl else "http"
            host = self.endpoint
            if self.port and ":" not in host:
                host = f"{host}:{self.port}"
            self.endpoint = f"{scheme}://{host}"
        return self


PROVIDER_SPECS: Dict[str, Type[ProviderSettings]] = {
    "aws": AwsProviderSettings,
    "cloudflare-r2": CloudflareR2Settings,
    "digitalocean-spaces": DigitalOceanSpacesSettings,
    "minio": MinioSettings,
    "s3-compatible": ProviderSettings,
}


def load_provider_settings(kind: str, **overrides) -> ProviderSettings:
    """load_provider_settings("aws", bucket="my-bucket") -> explicit values win over env."""
    try:
        cls = PROVIDER_SPECS[kind]
    except KeyError:
        raise ConfigError(
            f"Unknown provider type: {kind}. Available: {sorted(PROVIDER_SPECS)}",
            code="PROVIDER_UNSUPPORTED",
            context={"provider": kind},
        )
    return cls(**overrides)
