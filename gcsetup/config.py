from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values, load_dotenv

from .logging_utils import get_logger


logger = get_logger(__name__)


DEFAULT_CONFIG_FILE = ".env.gcloud"
DEFAULT_SECRETS_FILE = ".env.secrets"

# setup 실행에 반드시 필요한 값
REQUIRED_VARS = [
    "GCP_PROJECT_ID",
    "GCP_PROJECT_NUMBER",
    "GITHUB_ORGANIZATION",
    "GITHUB_REPOSITORY",
]

# CLI 플래그 이름 -> 환경변수 이름
FLAG_TO_ENV = {
    "gcp_project_id": "GCP_PROJECT_ID",
    "gcp_project_number": "GCP_PROJECT_NUMBER",
    "service_account_name": "SERVICE_ACCOUNT_NAME",
    "artifact_registry_name": "ARTIFACT_REGISTRY_NAME",
    "artifact_registry_location": "ARTIFACT_REGISTRY_LOCATION",
    "github_org": "GITHUB_ORGANIZATION",
    "github_repo": "GITHUB_REPOSITORY",
    "cloud_run_service": "CLOUD_RUN_SERVICE",
    "cloud_run_region": "CLOUD_RUN_REGION",
}

GITHUB_OIDC_ISSUER = "https://token.actions.githubusercontent.com"


def load_env_files(base_dir: str = ".", config_file: Optional[str] = None) -> Optional[str]:
    """
    설정 파일(.env.gcloud 또는 --config 로 지정한 파일)을 로드한다.

    이미 export 된 환경변수는 덮어쓰지 않는다. (플래그 > 환경변수 > 파일 순)
    실제로 로드한 파일 경로를 반환하고, 없으면 None.
    """
    if config_file:
        path = config_file if os.path.isabs(config_file) else os.path.join(base_dir, config_file)
        if not os.path.exists(path):
            raise ValueError(f"설정 파일을 찾을 수 없습니다: {path}")
    else:
        path = os.path.join(base_dir, DEFAULT_CONFIG_FILE)
        if not os.path.exists(path):
            logger.debug("설정 파일이 없어 환경변수만 사용합니다: %s", path)
            return None

    load_dotenv(path, override=False)
    logger.info("설정 파일 사용: %s", path)
    return path


def load_secret_values(base_dir: str = ".", filename: str = DEFAULT_SECRETS_FILE) -> Dict[str, str]:
    """
    .env.secrets 의 값을 dict 로 반환한다. 값이 없는 키는 제외.
    """
    path = os.path.join(base_dir, filename)
    if not os.path.exists(path):
        return {}
    return {k: v for k, v in dotenv_values(path).items() if v}


def parse_name_list(raw: Optional[str]) -> List[str]:
    """공백/쉼표로 구분된 이름 목록을 파싱한다. 순서는 유지하고 중복은 제거."""
    if not raw:
        return []
    names: List[str] = []
    for part in re.split(r"[\s,]+", raw):
        if part and part not in names:
            names.append(part)
    return names


def _lookup(name: str, overrides: Mapping[str, Optional[str]], default: str = "") -> str:
    val = overrides.get(name)
    if val:
        return val
    return os.getenv(name) or default


def overrides_from_flags(flags: Mapping[str, Optional[str]]) -> Dict[str, str]:
    """click 옵션 값을 환경변수 이름 기준 dict 로 변환한다. (None/빈 값 제외)"""
    return {FLAG_TO_ENV[k]: v for k, v in flags.items() if k in FLAG_TO_ENV and v}


def get_project_id(overrides: Optional[Mapping[str, Optional[str]]] = None) -> str:
    project_id = _lookup("GCP_PROJECT_ID", overrides or {})
    if not project_id:
        raise ValueError("GCP_PROJECT_ID 가 필요합니다.")
    return project_id


def service_account_email(name: str, project_id: str) -> str:
    return f"{name}@{project_id}.iam.gserviceaccount.com"


def artifact_registry_url(location: str, project_id: str, name: str) -> str:
    return f"{location}-docker.pkg.dev/{project_id}/{name}"


@dataclass
class SetupConfig:
    gcp_project_id: str
    gcp_project_number: str
    github_organization: str
    github_repository: str

    service_account_name: str = "github-actions"
    artifact_registry_name: str = "docker-registry"
    artifact_registry_location: str = "europe-west1"
    cloud_run_service: str = ""
    cloud_run_region: str = ""

    workload_identity_pool: str = "github-pool"
    workload_identity_provider_id: str = "github-provider"

    secrets_to_create: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        # 셸 스크립트 시절과 같은 기본값 규칙
        if not self.cloud_run_service:
            self.cloud_run_service = self.github_repository
        if not self.cloud_run_region:
            self.cloud_run_region = self.artifact_registry_location

    @property
    def service_account_email(self) -> str:
        return service_account_email(self.service_account_name, self.gcp_project_id)

    @property
    def github_repo(self) -> str:
        return f"{self.github_organization}/{self.github_repository}"

    @property
    def workload_identity_pool_path(self) -> str:
        return (
            f"projects/{self.gcp_project_number}/locations/global/"
            f"workloadIdentityPools/{self.workload_identity_pool}"
        )

    @property
    def workload_identity_provider(self) -> str:
        return f"{self.workload_identity_pool_path}/providers/{self.workload_identity_provider_id}"

    @property
    def repository_principal(self) -> str:
        return (
            f"principalSet://iam.googleapis.com/{self.workload_identity_pool_path}"
            f"/attribute.repository/{self.github_repo}"
        )

    @property
    def artifact_registry_url(self) -> str:
        return artifact_registry_url(
            self.artifact_registry_location, self.gcp_project_id, self.artifact_registry_name
        )

    @classmethod
    def from_env(cls, overrides: Optional[Mapping[str, Optional[str]]] = None) -> "SetupConfig":
        ov = overrides or {}
        missing = [name for name in REQUIRED_VARS if not _lookup(name, ov)]

        cfg = cls(
            gcp_project_id=_lookup("GCP_PROJECT_ID", ov),
            gcp_project_number=_lookup("GCP_PROJECT_NUMBER", ov),
            github_organization=_lookup("GITHUB_ORGANIZATION", ov),
            github_repository=_lookup("GITHUB_REPOSITORY", ov),
            service_account_name=_lookup("SERVICE_ACCOUNT_NAME", ov, "github-actions"),
            artifact_registry_name=_lookup("ARTIFACT_REGISTRY_NAME", ov, "docker-registry"),
            artifact_registry_location=_lookup("ARTIFACT_REGISTRY_LOCATION", ov, "europe-west1"),
            cloud_run_service=_lookup("CLOUD_RUN_SERVICE", ov),
            cloud_run_region=_lookup("CLOUD_RUN_REGION", ov),
            workload_identity_pool=_lookup("WORKLOAD_IDENTITY_POOL", ov, "github-pool"),
            workload_identity_provider_id=_lookup("WORKLOAD_IDENTITY_PROVIDER", ov, "github-provider"),
            secrets_to_create=parse_name_list(_lookup("SECRETS_TO_CREATE", ov)),
        )

        if missing:
            raise ValueError(
                "필수 환경변수가 누락되었습니다:\n  - " + "\n  - ".join(missing)
            )

        if not cfg.gcp_project_number.isdigit():
            raise ValueError(
                f"GCP_PROJECT_NUMBER 는 숫자여야 합니다: {cfg.gcp_project_number!r}"
            )

        return cfg


@dataclass
class ProjectConfig:
    """project create 에서 프롬프트로 채우는 값들."""

    project_id: str
    project_name: str
    service_account_name: str = "github-actions"
    artifact_registry_name: str = "docker"
    artifact_registry_location: str = "us-central1"
    github_organization: str = ""

    workload_identity_pool: str = "github-pool"
    workload_identity_provider_id: str = "github-provider"

    @property
    def service_account_email(self) -> str:
        return service_account_email(self.service_account_name, self.project_id)

    @property
    def artifact_registry_url(self) -> str:
        return artifact_registry_url(
            self.artifact_registry_location, self.project_id, self.artifact_registry_name
        )


@dataclass
class LoadBalancerService:
    name: str
    protocol: str = "HTTP"
    port: int = 8080
    path: str = ""

    def __post_init__(self) -> None:
        self.protocol = "HTTPS" if self.protocol.upper() == "HTTPS" else "HTTP"
        if not self.path:
            self.path = f"/{self.name}/*"

    @property
    def health_check(self) -> str:
        return f"{self.name}-hc"

    @property
    def backend(self) -> str:
        return f"{self.name}-backend"


@dataclass
class LoadBalancerConfig:
    project_id: str
    name: str = "gcloud-lb"
    network: str = "default"
    subnet: str = ""
    health_check_port: int = 8080
    use_ssl: bool = False
    ssl_certificate: str = ""
    services: List[LoadBalancerService] = field(default_factory=list)

    def __post_init__(self) -> None:
        # 인증서 이름 없이 HTTPS 는 만들 수 없으므로 HTTP 로 내린다.
        if self.use_ssl and not self.ssl_certificate:
            logger.warning("SSL 인증서 이름이 없어 HTTP 로 구성합니다.")
            self.use_ssl = False
        if not self.services:
            self.services = [LoadBalancerService(name="service-1")]

    @property
    def protocol(self) -> str:
        return "HTTPS" if self.use_ssl else "HTTP"

    @property
    def frontend_port(self) -> int:
        return 443 if self.use_ssl else 80

    @property
    def url_map(self) -> str:
        return f"{self.name}-url-map"

    @property
    def proxy(self) -> str:
        return f"{self.name}-proxy"

    @property
    def address(self) -> str:
        return f"{self.name}-ip"

    @property
    def forwarding_rule(self) -> str:
        return f"{self.name}-forwarding-rule"
