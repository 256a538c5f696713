"""
gcp_project
-----------

gcloud CLI 확인, GCP 프로젝트 생성, 필수 API enable 을 담당하는 모듈.
"""

from __future__ import annotations

import shutil

from .config import ProjectConfig, SetupConfig
from .logging_utils import get_logger
from .subprocess_utils import CommandError, probe, run_command


logger = get_logger(__name__)


GCLOUD_INSTALL_URL = "https://cloud.google.com/sdk/docs/install"

# setup 에서 켜는 API (GitHub Actions -> Cloud Run 배포에 필요한 것들)
SETUP_APIS = [
    "cloudresourcemanager.googleapis.com",
    "iam.googleapis.com",
    "iamcredentials.googleapis.com",
    "artifactregistry.googleapis.com",
    "run.googleapis.com",
    "secretmanager.googleapis.com",
    "cloudbuild.googleapis.com",
]

# project create 직후에 켜는 API
PROJECT_APIS = [
    "cloudresourcemanager.googleapis.com",
    "serviceusage.googleapis.com",
    "iam.googleapis.com",
    "artifactregistry.googleapis.com",
    "iamcredentials.googleapis.com",
    "cloudkms.googleapis.com",
]


def ensure_gcloud_installed() -> None:
    if shutil.which("gcloud") is None:
        raise RuntimeError(f"gcloud CLI 를 찾을 수 없습니다. 설치: {GCLOUD_INSTALL_URL}")


def enable_apis(project_id: str, apis: list[str], *, dry_run: bool = False) -> None:
    """
    API 를 하나씩 enable 한다. (이미 켜져 있으면 gcloud 가 그냥 성공한다)
    """
    logger.info("프로젝트 API 활성화: %s (%d개)", project_id, len(apis))
    for api in apis:
        run_command(
            ["gcloud", "services", "enable", api, f"--project={project_id}"],
            dry_run=dry_run,
            spinner_message=f"Enabling {api}",
        )


def enable_setup_apis(cfg: SetupConfig, *, dry_run: bool = False) -> None:
    enable_apis(cfg.gcp_project_id, SETUP_APIS, dry_run=dry_run)


def create_project(cfg: ProjectConfig, *, dry_run: bool = False) -> None:
    """
    새 GCP 프로젝트를 만든다. 프로젝트 ID 는 전역 유일해야 하므로
    이미 존재하면(다른 사람 소유일 수도 있으므로) 실패로 본다.
    """
    logger.info("GCP 프로젝트 생성: %s (%s)", cfg.project_id, cfg.project_name)
    run_command(
        ["gcloud", "projects", "create", cfg.project_id, f"--name={cfg.project_name}"],
        dry_run=dry_run,
        spinner_message=f"Creating project {cfg.project_id}",
    )


def enable_project_apis(cfg: ProjectConfig, *, dry_run: bool = False) -> None:
    enable_apis(cfg.project_id, PROJECT_APIS, dry_run=dry_run)


def get_project_number(project_id: str) -> str:
    result = run_command(
        [
            "gcloud",
            "projects",
            "describe",
            project_id,
            "--format=value(projectNumber)",
        ],
        timeout=120.0,
    )
    number = result.stdout.strip()
    if not number:
        raise RuntimeError(f"프로젝트 번호를 조회하지 못했습니다: {project_id}")
    return number


def check_project_and_apis(project_id: str, apis: list[str] | None = None) -> list[tuple[str, bool]]:
    """
    프로젝트 존재 여부와 API 활성화 여부를 (항목, 정상여부) 목록으로 돌려준다.
    실제 enable 은 하지 않는다. 프로젝트가 없으면 API 는 확인하지 않는다.
    """
    results: list[tuple[str, bool]] = []

    if not probe(["gcloud", "projects", "describe", project_id, "--quiet"]):
        results.append((f"Project: 없음 또는 접근 불가 ({project_id})", False))
        return results
    results.append((f"Project: 존재함 ({project_id})", True))

    try:
        listed = run_command(
            [
                "gcloud",
                "services",
                "list",
                "--enabled",
                f"--project={project_id}",
                "--format=value(config.name)",
                "--quiet",
            ],
            timeout=120.0,
            show_progress=False,
        )
    except CommandError as e:
        results.append((f"APIs: 조회 실패 ({e})", False))
        return results

    enabled = set(listed.stdout.split())
    for api in apis if apis is not None else SETUP_APIS:
        if api in enabled:
            results.append((f"API: 활성화됨 ({api})", True))
        else:
            results.append((f"API: 비활성화 (enable 필요) ({api})", False))

    return results
