"""
gcp_iam
-------

GitHub Actions 배포용 서비스 계정을 만들고
프로젝트 수준 IAM 역할을 부여하는 모듈.
"""

from __future__ import annotations

from .config import SetupConfig
from .logging_utils import get_logger
from .subprocess_utils import ensure_resource, probe, run_command


logger = get_logger(__name__)


DEPLOY_ROLES = [
    "roles/run.developer",
    "roles/artifactregistry.writer",
    "roles/secretmanager.secretAccessor",
    "roles/iam.serviceAccountUser",
    "roles/cloudbuild.builds.builder",
    "roles/logging.logWriter",
]


def _describe_cmd(email: str, project_id: str) -> list[str]:
    return [
        "gcloud",
        "iam",
        "service-accounts",
        "describe",
        email,
        f"--project={project_id}",
    ]


def ensure_service_account(
    name: str,
    project_id: str,
    email: str,
    *,
    dry_run: bool = False,
) -> bool:
    """서비스 계정이 없으면 생성한다."""
    create_cmd = [
        "gcloud",
        "iam",
        "service-accounts",
        "create",
        name,
        f"--project={project_id}",
        f"--display-name={name} Service Account",
        "--description=Service account for GitHub Actions CI/CD",
    ]
    return ensure_resource(
        f"service account {email}",
        _describe_cmd(email, project_id),
        create_cmd,
        dry_run=dry_run,
    )


def grant_project_roles(project_id: str, email: str, roles: list[str], *, dry_run: bool = False) -> None:
    """
    add-iam-policy-binding 은 멱등이므로 매번 그대로 호출한다.
    --condition=None 이 없으면 조건부 바인딩이 있는 프로젝트에서 프롬프트가 뜬다.
    """
    for role in roles:
        logger.info("역할 부여: %s -> %s", role, email)
        run_command(
            [
                "gcloud",
                "projects",
                "add-iam-policy-binding",
                project_id,
                f"--member=serviceAccount:{email}",
                f"--role={role}",
                "--condition=None",
                "--quiet",
            ],
            dry_run=dry_run,
            spinner_message=f"Granting {role}",
        )


def ensure_deploy_service_account(cfg: SetupConfig, *, dry_run: bool = False) -> None:
    ensure_service_account(
        cfg.service_account_name,
        cfg.gcp_project_id,
        cfg.service_account_email,
        dry_run=dry_run,
    )
    grant_project_roles(cfg.gcp_project_id, cfg.service_account_email, DEPLOY_ROLES, dry_run=dry_run)


def check_service_account(cfg: SetupConfig) -> tuple[str, bool]:
    email = cfg.service_account_email
    if probe(_describe_cmd(email, cfg.gcp_project_id)):
        return f"Service account: 존재함 ({email})", True
    return f"Service account: 없음 (생성이 필요함) ({email})", False
