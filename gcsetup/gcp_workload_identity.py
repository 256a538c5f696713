"""
gcp_workload_identity
---------------------

GitHub Actions OIDC 토큰으로 서비스 계정을 가장(impersonate)할 수 있도록
Workload Identity Pool / Provider 와 IAM 바인딩을 구성하는 모듈.
"""

from __future__ import annotations

from .config import GITHUB_OIDC_ISSUER, ProjectConfig, SetupConfig
from .logging_utils import get_logger
from .subprocess_utils import ensure_resource, probe, run_command


logger = get_logger(__name__)


ATTRIBUTE_MAPPING = ",".join(
    [
        "google.subject=assertion.sub",
        "attribute.actor=assertion.actor",
        "attribute.repository=assertion.repository",
        "attribute.repository_owner=assertion.repository_owner",
    ]
)


def _pool_describe_cmd(project_id: str, pool_id: str) -> list[str]:
    return [
        "gcloud",
        "iam",
        "workload-identity-pools",
        "describe",
        pool_id,
        f"--project={project_id}",
        "--location=global",
    ]


def _provider_describe_cmd(project_id: str, pool_id: str, provider_id: str) -> list[str]:
    return [
        "gcloud",
        "iam",
        "workload-identity-pools",
        "providers",
        "describe",
        provider_id,
        f"--project={project_id}",
        "--location=global",
        f"--workload-identity-pool={pool_id}",
    ]


def ensure_pool(project_id: str, pool_id: str, *, dry_run: bool = False) -> bool:
    create_cmd = [
        "gcloud",
        "iam",
        "workload-identity-pools",
        "create",
        pool_id,
        f"--project={project_id}",
        "--location=global",
        "--display-name=GitHub Actions Pool",
    ]
    return ensure_resource(
        f"workload identity pool {pool_id}",
        _pool_describe_cmd(project_id, pool_id),
        create_cmd,
        dry_run=dry_run,
    )


def ensure_provider(
    project_id: str,
    pool_id: str,
    provider_id: str,
    *,
    github_org: str = "",
    dry_run: bool = False,
) -> bool:
    """
    GitHub OIDC provider 를 만든다.

    github_org 가 주어지면 해당 org 소유 리포지토리의 토큰만 받도록
    attribute condition 을 건다.
    """
    create_cmd = [
        "gcloud",
        "iam",
        "workload-identity-pools",
        "providers",
        "create-oidc",
        provider_id,
        f"--project={project_id}",
        "--location=global",
        f"--workload-identity-pool={pool_id}",
        "--display-name=GitHub Provider",
        f"--attribute-mapping={ATTRIBUTE_MAPPING}",
        f"--issuer-uri={GITHUB_OIDC_ISSUER}",
    ]
    if github_org:
        create_cmd.append(f"--attribute-condition=assertion.repository_owner=='{github_org}'")
    else:
        logger.warning("GitHub org 가 없어 attribute condition 없이 provider 를 만듭니다: %s", provider_id)

    return ensure_resource(
        f"OIDC provider {provider_id}",
        _provider_describe_cmd(project_id, pool_id, provider_id),
        create_cmd,
        dry_run=dry_run,
    )


def allow_repository_impersonation(cfg: SetupConfig, *, dry_run: bool = False) -> None:
    """GitHub 리포지토리가 서비스 계정을 가장할 수 있도록 workloadIdentityUser 를 부여한다."""
    logger.info("리포지토리 접근 설정: %s -> %s", cfg.github_repo, cfg.service_account_email)
    run_command(
        [
            "gcloud",
            "iam",
            "service-accounts",
            "add-iam-policy-binding",
            cfg.service_account_email,
            f"--project={cfg.gcp_project_id}",
            "--role=roles/iam.workloadIdentityUser",
            f"--member={cfg.repository_principal}",
            "--quiet",
        ],
        dry_run=dry_run,
    )


def setup_workload_identity(cfg: SetupConfig, *, dry_run: bool = False) -> None:
    ensure_pool(cfg.gcp_project_id, cfg.workload_identity_pool, dry_run=dry_run)
    ensure_provider(
        cfg.gcp_project_id,
        cfg.workload_identity_pool,
        cfg.workload_identity_provider_id,
        github_org=cfg.github_organization,
        dry_run=dry_run,
    )
    allow_repository_impersonation(cfg, dry_run=dry_run)


def setup_project_workload_identity(cfg: ProjectConfig, *, dry_run: bool = False) -> None:
    """
    project create 용. 리포지토리가 아직 정해지지 않았으므로
    pool/provider 까지만 만들고 바인딩은 setup 에 맡긴다.
    """
    ensure_pool(cfg.project_id, cfg.workload_identity_pool, dry_run=dry_run)
    ensure_provider(
        cfg.project_id,
        cfg.workload_identity_pool,
        cfg.workload_identity_provider_id,
        github_org=cfg.github_organization,
        dry_run=dry_run,
    )


def check_workload_identity(cfg: SetupConfig) -> list[tuple[str, bool]]:
    results: list[tuple[str, bool]] = []
    pool = cfg.workload_identity_pool
    provider = cfg.workload_identity_provider_id

    if probe(_pool_describe_cmd(cfg.gcp_project_id, pool)):
        results.append((f"Workload Identity Pool: 존재함 ({pool})", True))
    else:
        results.append((f"Workload Identity Pool: 없음 (생성이 필요함) ({pool})", False))
        return results

    if probe(_provider_describe_cmd(cfg.gcp_project_id, pool, provider)):
        results.append((f"OIDC Provider: 존재함 ({provider})", True))
    else:
        results.append((f"OIDC Provider: 없음 (생성이 필요함) ({provider})", False))

    return results
