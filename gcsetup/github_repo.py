"""
github_repo
-----------

gh CLI 로 GitHub 리포지토리의 Actions secrets / variables 를 설정하는 모듈.
"""

from __future__ import annotations

import shutil
from typing import Dict, List

from .config import SetupConfig
from .logging_utils import get_logger
from .subprocess_utils import CommandError, probe, run_command


logger = get_logger(__name__)


GH_INSTALL_URL = "https://cli.github.com/"


def repository_secrets(cfg: SetupConfig) -> Dict[str, str]:
    return {
        "GCP_SERVICE_ACCOUNT": cfg.service_account_email,
        "GCP_WORKLOAD_IDENTITY_PROVIDER": cfg.workload_identity_provider,
    }


def repository_variables(cfg: SetupConfig) -> Dict[str, str]:
    return {
        "CLOUD_RUN_SERVICE": cfg.cloud_run_service,
        "CLOUD_RUN_REGION": cfg.cloud_run_region,
        "ARTIFACT_REGISTRY_URL": cfg.artifact_registry_url,
    }


def ensure_gh_ready() -> None:
    """gh 설치 및 인증 여부를 확인한다."""
    if shutil.which("gh") is None:
        raise RuntimeError(f"GitHub CLI (gh) 를 찾을 수 없습니다. 설치: {GH_INSTALL_URL}")
    if not probe(["gh", "auth", "status"]):
        raise RuntimeError("GitHub CLI 인증이 되어 있지 않습니다. 실행: gh auth login")


def verify_repository_access(repo: str, *, dry_run: bool = False) -> None:
    cmd = ["gh", "repo", "view", repo, "--json", "name"]
    if dry_run:
        run_command(cmd, dry_run=True)
        return
    logger.info("리포지토리 접근 확인: %s", repo)
    if not probe(cmd):
        raise RuntimeError(
            f"리포지토리에 접근할 수 없습니다: {repo} "
            "(리포지토리가 존재하는지, admin 권한이 있는지 확인하세요)"
        )


def set_secret(repo: str, name: str, value: str, *, dry_run: bool = False) -> None:
    """
    값은 --body 대신 stdin 으로 넘긴다. (프로세스 목록/로그에 남지 않도록)
    """
    logger.info("secret 설정: %s (%s)", name, repo)
    try:
        run_command(
            ["gh", "secret", "set", name, "--repo", repo],
            input_text=value,
            dry_run=dry_run,
        )
    except CommandError as e:
        raise RuntimeError(f"secret {name} 설정 실패: {e}") from e


def set_variable(repo: str, name: str, value: str, *, dry_run: bool = False) -> None:
    logger.info("variable 설정: %s=%s (%s)", name, value, repo)
    try:
        run_command(
            ["gh", "variable", "set", name, "--repo", repo, "--body", value],
            dry_run=dry_run,
        )
    except CommandError as e:
        raise RuntimeError(f"variable {name} 설정 실패: {e}") from e


def configure_repository(cfg: SetupConfig, *, dry_run: bool = False) -> None:
    repo = cfg.github_repo
    verify_repository_access(repo, dry_run=dry_run)

    for name, value in repository_secrets(cfg).items():
        set_secret(repo, name, value, dry_run=dry_run)

    for name, value in repository_variables(cfg).items():
        set_variable(repo, name, value, dry_run=dry_run)

    logger.info("확인: https://github.com/%s/settings/secrets/actions", repo)


def _list_names(kind: str, repo: str) -> List[str]:
    # 출력 형식: NAME<TAB>VALUE/UPDATED ...
    result = run_command(["gh", kind, "list", "--repo", repo], timeout=120.0, show_progress=False)
    names: List[str] = []
    for line in result.stdout.splitlines():
        parts = line.split()
        if parts:
            names.append(parts[0])
    return names


def check_repository(cfg: SetupConfig) -> list[tuple[str, bool]]:
    """
    리포지토리 접근 가능 여부와 secrets/variables 설정 여부를 확인한다.
    (값은 비교하지 않는다. gh 가 secret 값을 돌려주지 않기 때문)
    """
    repo = cfg.github_repo
    results: list[tuple[str, bool]] = []

    if not probe(["gh", "repo", "view", repo, "--json", "name"]):
        results.append((f"GitHub: 리포지토리 접근 불가 ({repo})", False))
        return results
    results.append((f"GitHub: 리포지토리 접근 가능 ({repo})", True))

    for kind, expected in (("secret", repository_secrets(cfg)), ("variable", repository_variables(cfg))):
        try:
            present = set(_list_names(kind, repo))
        except CommandError as e:
            results.append((f"GitHub {kind}s: 조회 실패 ({e})", False))
            continue
        for name in expected:
            if name in present:
                results.append((f"GitHub {kind}: 설정됨 ({name})", True))
            else:
                results.append((f"GitHub {kind}: 없음 (설정이 필요함) ({name})", False))

    return results
