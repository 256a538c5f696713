"""
gcp_artifact_registry
---------------------

GitHub Actions 가 이미지를 푸시할 Docker 형식 Artifact Registry 리포지토리를
준비하는 모듈.
"""

from __future__ import annotations

from .logging_utils import get_logger
from .subprocess_utils import ensure_resource, probe


logger = get_logger(__name__)


def _describe_cmd(name: str, location: str, project_id: str) -> list[str]:
    return [
        "gcloud",
        "artifacts",
        "repositories",
        "describe",
        name,
        f"--location={location}",
        f"--project={project_id}",
    ]


def ensure_repository(name: str, location: str, project_id: str, *, dry_run: bool = False) -> bool:
    """
    Artifact Registry 리포가 존재하는지 확인하고, 없으면 생성한다.
    """
    logger.info("Artifact Registry 리포 확인: %s (%s)", name, location)
    create_cmd = [
        "gcloud",
        "artifacts",
        "repositories",
        "create",
        name,
        f"--project={project_id}",
        f"--location={location}",
        "--repository-format=docker",
        "--description=Container registry for CI/CD",
    ]
    created = ensure_resource(
        f"artifact registry {name}",
        _describe_cmd(name, location, project_id),
        create_cmd,
        dry_run=dry_run,
    )
    logger.info("Registry URL: %s-docker.pkg.dev/%s/%s", location, project_id, name)
    return created


def check_repository(name: str, location: str, project_id: str) -> tuple[str, bool]:
    """
    Artifact Registry 리포지토리 존재 여부를 확인만 하고, 생성하지 않는다.
    """
    if probe(_describe_cmd(name, location, project_id) + ["--quiet"]):
        return f"Artifact Registry: 리포지토리 존재함 ({name})", True
    return f"Artifact Registry: 리포지토리 없음 (생성이 필요함) ({name})", False
