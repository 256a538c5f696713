"""
scaffold
--------

`gcsetup init`: 현재 디렉토리에 GitHub Actions 워크플로우와
.env.gcloud 템플릿을 만든다.
"""

from __future__ import annotations

import os
from importlib import resources

from .config import DEFAULT_CONFIG_FILE
from .logging_utils import get_logger


logger = get_logger(__name__)


WORKFLOW_PATH = os.path.join(".github", "workflows", "gcloud-deploy.yml")

# 패키지 내 템플릿 이름 -> 생성할 경로
TEMPLATES = {
    "gcloud-deploy.yml": WORKFLOW_PATH,
    "env.gcloud.template": DEFAULT_CONFIG_FILE,
}

GITIGNORE_ENTRY = "\n# GCloud setup\n.env.gcloud\n"


def _read_template(name: str) -> str:
    return resources.files("gcsetup.templates").joinpath(name).read_text(encoding="utf-8")


def write_templates(base_dir: str = ".", *, force: bool = False) -> list[tuple[str, str]]:
    """
    템플릿 파일을 쓴다. 이미 있는 파일은 force 가 아니면 건너뛴다.

    Returns:
        (경로, "created" | "overwritten" | "skipped") 목록
    """
    results: list[tuple[str, str]] = []
    for template, rel_path in TEMPLATES.items():
        target = os.path.join(base_dir, rel_path)
        existed = os.path.exists(target)
        if existed and not force:
            logger.info("이미 존재하여 건너뜀: %s", target)
            results.append((target, "skipped"))
            continue

        os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
        with open(target, "w", encoding="utf-8") as dst:
            dst.write(_read_template(template))
        results.append((target, "overwritten" if existed else "created"))

    return results


def update_gitignore(base_dir: str = ".") -> bool:
    """
    .gitignore 에 .env.gcloud 를 추가한다. 이미 있으면 아무것도 하지 않는다.
    추가했으면 True.
    """
    path = os.path.join(base_dir, ".gitignore")
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            lines = [line.strip() for line in f]
        if DEFAULT_CONFIG_FILE in lines or f"/{DEFAULT_CONFIG_FILE}" in lines:
            return False

    with open(path, "a", encoding="utf-8") as f:
        f.write(GITIGNORE_ENTRY)
    return True
