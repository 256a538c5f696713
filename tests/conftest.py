"""
pytest 설정:

site-packages 에 다른 버전의 gcsetup 이 설치되어 있어도
항상 현재 레포의 소스를 대상으로 테스트하도록 repo root 를 sys.path 최상단에 고정한다.

또한 테스트 환경의 실제 설정(.env.gcloud 나 export 된 변수)이 섞이지 않도록
관련 환경변수를 비운다.
"""

from __future__ import annotations

import os
import sys

import pytest


CONFIG_VARS = [
    "GCP_PROJECT_ID",
    "GCP_PROJECT_NUMBER",
    "GITHUB_ORGANIZATION",
    "GITHUB_REPOSITORY",
    "SERVICE_ACCOUNT_NAME",
    "ARTIFACT_REGISTRY_NAME",
    "ARTIFACT_REGISTRY_LOCATION",
    "CLOUD_RUN_SERVICE",
    "CLOUD_RUN_REGION",
    "WORKLOAD_IDENTITY_POOL",
    "WORKLOAD_IDENTITY_PROVIDER",
    "SECRETS_TO_CREATE",
    "GCSETUP_SHOW_PROGRESS",
    "GCSETUP_PROGRESS_IDLE_SECONDS",
]


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


@pytest.fixture(autouse=True)
def _clean_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in CONFIG_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def setup_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    env = {
        "GCP_PROJECT_ID": "test-project",
        "GCP_PROJECT_NUMBER": "123456789",
        "GITHUB_ORGANIZATION": "acme",
        "GITHUB_REPOSITORY": "webapp",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
