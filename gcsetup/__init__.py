"""
gcsetup
-------

GCloud 프로젝트를 GitHub Actions CI/CD 용으로 준비하는 CLI 패키지.
gcloud / gh CLI 를 정해진 순서로 호출하여 API, 서비스 계정,
Workload Identity Federation, Artifact Registry, 로드밸런서,
GitHub 리포지토리 secrets / variables 를 설정한다.
"""

__all__ = [
    "config",
    "orchestrator",
]
