from typing import List

import pytest

from gcsetup.config import LoadBalancerConfig, SetupConfig
from gcsetup import orchestrator
from gcsetup.subprocess_utils import RunResult


def _minimal_cfg() -> SetupConfig:
    return SetupConfig(
        gcp_project_id="test-project",
        gcp_project_number="123456789",
        github_organization="acme",
        github_repository="webapp",
    )


def _record_setup_steps(monkeypatch: pytest.MonkeyPatch, calls: List[str]) -> None:
    monkeypatch.setattr(orchestrator.gcp_project, "enable_setup_apis", lambda cfg, dry_run: calls.append("apis"))
    monkeypatch.setattr(
        orchestrator.gcp_iam, "ensure_deploy_service_account", lambda cfg, dry_run: calls.append("sa")
    )
    monkeypatch.setattr(
        orchestrator.gcp_workload_identity, "setup_workload_identity", lambda cfg, dry_run: calls.append("wif")
    )
    monkeypatch.setattr(
        orchestrator.gcp_artifact_registry,
        "ensure_repository",
        lambda name, location, project_id, dry_run: calls.append("registry"),
    )
    monkeypatch.setattr(orchestrator.github_repo, "configure_repository", lambda cfg, dry_run: calls.append("github"))


def test_run_setup_runs_steps_in_order(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    calls: List[str] = []
    _record_setup_steps(monkeypatch, calls)

    summary, has_failures = orchestrator.run_setup(_minimal_cfg())

    assert not has_failures
    assert calls == ["apis", "sa", "wif", "registry", "github"]
    assert "Executed steps" in summary
    assert "- Configuring GitHub Repository" in summary

    out = capsys.readouterr().out
    assert "Step 1/5: Enabling APIs..." in out
    assert "Step 5/5: Configuring GitHub Repository..." in out
    assert "Setup Complete!" not in out

    # 단계 요약 다음에 완료 배너와 다음 단계 안내가 온다.
    assert summary.index("## Executed steps") < summary.index("Setup Complete!") < summary.index("Push to main")


def test_run_setup_stops_at_first_failure(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    calls: List[str] = []
    _record_setup_steps(monkeypatch, calls)

    def failing_wif(cfg: SetupConfig, dry_run: bool) -> None:  # noqa: ARG001
        raise RuntimeError("boom")

    monkeypatch.setattr(orchestrator.gcp_workload_identity, "setup_workload_identity", failing_wif)

    summary, has_failures = orchestrator.run_setup(_minimal_cfg())

    assert has_failures
    # 실패 이후 단계는 실행하지 않는다.
    assert calls == ["apis", "sa"]
    assert "## Failed steps\n- Setting up Workload Identity Federation" in summary
    assert "## Not run\n- Creating Artifact Registry\n- Configuring GitHub Repository" in summary
    assert "[ERROR] Setting up Workload Identity Federation failed: boom" in summary
    assert "Setup Complete!" not in summary
    assert "Setup Complete!" not in capsys.readouterr().out


def test_dry_run_is_passed_to_every_step(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: List[bool] = []
    monkeypatch.setattr(orchestrator.gcp_project, "enable_setup_apis", lambda cfg, dry_run: seen.append(dry_run))
    monkeypatch.setattr(
        orchestrator.gcp_iam, "ensure_deploy_service_account", lambda cfg, dry_run: seen.append(dry_run)
    )
    monkeypatch.setattr(
        orchestrator.gcp_workload_identity, "setup_workload_identity", lambda cfg, dry_run: seen.append(dry_run)
    )
    monkeypatch.setattr(
        orchestrator.gcp_artifact_registry,
        "ensure_repository",
        lambda name, location, project_id, dry_run: seen.append(dry_run),
    )
    monkeypatch.setattr(orchestrator.github_repo, "configure_repository", lambda cfg, dry_run: seen.append(dry_run))

    _, has_failures = orchestrator.run_setup(_minimal_cfg(), dry_run=True)

    assert not has_failures
    assert seen == [True] * 5


def test_load_balancer_steps_order() -> None:
    cfg = LoadBalancerConfig(project_id="test-project")

    names = [s.name for s in orchestrator.load_balancer_steps(cfg)]

    assert names == [
        "Creating Health Checks",
        "Creating Backend Services",
        "Creating URL Map",
        "Creating HTTP Proxy",
        "Reserving Global IP Address",
        "Creating Forwarding Rule",
    ]


def test_check_prerequisites_only_warns_in_dry_run(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    def missing() -> None:
        raise RuntimeError("gcloud CLI is not installed")

    monkeypatch.setattr(orchestrator.gcp_project, "ensure_gcloud_installed", missing)

    orchestrator.check_prerequisites(need_gh=False, dry_run=True)
    assert "gcloud CLI is not installed" in capsys.readouterr().err

    with pytest.raises(RuntimeError):
        orchestrator.check_prerequisites(need_gh=False, dry_run=False)


def test_plan_setup_lists_config_and_steps() -> None:
    plan = orchestrator.plan_setup(_minimal_cfg())

    assert "# Setup plan" in plan
    assert "- service_account: github-actions@test-project.iam.gserviceaccount.com" in plan
    assert "- GCP_WORKLOAD_IDENTITY_PROVIDER" in plan
    assert "- CLOUD_RUN_SERVICE=webapp" in plan
    assert "- ARTIFACT_REGISTRY_URL=europe-west1-docker.pkg.dev/test-project/docker-registry" in plan
    assert "1. Enabling APIs" in plan
    assert "5. Configuring GitHub Repository" in plan


def _stub_checks(
    monkeypatch: pytest.MonkeyPatch, *, project_ok: bool = True, sa_ok: bool = True, stub_tools: bool = True
) -> None:
    if stub_tools:
        monkeypatch.setattr(orchestrator, "_tool_checks", lambda: [("gcloud: 설치됨", True), ("gh: 설치됨", True)])
    monkeypatch.setattr(
        orchestrator.gcp_project,
        "check_project_and_apis",
        lambda project_id: [("프로젝트 접근 가능", project_ok), ("run.googleapis.com 활성화됨", True)],
    )
    monkeypatch.setattr(orchestrator.gcp_iam, "check_service_account", lambda cfg: ("서비스 계정", sa_ok))
    monkeypatch.setattr(orchestrator.gcp_workload_identity, "check_workload_identity", lambda cfg: [("pool", True)])
    monkeypatch.setattr(
        orchestrator.gcp_artifact_registry, "check_repository", lambda name, location, project_id: ("registry", True)
    )
    monkeypatch.setattr(orchestrator.github_repo, "check_repository", lambda cfg: [("repo 접근 가능", True)])


def test_check_all_without_issues(monkeypatch: pytest.MonkeyPatch) -> None:
    _stub_checks(monkeypatch)

    report, has_issues = orchestrator.check_all(_minimal_cfg())

    assert not has_issues
    assert "주요 이슈 없음" in report


def test_check_all_missing_service_account_is_warning(monkeypatch: pytest.MonkeyPatch) -> None:
    _stub_checks(monkeypatch, sa_ok=False)

    report, has_issues = orchestrator.check_all(_minimal_cfg(), show_all=True)

    assert has_issues
    assert "경고만 있습니다" in report
    assert "- [!!] 서비스 계정" in report


def test_check_all_missing_project_is_critical(monkeypatch: pytest.MonkeyPatch) -> None:
    _stub_checks(monkeypatch, project_ok=False)

    report, has_issues = orchestrator.check_all(_minimal_cfg())

    assert has_issues
    assert "### Critical issues\n- 프로젝트 접근 가능" in report


def test_check_all_exception_in_section_is_critical(monkeypatch: pytest.MonkeyPatch) -> None:
    _stub_checks(monkeypatch)

    def broken(cfg: SetupConfig) -> list:  # noqa: ARG001
        raise RuntimeError("gh exploded")

    monkeypatch.setattr(orchestrator.github_repo, "check_repository", broken)

    report, has_issues = orchestrator.check_all(_minimal_cfg())

    assert has_issues
    assert "GitHub Repository: 체크 중 예외 발생: gh exploded" in report


def _which(*installed: str):  # noqa: ANN202
    return lambda name: f"/usr/bin/{name}" if name in installed else None


def test_tool_checks_without_gh(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(orchestrator.shutil, "which", _which("gcloud"))

    assert orchestrator._tool_checks() == [
        ("gcloud: 설치됨", True),
        ("gh: 설치되어 있지 않음", False),
    ]


def test_tool_checks_reports_unauthenticated_gh(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(orchestrator.shutil, "which", _which("gcloud", "gh"))
    monkeypatch.setattr(orchestrator.github_repo, "probe", lambda cmd, **kwargs: False)

    results = orchestrator._tool_checks()

    assert results[:2] == [("gcloud: 설치됨", True), ("gh: 설치됨", True)]
    msg, ok = results[2]
    assert not ok
    assert "gh auth login" in msg


def test_tool_checks_all_ready(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(orchestrator.shutil, "which", _which("gcloud", "gh"))
    monkeypatch.setattr(orchestrator.github_repo, "probe", lambda cmd, **kwargs: True)

    assert all(ok for _, ok in orchestrator._tool_checks())


def test_check_all_missing_gh_is_critical(monkeypatch: pytest.MonkeyPatch) -> None:
    _stub_checks(monkeypatch, stub_tools=False)
    monkeypatch.setattr(orchestrator.shutil, "which", _which("gcloud"))

    report, has_issues = orchestrator.check_all(_minimal_cfg())

    assert has_issues
    assert "크리티컬 이슈가 있습니다" in report
    assert "### Critical issues\n- gh: 설치되어 있지 않음" in report


def test_check_all_missing_api_is_warning(monkeypatch: pytest.MonkeyPatch) -> None:
    check_project_and_apis = orchestrator.gcp_project.check_project_and_apis
    _stub_checks(monkeypatch)
    monkeypatch.setattr(orchestrator.gcp_project, "check_project_and_apis", check_project_and_apis)

    enabled = [api for api in orchestrator.gcp_project.SETUP_APIS if api != "run.googleapis.com"]
    monkeypatch.setattr(orchestrator.gcp_project, "probe", lambda cmd, **kwargs: True)
    monkeypatch.setattr(
        orchestrator.gcp_project,
        "run_command",
        lambda cmd, **kwargs: RunResult(0, "\n".join(enabled), ""),
    )

    report, has_issues = orchestrator.check_all(_minimal_cfg())

    assert has_issues
    assert "경고만 있습니다" in report
    assert "- API: 비활성화 (enable 필요) (run.googleapis.com)" in report
    assert report.count("API: 비활성화") == 1
