import pytest
from click.testing import CliRunner

from gcsetup import cli, orchestrator
from gcsetup import subprocess_utils


ENV_FILE = """\
GCP_PROJECT_ID=test-project
GCP_PROJECT_NUMBER=123456789
GITHUB_ORGANIZATION=acme
GITHUB_REPOSITORY=webapp
"""


@pytest.fixture(autouse=True)
def _no_external_tools(monkeypatch: pytest.MonkeyPatch) -> None:
    # gcloud / gh 가 없는 환경으로 고정하고, 실제 명령 실행은 막는다.
    monkeypatch.setattr(orchestrator.gcp_project.shutil, "which", lambda name: None)

    def _boom(*args, **kwargs):  # noqa: ANN002, ANN003
        raise AssertionError("테스트에서 외부 명령을 실행하면 안 됩니다")

    monkeypatch.setattr(subprocess_utils.subprocess, "run", _boom)


def _invoke(*args: str):  # noqa: ANN202
    return CliRunner().invoke(cli.main, list(args))


def test_init_writes_templates_and_gitignore(tmp_path) -> None:
    result = _invoke("-C", str(tmp_path), "init")

    assert result.exit_code == 0, result.output
    assert (tmp_path / ".env.gcloud").exists()
    assert (tmp_path / ".github" / "workflows" / "gcloud-deploy.yml").exists()
    assert ".env.gcloud" in (tmp_path / ".gitignore").read_text(encoding="utf-8")
    assert "Run: gcsetup setup" in result.output


def test_init_twice_skips_existing(tmp_path) -> None:
    _invoke("-C", str(tmp_path), "init")

    result = _invoke("-C", str(tmp_path), "init")

    assert result.exit_code == 0
    assert "건너뜀" in result.output


def test_setup_without_config_fails(tmp_path) -> None:
    result = _invoke("-C", str(tmp_path), "setup", "--dry-run")

    assert result.exit_code == 1
    assert "[ERROR] 설정 로드 실패" in result.output
    assert "GCP_PROJECT_ID" in result.output


def test_setup_dry_run_prints_every_command(tmp_path) -> None:
    (tmp_path / ".env.gcloud").write_text(ENV_FILE, encoding="utf-8")

    result = _invoke("-C", str(tmp_path), "setup", "--dry-run")

    assert result.exit_code == 0, result.output
    assert "[dry-run] gcloud services enable run.googleapis.com --project=test-project" in result.output
    assert "[dry-run] gcloud iam workload-identity-pools create github-pool" in result.output
    assert "[dry-run] gh secret set GCP_SERVICE_ACCOUNT --repo acme/webapp" in result.output
    assert "Step 5/5: Configuring GitHub Repository..." in result.output
    assert "## Not run\n- (none)" in result.output


def test_setup_without_gcloud_fails_outside_dry_run(tmp_path) -> None:
    (tmp_path / ".env.gcloud").write_text(ENV_FILE, encoding="utf-8")

    result = _invoke("-C", str(tmp_path), "setup")

    assert result.exit_code == 1
    assert "[ERROR] gcloud CLI" in result.output


def test_flags_override_config_file(tmp_path) -> None:
    (tmp_path / ".env.gcloud").write_text(ENV_FILE, encoding="utf-8")

    result = _invoke("-C", str(tmp_path), "--github-repo", "other", "--cloud-run-region", "asia-northeast3", "plan")

    assert result.exit_code == 0, result.output
    assert "- repository: acme/other" in result.output
    assert "- CLOUD_RUN_REGION=asia-northeast3" in result.output


def test_explicit_missing_config_file_fails(tmp_path) -> None:
    result = _invoke("-C", str(tmp_path), "--config", "missing.env", "plan")

    assert result.exit_code == 1
    assert "missing.env" in result.output


def test_project_create_non_interactive_dry_run(tmp_path) -> None:
    result = _invoke("-C", str(tmp_path), "project", "create", "-y", "--dry-run")

    assert result.exit_code == 0, result.output
    assert "[dry-run] gcloud projects create my-project --name=my-project" in result.output
    assert "[dry-run] gcloud services enable cloudkms.googleapis.com --project=my-project" in result.output
    assert "Project Number: <GCP_PROJECT_NUMBER>" in result.output


def test_project_create_can_be_cancelled(tmp_path) -> None:
    answers = "\n" * 6 + "n\n"

    result = CliRunner().invoke(cli.main, ["-C", str(tmp_path), "project", "create", "--dry-run"], input=answers)

    assert result.exit_code == 0, result.output
    assert "Project creation cancelled." in result.output
    assert "[dry-run]" not in result.output


def test_loadbalancer_requires_project_id(tmp_path) -> None:
    result = _invoke("-C", str(tmp_path), "loadbalancer", "setup", "-y", "--dry-run")

    assert result.exit_code == 1
    assert "GCP_PROJECT_ID" in result.output


def test_loadbalancer_non_interactive_dry_run(tmp_path) -> None:
    result = _invoke("-C", str(tmp_path), "--gcp-project-id", "test-project", "loadbalancer", "setup", "-y", "--dry-run")

    assert result.exit_code == 0, result.output
    assert "Service 1: service-1" in result.output
    assert "[dry-run] gcloud compute health-checks create http service-1-hc" in result.output
    assert "[dry-run] gcloud compute target-http-proxies create gcloud-lb-proxy" in result.output
    assert "[dry-run] gcloud compute addresses create gcloud-lb-ip" in result.output
    assert "--ports=80" in result.output


def test_secrets_create_dry_run(tmp_path) -> None:
    (tmp_path / ".env.secrets").write_text("API_KEY=abc\n", encoding="utf-8")

    result = _invoke(
        "-C", str(tmp_path), "--gcp-project-id", "test-project", "secrets", "create", "API_KEY", "DATABASE_URL", "--dry-run"
    )

    assert result.exit_code == 0, result.output
    assert "Secrets (2) -> github-actions@test-project.iam.gserviceaccount.com" in result.output
    assert "add version projects/test-project/secrets/API_KEY" in result.output
    assert "add version projects/test-project/secrets/DATABASE_URL" not in result.output
    assert "abc" not in result.output


def test_secrets_create_without_names_prints_hint(tmp_path) -> None:
    result = _invoke("-C", str(tmp_path), "--gcp-project-id", "test-project", "secrets", "create")

    assert result.exit_code == 0, result.output
    assert "SECRETS_TO_CREATE" in result.output


def test_setup_prints_summary_before_completion_banner(tmp_path) -> None:
    (tmp_path / ".env.gcloud").write_text(ENV_FILE, encoding="utf-8")

    result = _invoke("-C", str(tmp_path), "setup", "--dry-run")

    assert result.exit_code == 0, result.output
    out = result.output
    assert out.index("# Setup summary") < out.index("Setup Complete!") < out.index("Push to main")
