import os
import sys
from typing import NoReturn, Optional

import click

from .config import (
    SetupConfig,
    get_project_id,
    load_env_files,
    load_secret_values,
    overrides_from_flags,
    parse_name_list,
    service_account_email,
)
from .logging_utils import setup_logging, get_logger
from . import gcp_secrets, orchestrator, prompts, scaffold


logger = get_logger(__name__)


def _fail(message: str) -> NoReturn:
    click.echo(f"[ERROR] {message}", err=True)
    sys.exit(1)


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (기본: 현재 디렉토리)",
)
@click.option("--config", "config_file", type=str, default=None, help="설정 파일 (기본: .env.gcloud)")
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다. (-vv 는 google 라이브러리 로그까지)",
)
@click.option("--gcp-project-id", default=None, help="GCP Project ID")
@click.option("--gcp-project-number", default=None, help="GCP Project Number")
@click.option("--service-account-name", default=None, help="Service Account Name")
@click.option("--artifact-registry-name", default=None, help="Artifact Registry Name")
@click.option("--artifact-registry-location", default=None, help="Artifact Registry Location")
@click.option("--github-org", default=None, help="GitHub Organization")
@click.option("--github-repo", default=None, help="GitHub Repository")
@click.option("--cloud-run-service", default=None, help="Cloud Run Service Name")
@click.option("--cloud-run-region", default=None, help="Cloud Run Region")
@click.pass_context
def main(ctx: click.Context, chdir: str, config_file: Optional[str], verbose: int, **flags: Optional[str]) -> None:
    """GCloud 프로젝트 + GitHub Actions CI/CD 설정 CLI

    \b
    gcsetup init   - 워크플로우와 .env.gcloud 템플릿 생성
    gcsetup setup  - GCloud 프로젝트와 GitHub 리포지토리 설정
    """
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["config_file"] = config_file
    ctx.obj["overrides"] = overrides_from_flags(flags)


def _load_env(ctx: click.Context) -> None:
    load_env_files(ctx.obj["chdir"], ctx.obj["config_file"])


def _load_config_from_ctx(ctx: click.Context) -> SetupConfig:
    _load_env(ctx)
    cfg = SetupConfig.from_env(ctx.obj["overrides"])
    logger.debug("Config loaded: %s", cfg)
    return cfg


def _setup_config_or_exit(ctx: click.Context) -> SetupConfig:
    try:
        return _load_config_from_ctx(ctx)
    except Exception as e:  # noqa: BLE001
        click.echo(f"[ERROR] 설정 로드 실패: {e}", err=True)
        sys.exit(1)


@main.command()
@click.option("--force", is_flag=True, help="이미 있는 파일도 덮어씁니다.")
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """
    워크플로우(.github/workflows/gcloud-deploy.yml)와 .env.gcloud 템플릿을 생성한다.
    """
    base_dir: str = ctx.obj["chdir"]

    try:
        results = scaffold.write_templates(base_dir, force=force)
    except OSError as e:
        _fail(f"템플릿 생성 실패: {e}")
        return

    for path, status in results:
        if status == "skipped":
            click.echo(f"- {path} 이(가) 이미 존재하여 건너뜀 (--force 로 덮어쓰기)")
        else:
            click.echo(f"✓ {path} ({status})")

    try:
        if scaffold.update_gitignore(base_dir):
            click.echo("✓ Updated .gitignore")
    except OSError as e:
        click.echo(f"⚠ .gitignore 를 갱신하지 못했습니다: {e}", err=True)

    click.echo("")
    click.echo("Next steps:")
    click.echo("  1. Edit .env.gcloud with your project values")
    click.echo("  2. Run: gcsetup setup")


@main.command()
@click.option("--dry-run", is_flag=True, help="명령을 실행하지 않고 출력만 합니다.")
@click.pass_context
def setup(ctx: click.Context, dry_run: bool) -> None:
    """
    GCloud 프로젝트와 GitHub 리포지토리를 설정한다.

    \b
    1. 필수 API 활성화
    2. 서비스 계정 생성 및 역할 부여
    3. GitHub 용 Workload Identity Federation 구성
    4. Artifact Registry 리포지토리 생성
    5. GitHub 리포지토리 secrets / variables 설정
    """
    cfg = _setup_config_or_exit(ctx)

    try:
        orchestrator.check_prerequisites(need_gh=True, dry_run=dry_run)
    except RuntimeError as e:
        _fail(str(e))

    summary, has_failures = orchestrator.run_setup(cfg, dry_run=dry_run)
    click.echo(summary)

    if has_failures:
        sys.exit(1)


@main.command()
@click.pass_context
def plan(ctx: click.Context) -> None:
    """현재 설정과 setup 이 실행할 단계를 출력 (외부 명령 호출 없음)"""
    cfg = _setup_config_or_exit(ctx)
    click.echo(orchestrator.plan_setup(cfg))


@main.command()
@click.option(
    "-a",
    "--all",
    "show_all",
    is_flag=True,
    help="모든 체크 항목의 상세 상태를 출력합니다. (기본은 이슈만 요약)",
)
@click.pass_context
def check(ctx: click.Context, show_all: bool) -> None:
    """
    setup 전후로 GCP 리소스 / GitHub 설정 상태를 점검한다.
    (실제 리소스 생성/변경은 하지 않는다)
    """
    cfg = _setup_config_or_exit(ctx)

    try:
        report, has_issues = orchestrator.check_all(cfg, show_all=show_all)
    except Exception as e:  # noqa: BLE001
        logger.exception("사전 체크 중 오류 발생")
        _fail(f"체크 실패: {e}")
        return

    click.echo(report)

    # 이슈가 있으면 exit 1 로 종료하여 CI 등에서 감지 가능하게 한다.
    if has_issues:
        sys.exit(1)


@main.group()
def project() -> None:
    """GCP 프로젝트 관리"""


@project.command(name="create")
@click.option("--dry-run", is_flag=True, help="명령을 실행하지 않고 출력만 합니다.")
@click.option("-y", "--yes", "non_interactive", is_flag=True, help="묻지 않고 기본값을 사용합니다.")
def project_create(dry_run: bool, non_interactive: bool) -> None:
    """
    새 GCP 프로젝트를 만들고 API / 서비스 계정 / Workload Identity / Artifact Registry 를 준비한다.
    """
    try:
        orchestrator.check_prerequisites(need_gh=False, dry_run=dry_run)
    except RuntimeError as e:
        _fail(str(e))

    click.echo("")
    click.echo(orchestrator.BANNER)
    click.echo("  GCP Project Creation")
    click.echo(orchestrator.BANNER)
    click.echo("")

    cfg = prompts.prompt_project_config(non_interactive=non_interactive)

    click.echo("")
    click.echo(orchestrator.BANNER)
    click.echo("  Project Configuration Summary")
    click.echo(orchestrator.BANNER)
    click.echo(f"  Project Name:         {cfg.project_name}")
    click.echo(f"  Project ID:           {cfg.project_id}")
    click.echo(f"  Service Account:      {cfg.service_account_name}")
    click.echo(f"  Artifact Registry:    {cfg.artifact_registry_name} ({cfg.artifact_registry_location})")
    click.echo(f"  GitHub Organization:  {cfg.github_organization or '(not set)'}")
    click.echo(orchestrator.BANNER)
    click.echo("")

    if not prompts.confirm("Proceed with project creation?", non_interactive=non_interactive):
        click.echo("Project creation cancelled.")
        return

    summary, has_failures = orchestrator.run_project_create(cfg, dry_run=dry_run)
    click.echo(summary)
    if has_failures:
        sys.exit(1)


@main.group()
def loadbalancer() -> None:
    """Google Cloud Load Balancer 관리"""


@loadbalancer.command(name="setup")
@click.option("--dry-run", is_flag=True, help="명령을 실행하지 않고 출력만 합니다.")
@click.option("-y", "--yes", "non_interactive", is_flag=True, help="묻지 않고 기본값을 사용합니다.")
@click.pass_context
def loadbalancer_setup(ctx: click.Context, dry_run: bool, non_interactive: bool) -> None:
    """
    여러 백엔드 서비스를 경로 기반으로 라우팅하는 로드밸런서를 구성한다.

    \b
    1. 서비스별 health check
    2. 서비스별 backend service
    3. 경로 기반 URL map
    4. HTTP(S) target proxy
    5. 글로벌 고정 IP 와 forwarding rule
    """
    try:
        _load_env(ctx)
        project_id = get_project_id(ctx.obj["overrides"])
        orchestrator.check_prerequisites(need_gh=False, dry_run=dry_run)
    except (ValueError, RuntimeError) as e:
        _fail(str(e))
        return

    click.echo("")
    click.echo(orchestrator.BANNER)
    click.echo("  Load Balancer Configuration")
    click.echo(orchestrator.BANNER)
    click.echo("")

    cfg = prompts.prompt_load_balancer_config(project_id, non_interactive=non_interactive)

    click.echo("")
    click.echo(orchestrator.BANNER)
    click.echo("  Load Balancer Configuration Summary")
    click.echo(orchestrator.BANNER)
    click.echo(orchestrator.describe_load_balancer(cfg))
    click.echo(orchestrator.BANNER)
    click.echo("")

    if not prompts.confirm("Proceed with load balancer configuration?", non_interactive=non_interactive):
        click.echo("Configuration cancelled.")
        return

    summary, has_failures = orchestrator.run_load_balancer(cfg, dry_run=dry_run)
    click.echo(summary)
    if has_failures:
        sys.exit(1)


@main.group()
def secrets() -> None:
    """Secret Manager secret 관리"""


@secrets.command(name="create")
@click.argument("names", nargs=-1)
@click.option("--dry-run", is_flag=True, help="실제로 생성하지 않고 출력만 합니다.")
@click.pass_context
def secrets_create(ctx: click.Context, names: tuple[str, ...], dry_run: bool) -> None:
    """
    Secret Manager 에 secret 을 만들고 서비스 계정에 접근 권한을 준다.

    NAMES 가 없으면 SECRETS_TO_CREATE 를 사용한다.
    .env.secrets 에 같은 이름의 값이 있으면 첫 버전으로 추가한다.
    """
    base_dir: str = ctx.obj["chdir"]
    overrides = ctx.obj["overrides"]
    try:
        _load_env(ctx)
        project_id = get_project_id(overrides)
    except ValueError as e:
        _fail(f"설정 로드 실패: {e}")
        return

    wanted = parse_name_list(" ".join(names)) or parse_name_list(os.getenv("SECRETS_TO_CREATE"))
    if not wanted:
        hint = gcp_secrets.secrets_hint(project_id)
        click.echo("생성할 secret 이 지정되지 않았습니다.")
        click.echo("")
        click.echo("이름을 인자로 주거나 SECRETS_TO_CREATE 를 설정하세요:")
        click.echo(f"  {hint['cli']}")
        click.echo(f"  {hint['env']}")
        click.echo("")
        click.echo("또는 직접 생성:")
        click.echo(f"  {hint['manual']}")
        return

    sa_name = overrides.get("SERVICE_ACCOUNT_NAME") or os.getenv("SERVICE_ACCOUNT_NAME") or "github-actions"
    email = service_account_email(sa_name, project_id)

    try:
        handled = gcp_secrets.ensure_secrets(
            project_id,
            email,
            wanted,
            load_secret_values(base_dir),
            dry_run=dry_run,
        )
    except Exception as e:  # noqa: BLE001
        logger.exception("secret 생성 중 오류 발생")
        _fail(f"secret 생성 실패: {e}")
        return

    click.echo("")
    click.echo(f"Secrets ({len(handled)}) -> {email}")
    for name in handled:
        click.echo(f"- {name}")
    click.echo("")
    click.echo("값 추가:")
    click.echo(f"  {gcp_secrets.secrets_hint(project_id)['add_value']}")
