from __future__ import annotations

import shutil
from dataclasses import dataclass
from typing import Callable, List, Optional

import click

from .config import LoadBalancerConfig, ProjectConfig, SetupConfig
from .logging_utils import get_logger
from . import (
    gcp_artifact_registry,
    gcp_iam,
    gcp_load_balancer,
    gcp_project,
    gcp_secrets,
    gcp_workload_identity,
    github_repo,
)


logger = get_logger(__name__)


BANNER = "=============================================="
RULE = "----------------------------------------------"


@dataclass
class Step:
    name: str
    fn: Callable[[], None]


def setup_steps(cfg: SetupConfig, *, dry_run: bool = False) -> List[Step]:
    # 실행 시점에 모듈 속성을 찾도록 lambda 로 감싼다. (테스트에서 monkeypatch 가능)
    return [
        Step("Enabling APIs", lambda: gcp_project.enable_setup_apis(cfg, dry_run=dry_run)),
        Step("Creating Service Account", lambda: gcp_iam.ensure_deploy_service_account(cfg, dry_run=dry_run)),
        Step(
            "Setting up Workload Identity Federation",
            lambda: gcp_workload_identity.setup_workload_identity(cfg, dry_run=dry_run),
        ),
        Step(
            "Creating Artifact Registry",
            lambda: gcp_artifact_registry.ensure_repository(
                cfg.artifact_registry_name,
                cfg.artifact_registry_location,
                cfg.gcp_project_id,
                dry_run=dry_run,
            ),
        ),
        Step("Configuring GitHub Repository", lambda: github_repo.configure_repository(cfg, dry_run=dry_run)),
    ]


def project_steps(cfg: ProjectConfig, *, dry_run: bool = False) -> List[Step]:
    return [
        Step("Creating GCP Project", lambda: gcp_project.create_project(cfg, dry_run=dry_run)),
        Step("Enabling APIs", lambda: gcp_project.enable_project_apis(cfg, dry_run=dry_run)),
        Step(
            "Creating Service Account",
            lambda: gcp_iam.ensure_service_account(
                cfg.service_account_name,
                cfg.project_id,
                cfg.service_account_email,
                dry_run=dry_run,
            ),
        ),
        Step(
            "Setting up Workload Identity Federation",
            lambda: gcp_workload_identity.setup_project_workload_identity(cfg, dry_run=dry_run),
        ),
        Step(
            "Creating Artifact Registry",
            lambda: gcp_artifact_registry.ensure_repository(
                cfg.artifact_registry_name,
                cfg.artifact_registry_location,
                cfg.project_id,
                dry_run=dry_run,
            ),
        ),
    ]


def load_balancer_steps(cfg: LoadBalancerConfig, *, dry_run: bool = False) -> List[Step]:
    lb = gcp_load_balancer
    return [
        Step("Creating Health Checks", lambda: lb.create_health_checks(cfg, dry_run=dry_run)),
        Step("Creating Backend Services", lambda: lb.create_backend_services(cfg, dry_run=dry_run)),
        Step("Creating URL Map", lambda: lb.create_url_map(cfg, dry_run=dry_run)),
        Step(f"Creating {cfg.protocol} Proxy", lambda: lb.create_target_proxy(cfg, dry_run=dry_run)),
        Step("Reserving Global IP Address", lambda: lb.reserve_address(cfg, dry_run=dry_run)),
        Step("Creating Forwarding Rule", lambda: lb.create_forwarding_rule(cfg, dry_run=dry_run)),
    ]


def _section(lines: List[str], title: str, items: List[str]) -> None:
    lines.append(f"## {title}")
    if items:
        for s in items:
            lines.append(f"- {s}")
    else:
        lines.append("- (none)")
    lines.append("")


def run_steps(title: str, project: str, steps: List[Step]) -> tuple[str, bool]:
    """
    단계를 순서대로 실행한다. 하나라도 실패하면 그 자리에서 멈춘다.
    (롤백/재시도 없음. 생성 단계는 모두 멱등이므로 다시 실행하면 된다)

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_failures: 실패한 단계가 있는지 여부
    """
    executed: List[str] = []
    failed: List[str] = []
    error: Optional[str] = None

    total = len(steps)
    for i, step in enumerate(steps, start=1):
        click.echo(f"Step {i}/{total}: {step.name}...")
        click.echo(RULE)
        logger.info("단계 실행: %s", step.name)
        try:
            step.fn()
        except Exception as e:  # noqa: BLE001
            logger.exception("단계 실행 실패: %s", step.name)
            failed.append(step.name)
            error = f"{step.name} failed: {e}"
            break
        executed.append(step.name)
        click.echo("")

    not_run = [s.name for s in steps[len(executed) + len(failed):]]

    lines: List[str] = [f"# {title} summary", f"- project: {project}", ""]
    _section(lines, "Executed steps", executed)
    _section(lines, "Failed steps", failed)
    _section(lines, "Not run", not_run)
    if error:
        lines.append(f"[ERROR] {error}")

    return "\n".join(lines).rstrip(), bool(failed)


def check_prerequisites(*, need_gh: bool = True, dry_run: bool = False) -> None:
    """
    gcloud / gh 준비 상태를 확인한다.
    dry-run 에서는 아무것도 실행하지 않으므로 실패를 경고로만 출력한다.
    """
    checks: List[Callable[[], None]] = [gcp_project.ensure_gcloud_installed]
    if need_gh:
        checks.append(github_repo.ensure_gh_ready)

    for check in checks:
        try:
            check()
        except RuntimeError as e:
            if not dry_run:
                raise
            click.echo(f"⚠ {e} (dry-run 이므로 계속합니다)", err=True)


def _header(title: str, rows: List[tuple[str, str]]) -> None:
    click.echo(BANNER)
    click.echo(title)
    click.echo(BANNER)
    width = max(len(label) for label, _ in rows) + 2 if rows else 0
    for label, value in rows:
        click.echo(f"{label + ':':<{width}}{value}")
    if rows:
        click.echo(BANNER)
    click.echo("")


def _footer(title: str, messages: List[str]) -> str:
    """요약 뒤에 붙는 완료 배너와 다음 단계 안내."""
    return "\n".join([BANNER, title, BANNER, ""] + messages)


def run_setup(cfg: SetupConfig, *, dry_run: bool = False) -> tuple[str, bool]:
    _header(
        "GCloud Project Setup" + (" (dry-run)" if dry_run else ""),
        [
            ("Project ID", cfg.gcp_project_id),
            ("Project Number", cfg.gcp_project_number),
            ("GitHub", cfg.github_repo),
        ],
    )

    summary, has_failures = run_steps("Setup", cfg.gcp_project_id, setup_steps(cfg, dry_run=dry_run))
    if not has_failures:
        summary += "\n\n" + _footer(
            "Setup Complete!",
            [
                "Your repository is fully configured.",
                "Push to main or create a PR to trigger a deployment.",
                "",
                "Secret Manager secret 이 필요하면:",
                "  gcsetup secrets create DATABASE_URL API_KEY",
                "",
            ],
        )
    return summary, has_failures


def run_project_create(cfg: ProjectConfig, *, dry_run: bool = False) -> tuple[str, bool]:
    summary, has_failures = run_steps(
        "Project creation", cfg.project_id, project_steps(cfg, dry_run=dry_run)
    )
    if has_failures:
        return summary, has_failures

    number = "<GCP_PROJECT_NUMBER>"
    if not dry_run:
        try:
            number = gcp_project.get_project_number(cfg.project_id)
        except RuntimeError as e:
            logger.warning("프로젝트 번호 조회 실패: %s", e)

    summary += "\n\n" + _footer(
        "  Project Creation Complete!",
        [
            f"Project ID:     {cfg.project_id}",
            f"Project Number: {number}",
            f"Registry URL:   {cfg.artifact_registry_url}",
            "Next steps:",
            "  1. Save the project ID and number in .env.gcloud",
            "     (GCP_PROJECT_ID / GCP_PROJECT_NUMBER)",
            "  2. Run: gcsetup setup",
            "     (with your GitHub org/repo and cloud run service details)",
            "",
        ],
    )
    return summary, has_failures


def describe_load_balancer(cfg: LoadBalancerConfig) -> str:
    lines = [
        f"  Name:                 {cfg.name}",
        f"  Network:              {cfg.network}",
        f"  Subnet:               {cfg.subnet or '(auto)'}",
        f"  Health Check Port:    {cfg.health_check_port}",
        f"  Use SSL:              {cfg.use_ssl}",
        f"  Number of Services:   {len(cfg.services)}",
        "",
    ]
    for i, svc in enumerate(cfg.services, start=1):
        lines.append(f"  Service {i}: {svc.name}")
        lines.append(f"    Protocol: {svc.protocol}, Port: {svc.port}, Path: {svc.path}")
    return "\n".join(lines)


def run_load_balancer(cfg: LoadBalancerConfig, *, dry_run: bool = False) -> tuple[str, bool]:
    summary, has_failures = run_steps(
        "Load balancer", cfg.project_id, load_balancer_steps(cfg, dry_run=dry_run)
    )
    if has_failures:
        return summary, has_failures

    ip = ""
    if not dry_run:
        try:
            ip = gcp_load_balancer.get_address(cfg)
        except RuntimeError as e:
            logger.warning("로드밸런서 IP 조회 실패: %s", e)

    summary += "\n\n" + _footer(
        "  Load Balancer Configuration Complete!",
        [
            f"Load Balancer Name: {cfg.name}",
            f"Load Balancer IP:   {ip or '(조회 필요)'}",
            "Next steps:",
            "  1. Get the load balancer IP:",
            f"     gcloud compute addresses describe {cfg.address} --global --format='value(address)'",
            "  2. Create a DNS record pointing to the load balancer IP",
            "  3. Test the configuration with curl",
            "",
        ],
    )
    return summary, has_failures


def plan_setup(cfg: SetupConfig) -> str:
    """
    현재 설정과 setup 이 실행할 단계를 요약한다. 외부 명령은 호출하지 않는다.
    """
    lines: List[str] = []
    lines.append("# Setup plan")
    lines.append(f"- project: {cfg.gcp_project_id} ({cfg.gcp_project_number})")
    lines.append(f"- repository: {cfg.github_repo}")
    lines.append("")

    lines.append("## Config summary")
    lines.append(f"- service_account: {cfg.service_account_email}")
    lines.append(f"- workload_identity_provider: {cfg.workload_identity_provider}")
    lines.append(f"- artifact_registry: {cfg.artifact_registry_name} ({cfg.artifact_registry_location})")
    lines.append(f"- artifact_registry_url: {cfg.artifact_registry_url}")
    lines.append(f"- cloud_run_service: {cfg.cloud_run_service}")
    lines.append(f"- cloud_run_region: {cfg.cloud_run_region}")
    lines.append(f"- secrets_to_create: {', '.join(cfg.secrets_to_create) or '(none)'}")
    lines.append("")

    lines.append("## GitHub secrets")
    for name in github_repo.repository_secrets(cfg):
        lines.append(f"- {name}")
    lines.append("")
    lines.append("## GitHub variables")
    for name, value in github_repo.repository_variables(cfg).items():
        lines.append(f"- {name}={value}")
    lines.append("")

    lines.append("## Steps")
    for i, step in enumerate(setup_steps(cfg), start=1):
        lines.append(f"{i}. {step.name}")

    return "\n".join(lines)


def _tool_checks() -> List[tuple[str, bool]]:
    results: List[tuple[str, bool]] = []
    for tool in ("gcloud", "gh"):
        if shutil.which(tool):
            results.append((f"{tool}: 설치됨", True))
        else:
            results.append((f"{tool}: 설치되어 있지 않음", False))
    if shutil.which("gh"):
        try:
            github_repo.ensure_gh_ready()
            results.append(("gh: 인증됨", True))
        except RuntimeError as e:
            results.append((f"gh: {e}", False))
    return results


def check_all(cfg: SetupConfig, show_all: bool = False) -> tuple[str, bool]:
    """
    실제 리소스 생성 없이, 현재 설정과 GCP/GitHub 상태를 종합적으로 점검한다.

    setup 이 만들어 줄 수 있는 리소스가 없으면 경고,
    도구 미설치/프로젝트 없음/리포지토리 접근 불가는 크리티컬로 본다.

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_issues: 크리티컬 또는 경고가 하나라도 있는지 여부
    """
    lines: List[str] = []
    critical: List[str] = []
    warnings: List[str] = []

    lines.append("# Setup pre-check")
    lines.append(f"- project: {cfg.gcp_project_id}")
    lines.append(f"- repository: {cfg.github_repo}")
    lines.append("")

    # (제목, 체크 함수, 실패 시 크리티컬인지 판단)
    sections: List[tuple[str, Callable[[], List[tuple[str, bool]]], Callable[[int], bool]]] = [
        ("Tools", _tool_checks, lambda idx: True),
        ("Project & APIs", lambda: gcp_project.check_project_and_apis(cfg.gcp_project_id), lambda idx: idx == 0),
        ("Service Account", lambda: [gcp_iam.check_service_account(cfg)], lambda idx: False),
        ("Workload Identity", lambda: gcp_workload_identity.check_workload_identity(cfg), lambda idx: False),
        (
            "Artifact Registry",
            lambda: [
                gcp_artifact_registry.check_repository(
                    cfg.artifact_registry_name, cfg.artifact_registry_location, cfg.gcp_project_id
                )
            ],
            lambda idx: False,
        ),
        ("GitHub Repository", lambda: github_repo.check_repository(cfg), lambda idx: idx == 0),
    ]
    if cfg.secrets_to_create:
        sections.append(
            (
                "Secret Manager",
                lambda: gcp_secrets.check_secrets(cfg.gcp_project_id, cfg.secrets_to_create),
                lambda idx: False,
            )
        )

    for title, run_check, is_critical in sections:
        lines.append(f"## {title}")
        try:
            results = run_check()
        except Exception as e:  # noqa: BLE001
            msg = f"{title}: 체크 중 예외 발생: {e}"
            logger.debug("체크 실패: %s", title, exc_info=True)
            if show_all:
                lines.append(f"- {msg}")
            critical.append(msg)
            lines.append("")
            continue

        for idx, (msg, ok) in enumerate(results):
            if show_all:
                lines.append(f"- [{'OK' if ok else '!!'}] {msg}")
            if ok:
                continue
            if is_critical(idx):
                critical.append(msg)
            else:
                warnings.append(msg)
        lines.append("")

    lines.append("## Summary")
    if critical:
        lines.append("- 상태: 크리티컬 이슈가 있습니다. setup 전에 반드시 해결해야 합니다.")
    elif warnings:
        lines.append("- 상태: 경고만 있습니다. setup 시 일부 리소스가 새로 생성/설정됩니다.")
    else:
        lines.append("- 상태: 주요 이슈 없음 (이미 setup 이 완료된 상태로 보입니다)")

    if show_all or critical:
        lines.append("")
        lines.append("### Critical issues")
        for i in critical or ["(none)"]:
            lines.append(f"- {i}")

    if show_all or warnings:
        lines.append("")
        lines.append("### Warnings (setup 이 생성/설정할 항목)")
        for i in warnings or ["(none)"]:
            lines.append(f"- {i}")

    if not show_all:
        lines.append("")
        lines.append("자세한 상태를 보려면 `gcsetup check -a` 를 실행하세요.")

    return "\n".join(lines), bool(critical or warnings)
