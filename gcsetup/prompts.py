"""
prompts
-------

project create / loadbalancer setup 의 대화형 입력.
-y(non_interactive) 이면 묻지 않고 기본값을 쓴다.
"""

from __future__ import annotations

import random

import click

from .config import LoadBalancerConfig, LoadBalancerService, ProjectConfig

# TCP 포트 범위
MAX_PORT = 65535


def ask(label: str, default: str, *, non_interactive: bool = False) -> str:
    if non_interactive:
        return default
    value = click.prompt(label, default=default, show_default=True)
    return str(value).strip() or default


def ask_int(label: str, default: int, *, max_value: int | None = None, non_interactive: bool = False) -> int:
    if non_interactive:
        return default
    return click.prompt(label, default=default, type=click.IntRange(1, max_value), show_default=True)


def ask_port(label: str, default: int, *, non_interactive: bool = False) -> int:
    return ask_int(label, default, max_value=MAX_PORT, non_interactive=non_interactive)


def random_suffix() -> str:
    return str(random.randint(0, 99999))


def prompt_project_config(*, non_interactive: bool = False) -> ProjectConfig:
    ni = non_interactive
    name = ask("Project Name", "my-project", non_interactive=ni)
    # 대화형일 때만 전역 유일성을 위해 난수 접미사를 제안한다.
    default_id = "my-project" if ni else f"my-project-{random_suffix()}"
    project_id = ask("Project ID (must be globally unique)", default_id, non_interactive=ni)

    return ProjectConfig(
        project_id=project_id,
        project_name=name,
        service_account_name=ask("Service Account Name", "github-actions", non_interactive=ni),
        artifact_registry_name=ask("Artifact Registry Name", "docker", non_interactive=ni),
        artifact_registry_location=ask(
            "Artifact Registry Location (e.g., us-central1)", "us-central1", non_interactive=ni
        ),
        github_organization=ask("GitHub Organization (optional)", "", non_interactive=ni),
    )


def prompt_load_balancer_config(project_id: str, *, non_interactive: bool = False) -> LoadBalancerConfig:
    ni = non_interactive
    name = ask("Load Balancer Name", "gcloud-lb", non_interactive=ni)
    network = ask("Network", "default", non_interactive=ni)
    subnet = ask("Subnet (leave empty for auto)", "", non_interactive=ni)
    hc_port = ask_port("Health Check Port", 8080, non_interactive=ni)

    use_ssl = False
    ssl_certificate = ""
    if not ni:
        use_ssl = click.confirm("Use SSL/TLS?", default=False)
        if use_ssl:
            ssl_certificate = ask("SSL Certificate Name", "")
            if not ssl_certificate:
                click.echo("⚠ HTTPS 에는 SSL 인증서 이름이 필요합니다. HTTP 로 진행합니다.")
                use_ssl = False

    services: list[LoadBalancerService] = []
    count = ask_int("How many services?", 1, non_interactive=ni)
    for i in range(1, count + 1):
        if not ni:
            click.echo(f"\nService {i}:")
        svc_name = ask("  Service name", f"service-{i}", non_interactive=ni)
        services.append(
            LoadBalancerService(
                name=svc_name,
                protocol=ask("  Protocol (HTTP/HTTPS)", "HTTP", non_interactive=ni),
                port=ask_port("  Port", 8080, non_interactive=ni),
                path=ask("  URL Path (e.g., /api/*)", f"/{svc_name}/*", non_interactive=ni),
            )
        )

    return LoadBalancerConfig(
        project_id=project_id,
        name=name,
        network=network,
        subnet=subnet,
        health_check_port=hc_port,
        use_ssl=use_ssl,
        ssl_certificate=ssl_certificate,
        services=services,
    )


def confirm(message: str, *, non_interactive: bool = False) -> bool:
    if non_interactive:
        return True
    return click.confirm(message, default=False)
