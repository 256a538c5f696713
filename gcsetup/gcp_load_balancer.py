"""
gcp_load_balancer
-----------------

여러 백엔드 서비스를 경로 기반으로 묶는 글로벌 외부 HTTP(S) 로드밸런서를
구성하는 모듈.

health check -> backend service -> URL map -> target proxy -> 고정 IP -> forwarding rule
순서로 만들며, 이미 존재하는 리소스는 건너뛴다.
"""

from __future__ import annotations

from .config import LoadBalancerConfig
from .logging_utils import get_logger
from .subprocess_utils import ensure_resource, run_command


logger = get_logger(__name__)


HEALTH_CHECK_PATH = "/healthz"
PATH_MATCHER_NAME = "path-matcher"


def _describe(kind: str, name: str, project_id: str, *, global_scope: bool = True) -> list[str]:
    cmd = ["gcloud", "compute", kind, "describe", name]
    if global_scope:
        cmd.append("--global")
    cmd.append(f"--project={project_id}")
    return cmd


def create_health_checks(cfg: LoadBalancerConfig, *, dry_run: bool = False) -> None:
    for svc in cfg.services:
        ensure_resource(
            f"health check {svc.health_check}",
            _describe("health-checks", svc.health_check, cfg.project_id),
            [
                "gcloud",
                "compute",
                "health-checks",
                "create",
                "http",
                svc.health_check,
                "--global",
                f"--port={cfg.health_check_port}",
                f"--request-path={HEALTH_CHECK_PATH}",
                f"--project={cfg.project_id}",
            ],
            dry_run=dry_run,
        )


def create_backend_services(cfg: LoadBalancerConfig, *, dry_run: bool = False) -> None:
    for svc in cfg.services:
        ensure_resource(
            f"backend service {svc.backend}",
            _describe("backend-services", svc.backend, cfg.project_id),
            [
                "gcloud",
                "compute",
                "backend-services",
                "create",
                svc.backend,
                "--global",
                f"--protocol={svc.protocol}",
                "--port-name=http",
                f"--health-checks={svc.health_check}",
                "--global-health-checks",
                "--load-balancing-scheme=EXTERNAL",
                "--enable-cdn",
                f"--project={cfg.project_id}",
            ],
            dry_run=dry_run,
        )


def path_rules(cfg: LoadBalancerConfig) -> str:
    return ",".join(f"{svc.path}={svc.backend}" for svc in cfg.services)


def _path_matcher_names(cfg: LoadBalancerConfig) -> list[str]:
    result = run_command(
        _describe("url-maps", cfg.url_map, cfg.project_id) + ["--format=value(pathMatchers[].name)"],
        timeout=120.0,
        show_progress=False,
    )
    # 여러 개면 ';' 로 구분되어 나온다
    return [name for name in result.stdout.replace(";", " ").split() if name]


def create_url_map(cfg: LoadBalancerConfig, *, dry_run: bool = False) -> None:
    """
    첫 번째 서비스를 기본 백엔드로 하는 URL map 을 만들고,
    모든 서비스의 경로 규칙을 하나의 path matcher 로 붙인다.

    URL map 이 이미 있으면 path matcher 가 붙어 있는지 확인하고,
    없을 때만 추가한다. (이전 실행이 add-path-matcher 에서 실패한 경우)
    """
    default_backend = cfg.services[0].backend
    created = ensure_resource(
        f"URL map {cfg.url_map}",
        _describe("url-maps", cfg.url_map, cfg.project_id),
        [
            "gcloud",
            "compute",
            "url-maps",
            "create",
            cfg.url_map,
            "--global",
            f"--default-service={default_backend}",
            f"--project={cfg.project_id}",
        ],
        dry_run=dry_run,
    )
    if not (created or dry_run) and PATH_MATCHER_NAME in _path_matcher_names(cfg):
        logger.info("path matcher 가 이미 있습니다: %s (%s)", PATH_MATCHER_NAME, cfg.url_map)
        return

    logger.info("경로 규칙 추가: %s", path_rules(cfg))
    run_command(
        [
            "gcloud",
            "compute",
            "url-maps",
            "add-path-matcher",
            cfg.url_map,
            "--global",
            f"--path-matcher-name={PATH_MATCHER_NAME}",
            f"--default-service={default_backend}",
            f"--path-rules={path_rules(cfg)}",
            "--new-hosts=*",
            f"--project={cfg.project_id}",
        ],
        dry_run=dry_run,
    )


def create_target_proxy(cfg: LoadBalancerConfig, *, dry_run: bool = False) -> None:
    kind = f"target-{cfg.protocol.lower()}-proxies"
    create_cmd = [
        "gcloud",
        "compute",
        kind,
        "create",
        cfg.proxy,
        "--global",
        f"--url-map={cfg.url_map}",
    ]
    if cfg.use_ssl:
        create_cmd.append(f"--ssl-certificates={cfg.ssl_certificate}")
    create_cmd.append(f"--project={cfg.project_id}")

    ensure_resource(
        f"{cfg.protocol} proxy {cfg.proxy}",
        _describe(kind, cfg.proxy, cfg.project_id),
        create_cmd,
        dry_run=dry_run,
    )


def reserve_address(cfg: LoadBalancerConfig, *, dry_run: bool = False) -> None:
    ensure_resource(
        f"global address {cfg.address}",
        _describe("addresses", cfg.address, cfg.project_id),
        [
            "gcloud",
            "compute",
            "addresses",
            "create",
            cfg.address,
            "--global",
            "--ip-version=IPV4",
            f"--project={cfg.project_id}",
        ],
        dry_run=dry_run,
    )


def create_forwarding_rule(cfg: LoadBalancerConfig, *, dry_run: bool = False) -> None:
    ensure_resource(
        f"forwarding rule {cfg.forwarding_rule}",
        _describe("forwarding-rules", cfg.forwarding_rule, cfg.project_id),
        [
            "gcloud",
            "compute",
            "forwarding-rules",
            "create",
            cfg.forwarding_rule,
            "--global",
            "--load-balancing-scheme=EXTERNAL",
            f"--target-{cfg.protocol.lower()}-proxy={cfg.proxy}",
            f"--address={cfg.address}",
            f"--ports={cfg.frontend_port}",
            f"--project={cfg.project_id}",
        ],
        dry_run=dry_run,
    )


def get_address(cfg: LoadBalancerConfig) -> str:
    result = run_command(
        _describe("addresses", cfg.address, cfg.project_id) + ["--format=value(address)"],
        timeout=120.0,
        show_progress=False,
    )
    return result.stdout.strip()
