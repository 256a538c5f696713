"""
gcp_secrets
-----------

Secret Manager 에 secret 을 만들고 배포용 서비스 계정에
secretAccessor 권한을 부여하는 모듈.

.env.secrets 에 값이 있으면 새 버전으로 추가한다.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional

import click
from google.api_core.exceptions import NotFound
from google.cloud import secretmanager

from .logging_utils import get_logger
from .subprocess_utils import REDACTED


logger = get_logger(__name__)


ACCESSOR_ROLE = "roles/secretmanager.secretAccessor"


def _grant_accessor(client, secret_name: str, member: str) -> bool:  # noqa: ANN001
    """IAM 정책에 member 가 없을 때만 추가한다. 추가했으면 True."""
    policy = client.get_iam_policy(request={"resource": secret_name})
    for binding in policy.bindings:
        if binding.role != ACCESSOR_ROLE:
            continue
        if member in binding.members:
            return False
        binding.members.append(member)
        break
    else:
        policy.bindings.add(role=ACCESSOR_ROLE, members=[member])

    client.set_iam_policy(request={"resource": secret_name, "policy": policy})
    return True


def ensure_secrets(
    project_id: str,
    service_account_email: str,
    names: List[str],
    values: Optional[Mapping[str, str]] = None,
    *,
    dry_run: bool = False,
) -> List[str]:
    """
    names 의 secret 을 준비하고, 처리한 secret 리소스 이름 목록을 반환한다.
    """
    if not names:
        logger.info("생성할 secret 이 없습니다.")
        return []

    values = values or {}
    parent = f"projects/{project_id}"
    member = f"serviceAccount:{service_account_email}"

    if dry_run:
        handled = []
        for name in names:
            secret_name = f"{parent}/secrets/{name}"
            click.echo(f"  [dry-run] Secret Manager: create {secret_name} (replication=automatic)")
            if values.get(name):
                click.echo(f"  [dry-run] Secret Manager: add version {secret_name} ({REDACTED})")
            click.echo(f"  [dry-run] Secret Manager: grant {ACCESSOR_ROLE} on {secret_name} to {member}")
            handled.append(secret_name)
        return handled

    client = secretmanager.SecretManagerServiceClient()

    handled: List[str] = []
    for name in names:
        secret_name = client.secret_path(project_id, name)

        try:
            client.get_secret(name=secret_name)
            logger.info("기존 Secret 을 사용합니다: %s", secret_name)
        except NotFound:
            logger.info("Secret 이 없어 새로 생성합니다: %s", secret_name)
            client.create_secret(
                parent=parent,
                secret_id=name,
                secret={"replication": {"automatic": {}}},
            )

        value = values.get(name)
        if value:
            client.add_secret_version(
                parent=secret_name,
                payload={"data": value.encode("utf-8")},
            )
            logger.info("Secret 에 새 버전을 추가했습니다: %s", secret_name)

        if _grant_accessor(client, secret_name, member):
            logger.info("%s 부여: %s -> %s", ACCESSOR_ROLE, secret_name, member)

        handled.append(secret_name)

    return handled


def check_secrets(project_id: str, names: List[str]) -> List[tuple[str, bool]]:
    """
    Secret 들이 Secret Manager 에 존재하는지 확인한다. (생성하지 않음)
    """
    if not names:
        return []

    client = secretmanager.SecretManagerServiceClient()
    results: List[tuple[str, bool]] = []
    for name in names:
        secret_name = client.secret_path(project_id, name)
        try:
            client.get_secret(name=secret_name)
            results.append((f"Secrets: 존재함 ({secret_name})", True))
        except NotFound:
            results.append((f"Secrets: 없음 (생성이 필요함) ({secret_name})", False))

    return results


def secrets_hint(project_id: str) -> Dict[str, str]:
    """secret 이름이 하나도 지정되지 않았을 때 보여줄 안내."""
    return {
        "env": 'export SECRETS_TO_CREATE="DATABASE_URL API_KEY JWT_SECRET"',
        "cli": "gcsetup secrets create DATABASE_URL API_KEY",
        "manual": f'gcloud secrets create SECRET_NAME --project="{project_id}" --replication-policy="automatic"',
        "add_value": "echo -n 'secret-value' | gcloud secrets versions add SECRET_NAME --data-file=-",
    }
