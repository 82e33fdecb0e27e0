import io
import logging
import subprocess
import zipfile

import pytest
import yaml
from rich.console import Console

import rancherupgrader.core as core_module
from rancherupgrader.core import RancherUpgrader
from rancherupgrader.errors import (
    AuthError,
    MissingImagesError,
    NotFoundError,
    ServiceNotFoundError,
    SubprocessError,
    UnexpectedStatusError,
)
from rancherupgrader.models import Stage, UpgradeRequest

RANCHER = "https://rancher.example.com"
HUB = "https://hub.docker.com"

COMPOSE = """\
api:
  image: acme/api:v2
  environment:
    MODE: production
worker:
  image: acme/worker:v2
  command: celery worker
cron:
  image: acme/cron:v2
"""


def _zip_bytes(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zip_file:
        for name, content in files.items():
            zip_file.writestr(name, content)
    return buffer.getvalue()


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b""):
        self.status_code = status_code
        self.payload = payload
        self.content = content
        self.headers = {"Content-Length": str(len(content))}

    def json(self):
        return self.payload

    def iter_content(self, chunk_size=8192):
        yield self.content

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeRequests:
    class RequestException(Exception):
        pass

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append(("GET", url))
        if url not in self.routes:
            return FakeResponse(404, {"detail": "Not found"})
        return self.routes[url]

    def post(self, url, **kwargs):
        self.calls.append(("POST", url))
        return self.routes.get(url, FakeResponse(401, {}))


class FakeSubprocess:
    TimeoutExpired = subprocess.TimeoutExpired

    def __init__(self, returncodes=None):
        self.returncodes = list(returncodes or [])
        self.calls = []

    def run(self, cmd, **kwargs):
        self.calls.append(cmd)
        code = self.returncodes.pop(0) if self.returncodes else 0
        return subprocess.CompletedProcess(cmd, code, stdout="", stderr="")


def _rancher_routes():
    return {
        f"{RANCHER}/v1/projects": FakeResponse(
            payload={
                "data": [
                    {"name": "staging", "links": {"environments": f"{RANCHER}/v1/projects/1a1/environments"}},
                    {"name": "prod", "links": {"environments": f"{RANCHER}/v1/projects/1a5/environments"}},
                ]
            }
        ),
        f"{RANCHER}/v1/projects/1a5/environments": FakeResponse(
            payload={
                "data": [
                    {
                        "name": "web",
                        "links": {
                            "composeConfig": f"{RANCHER}/v1/environments/1e7/composeconfig",
                            "services": f"{RANCHER}/v1/environments/1e7/services",
                        },
                    }
                ]
            }
        ),
        f"{RANCHER}/v1/environments/1e7/composeconfig": FakeResponse(
            content=_zip_bytes({"docker-compose.yml": COMPOSE, "rancher-compose.yml": "api:\n  scale: 2\n"})
        ),
        f"{RANCHER}/v1/environments/1e7/services": FakeResponse(
            payload={"data": [{"name": "api"}, {"name": "worker"}, {"name": "cron"}]}
        ),
    }


@pytest.fixture
def fake_requests(monkeypatch):
    requests_module = FakeRequests(_rancher_routes())
    monkeypatch.setattr(core_module, "requests", requests_module)
    return requests_module


@pytest.fixture
def fake_subprocess(monkeypatch):
    subprocess_module = FakeSubprocess()
    monkeypatch.setattr(core_module, "subprocess", subprocess_module)
    return subprocess_module


def build_request(tmp_path, **overrides):
    values = {
        "environment": "prod",
        "stack": "web",
        "url": RANCHER,
        "access_key": "key",
        "secret_key": "secret",
        "services": ["api", "worker"],
        "working_dir": str(tmp_path),
    }
    values.update(overrides)
    return UpgradeRequest.from_options(values)


def _compose_images(tmp_path):
    document = yaml.safe_load((tmp_path / "docker-compose.yml").read_text(encoding="utf-8"))
    return {name: service.get("image") for name, service in document.items()}


BASE_ARGS = [
    "rancher-compose",
    "--project-name",
    "web",
    "--url",
    RANCHER,
    "--access-key",
    "key",
    "--secret-key",
    "secret",
]


def test_upgrade_without_tag_pulls_then_force_upgrades(tmp_path, fake_requests, fake_subprocess):
    result = RancherUpgrader(build_request(tmp_path)).execute()

    assert result.state is Stage.DONE
    assert result.exit_code == 0
    assert result.context.environment.name == "prod"
    assert result.context.stack.name == "web"
    assert result.context.service_names == ["api", "worker"]
    assert result.context.rewritten_images == ()
    assert fake_subprocess.calls == [
        BASE_ARGS + ["pull", "api", "worker"],
        BASE_ARGS
        + [
            "up",
            "-d",
            "-c",
            "--pull",
            "--upgrade",
            "--force-upgrade",
            "--batch-size",
            "1",
            "--interval",
            "2000",
            "api",
            "worker",
        ],
    ]
    assert result.context.completed_stages[-1] is Stage.FORCE_UPGRADE
    assert (tmp_path / "rancher-compose.yml").exists()
    assert _compose_images(tmp_path)["api"] == "acme/api:v2"
    assert not any(method == "POST" for method, _ in fake_requests.calls)


def test_upgrade_without_services_targets_every_service(tmp_path, fake_requests, fake_subprocess):
    result = RancherUpgrader(build_request(tmp_path, services=None)).execute()

    assert result.succeeded
    assert fake_subprocess.calls[0] == BASE_ARGS + ["pull", "api", "worker", "cron"]


def test_dry_run_rewrites_tag_and_stops_before_rancher_compose(tmp_path, fake_requests, fake_subprocess):
    result = RancherUpgrader(build_request(tmp_path, tag="v3", dry_run=True)).execute()

    assert result.state is Stage.DONE
    assert result.dry_run is True
    assert result.exit_code == 0
    assert fake_subprocess.calls == []
    assert result.context.rewritten_images == ("acme/api:v3", "acme/worker:v3")
    assert _compose_images(tmp_path) == {
        "api": "acme/api:v3",
        "worker": "acme/worker:v3",
        "cron": "acme/cron:v2",
    }
    assert Stage.PULL_IMAGES not in result.context.completed_stages


def test_missing_registry_tag_aborts_without_rewriting(tmp_path, fake_requests, fake_subprocess):
    fake_requests.routes.update(
        {
            f"{HUB}/v2/users/login/": FakeResponse(payload={"token": "jwt-token"}),
            f"{HUB}/v2/repositories/acme/api/tags/v3": FakeResponse(payload={"name": "v3"}),
            f"{HUB}/v2/repositories/acme/worker/tags/v3": FakeResponse(404, {"detail": "Not found"}),
        }
    )

    result = RancherUpgrader(
        build_request(tmp_path, tag="v3", docker_user="bob", docker_pass="hunter2")
    ).execute()

    assert result.state is Stage.FAILED
    assert result.failed_stage is Stage.REWRITE_TAG
    assert isinstance(result.error, MissingImagesError)
    assert result.error.images == ["acme/worker:v3"]
    assert result.exit_code == 1
    assert fake_subprocess.calls == []
    assert _compose_images(tmp_path)["worker"] == "acme/worker:v2"
    assert _compose_images(tmp_path)["api"] == "acme/api:v2"


def test_verified_tags_are_written_and_deployed(tmp_path, fake_requests, fake_subprocess):
    fake_requests.routes.update(
        {
            f"{HUB}/v2/users/login/": FakeResponse(payload={"token": "jwt-token"}),
            f"{HUB}/v2/repositories/acme/api/tags/v3": FakeResponse(payload={"name": "v3"}),
            f"{HUB}/v2/repositories/acme/worker/tags/v3": FakeResponse(payload={"name": "v3"}),
        }
    )

    result = RancherUpgrader(
        build_request(tmp_path, tag="v3", docker_user="bob", docker_pass="hunter2")
    ).execute()

    assert result.succeeded
    assert _compose_images(tmp_path)["worker"] == "acme/worker:v3"
    assert len(fake_subprocess.calls) == 2
    assert [call for call in fake_requests.calls if call[0] == "POST"] == [("POST", f"{HUB}/v2/users/login/")]


def test_partial_registry_credentials_fail_before_writing(tmp_path, fake_requests, fake_subprocess):
    result = RancherUpgrader(build_request(tmp_path, tag="v3", docker_user="bob")).execute()

    assert result.failed_stage is Stage.REWRITE_TAG
    assert isinstance(result.error, AuthError)
    assert _compose_images(tmp_path)["api"] == "acme/api:v2"


def test_unknown_service_fails_before_any_mutation(tmp_path, fake_requests, fake_subprocess):
    result = RancherUpgrader(build_request(tmp_path, services=["api", "ghost"], tag="v3")).execute()

    assert result.failed_stage is Stage.SELECT_SERVICES
    assert isinstance(result.error, ServiceNotFoundError)
    assert result.error.missing == ["ghost"]
    assert _compose_images(tmp_path)["api"] == "acme/api:v2"
    assert fake_subprocess.calls == []


def test_unknown_environment_stops_at_first_stage(tmp_path, fake_requests, fake_subprocess):
    result = RancherUpgrader(build_request(tmp_path, environment="qa")).execute()

    assert result.failed_stage is Stage.FETCH_ENVIRONMENT
    assert isinstance(result.error, NotFoundError)
    assert result.context.completed_stages == ()
    assert len(fake_requests.calls) == 1


def test_api_error_status_is_terminal(tmp_path, fake_requests, fake_subprocess):
    fake_requests.routes[f"{RANCHER}/v1/projects"] = FakeResponse(401, {"message": "Unauthorized"})

    result = RancherUpgrader(build_request(tmp_path)).execute()

    assert result.failed_stage is Stage.FETCH_ENVIRONMENT
    assert isinstance(result.error, UnexpectedStatusError)
    assert result.error.status_code == 401


def test_failed_pull_skips_force_upgrade(tmp_path, fake_requests, monkeypatch):
    subprocess_module = FakeSubprocess(returncodes=[1])
    monkeypatch.setattr(core_module, "subprocess", subprocess_module)

    result = RancherUpgrader(build_request(tmp_path)).execute()

    assert result.failed_stage is Stage.PULL_IMAGES
    assert isinstance(result.error, SubprocessError)
    assert result.error.returncode == 1
    assert len(subprocess_module.calls) == 1


def test_run_returns_exit_codes(tmp_path, fake_requests, fake_subprocess):
    assert RancherUpgrader(build_request(tmp_path)).run() == 0
    assert RancherUpgrader(build_request(tmp_path, stack="missing")).run() == 1


def test_run_reports_a_failure_once(tmp_path, fake_requests, fake_subprocess, monkeypatch, caplog):
    recorder = Console(record=True, width=200)
    monkeypatch.setattr(core_module, "console", recorder)

    with caplog.at_level(logging.DEBUG, logger="rancherupgrader"):
        exit_code = RancherUpgrader(build_request(tmp_path, environment="qa")).run()

    assert exit_code == 1
    assert recorder.export_text().count("qa") == 1
    assert not [record for record in caplog.records if record.levelno >= logging.ERROR]
