"""Tests for the push decision and push execution."""
from __future__ import annotations

import pytest

from src.image_release.credentials import AuthSession, CredentialMaterializer
from src.image_release.models import BuildOptions, ImageReference, RegistryTarget, RunModeHints
from src.image_release.push import PushGate
from src.shared.errors import PushFailure

WITH_CREDS = RegistryTarget(url="reg.io", username="u", password="p")
NO_CREDS = RegistryTarget(url="reg.io")


@pytest.fixture
def gate(fake_runner, tmp_path) -> PushGate:
    materializer = CredentialMaterializer(fake_runner, credentials_root=tmp_path / "creds")
    return PushGate(fake_runner, materializer)


class TestShouldPush:
    def test_explicit_true_wins(self, gate):
        options = BuildOptions(push=True, registries=[NO_CREDS])
        assert gate.should_push(options, RunModeHints(local_mode=True))

    def test_explicit_false_wins(self, gate):
        options = BuildOptions(push=False, registries=[WITH_CREDS])
        assert not gate.should_push(options, RunModeHints())

    def test_credentials_imply_push(self, gate):
        assert gate.should_push(BuildOptions(registries=[WITH_CREDS]), RunModeHints())

    def test_inline_payload_implies_push(self, gate):
        options = BuildOptions(registries=[NO_CREDS], inline_auth="{}")
        assert gate.should_push(options, RunModeHints())

    def test_local_mode_disables_heuristic(self, gate):
        options = BuildOptions(registries=[WITH_CREDS])
        assert not gate.should_push(options, RunModeHints(local_mode=True))

    def test_inline_payload_without_registry_means_no_push(self, gate):
        options = BuildOptions(inline_auth='{"auths": {}}')
        assert not gate.should_push(options, RunModeHints())

    def test_no_credentials_means_no_push(self, gate):
        assert not gate.should_push(BuildOptions(registries=[NO_CREDS]), RunModeHints())

    def test_project_config_gates_decision(self, gate, project):
        project.write(".image-release.yaml", "docker:\n  push:\n    enabled: false\n")
        options = BuildOptions(push=True, registries=[WITH_CREDS])
        assert not gate.should_push(options, RunModeHints(), project)

    def test_project_config_cannot_force_push(self, gate, project):
        project.write(".image-release.yaml", "docker:\n  push:\n    enabled: true\n")
        assert not gate.should_push(BuildOptions(registries=[NO_CREDS]), RunModeHints(), project)


class TestPush:
    IMAGES = ImageReference(
        name="app",
        tags=["reg.io/app:1", "reg.io/app:latest", "other.io/app:1"],
    )
    OPTIONS = BuildOptions(
        registries=[
            RegistryTarget(url="reg.io", username="u", password="p"),
            RegistryTarget(url="other.io", anonymous=True),
        ]
    )

    @pytest.mark.asyncio
    async def test_disabled_has_no_side_effects(self, gate, fake_runner, memory_log):
        result = await gate.push(
            self.IMAGES, self.OPTIONS, AuthSession(run_id="r"), enabled=False, log=memory_log
        )
        assert result.success
        assert fake_runner.calls == []
        assert "Skipping 'docker push'" in memory_log.log

    @pytest.mark.asyncio
    async def test_pushed_by_builder(self, gate, fake_runner, memory_log):
        result = await gate.push(
            self.IMAGES, self.OPTIONS, AuthSession(run_id="r"),
            enabled=True, log=memory_log, pushed_by_builder=True,
        )
        assert result.success
        assert fake_runner.calls == []

    @pytest.mark.asyncio
    async def test_pushes_every_tag_registry_by_registry(self, gate, fake_runner, memory_log):
        session = AuthSession(run_id="r")
        result = await gate.push(self.IMAGES, self.OPTIONS, session, enabled=True, log=memory_log)
        assert result.success
        assert [c[2] for c in fake_runner.subcommand("push")] == [
            "reg.io/app:1", "reg.io/app:latest", "other.io/app:1",
        ]
        # reg.io was not authenticated yet, so push logs in first
        assert fake_runner.calls[0][1] == "login"
        assert session.authenticated == {"reg.io", "other.io"}

    @pytest.mark.asyncio
    async def test_first_failure_returned_verbatim(self, gate, fake_runner, memory_log):
        fake_runner.outcomes["push reg.io/app:latest"] = (2, "partial", "denied: requested access")
        session = AuthSession(run_id="r", authenticated={"reg.io", "other.io"})
        result = await gate.push(self.IMAGES, self.OPTIONS, session, enabled=True, log=memory_log)
        assert result.code == 2
        assert result.stdout == "partial"
        assert result.stderr == "denied: requested access"
        assert [c[2] for c in fake_runner.subcommand("push")] == [
            "reg.io/app:1", "reg.io/app:latest",
        ]

    @pytest.mark.asyncio
    async def test_spawn_error(self, gate, fake_runner, memory_log):
        fake_runner.missing.add("docker")
        session = AuthSession(run_id="r", authenticated={"reg.io", "other.io"})
        with pytest.raises(PushFailure):
            await gate.push(self.IMAGES, self.OPTIONS, session, enabled=True, log=memory_log)
