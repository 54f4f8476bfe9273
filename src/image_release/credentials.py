"""Registry credential materialization.

Credentials reach the builder in one of three mutually exclusive ways, tried
in order for each registry:

1. username + password: ``docker login`` for the native builder, or an
   ``auths`` entry in the run's config document for the isolated builder
   (which has no login command);
2. an inline credential-store document, written verbatim;
3. nothing; a push to a private registry will fail later.

Everything is written below ``<credentials_root>/<run_id>/`` and exported to
subprocesses as ``DOCKER_CONFIG``, so concurrent runs on the same host never
share a credential file.
"""

from __future__ import annotations

import base64
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.image_release.models import AuthResult, BuilderKind, RegistryTarget
from src.shared.errors import AuthError
from src.shared.process import ProcessRunner
from src.shared.run_log import RunLog
from src.shared.utils import atomic_write_text

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"

_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


def login_args(target: RegistryTarget) -> list[str]:
    """Build ``docker login`` arguments for *target*.

    The registry is appended only when it contains a non-alphanumeric
    character; a bare alias such as ``dockerhub`` would otherwise be read as
    a hostname.
    """
    args = ["login", "--username", target.username or "", "--password", target.password or ""]
    if _NON_ALPHANUMERIC.search(target.url):
        args.append(target.url)
    return args


def encode_auth(username: str, password: str) -> str:
    """Return the base64 ``user:password`` value used in ``auths`` entries."""
    return base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")


@dataclass
class AuthSession:
    """Credential state of one goal run."""

    run_id: str
    config_dir: Path | None = None
    authenticated: set[str] = field(default_factory=set)
    results: list[AuthResult] = field(default_factory=list)
    inline_written: bool = False

    @property
    def env(self) -> dict[str, str]:
        """Environment overrides for every later subprocess of the run."""
        if self.config_dir is None:
            return {}
        return {"DOCKER_CONFIG": str(self.config_dir)}


class CredentialMaterializer:
    """Writes or selects the authentication material a builder needs."""

    def __init__(
        self,
        runner: ProcessRunner,
        credentials_root: Path | str,
        docker_command: str = "docker",
    ) -> None:
        self.runner = runner
        self.credentials_root = Path(credentials_root)
        self.docker_command = docker_command

    def scoped_dir(self, run_id: str) -> Path:
        """Return the credential directory that belongs to *run_id*."""
        return self.credentials_root / run_id

    async def authenticate(
        self,
        target: RegistryTarget | None,
        *,
        session: AuthSession,
        inline_auth: str | None = None,
        builder: BuilderKind = BuilderKind.NATIVE,
        log: RunLog | None = None,
    ) -> AuthResult:
        """Authenticate one registry (or just the inline payload if *target* is None).

        Raises:
            AuthError: If a file cannot be written or ``docker login`` fails.
        """
        if target is not None and target.has_credentials:
            if builder is BuilderKind.NATIVE:
                result = await self._login(target, session, log)
            else:
                result = self._write_auths(target, session, inline_auth)
        elif inline_auth:
            if session.inline_written:
                result = AuthResult(method="config", config_dir=session.config_dir)
            else:
                result = self._write_document(
                    session, self._base_document(session, inline_auth)
                )
                session.inline_written = True
            result.registry = target.url if target is not None else None
        else:
            if log is not None:
                log.write(
                    "Skipping 'docker login' because user and password are not configured\n"
                )
            result = AuthResult(method="none", registry=target.url if target else None)

        if target is not None:
            session.authenticated.add(target.url)
        session.results.append(result)
        return result

    async def materialize(
        self,
        registries: list[RegistryTarget],
        *,
        run_id: str,
        inline_auth: str | None = None,
        builder: BuilderKind = BuilderKind.NATIVE,
        log: RunLog | None = None,
    ) -> AuthSession:
        """Authenticate every registry once, before any build step runs."""
        session = AuthSession(run_id=run_id)
        # The payload goes first so logins add to it rather than being replaced.
        if inline_auth:
            await self.authenticate(
                None, session=session, inline_auth=inline_auth,
                builder=builder, log=log,
            )
        for target in registries:
            await self.authenticate(
                target, session=session, inline_auth=inline_auth,
                builder=builder, log=log,
            )
        return session

    async def ensure(
        self,
        target: RegistryTarget,
        *,
        session: AuthSession,
        inline_auth: str | None = None,
        builder: BuilderKind = BuilderKind.NATIVE,
        log: RunLog | None = None,
    ) -> AuthResult | None:
        """Authenticate *target* unless the session already did."""
        if target.url in session.authenticated:
            return None
        return await self.authenticate(
            target, session=session, inline_auth=inline_auth,
            builder=builder, log=log,
        )

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    async def _login(
        self, target: RegistryTarget, session: AuthSession, log: RunLog | None
    ) -> AuthResult:
        config_dir = self._prepare_dir(session)
        if log is not None:
            log.write(f"Running 'docker login' for {target.url}\n")
        try:
            proc = await self.runner.run(
                self.docker_command,
                login_args(target),
                env=session.env,
                log=log,
                log_command=False,
            )
        except OSError as exc:
            raise AuthError(f"Unable to run docker login: {exc}") from exc
        if not proc.success:
            raise AuthError(
                f"docker login failed for registry '{target.url}'",
                code=proc.exit_code,
                stdout=proc.stdout,
                stderr=proc.stderr,
            )
        return AuthResult(
            method="login",
            registry=target.url,
            config_dir=config_dir,
            stdout=proc.stdout,
            stderr=proc.stderr,
        )

    def _write_auths(
        self, target: RegistryTarget, session: AuthSession, inline_auth: str | None
    ) -> AuthResult:
        document = self._base_document(session, inline_auth)
        if inline_auth:
            session.inline_written = True
        auths = document.setdefault("auths", {})
        auths[target.url] = {
            "auth": encode_auth(target.username or "", target.password or "")
        }
        result = self._write_document(session, document)
        result.registry = target.url
        return result

    def _write_document(self, session: AuthSession, document: dict[str, Any]) -> AuthResult:
        config_dir = self._prepare_dir(session)
        path = config_dir / CONFIG_FILE
        try:
            atomic_write_text(path, json.dumps(document, indent=2))
        except OSError as exc:
            raise AuthError(f"Unable to write credentials to {path}: {exc}") from exc
        logger.info("Wrote registry credentials to %s", path)
        return AuthResult(method="config", config_dir=config_dir)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prepare_dir(self, session: AuthSession) -> Path:
        if session.config_dir is None:
            config_dir = self.scoped_dir(session.run_id)
            try:
                config_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise AuthError(
                    f"Unable to create credential directory {config_dir}: {exc}"
                ) from exc
            session.config_dir = config_dir
        return session.config_dir

    def _base_document(
        self, session: AuthSession, inline_auth: str | None
    ) -> dict[str, Any]:
        """Current document with the inline payload merged in once.

        Entries already written for this run (e.g. by ``docker login``)
        take precedence over the payload's entries for the same registry.
        """
        document = self._current_document(session)
        if not inline_auth or session.inline_written:
            return document
        inline = self._parse(inline_auth)
        auths = dict(inline.get("auths") or {})
        auths.update(document.get("auths") or {})
        merged = {**inline, **document}
        if auths:
            merged["auths"] = auths
        return merged

    def _current_document(self, session: AuthSession) -> dict[str, Any]:
        if session.config_dir is None:
            return {}
        path = session.config_dir / CONFIG_FILE
        if not path.exists():
            return {}
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise AuthError(f"Unable to read credentials from {path}: {exc}") from exc

    @staticmethod
    def _parse(inline_auth: str) -> dict[str, Any]:
        try:
            document = json.loads(inline_auth)
        except json.JSONDecodeError as exc:
            raise AuthError(f"Inline authentication payload is not valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise AuthError("Inline authentication payload must be a JSON object")
        return document
