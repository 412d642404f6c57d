import base64
import json
import logging
import os
import subprocess
from typing import Dict, List, Protocol
from urllib.parse import urlsplit

from pydantic import ValidationError

from scanner_adapter.config import TrivyConfig, format_duration
from scanner_adapter.exceptions import WrapperError
from scanner_adapter.models import VersionInfo, ScanRequest

logger = logging.getLogger(__name__)


class Wrapper(Protocol):
    """Live information about the Trivy engine."""

    def get_version(self) -> VersionInfo:
        ...


def image_reference(request: ScanRequest) -> str:
    """Build ``<registry host>/<repository>@<digest>`` for the artifact to scan."""
    registry = urlsplit(request.registry.url)
    host = registry.netloc or registry.path.strip("/")
    return f"{host}/{request.artifact.repository}@{request.artifact.digest}"


def registry_credentials_env(authorization: str) -> Dict[str, str]:
    """
    Translate the registry Authorization value into Trivy environment variables.

    ``Basic <base64(user:password)>`` maps to TRIVY_USERNAME / TRIVY_PASSWORD and
    ``Bearer <token>`` maps to TRIVY_REGISTRY_TOKEN.

    Raises:
        WrapperError: If the authorization scheme is unsupported or malformed
    """
    if not authorization:
        return {}

    scheme, _, value = authorization.partition(" ")
    value = value.strip()

    if scheme.lower() == "basic":
        try:
            decoded = base64.b64decode(value, validate=True).decode("utf-8")
        except ValueError as e:
            raise WrapperError("decoding basic authorization", e)
        username, sep, password = decoded.partition(":")
        if not sep:
            raise WrapperError("basic authorization must be username:password")
        return {"TRIVY_USERNAME": username, "TRIVY_PASSWORD": password}

    if scheme.lower() == "bearer":
        return {"TRIVY_REGISTRY_TOKEN": value}

    raise WrapperError(f"unsupported authorization type: {scheme}")


class TrivyWrapper:

    def __init__(self, config: TrivyConfig):
        self._config = config

    def _base_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        if self._config.github_token:
            env["GITHUB_TOKEN"] = self._config.github_token
        return env

    def _scan_command(self, image_ref: str) -> List[str]:
        command = [
            'trivy',
            '--cache-dir', self._config.cache_dir,
            '--quiet',
            'image',
            '--no-progress',
            '--format', 'json',
            '--severity', self._config.severity,
            '--vuln-type', self._config.vuln_type,
            '--scanners', self._config.security_checks,
            '--timeout', format_duration(self._config.timeout),
        ]

        if self._config.ignore_unfixed:
            command.append('--ignore-unfixed')
        if self._config.skip_update:
            command.append('--skip-db-update')
        if self._config.skip_java_db_update:
            command.append('--skip-java-db-update')
        if self._config.offline_scan:
            command.append('--offline-scan')
        if self._config.insecure:
            command.append('--insecure')
        if self._config.debug_mode:
            command.append('--debug')

        command.append(image_ref)
        return command

    def scan(self, image_ref: str, authorization: str = "") -> dict:
        """
        Run ``trivy image`` against an image and return Trivy's JSON report.

        Args:
            image_ref: Image reference, e.g. ``core.harbor.domain/library/nginx@sha256:...``
            authorization: Registry Authorization value (Basic or Bearer)

        Returns:
            Parsed Trivy JSON output

        Raises:
            WrapperError: If Trivy fails or prints something that is not JSON
        """
        env = self._base_env()
        env.update(registry_credentials_env(authorization))

        command = self._scan_command(image_ref)
        logger.info(f"Running Trivy scan of {image_ref}")
        logger.debug(f"Trivy command: {' '.join(command)}")

        try:
            result = subprocess.run(command, capture_output=True, text=True, check=True, env=env)
        except subprocess.CalledProcessError as e:
            logger.error(f"Trivy scan of {image_ref} failed with exit code {e.returncode}: {e.stderr}")
            raise WrapperError(f"running trivy: exit status {e.returncode}: {(e.stderr or '').strip()}")
        except OSError as e:
            raise WrapperError("running trivy", e)

        logger.info(f"Trivy scan completed, output size: {len(result.stdout)} bytes")

        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            logger.error(f"Trivy stdout preview: {result.stdout[:500]}")
            raise WrapperError("decoding trivy report", e)

    def get_version(self) -> VersionInfo:
        """
        Query ``trivy version`` for the engine and vulnerability database versions.

        Raises:
            WrapperError: If Trivy fails or its output cannot be decoded
        """
        command = ['trivy', '--cache-dir', self._config.cache_dir, 'version', '--format', 'json']

        try:
            result = subprocess.run(command, capture_output=True, text=True, check=True, env=self._base_env())
        except subprocess.CalledProcessError as e:
            raise WrapperError(f"running trivy version: exit status {e.returncode}: {(e.stderr or '').strip()}")
        except OSError as e:
            raise WrapperError("running trivy version", e)

        try:
            return VersionInfo.model_validate_json(result.stdout)
        except ValidationError as e:
            raise WrapperError("decoding trivy version", e)
