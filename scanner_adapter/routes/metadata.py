import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Response
from fastapi.concurrency import run_in_threadpool

from scanner_adapter.api.mime_types import MIME_TYPE_METADATA, MIME_TYPE_SECURITY_VULNERABILITY_REPORT, CONSUMED_MIME_TYPES
from scanner_adapter.api.responses import write_json
from scanner_adapter.config import (
    ADAPTER_VCS_URL, BuildInfo, Config, TrivyConfig, format_bool, format_duration, format_rfc3339,
    get_scanner_metadata,
)
from scanner_adapter.dependencies import get_build_info, get_config, get_wrapper
from scanner_adapter.models import Capability, ScannerAdapterMetadata, VersionInfo
from scanner_adapter.trivy.wrapper import Wrapper

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

PROPERTY_SCANNER_TYPE = "harbor.scanner-adapter/scanner-type"
PROPERTY_DB_UPDATED_AT = "harbor.scanner-adapter/vulnerability-database-updated-at"
PROPERTY_DB_NEXT_UPDATE_AT = "harbor.scanner-adapter/vulnerability-database-next-update-at"
PROPERTY_JAVA_DB_NEXT_UPDATE_AT = "harbor.scanner-adapter/vulnerability-java-database-next-update-at"

SCANNER_TYPE = "os-package-vulnerability"


def static_properties(build_info: BuildInfo, config: Config) -> Dict[str, str]:
    trivy = config.trivy
    return {
        PROPERTY_SCANNER_TYPE: SCANNER_TYPE,

        "org.label-schema.version": build_info.version,
        "org.label-schema.build-date": build_info.date,
        "org.label-schema.vcs-ref": build_info.commit,
        "org.label-schema.vcs": ADAPTER_VCS_URL,

        "env.SCANNER_TRIVY_SKIP_UPDATE": format_bool(trivy.skip_update),
        "env.SCANNER_TRIVY_SKIP_JAVA_DB_UPDATE": format_bool(trivy.skip_java_db_update),
        "env.SCANNER_TRIVY_OFFLINE_SCAN": format_bool(trivy.offline_scan),
        "env.SCANNER_TRIVY_IGNORE_UNFIXED": format_bool(trivy.ignore_unfixed),
        "env.SCANNER_TRIVY_DEBUG_MODE": format_bool(trivy.debug_mode),
        "env.SCANNER_TRIVY_INSECURE": format_bool(trivy.insecure),
        "env.SCANNER_TRIVY_VULN_TYPE": trivy.vuln_type,
        "env.SCANNER_TRIVY_SECURITY_CHECKS": trivy.security_checks,
        "env.SCANNER_TRIVY_SEVERITY": trivy.severity,
        "env.SCANNER_TRIVY_TIMEOUT": format_duration(trivy.timeout),
    }


def add_database_properties(properties: Dict[str, str], version_info: Optional[VersionInfo], trivy: TrivyConfig) -> None:
    """
    Add the vulnerability database timestamps reported by Trivy.

    Keys are only added when their source is present; next-update times are
    left out when the matching database is configured never to update.
    """
    if version_info is None:
        return

    db = version_info.vulnerability_db
    if db is not None:
        if db.updated_at is not None:
            properties[PROPERTY_DB_UPDATED_AT] = format_rfc3339(db.updated_at)
        if not trivy.skip_update and db.next_update is not None:
            properties[PROPERTY_DB_NEXT_UPDATE_AT] = format_rfc3339(db.next_update)

    java_db = version_info.java_db
    if java_db is not None and not trivy.skip_java_db_update and java_db.next_update is not None:
        properties[PROPERTY_JAVA_DB_NEXT_UPDATE_AT] = format_rfc3339(java_db.next_update)


@router.get("/metadata")
async def get_metadata(
    config: Config = Depends(get_config),
    build_info: BuildInfo = Depends(get_build_info),
    wrapper: Wrapper = Depends(get_wrapper),
) -> Response:
    properties = static_properties(build_info, config)

    version_info = None
    try:
        version_info = await run_in_threadpool(wrapper.get_version)
    except Exception as e:
        # Metadata is best-effort: answer without the database properties
        logger.error(f"Error while retrieving vulnerability DB version: {e}")

    add_database_properties(properties, version_info, config.trivy)

    metadata = ScannerAdapterMetadata(
        scanner=get_scanner_metadata(),
        capabilities=[
            Capability(
                consumes_mime_types=[str(mime_type) for mime_type in CONSUMED_MIME_TYPES],
                produces_mime_types=[str(MIME_TYPE_SECURITY_VULNERABILITY_REPORT)],
            )
        ],
        properties=properties,
    )
    return write_json(metadata, MIME_TYPE_METADATA, 200)
