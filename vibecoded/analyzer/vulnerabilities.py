"""Vulnerability and secret scanning via Trivy.

The scanner runs as an external process against the repository URL; this
module resolves a stable ref, invokes it, validates the JSON report and
normalizes findings into deduplicated ``VulnDetail`` records.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..constants import DEFAULT_BRANCH_FALLBACK, FindingType
from ..github.client import GitHubClient
from ..storage.models import VulnDetail
from ..utils.repos import blob_url, repo_url

logger = logging.getLogger(__name__)

# Trivy exits 1 when it found something (with --exit-code 1); both are fine.
ACCEPTED_EXIT_CODES = frozenset({0, 1})

_LEADING_DOT_SLASH_RE = re.compile(r"^\./+")


class ScannerError(RuntimeError):
    """The scanner failed or produced output that is not a valid report."""


class _TrivyModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class TrivyVulnerability(_TrivyModel):
    pkg_name: Optional[str] = Field(default=None, alias="PkgName")
    installed_version: Optional[str] = Field(default=None, alias="InstalledVersion")
    vulnerability_id: Optional[str] = Field(default=None, alias="VulnerabilityID")
    severity: Optional[str] = Field(default=None, alias="Severity")
    title: Optional[str] = Field(default=None, alias="Title")
    fixed_version: Optional[str] = Field(default=None, alias="FixedVersion")


class TrivySecret(_TrivyModel):
    rule_id: Optional[str] = Field(default=None, alias="RuleID")
    severity: Optional[str] = Field(default=None, alias="Severity")
    title: Optional[str] = Field(default=None, alias="Title")
    target: Optional[str] = Field(default=None, alias="Target")


class TrivyResult(_TrivyModel):
    target: Optional[str] = Field(default=None, alias="Target")
    vulnerabilities: Optional[list[TrivyVulnerability]] = Field(default=None, alias="Vulnerabilities")
    secrets: Optional[list[TrivySecret]] = Field(default=None, alias="Secrets")


class TrivyReport(_TrivyModel):
    results: Optional[list[TrivyResult]] = Field(default=None, alias="Results")


@dataclass
class ScanResult:
    """Sorted summary lines plus findings in discovery order."""

    summary: list[str] = field(default_factory=list)
    details: list[VulnDetail] = field(default_factory=list)


def build_target_url(full_name: str, ref: str, target: Optional[str]) -> Optional[str]:
    """Permalink for a scanner target path, or None for empty/external targets."""
    if not target:
        return None
    normalized = _LEADING_DOT_SLASH_RE.sub("", target)
    if not normalized or "://" in normalized:
        return None
    return blob_url(full_name, ref, normalized)


def extract_vulnerability_details(
    report: TrivyReport | dict,
    full_name: str,
    ref: str,
) -> ScanResult:
    """
    Normalize a Trivy report into deduplicated findings.

    Every detail has exactly one summary line; the summary is sorted, the
    details keep the order findings were encountered in.
    """
    if not isinstance(report, TrivyReport):
        report = TrivyReport.model_validate(report)

    seen: set[str] = set()
    summary: list[str] = []
    details: list[VulnDetail] = []

    def _record(detail: VulnDetail) -> None:
        key = detail.dedup_key
        if key in seen:
            return
        seen.add(key)
        summary.append(detail.summary_line)
        details.append(detail)

    for result in report.results or []:
        result_target = result.target or ""

        for vuln in result.vulnerabilities or []:
            _record(
                VulnDetail(
                    pkg=vuln.pkg_name or "unknown",
                    version=vuln.installed_version or "",
                    cve=vuln.vulnerability_id or "",
                    severity=vuln.severity or "UNKNOWN",
                    title=vuln.title or "",
                    fixed_version=vuln.fixed_version,
                    type=FindingType.VULN,
                    target=result_target,
                    target_url=build_target_url(full_name, ref, result.target),
                    scanned_ref=ref,
                )
            )

        for secret in result.secrets or []:
            secret_target = secret.target or result.target
            _record(
                VulnDetail(
                    pkg="repo",
                    version="",
                    cve=secret.rule_id or "secret",
                    severity=secret.severity or "CRITICAL",
                    title=secret.title or "Secret Found",
                    type=FindingType.SECRET,
                    target=secret_target or "",
                    target_url=build_target_url(full_name, ref, secret_target),
                    scanned_ref=ref,
                )
            )

    return ScanResult(summary=sorted(summary), details=details)


def parse_report(output: str) -> TrivyReport:
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise ScannerError(f"Scanner output is not JSON: {e}") from e
    try:
        return TrivyReport.model_validate(data)
    except ValidationError as e:
        raise ScannerError(f"Scanner report has unexpected shape: {e}") from e


class TrivyScanner:
    """Runs ``trivy repo`` for vulnerabilities and secrets."""

    def __init__(self, client: GitHubClient, *, trivy_bin: str = "trivy"):
        self.client = client
        self.trivy_bin = trivy_bin

    async def resolve_scan_ref(self, full_name: str) -> str:
        """
        Commit SHA of the default branch, resolved once per scan so every
        permalink points at the same tree even if the branch moves meanwhile.
        Falls back to the branch name, then ``main``.
        """
        try:
            repo = await self.client.get_repo(full_name)
            branch = repo.default_branch or DEFAULT_BRANCH_FALLBACK
        except Exception as e:
            logger.warning("Could not fetch repo for %s, scanning %s: %s", full_name, DEFAULT_BRANCH_FALLBACK, e)
            return DEFAULT_BRANCH_FALLBACK
        try:
            return await self.client.resolve_ref(full_name, branch)
        except Exception as e:
            logger.warning("Could not resolve %s@%s to a commit: %s", full_name, branch, e)
            return branch

    def _command(self, full_name: str, ref: str) -> list[str]:
        args = [self.trivy_bin, "repo", "-f", "json", "--scanners", "vuln,secret"]
        if len(ref) == 40 and all(c in "0123456789abcdef" for c in ref.lower()):
            args += ["--commit", ref]
        args.append(repo_url(full_name))
        return args

    async def _run(self, args: list[str]) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ScannerError(f"Scanner executable not found: {args[0]}") from e
        stdout, stderr = await proc.communicate()
        out = stdout.decode("utf-8", errors="replace")
        if proc.returncode not in ACCEPTED_EXIT_CODES:
            err = stderr.decode("utf-8", errors="replace")
            raise ScannerError(f"trivy failed ({proc.returncode}): {(err or out)[:500]}")
        return out

    async def scan(self, full_name: str) -> ScanResult:
        ref = await self.resolve_scan_ref(full_name)
        logger.info("Scanning %s at %s", full_name, ref)
        output = await self._run(self._command(full_name, ref))
        report = parse_report(output)
        return extract_vulnerability_details(report, full_name, ref)
