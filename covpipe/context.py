"""
Job Context - Immutable CI Job Identity

Built once at process start from the CI environment and passed explicitly to
every step. Nothing downstream reads job identity from os.environ.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class CIProvider(str, Enum):
    TRAVIS = "travis"
    GITHUB_ACTIONS = "github-actions"
    GITLAB = "gitlab"
    GENERIC = "generic"
    LOCAL = "local"


# Name tarpaulin expects for --ciserver
CI_SERVER_NAMES = {
    CIProvider.TRAVIS: "travis-ci",
    CIProvider.GITHUB_ACTIONS: "github-actions",
    CIProvider.GITLAB: "gitlab",
    CIProvider.GENERIC: "generic",
    CIProvider.LOCAL: "local",
}

# Service name Codecov expects in the upload query
SERVICE_NAMES = {
    CIProvider.TRAVIS: "travis",
    CIProvider.GITHUB_ACTIONS: "github-actions",
    CIProvider.GITLAB: "gitlab",
    CIProvider.GENERIC: "custom",
    CIProvider.LOCAL: "custom",
}

# provider -> (job_id, build_id, commit, branch, slug) environment variables
PROVIDER_ENV_KEYS = {
    CIProvider.TRAVIS: (
        "TRAVIS_JOB_ID",
        "TRAVIS_BUILD_NUMBER",
        "TRAVIS_COMMIT",
        "TRAVIS_BRANCH",
        "TRAVIS_REPO_SLUG",
    ),
    CIProvider.GITHUB_ACTIONS: (
        "GITHUB_RUN_ID",
        "GITHUB_RUN_NUMBER",
        "GITHUB_SHA",
        "GITHUB_REF_NAME",
        "GITHUB_REPOSITORY",
    ),
    CIProvider.GITLAB: (
        "CI_JOB_ID",
        "CI_PIPELINE_ID",
        "CI_COMMIT_SHA",
        "CI_COMMIT_REF_NAME",
        "CI_PROJECT_PATH",
    ),
    CIProvider.GENERIC: (
        "CI_JOB_ID",
        "CI_BUILD_ID",
        "CI_COMMIT_SHA",
        "CI_BRANCH",
        "CI_REPO_SLUG",
    ),
}

COVERAGE_TOKEN_KEYS = ("COVERAGE_TOKEN", "CODECOV_TOKEN")
COVERALLS_TOKEN_KEY = "COVERALLS_REPO_TOKEN"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def detect_provider(environ: Mapping[str, str]) -> CIProvider:
    """Work out which CI system the job runs on from its marker variables"""
    if _clean(environ.get("TRAVIS")) == "true":
        return CIProvider.TRAVIS
    if _clean(environ.get("GITHUB_ACTIONS")) == "true":
        return CIProvider.GITHUB_ACTIONS
    if _clean(environ.get("GITLAB_CI")) == "true":
        return CIProvider.GITLAB
    if _clean(environ.get("CI_JOB_ID")) or _clean(environ.get("CI")):
        return CIProvider.GENERIC
    return CIProvider.LOCAL


@dataclass(frozen=True)
class JobContext:
    """Identity of the CI job the pipeline runs in"""

    provider: CIProvider
    job_id: Optional[str] = None
    build_id: Optional[str] = None
    commit: Optional[str] = None
    branch: Optional[str] = None
    slug: Optional[str] = None
    tokens: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({}), repr=False
    )

    def __post_init__(self):
        # Freeze the token mapping so no step can add or swap credentials
        if not isinstance(self.tokens, MappingProxyType):
            object.__setattr__(self, "tokens", MappingProxyType(dict(self.tokens)))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "JobContext":
        """Build the context from ``environ`` (defaults to ``os.environ``)"""
        environ = os.environ if environ is None else environ
        provider = detect_provider(environ)

        values = [None] * 5
        if provider in PROVIDER_ENV_KEYS:
            values = [_clean(environ.get(key)) for key in PROVIDER_ENV_KEYS[provider]]
        job_id, build_id, commit, branch, slug = values

        # A bare CI_JOB_ID is honoured on every provider
        if job_id is None:
            job_id = _clean(environ.get("CI_JOB_ID"))

        tokens = {}
        for key in COVERAGE_TOKEN_KEYS:
            token = _clean(environ.get(key))
            if token:
                tokens["coverage"] = token
                break
        coveralls_token = _clean(environ.get(COVERALLS_TOKEN_KEY))
        if coveralls_token:
            tokens["coveralls"] = coveralls_token

        return cls(
            provider=provider,
            job_id=job_id,
            build_id=build_id,
            commit=commit,
            branch=branch,
            slug=slug,
            tokens=tokens,
        )

    def token(self, name: str) -> Optional[str]:
        return self.tokens.get(name)

    @property
    def ci_server(self) -> str:
        return CI_SERVER_NAMES[self.provider]

    @property
    def service(self) -> str:
        return SERVICE_NAMES[self.provider]

    def describe(self) -> dict:
        """Loggable view of the context with credentials reduced to their names"""
        return {
            "provider": self.provider.value,
            "job_id": self.job_id,
            "build_id": self.build_id,
            "commit": self.commit,
            "branch": self.branch,
            "slug": self.slug,
            "tokens": sorted(self.tokens),
        }
