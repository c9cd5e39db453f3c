"""
Shared pieces of the buildpacks: build configuration, build secret ARGs and
the docker build commands run on the build server.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)

PNPM_INSTALL = 'RUN curl -f https://get.pnpm.io/v6.16.js | node - add --global pnpm@7'
HEREDOC_MARKER = 'SHIPYARD_DOCKERFILE_EOF'


@dataclass
class BuildSecret:
    name: str
    value: str
    is_build_secret: bool = False
    is_pr_secret: bool = False  # Only for pull/merge request previews


@dataclass
class DockerBuildConfig:
    """Everything a buildpack needs to produce and build an image."""
    application_id: str
    build_id: str
    tag: str
    workdir: str
    deployment_type: str = 'node'  # node or static
    base_image: str = 'node:lts'
    base_build_image: str = 'node:lts'
    install_command: Optional[str] = None
    build_command: Optional[str] = None
    start_command: Optional[str] = None
    publish_directory: Optional[str] = None
    base_directory: Optional[str] = None
    port: int = 3000
    pull_request_id: Optional[int] = None
    secrets: List[BuildSecret] = field(default_factory=list)

    @property
    def image(self) -> str:
        return f"{self.application_id}:{self.tag}"

    @property
    def cache_image(self) -> str:
        return f"{self.application_id}:{self.tag}-cache"


def uses_pnpm(*commands) -> bool:
    """True if any of the commands runs pnpm."""
    return any(command and 'pnpm' in command for command in commands)


def secret_args(secrets: List[BuildSecret], pull_request_id: Optional[int] = None) -> List[str]:
    """
    ARG directives for build secrets.

    Preview deployments of a pull request use the PR-scoped secret with the
    same name when one exists. Regular deployments skip PR-scoped secrets.
    """
    lines = []
    for secret in secrets:
        if not secret.is_build_secret:
            continue
        if pull_request_id:
            pr_secret = next((s for s in secrets if s.name == secret.name and s.is_pr_secret), None)
            value = pr_secret.value if pr_secret else secret.value
            lines.append(f"ARG {secret.name}={value}")
        elif not secret.is_pr_secret:
            lines.append(f"ARG {secret.name}={secret.value}")
    return lines


def header(config: DockerBuildConfig, image: str) -> List[str]:
    """FROM/WORKDIR/LABEL, build ARGs and pnpm bootstrap shared by every Dockerfile."""
    lines = [
        f"FROM {image}",
        'WORKDIR /app',
        f"LABEL coolify.buildId={config.build_id}"
    ]
    lines.extend(secret_args(config.secrets, config.pull_request_id))
    if uses_pnpm(config.install_command, config.build_command, config.start_command):
        lines.append(PNPM_INSTALL)
    return lines


def generate_cache_dockerfile(config: DockerBuildConfig, image: str) -> str:
    """Dockerfile of the intermediate image that holds the built application."""
    lines = header(config, image)
    lines.append(f"COPY .{config.base_directory or ''} ./")
    if config.install_command:
        lines.append(f"RUN {config.install_command}")
    lines.append(f"RUN {config.build_command}")
    return '\n'.join(lines)


def write_file_command(path: str, content: str) -> str:
    """Shell command writing content to path on the build server."""
    return f"cat > {path} <<'{HEREDOC_MARKER}'\n{content}\n{HEREDOC_MARKER}"


def build_cache_image(config: DockerBuildConfig, image: str, executor, server):
    """Build ``<application_id>:<tag>-cache`` from the cache Dockerfile."""
    dockerfile = f"{config.workdir}/Dockerfile-cache"
    logger.info(f"Building cache image {config.cache_image}")
    executor.execute([
        write_file_command(dockerfile, generate_cache_dockerfile(config, image)),
        f"docker build --progress plain -f {dockerfile} -t {config.cache_image} {config.workdir}"
    ], server)


def build_image(config: DockerBuildConfig, dockerfile_content: str, executor, server):
    """Write the Dockerfile into the workdir and build ``<application_id>:<tag>``."""
    logger.info(f"Building image {config.image}")
    executor.execute([
        write_file_command(f"{config.workdir}/Dockerfile", dockerfile_content),
        f"docker build --progress plain -t {config.image} {config.workdir}"
    ], server)
