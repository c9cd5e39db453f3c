"""
Buildpacks generate Dockerfiles for JavaScript framework applications.
"""

from .common import BuildSecret, DockerBuildConfig, uses_pnpm
from . import nuxtjs

__all__ = [
    'BuildSecret',
    'DockerBuildConfig',
    'uses_pnpm',
    'nuxtjs'
]
