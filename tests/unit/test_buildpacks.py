"""
Unit tests for buildpacks (shipyard/buildpacks).
"""

from unittest.mock import MagicMock

import pytest

from shipyard.buildpacks import BuildSecret, DockerBuildConfig, nuxtjs, uses_pnpm
from shipyard.buildpacks.common import (
    PNPM_INSTALL,
    generate_cache_dockerfile,
    secret_args,
    write_file_command
)


def make_config(**overrides):
    fields = dict(
        application_id='app1',
        build_id='b42',
        tag='abc123',
        workdir='/artifacts/b42',
        deployment_type='node',
        base_image='node:18',
        base_build_image='node:18',
        install_command='npm install',
        build_command='npm run build',
        start_command='npm run start',
        publish_directory='dist',
        base_directory=None,
        port=3000
    )
    fields.update(overrides)
    return DockerBuildConfig(**fields)


class TestUsesPnpm:

    def test_detects_pnpm(self):
        assert uses_pnpm('pnpm install', 'npm run build', None) is True

    def test_no_pnpm(self):
        assert uses_pnpm('npm install', None, 'npm start') is False


class TestSecretArgs:

    def test_only_build_secrets(self):
        secrets = [
            BuildSecret('API_URL', 'https://api', is_build_secret=True),
            BuildSecret('RUNTIME_ONLY', 'x', is_build_secret=False)
        ]

        assert secret_args(secrets) == ['ARG API_URL=https://api']

    def test_regular_deployment_skips_pr_secrets(self):
        secrets = [
            BuildSecret('API_URL', 'https://api', is_build_secret=True),
            BuildSecret('API_URL', 'https://preview-api', is_build_secret=True, is_pr_secret=True)
        ]

        assert secret_args(secrets) == ['ARG API_URL=https://api']

    def test_pr_deployment_prefers_pr_secret(self):
        secrets = [
            BuildSecret('API_URL', 'https://api', is_build_secret=True),
            BuildSecret('API_URL', 'https://preview-api', is_build_secret=True, is_pr_secret=True)
        ]

        assert secret_args(secrets, pull_request_id=12) == [
            'ARG API_URL=https://preview-api',
            'ARG API_URL=https://preview-api'
        ]

    def test_pr_deployment_falls_back_to_regular_secret(self):
        secrets = [BuildSecret('TOKEN', 't1', is_build_secret=True)]

        assert secret_args(secrets, pull_request_id=12) == ['ARG TOKEN=t1']


class TestNuxtDockerfile:

    def test_node_mode(self):
        dockerfile = nuxtjs.generate_dockerfile(make_config(), 'node:18')

        assert dockerfile.split('\n') == [
            'FROM node:18',
            'WORKDIR /app',
            'LABEL coolify.buildId=b42',
            'COPY . ./',
            'RUN npm install',
            'RUN npm run build',
            'EXPOSE 3000',
            'CMD npm run start'
        ]

    def test_node_mode_with_base_directory_and_secrets(self):
        config = make_config(
            base_directory='/frontend',
            secrets=[BuildSecret('NUXT_PUBLIC_URL', 'https://site', is_build_secret=True)]
        )

        lines = nuxtjs.generate_dockerfile(config, 'node:18').split('\n')

        assert lines[3] == 'ARG NUXT_PUBLIC_URL=https://site'
        assert 'COPY ./frontend ./' in lines

    def test_pnpm_bootstrap(self):
        config = make_config(install_command='pnpm install')

        lines = nuxtjs.generate_dockerfile(config, 'node:18').split('\n')

        assert lines[3] == PNPM_INSTALL

    def test_static_mode_with_nginx(self):
        config = make_config(deployment_type='static', base_image='nginx:stable-alpine', publish_directory='.output/public')

        dockerfile = nuxtjs.generate_dockerfile(config, 'nginx:stable-alpine')

        assert dockerfile.split('\n') == [
            'FROM nginx:stable-alpine',
            'WORKDIR /app',
            'LABEL coolify.buildId=b42',
            'COPY /nginx.conf /etc/nginx/nginx.conf',
            'COPY --from=app1:abc123-cache /app/.output/public ./',
            'EXPOSE 80'
        ]

    def test_static_mode_without_nginx(self):
        config = make_config(deployment_type='static', base_image='httpd:2.4')

        dockerfile = nuxtjs.generate_dockerfile(config, 'httpd:2.4')

        assert 'nginx.conf' not in dockerfile
        assert 'COPY --from=app1:abc123-cache /app/dist ./' in dockerfile

    def test_unknown_mode(self):
        with pytest.raises(ValueError, match="Unsupported deployment type"):
            nuxtjs.generate_dockerfile(make_config(deployment_type='serverless'), 'node:18')


class TestCacheDockerfile:

    def test_cache_stage(self):
        dockerfile = generate_cache_dockerfile(make_config(), 'node:18')

        assert dockerfile.split('\n') == [
            'FROM node:18',
            'WORKDIR /app',
            'LABEL coolify.buildId=b42',
            'COPY . ./',
            'RUN npm install',
            'RUN npm run build'
        ]

    def test_cache_stage_without_install(self):
        dockerfile = generate_cache_dockerfile(make_config(install_command=None), 'node:18')

        assert 'RUN npm install' not in dockerfile


class TestBuild:

    def test_node_build(self):
        executor = MagicMock()
        server = MagicMock()

        nuxtjs.build(make_config(), executor, server)

        executor.execute.assert_called_once()
        commands = executor.execute.call_args.args[0]
        assert commands[0].startswith("cat > /artifacts/b42/Dockerfile <<'SHIPYARD_DOCKERFILE_EOF'\nFROM node:18")
        assert commands[1] == 'docker build --progress plain -t app1:abc123 /artifacts/b42'

    def test_static_build_builds_cache_first(self):
        executor = MagicMock()
        server = MagicMock()
        config = make_config(deployment_type='static', base_image='nginx:alpine', base_build_image='node:20')

        nuxtjs.build(config, executor, server)

        assert executor.execute.call_count == 2
        cache_commands = executor.execute.call_args_list[0].args[0]
        assert 'FROM node:20' in cache_commands[0]
        assert cache_commands[1] == (
            'docker build --progress plain -f /artifacts/b42/Dockerfile-cache '
            '-t app1:abc123-cache /artifacts/b42'
        )
        image_commands = executor.execute.call_args_list[1].args[0]
        assert 'FROM nginx:alpine' in image_commands[0]

    def test_static_build_without_build_command(self):
        executor = MagicMock()
        config = make_config(deployment_type='static', build_command=None)

        nuxtjs.build(config, executor, MagicMock())

        assert executor.execute.call_count == 1

    def test_write_file_command(self):
        assert write_file_command('/tmp/Dockerfile', 'FROM x') == (
            "cat > /tmp/Dockerfile <<'SHIPYARD_DOCKERFILE_EOF'\nFROM x\nSHIPYARD_DOCKERFILE_EOF"
        )
