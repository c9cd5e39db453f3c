"""
Nuxt.js buildpack.

node mode runs the app with its start command; static mode serves the
generated site from a web server image, copying it out of the cache image
built beforehand.
"""

from .common import DockerBuildConfig, build_cache_image, build_image, header


def generate_dockerfile(config: DockerBuildConfig, image: str) -> str:
    """
    Dockerfile text for a Nuxt.js application.

    Raises:
        ValueError: If the deployment type is neither node nor static
    """
    lines = header(config, image)

    if config.deployment_type == 'node':
        lines.append(f"COPY .{config.base_directory or ''} ./")
        lines.append(f"RUN {config.install_command}")
        lines.append(f"RUN {config.build_command}")
        lines.append(f"EXPOSE {config.port}")
        lines.append(f"CMD {config.start_command}")
    elif config.deployment_type == 'static':
        if config.base_image and 'nginx' in config.base_image:
            lines.append('COPY /nginx.conf /etc/nginx/nginx.conf')
        lines.append(f"COPY --from={config.cache_image} /app/{config.publish_directory} ./")
        lines.append('EXPOSE 80')
    else:
        raise ValueError(f"Unsupported deployment type: {config.deployment_type}")

    return '\n'.join(lines)


def build(config: DockerBuildConfig, executor, server):
    """
    Build the application image on a server.

    Static deployments with a build command build the cache image first.
    """
    if config.deployment_type == 'static' and config.build_command:
        build_cache_image(config, config.base_build_image, executor, server)

    build_image(config, generate_dockerfile(config, config.base_image), executor, server)
