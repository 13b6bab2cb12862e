# cli.py
import json
import logging
import sys

import click

from dbbsoft_deploy.applier import ConvergenceStatus, DeploymentApplier
from dbbsoft_deploy.builder import build_descriptor
from dbbsoft_deploy.errors import ConfigurationError, DeployError
from dbbsoft_deploy.graph import topological_order
from dbbsoft_deploy.settings import get_settings

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _load_descriptor(manifest):
    try:
        return build_descriptor(get_settings(), manifest)
    except ConfigurationError as e:
        raise click.ClickException(f"Configuration error: {e}")


@click.group()
@click.option("--log-level", default=None, help="Override the configured log level")
def cli(log_level):
    """Build and apply the DbbSoft Elastic Beanstalk deployment"""
    _configure_logging(log_level or get_settings().log_level)


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  Deployment Mode: {settings.deployment_mode}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.endpoint_url}")
    print(f"  Manifest: {settings.manifest_path}")
    print(f"  Application: {settings.application_name}")
    print(f"  Environment: {settings.environment_name}")
    print(f"  Repository: {settings.repository_name} (retention: {settings.repository_retention})")
    print(f"  Instance Type: {settings.instance_type}")
    print(f"  Public Port: {settings.public_port}")


@cli.command()
@click.option("--manifest", type=click.Path(dir_okay=False), default=None,
              help="Version manifest (defaults to the configured manifest_path)")
def synth(manifest):
    """Print the descriptor as JSON without calling AWS"""
    descriptor = _load_descriptor(manifest)
    print(json.dumps(descriptor.to_dict(), indent=2))


@cli.command()
@click.option("--manifest", type=click.Path(dir_okay=False), default=None)
def plan(manifest):
    """Print the order resources will be applied in"""
    descriptor = _load_descriptor(manifest)
    for index, resource in enumerate(topological_order(descriptor.resources), start=1):
        deps = ", ".join(resource.depends_on()) or "-"
        print(f"{index}. {resource.key}  (after: {deps})")


@cli.command()
@click.option("--manifest", type=click.Path(dir_okay=False), default=None)
@click.option("--timeout", type=float, default=None,
              help="Seconds to wait for the environment to converge")
@click.option("--skip-image", is_flag=True,
              help="Do not build/push the image; fail if the tag is not already in ECR")
@click.option("--no-wait", is_flag=True, help="Return once the changes are submitted")
def deploy(manifest, timeout, skip_image, no_wait):
    """Create or update all resources for the manifest's version"""
    from dbbsoft_deploy.aws.provisioner import BotoProvisioner

    settings = get_settings()
    descriptor = _load_descriptor(manifest)
    applier = DeploymentApplier(
        BotoProvisioner(settings, publish_images=not skip_image),
        poll_interval=settings.poll_interval,
    )
    try:
        result = applier.apply(
            descriptor,
            timeout=timeout if timeout is not None else settings.convergence_timeout,
            wait=not no_wait,
        )
    except DeployError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")

    print(json.dumps(result.summary(), indent=2, default=str))
    if result.convergence == ConvergenceStatus.IN_PROGRESS:
        print("⏳ Deployment in progress, status unknown")
    elif result.convergence == ConvergenceStatus.DEGRADED:
        print("❌ Environment is not healthy")
        sys.exit(1)
    elif result.convergence == ConvergenceStatus.CONVERGED:
        print(f"✅ Version {result.version} is live")


@cli.command()
@click.option("--manifest", type=click.Path(dir_okay=False), default=None)
@click.confirmation_option(prompt="Terminate the environment and delete its resources?")
def destroy(manifest):
    """Tear down the environment (versions and retained repositories are kept)"""
    from dbbsoft_deploy.aws.provisioner import BotoProvisioner

    settings = get_settings()
    descriptor = _load_descriptor(manifest)
    applier = DeploymentApplier(BotoProvisioner(settings, publish_images=False))
    try:
        results = applier.teardown(descriptor)
    except DeployError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")
    for item in results:
        print(f"  {item.key}: {item.action.value}")


if __name__ == "__main__":
    cli()
