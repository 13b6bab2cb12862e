"""Build and push the service image into ECR."""
import base64
import logging
import subprocess
from typing import Any, Callable, List, Optional

from dbbsoft_deploy.descriptor import ImageArtifact
from dbbsoft_deploy.errors import SubmissionError
from dbbsoft_deploy.utils.decorators import log_operation

logger = logging.getLogger(__name__)


class ImagePublisher:
    """Pushes ``<registryHost>/<repository>:<VersionTag>`` with the docker CLI."""

    def __init__(self, ecr_client: Any, runner: Callable[..., Any] = subprocess.run, docker: str = 'docker'):
        self.ecr_client = ecr_client
        self.runner = runner
        self.docker = docker

    def _run(self, args: List[str], input: Optional[bytes] = None, artifact: Optional[ImageArtifact] = None) -> None:
        try:
            self.runner(args, input=input, check=True)
        except subprocess.CalledProcessError as e:
            raise SubmissionError(
                f"'{' '.join(args[:2])}' exited with {e.returncode}",
                resource=artifact.key if artifact else None,
                operation="push",
            ) from e
        except FileNotFoundError as e:
            raise SubmissionError(f"docker CLI not found: {e}", operation="push") from e

    def login(self, artifact: Optional[ImageArtifact] = None) -> None:
        """docker login against the ECR registry."""
        response = self.ecr_client.get_authorization_token()
        auth = response['authorizationData'][0]
        username, password = base64.b64decode(auth['authorizationToken']).decode().split(':', 1)
        self._run(
            [self.docker, 'login', '--username', username, '--password-stdin', auth['proxyEndpoint']],
            input=password.encode(),
            artifact=artifact,
        )

    @log_operation("Building and pushing Docker image")
    def publish(self, artifact: ImageArtifact, repository_uri: str) -> str:
        """Build the image from the artifact's context and push it.

        Returns:
            The fully-qualified image URI
        """
        image_uri = f"{repository_uri}:{artifact.tag}"
        self.login(artifact)

        logger.info(f"Building Docker image {image_uri} from {artifact.build_context}")
        build = [self.docker, 'build', '--platform', artifact.platform, '-t', image_uri]
        if artifact.dockerfile:
            build += ['-f', artifact.dockerfile]
        self._run(build + [artifact.build_context], artifact=artifact)

        logger.info(f"Pushing Docker image to {image_uri}")
        self._run([self.docker, 'push', image_uri], artifact=artifact)
        return image_uri
