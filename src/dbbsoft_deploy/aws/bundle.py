"""Source bundle for the Elastic Beanstalk Docker platform."""
import io
import zipfile

from dbbsoft_deploy.descriptor import BundleSpec

COMPOSE_FILE = 'docker-compose.yml'


def render_compose_manifest(spec: BundleSpec) -> str:
    """docker-compose manifest that takes the image from an environment property.

    Elastic Beanstalk exports environment properties to the compose project,
    so the image URI never has to be baked into the bundle.
    """
    return f"""services:
  web:
    image: "${{{spec.image_env_var}}}"
    ports:
      - "{spec.public_port}:{spec.container_port}"
    environment:
      - APP_VERSION=${{APP_VERSION}}
    restart: always
"""


def build_source_bundle(spec: BundleSpec) -> bytes:
    """Zip archive with the compose manifest at its root."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(COMPOSE_FILE, render_compose_manifest(spec))
    return buffer.getvalue()
