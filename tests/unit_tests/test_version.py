import json

import pytest

from dbbsoft_deploy.errors import ConfigurationError
from dbbsoft_deploy.version import read_version_tag


def write_manifest(tmp_path, content):
    path = tmp_path / "package.json"
    path.write_text(content if isinstance(content, str) else json.dumps(content))
    return path


def test_read_version_tag(manifest_file):
    assert str(read_version_tag(manifest_file)) == "1.2.3"


def test_read_version_tag_keeps_prerelease(tmp_path):
    path = write_manifest(tmp_path, {"version": "2.0.0-rc.1"})
    assert read_version_tag(path).value == "2.0.0-rc.1"


def test_missing_manifest(tmp_path):
    with pytest.raises(ConfigurationError) as exc_info:
        read_version_tag(tmp_path / "missing.json")
    assert "not found" in str(exc_info.value)
    assert exc_info.value.operation == "read"


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[]",
        {"name": "app"},
        {"version": ""},
        {"version": 3},
        {"version": "latest"},
        {"version": "1.2"},
        {"version": " 2.0.0 "},
        {"version": "1.2.3\n"},
    ],
)
def test_invalid_manifests(tmp_path, content):
    path = write_manifest(tmp_path, content)
    with pytest.raises(ConfigurationError) as exc_info:
        read_version_tag(path)
    assert exc_info.value.resource == str(path)


def test_manifest_with_invalid_utf8(tmp_path):
    path = tmp_path / "package.json"
    path.write_bytes(b'{"version": "1.2.3", "name": "\xff\xfe"}')

    with pytest.raises(ConfigurationError) as exc_info:
        read_version_tag(path)
    assert exc_info.value.resource == str(path)
    assert exc_info.value.operation == "read"
