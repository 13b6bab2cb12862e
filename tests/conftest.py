"""Shared pytest configuration; fixtures live in tests/fixtures."""

pytest_plugins = [
    "tests.fixtures.aws_fixtures",
    "tests.fixtures.descriptor_fixtures",
    "tests.fixtures.app_fixtures",
]
