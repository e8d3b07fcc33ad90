pytest_plugins = [
    "tests.fixtures.share_fixtures",
    "tests.fixtures.app_client",
]
