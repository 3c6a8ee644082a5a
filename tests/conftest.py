from typing import Any, Dict

import pytest


@pytest.fixture
def github_context() -> Dict[str, Any]:
    return {
        "repository": "octo-org/octo-app",
        "workflow": "release",
        "event_name": "push",
        "event": {"after": "a" * 40, "pusher": {"name": "octocat"}},
        "sha": "a" * 40,
        "ref_type": "tag",
        "ref": "refs/tags/v1.2.3",
        "base_ref": "",
        "head_ref": "",
        "actor": "octocat",
        "run_number": "17",
        "server_url": "https://github.com",
        "run_id": "1658821493",
        "run_attempt": "1",
        "token": "ghs_secretsecretsecret",
    }
