"""
Shared test helpers

Copyright 2025 HyperSec

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

import json
from unittest.mock import Mock

import pytest


def make_response(payload=None, status_code=200, headers=None, reason="OK"):
    """Build a stand-in for requests.Response"""
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.reason = reason
    if isinstance(payload, str):
        response.text = payload
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.text = json.dumps(payload) if payload is not None else ""
        response.json.return_value = payload
    return response


@pytest.fixture
def fake_session():
    """A mock requests.Session; set .request.side_effect to a list of responses"""
    return Mock()
