"""
Tests for GitHubManager

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

import pytest
import requests

from git_backup.base import Platform, Repository, Source
from git_backup.exceptions import (
    MalformedResponseError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderRateLimitError,
    ProviderResponseError,
)
from git_backup.github_manager import GRAPHQL_URL, GitHubManager

from conftest import make_response


def repo_page(names, has_next=False, cursor=None, private=False):
    """A GraphQL repositories page holding the given names"""
    return {
        "data": {
            "repositoryOwner": {
                "repositories": {
                    "nodes": [
                        {
                            "name": name,
                            "url": f"https://github.com/jsdw/{name}",
                            "isPrivate": private,
                        }
                        for name in names
                    ],
                    "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                }
            }
        }
    }


@pytest.fixture
def manager(fake_session):
    mgr = GitHubManager(Source(Platform.GITHUB, "jsdw"), "ghp_test")
    mgr.session = fake_session
    return mgr


class TestGitHubManagerInit:
    """Tests for GitHubManager initialisation"""

    def test_init_stores_settings(self):
        """Test initialisation stores source, token and visibility filter"""
        mgr = GitHubManager(Source(Platform.GITHUB, "jsdw"), "ghp_test", public_only=True)
        assert mgr.token == "ghp_test"
        assert mgr.public_only is True
        assert mgr.username() == "jsdw"
        assert mgr.provider_name == "GitHub"


class TestGitHubManagerPagination:
    """Tests for cursor pagination"""

    def test_single_page(self, manager, fake_session):
        """Test a single page of repositories"""
        fake_session.request.side_effect = [make_response(repo_page(["a", "b"]))]

        repos = manager.get_repositories()

        assert repos == [
            Repository("a", "https://github.com/jsdw/a.git", False),
            Repository("b", "https://github.com/jsdw/b.git", False),
        ]
        assert fake_session.request.call_count == 1

    def test_pages_concatenated_in_order(self, manager, fake_session):
        """Test N pages give the concatenation of all pages, in order"""
        fake_session.request.side_effect = [
            make_response(repo_page(["a", "b"], has_next=True, cursor="c1")),
            make_response(repo_page(["c"], has_next=True, cursor="c2")),
            make_response(repo_page(["d"], has_next=False, cursor="c3")),
        ]

        repos = manager.get_repositories()

        assert [r.name for r in repos] == ["a", "b", "c", "d"]
        assert fake_session.request.call_count == 3

    def test_cursor_passed_to_next_request(self, manager, fake_session):
        """Test each request carries the previous page's end cursor"""
        fake_session.request.side_effect = [
            make_response(repo_page(["a"], has_next=True, cursor="c1")),
            make_response(repo_page(["b"])),
        ]

        manager.get_repositories()

        first, second = fake_session.request.call_args_list
        assert first.args == ("POST", GRAPHQL_URL)
        assert first.kwargs["json"]["variables"]["cursor"] is None
        assert second.kwargs["json"]["variables"]["cursor"] == "c1"
        assert first.kwargs["headers"]["Authorization"] == "bearer ghp_test"

    def test_empty_account(self, manager, fake_session):
        """Test an owner with no repositories gives an empty list"""
        fake_session.request.side_effect = [make_response(repo_page([]))]
        assert manager.get_repositories() == []

    def test_missing_cursor_stops(self, manager, fake_session):
        """Test hasNextPage without a cursor ends pagination"""
        fake_session.request.side_effect = [
            make_response(repo_page(["a"], has_next=True, cursor=None)),
        ]
        assert [r.name for r in manager.get_repositories()] == ["a"]

    def test_repeated_cursor_is_error(self, manager, fake_session):
        """Test a cursor handed back twice is treated as a malformed response"""
        fake_session.request.side_effect = [
            make_response(repo_page(["a"], has_next=True, cursor="same")),
            make_response(repo_page(["b"], has_next=True, cursor="same")),
        ]
        with pytest.raises(MalformedResponseError) as exc_info:
            manager.get_repositories()
        assert "returned twice" in str(exc_info.value)

    def test_public_only_variable(self, fake_session):
        """Test public_only asks GitHub for public repositories only"""
        mgr = GitHubManager(Source(Platform.GITHUB, "jsdw"), "t", public_only=True)
        mgr.session = fake_session
        fake_session.request.side_effect = [make_response(repo_page([]))]

        mgr.get_repositories()

        variables = fake_session.request.call_args.kwargs["json"]["variables"]
        assert variables["privacy"] == "PUBLIC"

    def test_all_visibilities_by_default(self, manager, fake_session):
        """Test no privacy filter is sent by default"""
        fake_session.request.side_effect = [make_response(repo_page([]))]

        manager.get_repositories()

        variables = fake_session.request.call_args.kwargs["json"]["variables"]
        assert variables["privacy"] is None
        assert variables["owner"] == "jsdw"

    def test_non_https_url_skipped(self, manager, fake_session):
        """Test entries without an HTTPS URL are left out"""
        page = repo_page(["a", "b"])
        page["data"]["repositoryOwner"]["repositories"]["nodes"][0]["url"] = "git://x/a"
        fake_session.request.side_effect = [make_response(page)]

        assert [r.name for r in manager.get_repositories()] == ["b"]

    def test_private_flag_kept(self, manager, fake_session):
        """Test isPrivate is carried through to the descriptor"""
        fake_session.request.side_effect = [make_response(repo_page(["a"], private=True))]
        assert manager.get_repositories()[0].is_private is True


class TestGitHubManagerSingleRepository:
    """Tests for sources naming one repository"""

    def test_no_api_call(self, fake_session):
        """Test a single repository source never calls the API"""
        mgr = GitHubManager(Source(Platform.GITHUB, "jsdw", "git.backup"), "t")
        mgr.session = fake_session

        repos = mgr.get_repositories()

        assert repos == [
            Repository("git.backup", "https://github.com/jsdw/git.backup.git")
        ]
        fake_session.request.assert_not_called()


class TestGitHubManagerErrors:
    """Tests for error handling"""

    def test_unauthorized(self, manager, fake_session):
        """Test 401 gives an auth error pointing at token creation"""
        fake_session.request.side_effect = [make_response({}, status_code=401)]
        with pytest.raises(ProviderAuthError) as exc_info:
            manager.get_repositories()
        assert "github.com/settings/tokens" in str(exc_info.value)

    def test_rate_limited_403(self, manager, fake_session):
        """Test an exhausted quota is reported as rate limiting with the reset time"""
        fake_session.request.side_effect = [
            make_response(
                {},
                status_code=403,
                headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "0"},
            )
        ]
        with pytest.raises(ProviderRateLimitError) as exc_info:
            manager.get_repositories()
        assert exc_info.value.reset_at == "1970-01-01T00:00:00+00:00"

    def test_rate_limited_429(self, manager, fake_session):
        """Test 429 is reported as rate limiting"""
        fake_session.request.side_effect = [make_response({}, status_code=429)]
        with pytest.raises(ProviderRateLimitError):
            manager.get_repositories()

    def test_graphql_rate_limited(self, manager, fake_session):
        """Test a RATE_LIMITED GraphQL error is reported as rate limiting"""
        fake_session.request.side_effect = [
            make_response(
                {"errors": [{"type": "RATE_LIMITED", "message": "API rate limit exceeded"}]}
            )
        ]
        with pytest.raises(ProviderRateLimitError) as exc_info:
            manager.get_repositories()
        assert "API rate limit exceeded" in str(exc_info.value)

    def test_graphql_error(self, manager, fake_session):
        """Test other GraphQL errors are reported with their messages"""
        fake_session.request.side_effect = [
            make_response(
                {
                    "errors": [
                        {"type": "NOT_FOUND", "message": "first"},
                        {"message": "second"},
                    ]
                }
            )
        ]
        with pytest.raises(ProviderResponseError) as exc_info:
            manager.get_repositories()
        assert "first; second" in str(exc_info.value)

    def test_unknown_owner(self, manager, fake_session):
        """Test an owner GitHub cannot resolve is a response error"""
        fake_session.request.side_effect = [
            make_response({"data": {"repositoryOwner": None}})
        ]
        with pytest.raises(ProviderResponseError) as exc_info:
            manager.get_repositories()
        assert "repositoryOwner" in str(exc_info.value)

    def test_missing_structure(self, manager, fake_session):
        """Test a response without the connection is malformed"""
        fake_session.request.side_effect = [make_response({"data": {}})]
        with pytest.raises(MalformedResponseError):
            manager.get_repositories()

    def test_missing_name(self, manager, fake_session):
        """Test an entry without a name is malformed"""
        page = repo_page(["a"])
        del page["data"]["repositoryOwner"]["repositories"]["nodes"][0]["name"]
        fake_session.request.side_effect = [make_response(page)]
        with pytest.raises(MalformedResponseError):
            manager.get_repositories()

    def test_invalid_json(self, manager, fake_session):
        """Test a non-JSON body is malformed"""
        fake_session.request.side_effect = [make_response("Bad gateway")]
        with pytest.raises(MalformedResponseError):
            manager.get_repositories()

    def test_connection_error(self, manager, fake_session):
        """Test network failures are connection errors"""
        fake_session.request.side_effect = [requests.Timeout("timed out")]
        with pytest.raises(ProviderConnectionError):
            manager.get_repositories()
