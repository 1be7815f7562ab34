"""Tests for incremental scope resolution and file selection."""

from unittest.mock import MagicMock

import pytest
from github import GithubException

from diffguard_core.config import Settings
from diffguard_core.models import (
    ALL_CLEAR_MARKER,
    ChangedFile,
    EventAction,
    OutcomeStatus,
    PullRequestEvent,
    ReviewOutcome,
    ReviewScope,
    WindowSource,
)
from diffguard_core.scope import ScopeResolver, is_selected, select_files, skip_reason

BASE = "b" * 40
C1 = "1" * 40
C2 = "2" * 40
C3 = "3" * 40
PATCH = "@@ -1 +1 @@\n-old\n+new"


def _event(action=EventAction.SYNCHRONIZED, **overrides):
    fields = dict(action=action, repo="owner/repo", number=7, head_sha=C3, base_sha=BASE)
    fields.update(overrides)
    return PullRequestEvent(**fields)


def _gh_file(filename, status="modified", patch=PATCH):
    f = MagicMock()
    f.filename = filename
    f.status = status
    f.patch = patch
    return f


def _commit(sha):
    c = MagicMock()
    c.sha = sha
    return c


def _review(body, commit_id):
    r = MagicMock()
    r.body = body
    r.commit_id = commit_id
    return r


def make_repo(diffs, commits=(C1, C2, C3), reviews=()):
    """Repo mock whose compare() answers from {(base, head): [filenames]}."""
    repo = MagicMock()

    def _compare(base, head):
        if (base, head) not in diffs:
            raise GithubException(404, {"message": "No common ancestor"}, None)
        comparison = MagicMock()
        comparison.files = [_gh_file(name) for name in diffs[(base, head)]]
        comparison.commits = [_commit(sha) for sha in commits]
        return comparison

    repo.compare.side_effect = _compare
    repo.get_pull.return_value.get_reviews.return_value = list(reviews)
    return repo


def _paths(scope):
    assert isinstance(scope, ReviewScope), scope
    return [f.path for f in scope.files]


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------


class TestEligibility:
    @pytest.mark.parametrize("overrides", [{"state": "closed"}, {"locked": True}])
    def test_closed_or_locked_is_ineligible(self, overrides):
        repo = make_repo({(BASE, C3): ["a.ts"]})
        result = ScopeResolver(repo, Settings()).resolve(_event(**overrides))
        assert isinstance(result, ReviewOutcome)
        assert result.status == OutcomeStatus.INELIGIBLE
        assert result.message == "invalid event payload"
        repo.compare.assert_not_called()

    def test_missing_target_label_is_ineligible(self):
        repo = make_repo({(BASE, C3): ["a.ts"]})
        result = ScopeResolver(repo, Settings(target_label="ai-review")).resolve(_event(labels=frozenset({"wip"})))
        assert result.status == OutcomeStatus.INELIGIBLE
        assert result.message == "no target label attached"

    def test_present_target_label_is_eligible(self):
        repo = make_repo({(BASE, C3): ["a.ts"]})
        result = ScopeResolver(repo, Settings(target_label="ai-review")).resolve(
            _event(action=EventAction.OPENED, labels=frozenset({"ai-review"}))
        )
        assert _paths(result) == ["a.ts"]


# ---------------------------------------------------------------------------
# Diff window
# ---------------------------------------------------------------------------


class TestDiffWindow:
    def test_opened_uses_full_window(self):
        repo = make_repo({(BASE, C3): ["a.ts", "b.ts"]})
        scope = ScopeResolver(repo, Settings()).resolve(_event(action=EventAction.OPENED))
        assert (scope.base_sha, scope.head_sha, scope.window) == (BASE, C3, WindowSource.FULL)
        assert _paths(scope) == ["a.ts", "b.ts"]
        repo.get_pull.assert_not_called()

    def test_synchronize_narrows_to_prior_review_commit(self):
        repo = make_repo(
            {(BASE, C3): ["a.ts", "b.ts", "c.ts"], (C1, C3): ["c.ts"]},
            reviews=[_review(ALL_CLEAR_MARKER, C1)],
        )
        scope = ScopeResolver(repo, Settings()).resolve(_event())
        assert (scope.base_sha, scope.head_sha, scope.window) == (C1, C3, WindowSource.MARKER)
        assert _paths(scope) == ["c.ts"]

    def test_marker_for_head_means_no_change(self):
        repo = make_repo({(BASE, C3): ["a.ts"]}, reviews=[_review(ALL_CLEAR_MARKER, C3)])
        result = ScopeResolver(repo, Settings()).resolve(_event())
        assert result.status == OutcomeStatus.NO_CHANGES

    def test_store_sha_used_when_it_agrees_with_newest_review(self):
        repo = make_repo(
            {(BASE, C3): ["a.ts", "b.ts"], (C2, C3): ["b.ts"], (C1, C3): ["a.ts", "b.ts"]},
            reviews=[_review(ALL_CLEAR_MARKER, C1), _review(ALL_CLEAR_MARKER, C2)],
        )
        store = MagicMock()
        store.last_reviewed_sha.return_value = C2
        scope = ScopeResolver(repo, Settings(), store=store).resolve(_event())
        store.last_reviewed_sha.assert_called_once_with("owner/repo", 7)
        assert (scope.base_sha, scope.window) == (C2, WindowSource.STORE)
        assert _paths(scope) == ["b.ts"]

    def test_stale_store_does_not_widen_window(self):
        # The store missed the review at C2; b.ts was already reviewed there.
        repo = make_repo(
            {(BASE, C3): ["a.ts", "b.ts", "c.ts"], (C1, C3): ["b.ts", "c.ts"], (C2, C3): ["c.ts"]},
            reviews=[_review(ALL_CLEAR_MARKER, C1), _review(ALL_CLEAR_MARKER, C2)],
        )
        store = MagicMock()
        store.last_reviewed_sha.return_value = C1
        scope = ScopeResolver(repo, Settings(), store=store).resolve(_event())
        assert (scope.base_sha, scope.window) == (C2, WindowSource.MARKER)
        assert _paths(scope) == ["c.ts"]

    def test_store_sha_used_when_review_scan_fails(self):
        repo = make_repo({(BASE, C3): ["a.ts", "b.ts"], (C1, C3): ["b.ts"], (C2, C3): ["a.ts"]})
        repo.get_pull.side_effect = GithubException(502, {"message": "Bad Gateway"}, None)
        store = MagicMock()
        store.last_reviewed_sha.return_value = C1
        scope = ScopeResolver(repo, Settings(), store=store).resolve(_event())
        assert (scope.base_sha, scope.window) == (C1, WindowSource.STORE)
        assert _paths(scope) == ["b.ts"]

    def test_store_sha_used_when_no_review_found(self):
        repo = make_repo({(BASE, C3): ["a.ts", "b.ts"], (C1, C3): ["b.ts"]}, reviews=[_review("human", C2)])
        store = MagicMock()
        store.last_reviewed_sha.return_value = C1
        scope = ScopeResolver(repo, Settings(), store=store).resolve(_event())
        assert (scope.base_sha, scope.window) == (C1, WindowSource.STORE)

    def test_review_scan_limited_to_configured_login(self):
        human = _review(ALL_CLEAR_MARKER, C2)
        human.user.login = "octocat"
        bot = _review(ALL_CLEAR_MARKER, C1)
        bot.user.login = "diffguard-bot"
        repo = make_repo({(BASE, C3): ["a.ts", "b.ts"], (C1, C3): ["b.ts"]}, reviews=[bot, human])
        scope = ScopeResolver(repo, Settings(reviewer_login="diffguard-bot")).resolve(_event())
        assert (scope.base_sha, scope.window) == (C1, WindowSource.MARKER)

    def test_empty_store_falls_back_to_review_scan(self):
        repo = make_repo(
            {(BASE, C3): ["a.ts", "b.ts"], (C1, C3): ["b.ts"]},
            reviews=[_review(ALL_CLEAR_MARKER, C1)],
        )
        store = MagicMock()
        store.last_reviewed_sha.return_value = None
        scope = ScopeResolver(repo, Settings(), store=store).resolve(_event())
        assert (scope.base_sha, scope.window) == (C1, WindowSource.MARKER)

    def test_no_marker_falls_back_to_last_two_commits(self):
        repo = make_repo(
            {(BASE, C3): ["a.ts", "b.ts"], (C2, C3): ["b.ts"]},
            reviews=[_review("a human review", C1)],
        )
        scope = ScopeResolver(repo, Settings()).resolve(_event())
        assert (scope.base_sha, scope.head_sha, scope.window) == (C2, C3, WindowSource.LAST_TWO_COMMITS)
        assert _paths(scope) == ["b.ts"]

    def test_no_marker_and_single_commit_keeps_full_window(self):
        repo = make_repo({(BASE, C3): ["a.ts"]}, commits=(C3,))
        scope = ScopeResolver(repo, Settings()).resolve(_event())
        assert (scope.base_sha, scope.head_sha, scope.window) == (BASE, C3, WindowSource.FULL)

    def test_review_lookup_failure_falls_back_to_last_two_commits(self):
        repo = make_repo({(BASE, C3): ["a.ts", "b.ts"], (C2, C3): ["b.ts"]})
        repo.get_pull.return_value.get_reviews.side_effect = GithubException(502, {"message": "Bad Gateway"}, None)
        scope = ScopeResolver(repo, Settings()).resolve(_event())
        assert (scope.base_sha, scope.window) == (C2, WindowSource.LAST_TWO_COMMITS)

    def test_transport_error_falls_back_to_last_two_commits(self):
        repo = make_repo({(BASE, C3): ["a.ts", "b.ts"], (C2, C3): ["b.ts"]})
        repo.get_pull.side_effect = ConnectionError("connection reset")
        scope = ScopeResolver(repo, Settings()).resolve(_event())
        assert scope.window == WindowSource.LAST_TWO_COMMITS

    def test_unreachable_marker_commit_falls_back(self):
        # A force push can leave the marker commit unreachable from head.
        repo = make_repo(
            {(BASE, C3): ["a.ts", "b.ts"], (C2, C3): ["b.ts"]},
            reviews=[_review(ALL_CLEAR_MARKER, "f" * 40)],
        )
        scope = ScopeResolver(repo, Settings()).resolve(_event())
        assert (scope.base_sha, scope.window) == (C2, WindowSource.LAST_TWO_COMMITS)

    def test_lookup_failure_with_single_commit_keeps_full_window(self):
        repo = make_repo({(BASE, C3): ["a.ts"]}, commits=(C3,))
        repo.get_pull.side_effect = GithubException(500, {"message": "boom"}, None)
        scope = ScopeResolver(repo, Settings()).resolve(_event())
        assert (scope.base_sha, scope.window) == (BASE, WindowSource.FULL)

    def test_force_full_skips_narrowing(self):
        repo = make_repo({(BASE, C3): ["a.ts", "b.ts"]}, reviews=[_review(ALL_CLEAR_MARKER, C1)])
        scope = ScopeResolver(repo, Settings()).resolve(_event(), force_full=True)
        assert scope.window == WindowSource.FULL
        assert _paths(scope) == ["a.ts", "b.ts"]

    def test_initial_compare_failure_propagates(self):
        repo = make_repo({})
        with pytest.raises(GithubException):
            ScopeResolver(repo, Settings()).resolve(_event(action=EventAction.OPENED))


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


class TestSelection:
    def test_ignore_pattern_drops_markdown(self):
        repo = make_repo({(BASE, C3): ["readme.md", "index.ts"]})
        scope = ScopeResolver(repo, Settings(ignore_patterns=("*.md",))).resolve(_event(action=EventAction.OPENED))
        assert _paths(scope) == ["index.ts"]

    def test_include_overrides_ignore_rules(self):
        settings = Settings(
            include_patterns=("src/**/*.ts",),
            ignore_patterns=("*.ts",),
            ignore=("src/app.ts",),
        )
        assert is_selected("src/app.ts", settings)
        assert not is_selected("lib/util.ts", settings)

    def test_literal_ignore_list_is_exact_path(self):
        settings = Settings(ignore=("package-lock.json",))
        assert not is_selected("package-lock.json", settings)
        assert is_selected("web/package-lock.json", settings)

    def test_no_rules_keeps_everything(self):
        assert is_selected("anything/at/all.bin", Settings())

    def test_select_files_keeps_diff_order(self):
        files = [
            ChangedFile("z.py", "modified", PATCH),
            ChangedFile("a.md", "modified", PATCH),
            ChangedFile("b.py", "added", PATCH),
        ]
        assert [f.path for f in select_files(files, Settings(ignore_patterns=("*.md",)))] == ["z.py", "b.py"]

    def test_everything_filtered_is_no_change(self):
        repo = make_repo({(BASE, C3): ["readme.md"]})
        result = ScopeResolver(repo, Settings(ignore_patterns=("*.md",))).resolve(_event(action=EventAction.OPENED))
        assert isinstance(result, ReviewOutcome)
        assert result.status == OutcomeStatus.NO_CHANGES


class TestSkipReasons:
    def test_removed_file_skipped(self):
        assert skip_reason(ChangedFile("a.ts", "removed", PATCH), None) == "status is removed"

    def test_renamed_file_skipped(self):
        assert skip_reason(ChangedFile("a.ts", "renamed", None), None) == "status is renamed"

    def test_missing_patch_skipped(self):
        assert skip_reason(ChangedFile("logo.png", "added", None), None) == "no patch available"

    def test_oversized_patch_skipped(self):
        assert "limit is 5" in skip_reason(ChangedFile("a.ts", "modified", PATCH), 5)

    def test_patch_at_limit_reviewed(self):
        assert skip_reason(ChangedFile("a.ts", "modified", PATCH), len(PATCH)) is None

    def test_skipped_files_reported_in_scope(self):
        repo = MagicMock()
        comparison = MagicMock()
        comparison.files = [_gh_file("a.ts"), _gh_file("gone.ts", status="removed", patch=None)]
        comparison.commits = [_commit(C3)]
        repo.compare.return_value = comparison

        scope = ScopeResolver(repo, Settings()).resolve(_event(action=EventAction.OPENED))

        assert _paths(scope) == ["a.ts"]
        assert scope.skipped == (("gone.ts", "status is removed"),)
