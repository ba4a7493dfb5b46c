import pytest

from projectdash.scanner.fork import detect_is_fork, remote_owner


@pytest.mark.parametrize("remote", [
    "git@github.com:alice/tool.git",
    "https://github.com/alice/tool.git",
    "ssh://git@github.com/alice/tool",
])
def test_own_repository_is_not_a_fork(remote):
    assert detect_is_fork(remote, "alice") is False


def test_owner_comparison_ignores_case():
    assert detect_is_fork("git@github.com:Alice/tool.git", "alice") is False
    assert detect_is_fork("git@github.com:alice/tool.git", "ALICE") is False
    assert detect_is_fork("git@github.com:alice/foo.git", "Alice") is False
    assert detect_is_fork("git@github.com:alice/foo.git", "bob") is True


def test_other_owner_is_a_fork():
    assert detect_is_fork("git@github.com:bob/tool.git", "alice") is True
    assert detect_is_fork("https://github.com/bob/tool", "alice") is True
    assert detect_is_fork("git://github.com/bob/x.git", "alice") is True
    assert detect_is_fork("ssh://github.com/bob/x", "alice") is True
    assert detect_is_fork("git://github.com/alice/x.git", "alice") is False


def test_missing_inputs_are_not_forks():
    assert detect_is_fork(None, "alice") is False
    assert detect_is_fork("git@github.com:bob/tool.git", None) is False
    assert detect_is_fork("git@github.com:bob/tool.git", "") is False


def test_unrecognized_host_is_not_a_fork():
    assert detect_is_fork("git@gitlab.com:bob/tool.git", "alice") is False
    assert detect_is_fork("https://example.com/bob/tool.git", "alice") is False


def test_remote_owner():
    assert remote_owner("git@github.com:bob/tool.git") == "bob"
    assert remote_owner("/srv/git/tool.git") is None
