import re

import pytest

from parsers import NoMatchError, PatternSet, SshdClassifier, compile_patterns


@pytest.fixture
def classifier():
    return SshdClassifier(compile_patterns())


def test_disconnect_has_no_username(classifier):
    match = classifier.classify("Disconnected from 10.0.0.5 port 4444")
    assert match.kind == "disconnect"
    assert match.ip == "10.0.0.5"
    assert match.username is None


def test_invalid_user(classifier):
    match = classifier.classify("Invalid user root from 10.0.0.5 port 4444")
    assert (match.kind, match.ip, match.username) == ("invalid_user", "10.0.0.5", "root")


def test_invalid_user_with_empty_name(classifier):
    match = classifier.classify("Invalid user  from 192.168.1.9 port 22")
    assert match.ip == "192.168.1.9"
    assert match.username is None


def test_too_many_attempts(classifier):
    match = classifier.classify(
        "error: maximum authentication attempts exceeded for admin from 172.16.0.3 port 50022 ssh2 [preauth]"
    )
    assert (match.kind, match.ip, match.username) == ("too_many_attempts", "172.16.0.3", "admin")


def test_too_many_attempts_for_invalid_user(classifier):
    match = classifier.classify(
        "error: maximum authentication attempts exceeded for invalid user oracle from 172.16.0.3 port 1 ssh2"
    )
    assert match.username == "oracle"


@pytest.mark.parametrize(
    "message",
    [
        "Accepted publickey for deploy from 10.0.0.1 port 5555 ssh2",
        "pam_unix(sshd:session): session opened for user deploy",
        "Received disconnect from 10.0.0.5 port 4444:11: Bye Bye",
        "Disconnected from user deploy 10.0.0.1 port 5555",
        "Connection closed by 10.0.0.5 port 4444 [preauth]",
        "",
    ],
)
def test_uninteresting_messages(classifier, message):
    with pytest.raises(NoMatchError):
        classifier.classify(message)


def test_documented_priority_order():
    assert compile_patterns().failure_order == ("disconnect", "invalid_user", "too_many_attempts")


def test_first_matching_pattern_wins():
    # unanchored patterns so one message can satisfy both
    patterns = PatternSet(
        log_line=compile_patterns().log_line,
        failures=(
            ("invalid_user", re.compile(r"Invalid user (?P<username>\S+) from (?P<ip>[\d.]+)")),
            ("too_many_attempts", re.compile(r"exceeded for (?P<username>\S+) from (?P<ip>[\d.]+)")),
        ),
    )
    message = "error: maximum authentication attempts exceeded for bob from 1.1.1.1 Invalid user eve from 2.2.2.2"

    match = SshdClassifier(patterns).classify(message)

    assert match.kind == "invalid_user"
    assert (match.ip, match.username) == ("2.2.2.2", "eve")
