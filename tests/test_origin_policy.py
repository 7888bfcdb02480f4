import pytest

from constants import DEFAULT_FRONTEND_URL
from origin_policy import CorsDecision, build_allow_list, decide

DEFAULT_LIST = build_allow_list(DEFAULT_FRONTEND_URL)


def test_default_allow_list_is_deduplicated_and_ordered():
    assert DEFAULT_LIST == (
        DEFAULT_FRONTEND_URL,
        "http://localhost:5173",
        "http://localhost:3000",
    )


def test_configured_frontend_comes_first():
    allow_list = build_allow_list("https://shop.example")
    assert allow_list[0] == "https://shop.example"
    assert "http://localhost:5173" in allow_list
    assert len(allow_list) == 4


@pytest.mark.parametrize("origin", [None, ""])
def test_absent_origin_is_allowed(origin):
    assert decide(origin, DEFAULT_LIST) == CorsDecision(allowed=True, origin=None)


def test_listed_origin_is_allowed():
    decision = decide("http://localhost:5173", DEFAULT_LIST)
    assert decision.allowed
    assert decision.origin == "http://localhost:5173"


@pytest.mark.parametrize(
    "origin",
    [
        "http://evil.example",
        "http://localhost:5173/",
        "HTTP://LOCALHOST:5173",
        "http://localhost:5174",
        "https://localhost:5173",
    ],
)
def test_only_exact_matches_are_allowed(origin):
    decision = decide(origin, DEFAULT_LIST)
    assert not decision.allowed
    assert decision.origin == origin


def test_empty_allow_list_only_admits_missing_origin():
    assert decide(None, ()).allowed
    assert not decide("http://localhost:3000", ()).allowed
