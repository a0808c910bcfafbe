"""Tests for keyword classification."""

import pytest

from power_watch.classifier import classify, looks_like_system_process
from power_watch.config import DEFAULT_KEYWORDS
from power_watch.resolver import ProcessMetadata


def test_matches_name_case_insensitively():
    assert classify(None, "RazerCentralService", ["razer"]) is True


def test_matches_description():
    metadata = ProcessMetadata(path="C:/x/svc.exe", description="Armoury Crate Service")
    assert classify(metadata, "svc", DEFAULT_KEYWORDS) is True


def test_matches_publisher():
    metadata = ProcessMetadata(path="C:/x/agent.exe", publisher="Riot Games, Inc.")
    assert classify(metadata, "agent", DEFAULT_KEYWORDS) is True


def test_matches_path():
    metadata = ProcessMetadata(path="C:/Program Files/Epic Games/Launcher/x.exe")
    assert classify(metadata, "x", ["launcher"]) is True


def test_no_match():
    metadata = ProcessMetadata(path="/usr/bin/python3", description="Python", publisher="PSF")
    assert classify(metadata, "python3", DEFAULT_KEYWORDS) is False


def test_keyword_with_space():
    """Multi-word keywords match as a plain substring."""
    assert classify(None, "MSI Mystic Light 3", DEFAULT_KEYWORDS) is True


def test_upper_case_keywords_still_match():
    """Keywords are compared lower-cased on both sides."""
    assert classify(None, "icuesvc", ["ICUE"]) is True


@pytest.mark.parametrize("keywords", [[], [""]])
def test_empty_keywords_never_flag(keywords):
    assert classify(None, "anything", keywords) is False


def test_substring_match_is_not_word_bounded():
    """'aura' matching inside 'restaurant' is expected substring behavior."""
    assert classify(None, "restaurant-pos", ["aura"]) is True


class TestLooksLikeSystemProcess:
    """Tests for the system-process guard."""

    @pytest.mark.parametrize("name", ["System", "Idle", "idle"])
    def test_os_pseudo_processes(self, name):
        assert looks_like_system_process(name, "") is True

    def test_microsoft_publisher(self):
        assert looks_like_system_process("svchost", "Microsoft Corporation") is True

    def test_third_party(self):
        assert looks_like_system_process("Synapse", "Razer Inc.") is False
