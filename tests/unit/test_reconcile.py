"""
Tests for the reconciliation cascade.
"""

import pytest

from ngsvault.errors import LimsIdMismatch
from ngsvault.models import Sample
from ngsvault.services.reconcile import (
    MultipleMatches,
    NoMatch,
    OneMatch,
    match_candidates,
)

RUN = "210802_M70821_0114_000000000-DCWMD"


def sample(name, dna_nr=None, primer_set=None, lims_id=None):
    return Sample(run=RUN, name=name, dna_nr=dna_nr, primer_set=primer_set, lims_id=lims_id)


@pytest.fixture
def candidates():
    return [
        sample("D-21-12345_FR1_Mueller", "21-12345", "FR1", 555),
        sample("D-21-12345_FR2_Mueller", "21-12345", "FR2", 555),
        sample("21-12346_IGHV_Schmidt", "21-12346", "IGHV", 556),
        sample("Kontrolle_NTC"),
    ]


class TestMatchCandidates:
    """Tests for the LIMS, DNA, primer set and name stages."""

    def test_empty_run(self):
        outcome = match_candidates([], RUN, lims_id=555)
        assert outcome == NoMatch(f"No samples in specified run {RUN}")

    def test_single_lims_id(self):
        only = sample("X", lims_id=555)
        assert match_candidates([only], RUN, lims_id=555) == OneMatch(only)

    def test_unknown_lims_id_is_hard_failure(self):
        with pytest.raises(LimsIdMismatch):
            match_candidates([sample("X", lims_id=555)], RUN, lims_id=999)

    def test_lims_id_alone_can_be_ambiguous(self, candidates):
        outcome = match_candidates(candidates, RUN, lims_id=555)
        assert isinstance(outcome, MultipleMatches)
        assert len(outcome.samples) == 2

    def test_lims_then_primer_set(self, candidates):
        outcome = match_candidates(candidates, RUN, lims_id=555, primer_set="FR2")
        assert outcome == OneMatch(candidates[1])

    def test_dna_nr_normalized(self, candidates):
        outcome = match_candidates(candidates, RUN, dna_nr="D-21-12346")
        assert outcome == OneMatch(candidates[2])

    def test_dna_nr_without_match(self, candidates):
        outcome = match_candidates(candidates, RUN, dna_nr="21-99999")
        assert outcome == NoMatch("Sample has passed LIMS filter but not dna_nr filter")

    def test_malformed_dna_nr_ignored(self, candidates):
        outcome = match_candidates(candidates, RUN, dna_nr="21-123", name="Kontrolle")
        assert outcome == OneMatch(candidates[3])

    def test_primer_set_is_substring_of_given_value(self, candidates):
        outcome = match_candidates(candidates, RUN, dna_nr="21-12345", primer_set="FR1+FR3")
        assert outcome == OneMatch(candidates[0])

    def test_primer_set_without_match(self, candidates):
        outcome = match_candidates(candidates, RUN, dna_nr="21-12345", primer_set="IGK")
        assert outcome == NoMatch("Candidates passed LIMS and DNA filter but not primer_set filter")

    def test_name_either_direction(self, candidates):
        assert match_candidates(candidates, RUN, name="Kontrolle") == OneMatch(candidates[3])
        assert match_candidates(candidates, RUN, name="Kontrolle_NTC_rerun") == OneMatch(candidates[3])

    def test_name_without_match(self, candidates):
        outcome = match_candidates(candidates, RUN, name="Unbekannt")
        assert outcome == NoMatch(
            "Candidates passed LIMS, DNA and primer_set filters but not name filter"
        )

    def test_name_ambiguous(self, candidates):
        outcome = match_candidates(candidates, RUN, name="Mueller")
        assert isinstance(outcome, MultipleMatches)

    def test_no_criteria_returns_whole_run(self, candidates):
        outcome = match_candidates(candidates, RUN)
        assert isinstance(outcome, MultipleMatches)
        assert len(outcome.samples) == 4
