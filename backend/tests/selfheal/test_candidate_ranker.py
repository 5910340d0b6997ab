"""
Unit tests for CandidateRanker.

Tests candidate filtering, sensitive-field type agreement and the
context ladder.
"""

import pytest

from selfheal.config import RankingWeights
from selfheal.core.candidate_ranker import Candidate, CandidateRanker
from selfheal.core.language import NaturalLanguageEngine


@pytest.fixture
def ranker():
    return CandidateRanker()


@pytest.fixture
def nlp():
    return NaturalLanguageEngine()


def candidate(features, selector):
    return Candidate(element=None, selector=selector, features=features)


class TestFiltering:
    """Test removal of hidden and system fields."""

    def test_hidden_and_system_fields_dropped(self, ranker, make_features):
        """Test hidden inputs, tokens and invisible elements are dropped."""
        visible = candidate(make_features(attributes={"type": "text", "name": "email"}), "#email")
        candidates = [
            visible,
            candidate(make_features(attributes={"type": "hidden", "name": "next"}), "#next"),
            candidate(make_features(attributes={"name": "_token"}), "#token"),
            candidate(make_features(attributes={"name": "csrfmiddlewaretoken"}), "#csrf"),
            candidate(make_features(attributes={"name": "__VIEWSTATE"}), "#vs"),
            candidate(make_features(attributes={"type": "text"}, visible=False), "#invisible"),
        ]

        assert ranker.filter_candidates(candidates) == [visible]

    def test_falls_back_to_all_candidates(self, ranker, make_features):
        """Test nothing is dropped when everything would be."""
        candidates = [candidate(make_features(attributes={"type": "hidden"}), "#h")]

        assert ranker.filter_candidates(candidates) == candidates


class TestSensitiveFields:
    """Test input type agreement for passwords and usernames."""

    def test_password_input_beats_password_named_text_field(self, ranker, nlp, make_features):
        """Test a real password input outranks a text field named after passwords."""
        password = make_features(attributes={"type": "password", "id": "pwd"})
        hint = make_features(attributes={"type": "text", "name": "password_hint"})

        ranked = ranker.rank(
            [candidate(hint, "#hint"), candidate(password, "#pwd")],
            nlp.process_description("enter the password"),
        )

        assert [r.selector for r in ranked] == ["#pwd", "#hint"]
        assert ranked[0].confidence == pytest.approx(0.55)
        assert ranked[1].confidence == pytest.approx(-0.45)

    def test_username_rejects_password_input(self, ranker, nlp, make_features):
        """Test a username description penalises password inputs."""
        parsed = nlp.process_description("type the username")

        text_score = ranker.input_type_score(
            make_features(attributes={"type": "text"}), parsed, parsed.keywords
        )
        password_score = ranker.input_type_score(
            make_features(attributes={"type": "password"}), parsed, parsed.keywords
        )

        assert text_score == pytest.approx(0.5)
        assert password_score == pytest.approx(-0.8)

    def test_generic_type_bonus(self, ranker, nlp, make_features):
        """Test typing into a plain text box earns the generic bonus."""
        parsed = nlp.process_description("fill the comment box")

        score = ranker.input_type_score(make_features(attributes={"type": "text"}), parsed, parsed.keywords)

        assert score == pytest.approx(0.2)

    def test_non_inputs_unaffected(self, ranker, nlp, make_features):
        """Test type agreement only applies to inputs."""
        parsed = nlp.process_description("enter the password")

        assert ranker.input_type_score(make_features(tag="button"), parsed, parsed.keywords) == 0.0


class TestContextLadder:
    """Test the strongest-source-wins context score."""

    def test_label_is_decisive(self, ranker, make_features):
        """Test a label hit is not topped up by weaker sources."""
        features = make_features(
            attributes={"placeholder": "email", "name": "email"}, label_text="Email address"
        )

        assert ranker.context_score(features, ["email"]) == pytest.approx(0.98)

    def test_test_id_is_strongest(self, ranker, make_features):
        """Test a test id hit scores 1.0."""
        features = make_features(test_id="login-email", label_text="Email")

        assert ranker.context_score(features, ["email"]) == pytest.approx(1.0)

    def test_max_not_sum(self, ranker, make_features):
        """Test several weaker hits give the best single weight."""
        features = make_features(attributes={"name": "search", "id": "search"}, inner_text="Search")

        assert ranker.context_score(features, ["search"]) == pytest.approx(0.95)

    def test_no_hit(self, ranker, make_features):
        """Test no matching source scores zero."""
        assert ranker.context_score(make_features(attributes={"name": "city"}), ["email"]) == 0.0

    def test_custom_ladder(self, make_features):
        """Test the ladder weights come from RankingWeights."""
        weights = RankingWeights()
        weights.context_sources["name"] = 0.5
        ranker = CandidateRanker(weights)

        assert ranker.context_score(make_features(attributes={"name": "email"}), ["email"]) == pytest.approx(0.5)


class TestScore:
    """Test the combined score."""

    def test_button_text_boost(self, ranker, nlp, make_features):
        """Test buttons whose text matches get the button boost."""
        parsed = nlp.process_description("click login")
        features = make_features(tag="button", inner_text="Login")

        # 0.95 * 0.4 context + 0.5 button boost + 0.05 visibility
        assert ranker.score(features, parsed) == pytest.approx(0.93)

    def test_score_capped_at_one(self, ranker, nlp, make_features):
        """Test scores never exceed 1.0."""
        parsed = nlp.process_description("click login")
        features = make_features(
            tag="button", inner_text="Login",
            framework_hints="react", component_library="material-ui",
        )

        assert ranker.score(features, parsed) == 1.0

    def test_penalties(self, ranker, nlp, make_features):
        """Test loading, iframe and shadow DOM penalties."""
        parsed = nlp.process_description("click login")
        clean = make_features(tag="button", inner_text="Login")
        penalised = make_features(
            tag="button", inner_text="Login",
            has_loading_indicator=True, in_iframe=True, in_shadow_dom=True, shadow_root_host="app-root",
        )

        difference = ranker.score(clean, parsed) - ranker.score(penalised, parsed)

        assert difference == pytest.approx(0.15 + 0.05 + 0.02)

    def test_table_context(self, ranker, nlp, make_features):
        """Test header matches and table operations inside tables."""
        parsed = nlp.process_description("click the price column")
        features = make_features(tag="td", table_context="table", table_headers=["Name", "Price"])

        assert ranker.advanced_context_score(features, parsed.keywords) == pytest.approx(0.35 + 0.20)

    def test_quoted_text_similarity(self, ranker, nlp, make_features):
        """Test quoted text adds weighted similarity."""
        parsed = nlp.process_description("click 'Sign in'")
        features = make_features(tag="div", text="Sign in")

        assert ranker.text_match(features, "Sign in") == 1.0
        assert ranker.score(features, parsed) == pytest.approx(0.1 + 0.05)

    def test_rank_sorts_descending(self, ranker, nlp, make_features):
        """Test ranking order."""
        parsed = nlp.process_description("click login")
        ranked = ranker.rank(
            [
                candidate(make_features(tag="div"), ".a"),
                candidate(make_features(tag="button", inner_text="Login"), "#login"),
            ],
            parsed,
        )

        assert ranked[0].selector == "#login"
        assert ranked[0].confidence >= ranked[1].confidence
