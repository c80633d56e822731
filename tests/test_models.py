"""
Tests for the location data model.
"""

from dataclasses import FrozenInstanceError

import pytest

from locator import ClueCategory, GroundingSource, ImagePayload, LocationAnalysis

from helpers import SAMPLE_ANALYSIS


class TestLocationAnalysis:

    def test_from_dict_keeps_literal_values(self):
        analysis = LocationAnalysis.from_dict(SAMPLE_ANALYSIS)

        assert analysis.region == "Souss-Massa"
        assert analysis.specific_area == "Taroudant"
        assert analysis.coordinates.lat == 30.47
        assert analysis.coordinates.lng == -8.88
        assert analysis.confidence == 82
        assert len(analysis.clues) == 1
        assert analysis.clues[0].category is ClueCategory.VEGETATION
        assert analysis.clues[0].description == "Argan trees"
        assert analysis.grounding_urls is None

    def test_to_dict_restores_camel_case_shape(self):
        analysis = LocationAnalysis.from_dict(SAMPLE_ANALYSIS)

        assert analysis.to_dict() == {**SAMPLE_ANALYSIS, "confidence": 82.0}

    def test_missing_coordinates_rejected(self):
        data = dict(SAMPLE_ANALYSIS)
        del data["coordinates"]

        with pytest.raises(ValueError, match="coordinates"):
            LocationAnalysis.from_dict(data)

    def test_non_numeric_confidence_rejected(self):
        with pytest.raises(ValueError, match="confidence"):
            LocationAnalysis.from_dict({**SAMPLE_ANALYSIS, "confidence": "high"})

    def test_boolean_latitude_rejected(self):
        data = {**SAMPLE_ANALYSIS, "coordinates": {"lat": True, "lng": -8.88}}

        with pytest.raises(ValueError, match="lat"):
            LocationAnalysis.from_dict(data)

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    @pytest.mark.parametrize("field", ["confidence", "lat", "lng"])
    def test_non_finite_numbers_rejected(self, field, value):
        if field == "confidence":
            data = {**SAMPLE_ANALYSIS, "confidence": value}
        else:
            data = {**SAMPLE_ANALYSIS, "coordinates": {**SAMPLE_ANALYSIS["coordinates"], field: value}}

        with pytest.raises(ValueError, match="finite"):
            LocationAnalysis.from_dict(data)

    @pytest.mark.parametrize("field", ["region", "specificArea", "reasoning"])
    def test_null_text_field_rejected(self, field):
        with pytest.raises(ValueError, match=field):
            LocationAnalysis.from_dict({**SAMPLE_ANALYSIS, field: None})

    @pytest.mark.parametrize("field", ["region", "specificArea", "reasoning"])
    def test_missing_text_field_rejected(self, field):
        data = {key: value for key, value in SAMPLE_ANALYSIS.items() if key != field}

        with pytest.raises(ValueError, match=field):
            LocationAnalysis.from_dict(data)

    def test_clue_without_description_rejected(self):
        data = {**SAMPLE_ANALYSIS, "clues": [{"category": "Soil"}]}

        with pytest.raises(ValueError, match="description"):
            LocationAnalysis.from_dict(data)

    def test_clue_with_null_description_rejected(self):
        data = {**SAMPLE_ANALYSIS, "clues": [{"category": "Soil", "description": None}]}

        with pytest.raises(ValueError, match="description"):
            LocationAnalysis.from_dict(data)

    def test_grounding_urls_parsed_in_order(self):
        data = {
            **SAMPLE_ANALYSIS,
            "groundingUrls": [
                {"title": "Argan forest", "uri": "https://a.example"},
                {"title": "Taroudant", "uri": "https://b.example"},
            ],
        }

        analysis = LocationAnalysis.from_dict(data)

        assert [src.title for src in analysis.grounding_urls] == ["Argan forest", "Taroudant"]
        assert analysis.to_dict()["groundingUrls"][1]["uri"] == "https://b.example"

    def test_with_grounding_returns_new_instance(self):
        analysis = LocationAnalysis.from_dict(SAMPLE_ANALYSIS)

        grounded = analysis.with_grounding([GroundingSource(title="t", uri="u")])

        assert analysis.grounding_urls is None
        assert grounded.grounding_urls == (GroundingSource(title="t", uri="u"),)
        assert grounded.region == analysis.region

    def test_analysis_is_immutable(self):
        analysis = LocationAnalysis.from_dict(SAMPLE_ANALYSIS)

        with pytest.raises(FrozenInstanceError):
            analysis.confidence = 10


class TestClueCategory:

    def test_parse_is_case_insensitive(self):
        assert ClueCategory.parse("architecture") is ClueCategory.ARCHITECTURE
        assert ClueCategory.parse(" SOIL ") is ClueCategory.SOIL

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError, match="Unknown clue category"):
            ClueCategory.parse("Culture")

    def test_exactly_five_categories(self):
        assert [c.value for c in ClueCategory] == [
            "Vegetation", "Soil", "Architecture", "Infrastructure", "Geography",
        ]


def test_image_payload_data_url():
    payload = ImagePayload(data="aGVsbG8=", mime_type="image/webp")

    assert payload.to_data_url() == "data:image/webp;base64,aGVsbG8="
