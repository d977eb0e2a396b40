"""Unit tests for provider result normalization."""

from docuhealth.intelligence.normalize import (
    extract_confidence,
    merge_results,
    normalize_document,
)
from docuhealth.models.processing import OcrResult


class TestExtractConfidence:
    """Test confidence selection and the unscored sentinel."""

    def test_entity_confidences_take_precedence(self) -> None:
        document = {
            "entities": [{"confidence": 0.9}, {"confidence": 0.8}],
            "pages": [{"layout": {"confidence": 0.5}}],
        }
        assert extract_confidence(document) == 0.85

    def test_falls_back_to_page_layout(self) -> None:
        document = {"pages": [{"layout": {"confidence": 0.96}}, {"layout": {"confidence": 0.9}}]}
        assert extract_confidence(document) == 0.93

    def test_zero_confidence_is_unscored(self) -> None:
        document = {"entities": [{"confidence": 0}], "pages": [{"layout": {"confidence": 0}}]}
        assert extract_confidence(document) is None

    def test_zero_entities_fall_through_to_pages(self) -> None:
        document = {"entities": [{"confidence": 0}], "pages": [{"layout": {"confidence": 0.7}}]}
        assert extract_confidence(document) == 0.7

    def test_missing_everything_is_none(self) -> None:
        assert extract_confidence({}) is None


class TestNormalizeDocument:
    """Test inline and shard payload shapes."""

    def test_inline_response_is_unwrapped(self) -> None:
        payload = {
            "document": {
                "text": "Patient: A. Sharma\n",
                "pages": [{"layout": {"confidence": 0.97}}],
            }
        }
        result = normalize_document(payload)

        assert result.text == "Patient: A. Sharma\n"
        assert result.confidence_score == 0.97
        assert result.page_count == 1

    def test_bare_shard_document(self) -> None:
        result = normalize_document({"text": "Hb 13.2 g/dL", "pages": []})

        assert result.text == "Hb 13.2 g/dL"
        assert result.confidence_score is None
        assert result.page_count == 0


class TestMergeResults:
    """Test shard merging."""

    def test_texts_concatenate_in_order(self) -> None:
        merged = merge_results(
            [
                OcrResult(text="page one ", confidence_score=0.9, page_count=1),
                OcrResult(text="page two", confidence_score=0.8, page_count=1),
            ]
        )
        assert merged.text == "page one page two"
        assert merged.confidence_score == 0.85
        assert merged.shard_count == 2
        assert merged.page_count == 2

    def test_page_weighted_mean_skips_unscored_shards(self) -> None:
        merged = merge_results(
            [
                OcrResult(text="a", confidence_score=0.9, page_count=3),
                OcrResult(text="b", confidence_score=None, page_count=5),
                OcrResult(text="c", confidence_score=0.5, page_count=1),
            ]
        )
        assert merged.confidence_score == 0.8

    def test_no_shards_is_empty_and_unscored(self) -> None:
        merged = merge_results([])
        assert merged.text == ""
        assert merged.confidence_score is None
        assert merged.shard_count == 0
