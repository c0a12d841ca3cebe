"""
Unit tests for vision analyzer parsing and implementations.
"""

import asyncio
import base64
import json
import pytest
from unittest.mock import AsyncMock, Mock

import sys
sys.path.append('src')

from config import Config
from exceptions import EmptyResponse, MalformedResponseError, NonRetryableCollaboratorError, RateLimited
from models import RawDetection
from vision_analyzer import MockVisionAnalyzer, OpenAIVisionAnalyzer, parse_detections


def completion(content):
    return Mock(choices=[Mock(message=Mock(content=content))])


class TestParseDetections:
    """Test parsing of the model's JSON answer."""

    def test_valid_items(self):
        content = json.dumps({"items": [
            {"name": "Sofa", "condition": "Good", "details": "grey fabric",
             "position": "center", "color": "grey", "nearestItems": ["Lamp"]},
            {"name": "Lamp", "condition": "Fair"},
        ]})
        detections = parse_detections(content)

        assert len(detections) == 2
        assert detections[0].name == "Sofa"
        assert detections[0].nearest_items == ["Lamp"]
        assert detections[0].color == "grey"
        assert detections[1].details == ""
        assert detections[1].position is None

    def test_missing_items_key(self):
        assert parse_detections('{"description": "empty room"}') == []

    def test_null_items(self):
        assert parse_detections('{"items": null}') == []

    def test_empty_content(self):
        with pytest.raises(EmptyResponse):
            parse_detections("")
        with pytest.raises(EmptyResponse):
            parse_detections(None)

    def test_invalid_json(self):
        with pytest.raises(MalformedResponseError, match="invalid JSON"):
            parse_detections("Here are the items: sofa, lamp")

    def test_not_an_object(self):
        with pytest.raises(MalformedResponseError):
            parse_detections('[{"name": "Sofa"}]')

    def test_items_not_list(self):
        with pytest.raises(MalformedResponseError):
            parse_detections('{"items": "sofa"}')

    def test_item_without_name(self):
        with pytest.raises(MalformedResponseError):
            parse_detections('{"items": [{"condition": "Good"}]}')

    def test_numeric_fields(self):
        detections = parse_detections('{"items": [{"name": "TV", "condition": "Good", "value": "450", "confidence": 0.9}]}')
        assert detections[0].value == 450.0
        assert detections[0].confidence == 0.9


class TestMockVisionAnalyzer:
    """Test the scripted mock analyzer."""

    def test_scripted_responses(self):
        analyzer = MockVisionAnalyzer([
            [{"name": "Sofa", "condition": "Good"}],
            [RawDetection(name="Lamp", condition="Fair")],
        ])

        first = asyncio.run(analyzer.detect(b"img1"))
        second = asyncio.run(analyzer.detect(b"img2", ["Sofa - grey"], "fr", False))

        assert first[0].name == "Sofa"
        assert second[0].name == "Lamp"
        assert analyzer.call_count == 2
        assert analyzer.calls[1]['prompt_context'] == ["Sofa - grey"]
        assert analyzer.calls[1]['language'] == "fr"
        assert analyzer.calls[1]['with_metadata'] is False

    def test_last_response_repeats(self):
        analyzer = MockVisionAnalyzer([[{"name": "Rug", "condition": "Worn"}]])
        for _ in range(3):
            assert asyncio.run(analyzer.detect(b"img"))[0].name == "Rug"

    def test_scripted_exception(self):
        analyzer = MockVisionAnalyzer([RateLimited("429")])
        with pytest.raises(RateLimited):
            asyncio.run(analyzer.detect(b"img"))

    def test_scripted_json_uses_parser(self):
        analyzer = MockVisionAnalyzer(["not json"])
        with pytest.raises(MalformedResponseError):
            asyncio.run(analyzer.detect(b"img"))

    def test_reset_stats(self):
        analyzer = MockVisionAnalyzer()
        asyncio.run(analyzer.detect(b"img"))
        analyzer.reset_stats()
        assert analyzer.call_count == 0


class TestOpenAIVisionAnalyzer:
    """Test the OpenAI implementation with a mocked client."""

    def setup_method(self):
        self.config = Config.create_test_config()
        self.client = Mock()
        self.client.chat.completions.create = AsyncMock(
            return_value=completion('{"items": [{"name": "Desk", "condition": "Good"}]}'))
        self.analyzer = OpenAIVisionAnalyzer(self.config, client=self.client)

    def test_detect(self):
        detections = asyncio.run(self.analyzer.detect(b"jpeg-bytes", ["Chair - black"], "en"))

        assert [d.name for d in detections] == ["Desk"]
        kwargs = self.client.chat.completions.create.call_args.kwargs
        assert kwargs['model'] == "gpt-4.1"
        assert kwargs['response_format'] == {"type": "json_object"}
        assert kwargs['max_tokens'] == 8192

    def test_messages_carry_image_and_context(self):
        messages = self.analyzer.build_messages(b"jpeg-bytes", ["Chair - black", "Desk - oak"], "fr", True)

        assert messages[0]['role'] == "system"
        text_part, image_part = messages[1]['content']
        assert "PREVIOUSLY IDENTIFIED ITEMS (DO NOT REPEAT THESE)" in text_part['text']
        assert "1. Chair - black" in text_part['text']
        assert "2. Desk - oak" in text_part['text']
        assert "Respond in fr language." in text_part['text']
        encoded = base64.b64encode(b"jpeg-bytes").decode("ascii")
        assert image_part['image_url']['url'] == f"data:image/jpeg;base64,{encoded}"

    def test_single_image_prompt_has_no_metadata_request(self):
        messages = self.analyzer.build_messages(b"jpeg-bytes", [], "en", False)
        text = messages[1]['content'][0]['text']
        assert "nearestItems" not in text
        assert "PREVIOUSLY IDENTIFIED" not in text

    def test_empty_response(self):
        self.client.chat.completions.create = AsyncMock(return_value=completion(None))
        with pytest.raises(EmptyResponse):
            asyncio.run(self.analyzer.detect(b"jpeg-bytes"))

    def test_empty_image_rejected(self):
        with pytest.raises(NonRetryableCollaboratorError):
            asyncio.run(self.analyzer.detect(b""))
        self.client.chat.completions.create.assert_not_called()

    def test_missing_api_key(self):
        analyzer = OpenAIVisionAnalyzer(Config.create_test_config(OPENAI_API_KEY=""))
        with pytest.raises(NonRetryableCollaboratorError, match="OPENAI_API_KEY"):
            asyncio.run(analyzer.detect(b"jpeg-bytes"))


if __name__ == '__main__':
    pytest.main([__file__])
